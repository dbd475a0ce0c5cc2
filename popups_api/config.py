"""
popups_api/config.py – application settings loaded from environment variables.
"""
from __future__ import annotations

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Durable store ─────────────────────────────────────────────────────────
    database_url: str = "sqlite:///./popups.db"
    transient_prefix: str = "_transient_"

    # ── Process cache ─────────────────────────────────────────────────────────
    cache_group: str = "newspack-popups"
    cache_ttl_seconds: Optional[int] = 60

    # ── Request trust ─────────────────────────────────────────────────────────
    trusted_referer_hosts: list[str] = []

    # ── Rate limiting ─────────────────────────────────────────────────────────
    rate_limit_per_minute: int = 120

    # ── App ───────────────────────────────────────────────────────────────────
    app_name: str = "Popups Lightweight API"
    app_version: str = "1.0.0"
    debug: bool = False
    popups_debug: bool = False
    log_level: str = "INFO"


settings = Settings()
