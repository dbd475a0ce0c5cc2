"""
popups_api/services/durable_store.py – durable key/value table for transients.

Rows are keyed by ``option_name`` and carry an opaque serialized value plus an
``autoload`` flag. Upserts are insert-or-replace: a key never has two rows.

Two backends:
• ``InMemoryDurableStore`` – dict-backed, for development and tests.
• ``SQLDurableStore``      – SQLAlchemy Core over an ``options`` table
  (SQLite, PostgreSQL or MySQL).
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from popups_api.exceptions import StoreError

logger = logging.getLogger(__name__)

AUTOLOAD_VALUES = ("yes", "no")


def _check_autoload(autoload: str) -> None:
    if autoload not in AUTOLOAD_VALUES:
        raise ValueError(f"autoload must be one of {AUTOLOAD_VALUES}, got {autoload!r}")


# ── Interface ─────────────────────────────────────────────────────────────────


class DurableStore(ABC):
    """Durable key/value table consumed by the transient store."""

    @abstractmethod
    def read(self, key: str) -> Optional[bytes]:
        """Return the stored value, or ``None`` if no row exists.

        Raises:
            StoreError: if the backend cannot be reached or the query fails.
        """

    @abstractmethod
    def upsert(self, key: str, value: bytes, autoload: str = "no") -> None:
        """Insert or replace the row for ``key``.

        Raises:
            StoreError: if the backend cannot be reached or the write fails.
        """


# ── In-memory backend ─────────────────────────────────────────────────────────


class InMemoryDurableStore(DurableStore):
    """Dict-backed store. Data is lost on process exit."""

    def __init__(self) -> None:
        self._rows: dict[str, tuple[bytes, str]] = {}
        self._lock = threading.Lock()
        self.read_calls = 0
        self.write_calls = 0

    def read(self, key: str) -> Optional[bytes]:
        with self._lock:
            self.read_calls += 1
            row = self._rows.get(key)
        return row[0] if row is not None else None

    def upsert(self, key: str, value: bytes, autoload: str = "no") -> None:
        _check_autoload(autoload)
        with self._lock:
            self.write_calls += 1
            self._rows[key] = (bytes(value), autoload)

    def autoload_of(self, key: str) -> Optional[str]:
        row = self._rows.get(key)
        return row[1] if row is not None else None

    def __len__(self) -> int:
        return len(self._rows)


# ── SQL backend ───────────────────────────────────────────────────────────────

metadata = sa.MetaData()

options_table = sa.Table(
    "options",
    metadata,
    sa.Column("option_name", sa.String(191), primary_key=True),
    sa.Column("option_value", sa.LargeBinary, nullable=False),
    sa.Column("autoload", sa.String(20), nullable=False, server_default="yes"),
)


def create_store_engine(database_url: str) -> sa.Engine:
    """Create an engine with settings appropriate to the backend."""
    if database_url.startswith("sqlite"):
        # SQLite needs check_same_thread=False when shared across worker threads
        return sa.create_engine(database_url, connect_args={"check_same_thread": False})
    return sa.create_engine(database_url, pool_pre_ping=True, pool_size=5, max_overflow=10)


class SQLDurableStore(DurableStore):
    """Durable store backed by a relational ``options`` table.

    Parameters:
        engine:        A SQLAlchemy engine. Pass ``create_store_engine(url)``.
        create_schema: Create the ``options`` table if it does not exist.
    """

    def __init__(self, engine: sa.Engine, create_schema: bool = True) -> None:
        self._engine = engine
        if create_schema:
            try:
                metadata.create_all(engine)
            except SQLAlchemyError as exc:
                raise StoreError("create_schema", str(exc), cause=exc) from exc

    @classmethod
    def from_url(cls, database_url: str) -> "SQLDurableStore":
        return cls(create_store_engine(database_url))

    @property
    def engine(self) -> sa.Engine:
        return self._engine

    def _upsert_statement(self, key: str, value: bytes, autoload: str):
        row = {"option_name": key, "option_value": value, "autoload": autoload}
        dialect = self._engine.dialect.name
        if dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        elif dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect in ("mysql", "mariadb"):
            from sqlalchemy.dialects.mysql import insert

            stmt = insert(options_table).values(**row)
            return stmt.on_duplicate_key_update(
                option_value=stmt.inserted.option_value,
                autoload=stmt.inserted.autoload,
            )
        else:
            raise StoreError("upsert", f"unsupported database dialect '{dialect}'")

        stmt = insert(options_table).values(**row)
        return stmt.on_conflict_do_update(
            index_elements=[options_table.c.option_name],
            set_={
                "option_value": stmt.excluded.option_value,
                "autoload": stmt.excluded.autoload,
            },
        )

    # ── DurableStore protocol ────────────────────────────────────────────────

    def read(self, key: str) -> Optional[bytes]:
        query = (
            sa.select(options_table.c.option_value)
            .where(options_table.c.option_name == key)
            .limit(1)
        )
        try:
            with self._engine.connect() as conn:
                value = conn.execute(query).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Durable read failed", extra={"key": key, "error": str(exc)})
            raise StoreError("read", str(exc), cause=exc) from exc
        return bytes(value) if value is not None else None

    def upsert(self, key: str, value: bytes, autoload: str = "no") -> None:
        _check_autoload(autoload)
        stmt = self._upsert_statement(key, value, autoload)
        try:
            with self._engine.begin() as conn:
                conn.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("Durable upsert failed", extra={"key": key, "error": str(exc)})
            raise StoreError("upsert", str(exc), cause=exc) from exc

    def ping(self) -> bool:
        """Return True if the backend answers a trivial query."""
        try:
            with self._engine.connect() as conn:
                conn.execute(sa.text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("Durable store ping failed", exc_info=True)
            return False
        return True
