"""
popups_api/services/referer.py – request trust decision.
"""
from __future__ import annotations

from collections.abc import Iterable
from typing import Optional
from urllib.parse import urlsplit


def referer_host(referer: Optional[str]) -> Optional[str]:
    """Return the lowercased hostname of a Referer URL, or None."""
    if not referer:
        return None
    try:
        host = urlsplit(referer).hostname
    except ValueError:
        return None
    return host or None


def verify_referer(
    referer: Optional[str],
    host: Optional[str],
    extra_hosts: Iterable[str] = (),
) -> bool:
    """Trust the request only if the Referer points back at this host.

    ``host`` is the Host header and may carry a port; only the hostname part
    is compared. ``extra_hosts`` lists additional trusted referer hostnames
    (e.g. an AMP cache domain).
    """
    ref_host = referer_host(referer)
    if not ref_host or not host:
        return False
    own_host = host.strip().lower()
    if own_host.startswith("["):
        own_host = own_host.split("]", 1)[0].lstrip("[")
    else:
        own_host = own_host.rsplit(":", 1)[0] if own_host.count(":") == 1 else own_host
    trusted = {own_host, *(h.strip().lower() for h in extra_hosts if h)}
    return ref_host in trusted
