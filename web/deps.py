"""Shared FastAPI dependencies."""

from __future__ import annotations

from services.onelink import OneLinkService
from services.onelink.facade import get_onelink_service


def get_link_service() -> OneLinkService:
    """Return the process-wide one-time link service (overridden in tests)."""
    return get_onelink_service()
