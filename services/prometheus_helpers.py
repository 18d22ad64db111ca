"""Utilities for creating Prometheus collectors that survive re-imports."""

from __future__ import annotations

from typing import Optional, Sequence

from prometheus_client import REGISTRY, Counter

from core.logging import get_logger

logger = get_logger(__name__)


def _lookup_collector(name: str):
    existing = getattr(REGISTRY, "_names_to_collectors", None)
    if isinstance(existing, dict):
        # Counters register under both the base name and the ``_total`` sample name.
        return existing.get(name) or existing.get(f"{name}_total")
    return None


def build_counter(name: str, documentation: str, labelnames: Sequence[str] | None = None) -> Optional[Counter]:
    """Create a Counter while tolerating duplicate registrations."""

    labels = tuple(labelnames or ())
    try:
        return Counter(name, documentation, labels)
    except ValueError:
        collector = _lookup_collector(name)
        if collector is None:
            logger.debug("Counter %s already registered but not found in registry.", name)
        return collector


__all__ = ["build_counter"]
