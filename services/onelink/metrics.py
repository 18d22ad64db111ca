"""Prometheus counters for one-time link activity."""

from __future__ import annotations

from services.prometheus_helpers import build_counter

_ISSUED = build_counter(
    "onelink_issued",
    "One-time links issued.",
)
_VALIDATIONS = build_counter(
    "onelink_validations",
    "One-time link validation attempts grouped by path and outcome.",
    ("path", "outcome"),
)
_BACKEND_ERRORS = build_counter(
    "onelink_backend_errors",
    "Best-effort cache/lock/access-marker failures.",
    ("op",),
)


def record_issued() -> None:
    if _ISSUED is None:
        return
    _ISSUED.inc()


def record_validation(path: str, outcome: str) -> None:
    if _VALIDATIONS is None:
        return
    _VALIDATIONS.labels(path=path, outcome=outcome).inc()


def record_backend_error(op: str) -> None:
    if _BACKEND_ERRORS is None:
        return
    _BACKEND_ERRORS.labels(op=op).inc()


__all__ = ["record_backend_error", "record_issued", "record_validation"]
