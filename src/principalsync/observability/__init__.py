"""Observability helpers for PrincipalSync."""

from principalsync.observability.metrics import metrics

__all__ = ["metrics"]
