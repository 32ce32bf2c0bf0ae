"""Access gate - only the trusted technical account reaches the directory."""

import logging

from principalsync.auth.context import AuthContext
from principalsync.config import settings
from principalsync.engine.errors import ForbiddenError
from principalsync.observability.metrics import metrics

logger = logging.getLogger(__name__)


def is_trusted_caller(caller_id: str | None, trusted_caller_id: str | None = None) -> bool:
    """Exact, case-sensitive match against the configured technical account."""
    expected = trusted_caller_id if trusted_caller_id is not None else settings.trusted_caller_id
    return bool(caller_id) and caller_id == expected


def enforce_access_gate(auth: AuthContext) -> AuthContext:
    """Raise ForbiddenError unless the caller is the trusted technical account."""
    if is_trusted_caller(auth.caller_id):
        return auth

    logger.warning("Access denied for caller '%s' (%s)", auth.caller_id, auth.auth_type)
    metrics.inc_counter("gate.rejected")
    raise ForbiddenError(auth.caller_id)
