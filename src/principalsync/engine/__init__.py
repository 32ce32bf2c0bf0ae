"""PrincipalSync engine - reconciliation, group workflow and migration phases.

The engine classes live in their own modules (``reconciliation``, ``workflow``,
``phases``); this package exposes the error taxonomy shared by all of them.
"""

from principalsync.engine.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PrincipalSyncError,
    StoreConnectionError,
    StoreError,
    TypeMismatchError,
    ValidationError,
)

__all__ = [
    "ConflictError",
    "ForbiddenError",
    "NotFoundError",
    "PrincipalSyncError",
    "StoreConnectionError",
    "StoreError",
    "TypeMismatchError",
    "ValidationError",
]
