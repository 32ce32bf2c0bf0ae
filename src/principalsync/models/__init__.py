"""PrincipalSync data models."""

from principalsync.models.enums import MigrationState
from principalsync.models.results import (
    DirectMembershipStripResult,
    DynamicGroupSyncResult,
    ExternalGroupLinkResult,
    GroupMigrationResult,
    MigrationStateResult,
    PrincipalProvisionResult,
)

__all__ = [
    "DirectMembershipStripResult",
    "DynamicGroupSyncResult",
    "ExternalGroupLinkResult",
    "GroupMigrationResult",
    "MigrationState",
    "MigrationStateResult",
    "PrincipalProvisionResult",
]
