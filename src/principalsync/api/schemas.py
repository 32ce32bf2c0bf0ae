"""API response schemas (camelCase on the wire)."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from principalsync.models import (
    DirectMembershipStripResult,
    DynamicGroupSyncResult,
    ExternalGroupLinkResult,
    GroupMigrationResult,
    MigrationState,
    MigrationStateResult,
    PrincipalProvisionResult,
)


class ApiResponse(BaseModel):
    """Common envelope; every body carries ``success``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    message: Optional[str] = None


class ErrorResponse(ApiResponse):
    success: bool = False
    error: str


# ============================================================================
# Group provisioner
# ============================================================================


class PrincipalProvisionResponse(ApiResponse):
    user_id: str
    principal_name: str
    user_created: bool
    group_created: bool
    user_converted: bool
    principal_already_existed: bool
    all_principals: list[str]

    @classmethod
    def from_result(cls, result: PrincipalProvisionResult) -> "PrincipalProvisionResponse":
        return cls(message=result.summary(), **result.model_dump())


class ExternalPrincipalsResponse(ApiResponse):
    user_id: str
    external_principal_names: list[str]
    count: int


# ============================================================================
# Migration phases
# ============================================================================


class ExternalGroupLinkResponse(ApiResponse):
    local_group_id: str
    external_group_principal_name: str
    external_group_created: bool
    external_group_added: bool

    @classmethod
    def from_result(cls, result: ExternalGroupLinkResult) -> "ExternalGroupLinkResponse":
        return cls(message=result.summary(), **result.model_dump())


class DynamicGroupSyncResponse(ApiResponse):
    user_id: str
    user_converted: bool
    group_memberships_checked: int
    system_groups_skipped: int
    principals_added: int
    principals_skipped: int
    processed_groups: list[str]
    skipped_system_groups: list[str]
    added_principals: list[str]
    skipped_principals: list[str]
    all_external_principals: list[str]

    @classmethod
    def from_result(cls, result: DynamicGroupSyncResult) -> "DynamicGroupSyncResponse":
        return cls(message=result.summary(), **result.model_dump())


class DirectMembershipStripResponse(ApiResponse):
    local_group_id: str
    users_removed: int
    group_members_preserved: int
    external_groups_preserved: int
    removed_users: list[str]
    preserved_groups: list[str]

    @classmethod
    def from_result(cls, result: DirectMembershipStripResult) -> "DirectMembershipStripResponse":
        return cls(message=result.summary(), **result.model_dump())


class GroupMigrationResponse(ApiResponse):
    local_group_id: str
    external_group_id: str
    external_group_created: bool
    external_group_added: bool
    users_processed: int
    users_updated: int
    users_with_external_id_added: int
    group_members_skipped: int
    processed_users: list[str]
    skipped_groups: list[str]

    @classmethod
    def from_result(cls, result: GroupMigrationResult) -> "GroupMigrationResponse":
        return cls(message=result.summary(), **result.model_dump())


class MigrationStateResponse(ApiResponse):
    local_group_id: str
    external_group_id: str
    state: MigrationState
    direct_user_members: int
    users_pending_dynamic_membership: list[str]

    @classmethod
    def from_result(cls, result: MigrationStateResult) -> "MigrationStateResponse":
        return cls(**result.model_dump())


# ============================================================================
# Info
# ============================================================================


class UsageResponse(ApiResponse):
    endpoint: str
    method: str = "POST"
    description: str
    parameters: dict[str, str] = Field(default_factory=dict)


class HealthResponse(ApiResponse):
    status: str
    version: str


class MetricsResponse(ApiResponse):
    counters: dict[str, float]
    histograms: dict[str, dict[str, Any]]
