"""Result models returned by the reconciliation engine, workflow and phases."""

from pydantic import BaseModel, Field

from principalsync.models.enums import MigrationState


class DynamicGroupSyncResult(BaseModel):
    """Outcome of converging one user's external principal names (Phase 2)."""

    user_id: str
    user_converted: bool = False
    group_memberships_checked: int = 0
    system_groups_skipped: int = 0
    principals_added: int = 0
    principals_skipped: int = 0
    processed_groups: list[str] = Field(default_factory=list)
    skipped_system_groups: list[str] = Field(default_factory=list)
    added_principals: list[str] = Field(default_factory=list)
    skipped_principals: list[str] = Field(default_factory=list)
    all_external_principals: list[str] = Field(default_factory=list)

    def summary(self) -> str:
        parts = [f"Successfully processed user '{self.user_id}'."]
        if self.user_converted:
            parts.append("Converted user to external user.")
        parts.append(f"Checked {self.group_memberships_checked} group memberships.")
        if self.system_groups_skipped:
            parts.append(f"Skipped {self.system_groups_skipped} system groups.")
        if self.principals_added:
            parts.append(f"Added {self.principals_added} dynamic group principals.")
        if self.principals_skipped:
            parts.append(f"{self.principals_skipped} principals already existed.")
        parts.append("Updated sync timestamps.")
        return " ".join(parts)


class PrincipalProvisionResult(BaseModel):
    """Outcome of adding one principal name to a user."""

    user_id: str
    principal_name: str
    user_created: bool = False
    group_created: bool = False
    user_converted: bool = False
    principal_already_existed: bool = False
    all_principals: list[str] = Field(default_factory=list)

    def summary(self) -> str:
        parts = []
        if self.user_created:
            parts.append(f"Created external user '{self.user_id}'.")
        if self.group_created:
            parts.append(f"Created external group '{self.principal_name}'.")
        if self.principal_already_existed:
            parts.append(
                f"External principal '{self.principal_name}' already exists on user "
                f"'{self.user_id}'."
            )
        else:
            parts.append(
                f"Successfully added external principal '{self.principal_name}' to user "
                f"'{self.user_id}'."
            )
        return " ".join(parts)


class ExternalGroupLinkResult(BaseModel):
    """Outcome of Phase 1 for one local group."""

    local_group_id: str
    external_group_principal_name: str
    external_group_created: bool = False
    external_group_added: bool = False

    def summary(self) -> str:
        created = "Created" if self.external_group_created else "Found existing"
        linked = (
            "added it to the local group"
            if self.external_group_added
            else "it was already a member of the local group"
        )
        return (
            f"Successfully processed group '{self.local_group_id}'. {created} external group "
            f"'{self.external_group_principal_name}' and {linked}."
        )


class GroupMigrationResult(BaseModel):
    """Outcome of externalizing a local group and its direct user members."""

    local_group_id: str
    external_group_id: str
    external_group_created: bool = False
    external_group_added: bool = False
    users_processed: int = 0
    users_updated: int = 0
    users_with_external_id_added: int = 0
    group_members_skipped: int = 0
    processed_users: list[str] = Field(default_factory=list)
    skipped_groups: list[str] = Field(default_factory=list)

    def summary(self) -> str:
        parts = [
            f"Successfully migrated group '{self.local_group_id}'. Created external group "
            f"'{self.external_group_id}' and processed {self.users_processed} users."
        ]
        if self.users_updated:
            parts.append(f"Updated {self.users_updated} users with external principal.")
        if self.users_with_external_id_added:
            parts.append(f"Added rep:externalId to {self.users_with_external_id_added} users.")
        if self.group_members_skipped:
            parts.append(f"Skipped {self.group_members_skipped} group members.")
        return " ".join(parts)


class DirectMembershipStripResult(BaseModel):
    """Outcome of Phase 3 for one local group."""

    local_group_id: str
    users_removed: int = 0
    group_members_preserved: int = 0
    external_groups_preserved: int = 0
    removed_users: list[str] = Field(default_factory=list)
    preserved_groups: list[str] = Field(default_factory=list)

    def summary(self) -> str:
        parts = [f"Successfully processed group '{self.local_group_id}'."]
        if self.users_removed:
            parts.append(f"Removed {self.users_removed} user members from the group.")
        else:
            parts.append("No user members found to remove.")
        if self.group_members_preserved:
            parts.append(f"Preserved {self.group_members_preserved} group memberships.")
        return " ".join(parts)


class MigrationStateResult(BaseModel):
    """Read-only view of a local group's migration progress for one idp."""

    local_group_id: str
    external_group_id: str
    state: MigrationState
    direct_user_members: int = 0
    users_pending_dynamic_membership: list[str] = Field(default_factory=list)
