"""Migration phase orchestrator - static to dynamic group membership in three steps."""

import logging

from principalsync.engine.reconciliation import ReconciliationEngine
from principalsync.engine.workflow import GroupExternalizationWorkflow
from principalsync.models import (
    DirectMembershipStripResult,
    DynamicGroupSyncResult,
    ExternalGroupLinkResult,
    MigrationState,
    MigrationStateResult,
)
from principalsync.observability.metrics import metrics
from principalsync.principals import EXTERNAL_ID, external_identity_ref

logger = logging.getLogger(__name__)


class MigrationPhases:
    """
    The three idempotent migration phases.

    1. ``link_external_group``       - external group created and linked
    2. ``assign_dynamic_groups``     - per user, dynamic principals granted
    3. ``strip_direct_user_members`` - direct user edges removed

    Running phase 3 before phase 2 has covered the same users leaves them
    without access until the IdP assertion is re-evaluated. Sequencing is up
    to the caller.
    """

    def __init__(self, engine: ReconciliationEngine):
        self.engine = engine
        self.directory = engine.directory
        self.workflow = GroupExternalizationWorkflow(engine)

    async def link_external_group(self, group_path: str, idp: str) -> ExternalGroupLinkResult:
        """Phase 1: create ``<group>;<idp>`` and make it a member of the local group."""
        local_group = await self.engine.require_group_by_path(group_path)
        _, result = await self.workflow.link(local_group, idp)
        await self.directory.commit()
        logger.info(result.summary())
        return result

    async def assign_dynamic_groups(self, user_id: str, idp: str) -> DynamicGroupSyncResult:
        """Phase 2: grant ``<group>;<idp>`` principals for every direct group of a user."""
        return await self.engine.reconcile_user_dynamic_groups(user_id, idp)

    async def strip_direct_user_members(self, group_path: str) -> DirectMembershipStripResult:
        """Phase 3: remove every direct user member; group members stay."""
        local_group = await self.engine.require_group_by_path(group_path)
        result = DirectMembershipStripResult(local_group_id=local_group.id)

        members = [member async for member in self.directory.declared_members(local_group)]
        for member in members:
            if member.is_group:
                result.preserved_groups.append(member.id)
                if self.directory.get_single_valued(member, EXTERNAL_ID):
                    result.external_groups_preserved += 1
                else:
                    result.group_members_preserved += 1
                continue

            if await self.directory.remove_member(local_group, member):
                result.removed_users.append(member.id)
            else:
                logger.warning(
                    "Failed to remove user '%s' from group '%s'", member.id, local_group.id
                )

        await self.directory.commit()

        result.users_removed = len(result.removed_users)
        metrics.inc_counter("phase3.users_removed", result.users_removed)
        logger.info(result.summary())
        return result

    async def describe_state(self, group_path: str, idp: str) -> MigrationStateResult:
        """Read-only: where the local group stands for the given idp."""
        local_group = await self.engine.require_group_by_path(group_path)
        external_group_id = external_identity_ref(local_group.id, idp)

        linked = False
        users = []
        async for member in self.directory.declared_members(local_group):
            if member.id == external_group_id:
                linked = True
            elif not member.is_group:
                users.append(member)

        pending = [
            user.id
            for user in users
            if external_group_id not in self.engine.read_principal_names(user)
        ]

        if not linked:
            state = MigrationState.UNMIGRATED
        elif pending:
            state = MigrationState.EXTERNAL_GROUP_LINKED
        elif users:
            state = MigrationState.DYNAMIC_MEMBERSHIP_GRANTED
        else:
            state = MigrationState.DIRECT_MEMBERSHIP_STRIPPED

        return MigrationStateResult(
            local_group_id=local_group.id,
            external_group_id=external_group_id,
            state=state,
            direct_user_members=len(users),
            users_pending_dynamic_membership=pending,
        )
