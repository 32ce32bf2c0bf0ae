"""Group externalization workflow - one transactional unit per local group."""

import logging

from principalsync.db.store import Authorizable
from principalsync.engine.errors import ValidationError
from principalsync.engine.reconciliation import ReconciliationEngine
from principalsync.models import ExternalGroupLinkResult, GroupMigrationResult
from principalsync.observability.metrics import metrics
from principalsync.principals import external_identity_ref

logger = logging.getLogger(__name__)


class GroupExternalizationWorkflow:
    """Links a local group to its external counterpart and externalizes its users."""

    def __init__(self, engine: ReconciliationEngine):
        self.engine = engine
        self.directory = engine.directory

    async def link(
        self, local_group: Authorizable, idp: str
    ) -> tuple[Authorizable, ExternalGroupLinkResult]:
        """Ensure ``<group>;<idp>`` exists and is a member of the local group. No commit."""
        if self.engine.is_system_group(local_group.id):
            raise ValidationError(f"System group '{local_group.id}' cannot be externalized")

        external_group_id = external_identity_ref(local_group.id, idp)
        external_group, created = await self.engine.ensure_external_group(
            external_group_id, external_group_id
        )
        added = await self.directory.add_member(local_group, external_group)
        if added:
            logger.info(
                "Added external group '%s' as member of '%s'", external_group_id, local_group.id
            )
        else:
            logger.info(
                "External group '%s' is already a member of '%s'",
                external_group_id, local_group.id,
            )

        return external_group, ExternalGroupLinkResult(
            local_group_id=local_group.id,
            external_group_principal_name=external_group_id,
            external_group_created=created,
            external_group_added=added,
        )

    async def externalize_group(self, group_path: str, idp: str) -> GroupMigrationResult:
        """
        Externalize a local group and every direct user member in one commit.

        Group members are never flattened; the linked external group itself is
        the binding and is not reported as a skipped member.
        """
        local_group = await self.engine.require_group_by_path(group_path)
        external_group, link = await self.link(local_group, idp)

        result = GroupMigrationResult(
            local_group_id=local_group.id,
            external_group_id=link.external_group_principal_name,
            external_group_created=link.external_group_created,
            external_group_added=link.external_group_added,
        )

        members = [member async for member in self.directory.declared_members(local_group)]
        for member in members:
            if member.id == external_group.id:
                continue
            if member.is_group:
                result.skipped_groups.append(member.id)
                continue

            result.processed_users.append(member.id)
            if self.engine.ensure_external_id(member, idp):
                result.users_with_external_id_added += 1
            if self.engine.append_principal_name(member, result.external_group_id):
                self.engine.refresh_sync_timestamps(member)
                result.users_updated += 1
            else:
                logger.debug(
                    "User '%s' already has principal '%s'", member.id, result.external_group_id
                )

        await self.directory.commit()

        result.users_processed = len(result.processed_users)
        result.group_members_skipped = len(result.skipped_groups)
        metrics.inc_counter("workflow.users_updated", result.users_updated)
        logger.info(result.summary())
        return result
