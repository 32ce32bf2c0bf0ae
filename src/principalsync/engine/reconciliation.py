"""Principal reconciliation engine - converges external principal names per user."""

import logging
from typing import Iterable

from principalsync.config import settings
from principalsync.db.store import Authorizable, DirectorySession
from principalsync.engine.errors import (
    ConflictError,
    NotFoundError,
    TypeMismatchError,
    ValidationError,
)
from principalsync.models import DynamicGroupSyncResult, PrincipalProvisionResult
from principalsync.observability.metrics import metrics
from principalsync.principals import (
    EXTERNAL_ID,
    EXTERNAL_PRINCIPAL_NAMES,
    LAST_DYNAMIC_SYNC,
    LAST_SYNCED,
    dedupe_principal_names,
    external_identity_ref,
    is_system_group,
    validate_idp_name,
)
from principalsync.utils.time import add_years, utc_now

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """
    Core reconciliation operations over one open directory session.

    Each public operation performs its reads and writes through the session and
    commits exactly once at the end. A failure before the commit leaves the
    directory untouched once the session is closed.
    """

    def __init__(
        self,
        directory: DirectorySession,
        sync_extension_years: int | None = None,
        system_group_ids: Iterable[str] | None = None,
    ):
        self.directory = directory
        self.sync_extension_years = (
            settings.sync_extension_years
            if sync_extension_years is None
            else sync_extension_years
        )
        self.system_group_ids = list(
            settings.system_group_ids if system_group_ids is None else system_group_ids
        )

    def is_system_group(self, group_id: str) -> bool:
        return is_system_group(group_id, self.system_group_ids)

    # =========================================================================
    # Lookups
    # =========================================================================

    async def require_user(self, user_id: str) -> Authorizable:
        """Fetch a user by id or raise NotFoundError / TypeMismatchError."""
        authorizable = await self.directory.find_by_id(user_id)
        if authorizable is None:
            raise NotFoundError(f"User not found: {user_id}")
        if authorizable.is_group:
            raise TypeMismatchError(f"Authorizable '{user_id}' is a group, not a user")
        return authorizable

    async def require_group_by_path(self, group_path: str) -> Authorizable:
        """Fetch a group by path or raise NotFoundError / TypeMismatchError."""
        authorizable = await self.directory.find_by_path(group_path)
        if authorizable is None:
            raise NotFoundError(f"Group not found at path: {group_path}")
        if not authorizable.is_group:
            raise TypeMismatchError(f"Authorizable at path '{group_path}' is not a group")
        return authorizable

    # =========================================================================
    # Building blocks shared with the workflow and the migration phases
    # =========================================================================

    def ensure_external_id(self, authorizable: Authorizable, idp: str) -> bool:
        """Anchor the authorizable to the idp; True if rep:externalId was just set."""
        if self.directory.get_single_valued(authorizable, EXTERNAL_ID):
            return False
        external_id = external_identity_ref(authorizable.id, idp)
        self.directory.set_single_valued(authorizable, EXTERNAL_ID, external_id)
        logger.info("Set rep:externalId='%s' on '%s'", external_id, authorizable.id)
        return True

    def read_principal_names(self, authorizable: Authorizable) -> list[str]:
        return dedupe_principal_names(
            self.directory.get_multi_valued(authorizable, EXTERNAL_PRINCIPAL_NAMES)
        )

    def append_principal_name(self, authorizable: Authorizable, principal_name: str) -> bool:
        """Append one principal name if absent; True if it was added."""
        stored = self.directory.get_multi_valued(authorizable, EXTERNAL_PRINCIPAL_NAMES)
        names = dedupe_principal_names(stored)
        if principal_name in names:
            if len(names) != len(stored):
                self.directory.set_multi_valued(authorizable, EXTERNAL_PRINCIPAL_NAMES, names)
            return False
        names.append(principal_name)
        self.directory.set_multi_valued(authorizable, EXTERNAL_PRINCIPAL_NAMES, names)
        return True

    def refresh_sync_timestamps(self, authorizable: Authorizable) -> None:
        """
        Push rep:lastDynamicSync / rep:lastSynced into the future.

        The external sync cleanup prunes dynamic memberships whose last sync is
        old; a horizon of ``sync_extension_years`` keeps them alive.
        """
        horizon = add_years(utc_now(), self.sync_extension_years).isoformat()
        self.directory.set_single_valued(authorizable, LAST_DYNAMIC_SYNC, horizon)
        self.directory.set_single_valued(authorizable, LAST_SYNCED, horizon)

    async def ensure_external_group(
        self, group_id: str, external_id: str
    ) -> tuple[Authorizable, bool]:
        """Return the group ``group_id``, creating it with rep:externalId if absent."""
        existing = await self.directory.find_by_id(group_id)
        if existing is not None:
            if not existing.is_group:
                raise ConflictError(
                    f"An authorizable with ID '{group_id}' exists but is not a group"
                )
            return existing, False

        group = await self.directory.create_group(group_id)
        self.directory.set_single_valued(group, EXTERNAL_ID, external_id)
        logger.info("Set rep:externalId='%s' on group '%s'", external_id, group_id)
        return group, True

    async def ensure_external_user(self, user_id: str, idp: str) -> tuple[Authorizable, bool]:
        """Return the user ``user_id``, creating it as an external user if absent."""
        existing = await self.directory.find_by_id(user_id)
        if existing is not None:
            if existing.is_group:
                raise ConflictError(
                    f"An authorizable with ID '{user_id}' exists but is a group, not a user"
                )
            return existing, False

        user = await self.directory.create_user(user_id)
        self.ensure_external_id(user, idp)
        return user, True

    # =========================================================================
    # Operations
    # =========================================================================

    async def reconcile_user_dynamic_groups(
        self, user_id: str, idp: str
    ) -> DynamicGroupSyncResult:
        """
        Converge a user's rep:externalPrincipalNames with its direct group memberships.

        For every declared group ``g`` (system groups excluded) the principal
        ``g;idp`` is appended once. rep:externalId is set first if missing, the
        principal names are written in a single update, sync timestamps are
        refreshed, and the session is committed.
        """
        validate_idp_name(idp)
        user = await self.require_user(user_id)
        result = DynamicGroupSyncResult(user_id=user_id)

        # rep:externalId must be in place before principal names are written
        result.user_converted = self.ensure_external_id(user, idp)

        stored = self.directory.get_multi_valued(user, EXTERNAL_PRINCIPAL_NAMES)
        principal_names = dedupe_principal_names(stored)
        present = set(principal_names)

        async for group in self.directory.declared_member_of(user):
            if self.is_system_group(group.id):
                result.skipped_system_groups.append(group.id)
                continue

            result.processed_groups.append(group.id)
            candidate = external_identity_ref(group.id, idp)
            if candidate in present:
                result.skipped_principals.append(candidate)
                logger.debug(
                    "User '%s' already has principal '%s' for group '%s'",
                    user_id, candidate, group.id,
                )
            else:
                principal_names.append(candidate)
                present.add(candidate)
                result.added_principals.append(candidate)

        if result.added_principals or len(principal_names) != len(stored):
            self.directory.set_multi_valued(user, EXTERNAL_PRINCIPAL_NAMES, principal_names)

        self.refresh_sync_timestamps(user)
        await self.directory.commit()

        result.group_memberships_checked = len(result.processed_groups)
        result.system_groups_skipped = len(result.skipped_system_groups)
        result.principals_added = len(result.added_principals)
        result.principals_skipped = len(result.skipped_principals)
        result.all_external_principals = principal_names

        metrics.inc_counter("reconcile.principals_added", result.principals_added)
        logger.info(
            "Reconciled user '%s' for idp '%s': converted=%s added=%d skipped=%d system=%d",
            user_id, idp, result.user_converted, result.principals_added,
            result.principals_skipped, result.system_groups_skipped,
        )
        return result

    async def add_single_principal(
        self, user_id: str, principal_name: str, idp: str
    ) -> PrincipalProvisionResult:
        """
        Grant one external principal name to a user, provisioning both ends.

        The group named ``principal_name`` and the user are created as external
        authorizables when absent. The principal is appended at most once.
        """
        if self.is_system_group(principal_name):
            raise ValidationError(f"System group '{principal_name}' cannot be assigned")

        group_external_id = external_identity_ref(principal_name, idp)
        _, group_created = await self.ensure_external_group(principal_name, group_external_id)
        user, user_created = await self.ensure_external_user(user_id, idp)
        user_converted = False if user_created else self.ensure_external_id(user, idp)

        added = self.append_principal_name(user, principal_name)
        self.refresh_sync_timestamps(user)
        await self.directory.commit()

        result = PrincipalProvisionResult(
            user_id=user_id,
            principal_name=principal_name,
            user_created=user_created,
            group_created=group_created,
            user_converted=user_converted,
            principal_already_existed=not added,
            all_principals=self.read_principal_names(user),
        )
        if added:
            metrics.inc_counter("reconcile.principals_added")
        logger.info(result.summary())
        return result

    async def get_external_principal_names(self, user_id: str) -> list[str]:
        """Read-only view of a user's rep:externalPrincipalNames."""
        user = await self.require_user(user_id)
        return self.directory.get_multi_valued(user, EXTERNAL_PRINCIPAL_NAMES)
