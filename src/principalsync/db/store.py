"""Directory store adapter - scoped service sessions over the authorizable tables."""

import logging
from contextlib import asynccontextmanager, contextmanager
from typing import AsyncGenerator, AsyncIterator, Iterable, Iterator, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from principalsync.config import settings
from principalsync.db.tables import AuthorizableTable, MembershipTable
from principalsync.engine.errors import (
    ConflictError,
    PrincipalSyncError,
    StoreConnectionError,
    StoreError,
    TypeMismatchError,
)
from principalsync.observability.metrics import metrics

logger = logging.getLogger(__name__)

Authorizable = AuthorizableTable


class DirectorySession:
    """
    One open directory session.

    All reads and writes go through the wrapped AsyncSession and become
    durable only on ``commit()``. ``close()`` discards anything uncommitted.
    """

    def __init__(
        self,
        session: AsyncSession,
        service_name: str,
        user_root: str | None = None,
        group_root: str | None = None,
    ):
        self.session = session
        self.service_name = service_name
        self.user_root = (user_root or settings.user_root).rstrip("/")
        self.group_root = (group_root or settings.group_root).rstrip("/")
        self._live = True

    @property
    def live(self) -> bool:
        return self._live

    @contextmanager
    def _translate_errors(self, action: str) -> Iterator[None]:
        """Map SQLAlchemy failures onto the store error taxonomy."""
        try:
            yield
        except PrincipalSyncError:
            raise
        except IntegrityError as exc:
            raise ConflictError(f"Conflict while trying to {action}: {exc.orig}") from exc
        except StaleDataError as exc:
            raise StoreError(
                f"Concurrent modification detected while trying to {action}; retry the operation"
            ) from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"Directory store error while trying to {action}: {exc}") from exc

    async def connect(self) -> None:
        """Acquire the underlying connection so connection failures surface on open."""
        try:
            await self.session.connection()
        except (SQLAlchemyError, OSError) as exc:
            raise StoreConnectionError(
                f"Unable to open directory session for service '{self.service_name}': {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def find_by_id(self, authorizable_id: str) -> Optional[Authorizable]:
        with self._translate_errors(f"look up authorizable '{authorizable_id}'"):
            return await self.session.get(AuthorizableTable, authorizable_id)

    async def find_by_path(self, path: str) -> Optional[Authorizable]:
        with self._translate_errors(f"look up authorizable at '{path}'"):
            result = await self.session.execute(
                select(AuthorizableTable).where(AuthorizableTable.path == path)
            )
            return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _path_for(self, authorizable_id: str, is_group: bool) -> str:
        root = self.group_root if is_group else self.user_root
        return f"{root}/{authorizable_id[:1].lower()}/{authorizable_id}"

    async def _create(self, authorizable_id: str, is_group: bool) -> Authorizable:
        kind = "group" if is_group else "user"
        existing = await self.find_by_id(authorizable_id)
        if existing is not None:
            existing_kind = "group" if existing.is_group else "user"
            raise ConflictError(
                f"Cannot create {kind} '{authorizable_id}': an authorizable with that ID "
                f"already exists as a {existing_kind}"
            )

        row = AuthorizableTable(
            id=authorizable_id,
            path=self._path_for(authorizable_id, is_group),
            is_group=is_group,
            properties={},
        )
        self.session.add(row)
        with self._translate_errors(f"create {kind} '{authorizable_id}'"):
            await self.session.flush()
        logger.info("Created %s '%s' at path '%s'", kind, authorizable_id, row.path)
        return row

    async def create_user(self, user_id: str) -> Authorizable:
        return await self._create(user_id, is_group=False)

    async def create_group(self, group_id: str) -> Authorizable:
        return await self._create(group_id, is_group=True)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    def get_multi_valued(self, authorizable: Authorizable, key: str) -> list[str]:
        value = (authorizable.properties or {}).get(key)
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [str(item) for item in value]

    def set_multi_valued(self, authorizable: Authorizable, key: str, values: Iterable[str]) -> None:
        # Reassign so the ORM sees the change on the JSON column
        authorizable.properties = {**(authorizable.properties or {}), key: list(values)}

    def get_single_valued(self, authorizable: Authorizable, key: str) -> Optional[str]:
        value = (authorizable.properties or {}).get(key)
        if isinstance(value, list):
            return str(value[0]) if value else None
        return value

    def set_single_valued(self, authorizable: Authorizable, key: str, value: Optional[str]) -> None:
        properties = dict(authorizable.properties or {})
        if value is None:
            properties.pop(key, None)
        else:
            properties[key] = value
        authorizable.properties = properties

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def _require_group(self, authorizable: Authorizable) -> None:
        if not authorizable.is_group:
            raise TypeMismatchError(f"Authorizable '{authorizable.id}' is not a group")

    async def _has_edge(self, group: Authorizable, member: Authorizable) -> bool:
        result = await self.session.execute(
            select(MembershipTable.membership_id).where(
                MembershipTable.group_id == group.id,
                MembershipTable.member_id == member.id,
            )
        )
        return result.scalar_one_or_none() is not None

    async def add_member(self, group: Authorizable, member: Authorizable) -> bool:
        """Add a direct member; False if it already was one (or is the group itself)."""
        self._require_group(group)
        if group.id == member.id:
            return False
        with self._translate_errors(f"add '{member.id}' to group '{group.id}'"):
            if await self._has_edge(group, member):
                return False
            self.session.add(MembershipTable(group_id=group.id, member_id=member.id))
            await self.session.flush()
        return True

    async def remove_member(self, group: Authorizable, member: Authorizable) -> bool:
        """Remove a direct member; False if it was not one."""
        self._require_group(group)
        with self._translate_errors(f"remove '{member.id}' from group '{group.id}'"):
            result = await self.session.execute(
                delete(MembershipTable).where(
                    MembershipTable.group_id == group.id,
                    MembershipTable.member_id == member.id,
                )
            )
        return (result.rowcount or 0) > 0

    async def declared_members(self, group: Authorizable) -> AsyncIterator[Authorizable]:
        """Direct members in insertion order. Single pass; materialize before mutating."""
        self._require_group(group)
        with self._translate_errors(f"read members of group '{group.id}'"):
            result = await self.session.execute(
                select(AuthorizableTable)
                .join(MembershipTable, MembershipTable.member_id == AuthorizableTable.id)
                .where(MembershipTable.group_id == group.id)
                .order_by(MembershipTable.membership_id)
            )
            rows = result.scalars()
        for row in rows:
            yield row

    async def declared_member_of(self, authorizable: Authorizable) -> AsyncIterator[Authorizable]:
        """Groups the authorizable is a direct member of. Single pass."""
        with self._translate_errors(f"read group memberships of '{authorizable.id}'"):
            result = await self.session.execute(
                select(AuthorizableTable)
                .join(MembershipTable, MembershipTable.group_id == AuthorizableTable.id)
                .where(MembershipTable.member_id == authorizable.id)
                .order_by(MembershipTable.membership_id)
            )
            rows = result.scalars()
        for row in rows:
            yield row

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def commit(self) -> None:
        with self._translate_errors("save directory changes"):
            await self.session.commit()

    async def close(self) -> None:
        """Release the session; uncommitted changes are rolled back. Idempotent."""
        if not self._live:
            return
        self._live = False
        try:
            await self.session.close()
        finally:
            metrics.inc_counter("directory.sessions.closed")


class DirectoryStore:
    """Opens scoped directory sessions under a fixed service identity."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        allowed_service_users: Iterable[str] | None = None,
        user_root: str | None = None,
        group_root: str | None = None,
    ):
        self.session_factory = session_factory
        self.allowed_service_users = set(
            allowed_service_users
            if allowed_service_users is not None
            else settings.allowed_service_users
        )
        self.user_root = user_root
        self.group_root = group_root

    @asynccontextmanager
    async def service_session(self, service_name: str) -> AsyncGenerator[DirectorySession, None]:
        """Open a privileged session; it is closed exactly once on every exit path."""
        if service_name not in self.allowed_service_users:
            raise StoreConnectionError(f"Unknown service user '{service_name}'")

        directory = DirectorySession(
            self.session_factory(),
            service_name,
            user_root=self.user_root,
            group_root=self.group_root,
        )
        metrics.inc_counter("directory.sessions.opened")
        try:
            await directory.connect()
            logger.debug("Service session opened for '%s'", service_name)
            yield directory
        finally:
            await directory.close()
