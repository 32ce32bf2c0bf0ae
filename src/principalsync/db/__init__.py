"""PrincipalSync database layer."""

from principalsync.db.base import Base, get_session, init_db
from principalsync.db.tables import AuthorizableTable, MembershipTable
from principalsync.db.store import DirectorySession, DirectoryStore

__all__ = [
    "AuthorizableTable",
    "Base",
    "DirectorySession",
    "DirectoryStore",
    "MembershipTable",
    "get_session",
    "init_db",
]
