"""SQLAlchemy table definitions for the directory store."""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from principalsync.db.base import Base
from principalsync.utils.time import utc_now


class AuthorizableTable(Base):
    """Authorizables table - users and groups of the local directory."""

    __tablename__ = "authorizables"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    path: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True)
    is_group: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # rep:* properties; values are strings or lists of strings
    properties: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # Optimistic concurrency: concurrent writers of the same row fail on flush
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (Index("idx_authorizables_is_group", "is_group"),)

    def __repr__(self) -> str:
        kind = "Group" if self.is_group else "User"
        return f"<{kind} {self.id}>"


class MembershipTable(Base):
    """Memberships table - direct (declared) group membership edges."""

    __tablename__ = "memberships"

    # Surrogate key doubles as insertion order for declared member iteration
    membership_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("authorizables.id", ondelete="CASCADE"), nullable=False
    )
    member_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("authorizables.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("group_id", "member_id", name="uq_membership_edge"),
        Index("idx_memberships_member", "member_id"),
    )
