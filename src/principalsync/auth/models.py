"""
Authentication Models for PrincipalSync

Service accounts (technical callers) and their API keys.
"""

from datetime import timezone
import uuid

from sqlalchemy import Column, String, DateTime, Boolean, Integer, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from principalsync.db.base import Base
from principalsync.utils.time import utc_now


class ServiceAccount(Base):
    """Technical account that calls the reconciliation API"""
    __tablename__ = "auth_service_accounts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    # Caller identity compared by the access gate, e.g. "<id>@techacct.example"
    account_id = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    last_seen = Column(DateTime(timezone=True), nullable=True)

    api_keys = relationship("APIKey", back_populates="account", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<ServiceAccount {self.account_id}>"


class APIKey(Base):
    """API keys for programmatic access"""
    __tablename__ = "auth_api_keys"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    service_account_id = Column(
        Uuid, ForeignKey("auth_service_accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )

    key_prefix = Column(String(32), nullable=False, index=True)  # "ps_" + first 8 chars
    key_hash = Column(String(255), nullable=False, unique=True)  # bcrypt hash of full key

    name = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    last_used = Column(DateTime(timezone=True), nullable=True)
    usage_count = Column(Integer, default=0, nullable=False)

    expires_at = Column(DateTime(timezone=True), nullable=True)  # None = no expiry
    is_revoked = Column(Boolean, default=False, nullable=False)

    account = relationship("ServiceAccount", back_populates="api_keys")

    @property
    def is_valid(self) -> bool:
        if self.is_revoked:
            return False
        if self.expires_at:
            expires_at = self.expires_at
            # SQLite hands back naive datetimes
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if utc_now() > expires_at:
                return False
        return True

    def increment_usage(self):
        """Track key usage"""
        self.usage_count = (self.usage_count or 0) + 1
        self.last_used = utc_now()
