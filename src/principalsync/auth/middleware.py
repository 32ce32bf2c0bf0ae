"""
Authentication Middleware and Utilities for PrincipalSync

API keys (headers) bound to service accounts, hashed with bcrypt.
"""

from typing import Mapping, Optional
import bcrypt
import secrets

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from principalsync.auth.models import ServiceAccount, APIKey
from principalsync.utils.time import utc_now


# API key prefix for PrincipalSync
API_KEY_PREFIX = "ps_"
KEY_PREFIX_LENGTH = len(API_KEY_PREFIX) + 8


def hash_api_key(api_key: str) -> str:
    """Hash API key with bcrypt"""
    return bcrypt.hashpw(api_key.encode(), bcrypt.gensalt()).decode()


def verify_api_key_hash(api_key: str, key_hash: str) -> bool:
    """Verify API key against hash"""
    return bcrypt.checkpw(api_key.encode(), key_hash.encode())


def generate_api_key() -> tuple[str, str, str]:
    """Generate API key with prefix and hash

    Returns:
        tuple: (full_key, prefix, hash)
    """
    full_key = f"{API_KEY_PREFIX}{secrets.token_urlsafe(32)}"
    prefix = full_key[:KEY_PREFIX_LENGTH]
    key_hash = hash_api_key(full_key)
    return full_key, prefix, key_hash


def extract_api_key(headers: Mapping[str, str]) -> Optional[str]:
    """Pull the raw key from Authorization: Bearer or X-API-Key (case-insensitive)."""
    lowered = {key.lower(): value for key, value in headers.items()}

    auth_header = lowered.get("authorization")
    if auth_header:
        parts = auth_header.split(" ", 1)
        if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1].strip():
            return parts[1].strip()

    api_key = lowered.get("x-api-key")
    if api_key and api_key.strip():
        return api_key.strip()
    return None


async def verify_request_api_key(db: AsyncSession, api_key: str) -> Optional[ServiceAccount]:
    """
    Resolve a PrincipalSync API key to its service account.

    Returns None for foreign, unknown, revoked or expired keys.
    """
    if not api_key.startswith(API_KEY_PREFIX):
        return None

    result = await db.execute(
        select(APIKey)
        .options(selectinload(APIKey.account))
        .where(APIKey.key_prefix == api_key[:KEY_PREFIX_LENGTH])
    )
    for candidate in result.scalars():
        if not verify_api_key_hash(api_key, candidate.key_hash):
            continue
        if not candidate.is_valid:
            return None

        candidate.increment_usage()
        candidate.account.last_seen = utc_now()
        await db.commit()
        return candidate.account

    return None


async def get_or_create_service_account(
    db: AsyncSession, account_id: str, name: str = "Technical Account"
) -> ServiceAccount:
    """Get or create the service account for a technical caller identity."""
    result = await db.execute(
        select(ServiceAccount).where(ServiceAccount.account_id == account_id)
    )
    account = result.scalar_one_or_none()

    if not account:
        account = ServiceAccount(account_id=account_id, name=name, is_active=True)
        db.add(account)
        await db.commit()
        await db.refresh(account)

    return account


async def create_api_key_for_account(
    db: AsyncSession,
    account: ServiceAccount,
    name: str = "Default API Key",
) -> tuple[str, APIKey]:
    """Create a new API key for a service account.

    Returns:
        tuple: (full_key_string, api_key_object)
        Note: full_key_string is only returned once and should be handed to the caller
    """
    full_key, prefix, key_hash = generate_api_key()

    api_key = APIKey(
        service_account_id=account.id,
        key_prefix=prefix,
        key_hash=key_hash,
        name=name,
    )
    db.add(api_key)
    await db.commit()
    await db.refresh(api_key)

    return full_key, api_key
