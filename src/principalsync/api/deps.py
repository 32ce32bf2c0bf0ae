"""API dependencies."""

import logging
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from principalsync.auth.context import AuthContext
from principalsync.auth.gate import enforce_access_gate
from principalsync.config import Environment, settings
from principalsync.db import base
from principalsync.db.store import DirectoryStore
from principalsync.engine.errors import ValidationError


logger = logging.getLogger("principalsync.api")


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session."""
    async with base.async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_directory_store() -> DirectoryStore:
    """Directory store over the application session factory."""
    return DirectoryStore(base.async_session_factory)


async def verify_caller(
    authorization: str | None = Header(None),
    x_api_key: str | None = Header(None, alias="X-API-Key"),
    session: AsyncSession = Depends(get_db_session),
) -> AuthContext:
    """
    Resolve the calling identity.

    Accepts ``Authorization: Bearer <jwt|key>`` or ``X-API-Key``. Missing or
    invalid credentials resolve to the anonymous caller, which the access gate
    then rejects with 403. In explicit insecure dev mode every request is
    treated as the trusted technical account.
    """
    from principalsync.auth.middleware import extract_api_key
    from principalsync.auth.token import resolve_caller

    if settings.allow_insecure_dev and settings.env == Environment.DEVELOPMENT:
        return AuthContext(caller_id=settings.trusted_caller_id, auth_type="insecure_dev")

    headers = {}
    if authorization:
        headers["authorization"] = authorization
    if x_api_key:
        headers["x-api-key"] = x_api_key

    return await resolve_caller(extract_api_key(headers), session)


async def require_trusted_caller(
    auth: AuthContext = Depends(verify_caller),
) -> AuthContext:
    """Access gate as a router dependency; runs before any directory session opens."""
    return enforce_access_gate(auth)


def require_param(value: Optional[str], name: str) -> str:
    """Return a stripped, non-blank query parameter or raise ValidationError."""
    if value is None or not value.strip():
        raise ValidationError(f"{name} parameter is required")
    return value.strip()


def validate_auth_config() -> None:
    """
    Validate authentication configuration at startup.

    Raises:
        RuntimeError: If insecure dev mode is enabled outside development
    """
    if settings.allow_insecure_dev and settings.env != Environment.DEVELOPMENT:
        raise RuntimeError(
            f"SECURITY ERROR: allow_insecure_dev=true is only permitted in development. "
            f"Current environment: {settings.env.value}. "
            f"Set PRINCIPALSYNC_ALLOW_INSECURE_DEV=false for {settings.env.value}."
        )

    if not settings.trusted_caller_id:
        raise RuntimeError("SECURITY ERROR: PRINCIPALSYNC_TRUSTED_CALLER_ID must be set")

    if settings.allow_insecure_dev:
        logger.warning(
            "=" * 80 + "\n"
            "WARNING: Running in INSECURE DEV MODE\n"
            f"  - Every request is treated as '{settings.trusted_caller_id}'\n"
            "  - This mode is ONLY for local development\n"
            "  - Set PRINCIPALSYNC_ALLOW_INSECURE_DEV=false for any deployment\n"
            + "=" * 80
        )
    else:
        logger.info(
            f"Authentication enabled for {settings.env.value}: only "
            f"'{settings.trusted_caller_id}' may call reconciliation endpoints"
        )
