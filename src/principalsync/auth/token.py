"""Caller identity resolution from bearer tokens and API keys."""

from __future__ import annotations

import logging
from typing import Optional

from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from principalsync.auth.context import AuthContext
from principalsync.auth.middleware import API_KEY_PREFIX, verify_request_api_key
from principalsync.config import settings

logger = logging.getLogger(__name__)

_jwt_key_cache: Optional[str] = None


def _looks_like_jwt(token: str) -> bool:
    return token.count(".") == 2


def _load_jwt_key() -> Optional[str]:
    global _jwt_key_cache
    if _jwt_key_cache:
        return _jwt_key_cache

    for path in (settings.jwt_public_key_path, settings.jwt_private_key_path):
        if path:
            with open(path, "r", encoding="utf-8") as handle:
                _jwt_key_cache = handle.read()
                return _jwt_key_cache

    return None


def reset_jwt_key_cache() -> None:
    global _jwt_key_cache
    _jwt_key_cache = None


async def resolve_caller(token: str | None, session: AsyncSession) -> AuthContext:
    """
    Resolve the caller identity behind a token.

    JWTs yield their ``sub`` claim, PrincipalSync API keys yield the owning
    service account id. Anything else, including a missing token, resolves to
    the anonymous caller and is left for the access gate to reject.
    """
    if not token:
        return AuthContext.anonymous()

    if _looks_like_jwt(token):
        key = _load_jwt_key()
        if not key:
            logger.warning("JWT presented but no verification key is configured")
            return AuthContext.anonymous()
        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=[settings.jwt_algorithm],
                options={"verify_aud": False},
            )
        except JWTError as exc:
            logger.warning(f"Rejected JWT: {exc}")
            return AuthContext.anonymous()

        subject = payload.get("sub")
        if not subject:
            logger.warning("Rejected JWT without subject claim")
            return AuthContext.anonymous()
        return AuthContext(caller_id=subject, auth_type="jwt")

    if token.startswith(API_KEY_PREFIX):
        account = await verify_request_api_key(session, token)
        if account and account.is_active:
            return AuthContext(caller_id=account.account_id, auth_type="db_api_key")
        logger.warning("Rejected API key with prefix %s", token[: len(API_KEY_PREFIX) + 8])
        return AuthContext.anonymous()

    logger.warning("Unrecognized credential format")
    return AuthContext.anonymous()
