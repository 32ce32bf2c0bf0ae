"""
Caller resolution tests: API keys, JWTs, insecure dev mode.
"""

from datetime import timedelta

import pytest
from jose import jwt

from principalsync.api.deps import validate_auth_config, verify_caller
from principalsync.auth import token as token_module
from principalsync.auth.middleware import (
    API_KEY_PREFIX,
    create_api_key_for_account,
    extract_api_key,
    generate_api_key,
    get_or_create_service_account,
    verify_api_key_hash,
)
from principalsync.auth.token import resolve_caller
from principalsync.config import Environment, settings
from principalsync.utils.time import utc_now

SECRET = "test-signing-secret"


@pytest.fixture
def hs256_key(tmp_path, monkeypatch):
    key_file = tmp_path / "jwt.key"
    key_file.write_text(SECRET, encoding="utf-8")
    monkeypatch.setattr(settings, "jwt_algorithm", "HS256")
    monkeypatch.setattr(settings, "jwt_public_key_path", str(key_file))
    token_module.reset_jwt_key_cache()
    yield SECRET
    token_module.reset_jwt_key_cache()


def test_generated_key_shape_and_hash():
    full_key, prefix, key_hash = generate_api_key()
    assert full_key.startswith(API_KEY_PREFIX)
    assert full_key.startswith(prefix)
    assert verify_api_key_hash(full_key, key_hash)
    assert not verify_api_key_hash(full_key + "x", key_hash)


def test_extract_api_key_from_headers():
    assert extract_api_key({"Authorization": "Bearer abc"}) == "abc"
    assert extract_api_key({"x-api-key": " def "}) == "def"
    assert extract_api_key({"authorization": "Basic abc"}) is None
    assert extract_api_key({}) is None


@pytest.mark.asyncio
async def test_missing_token_is_anonymous():
    auth = await resolve_caller(None, None)
    assert auth.is_anonymous
    assert auth.caller_id == "anonymous"


@pytest.mark.asyncio
async def test_jwt_subject_becomes_caller(hs256_key):
    encoded = jwt.encode({"sub": "group-sync@techacct.local"}, hs256_key, algorithm="HS256")

    auth = await resolve_caller(encoded, None)

    assert auth.auth_type == "jwt"
    assert auth.caller_id == "group-sync@techacct.local"


@pytest.mark.asyncio
async def test_jwt_with_wrong_signature_is_anonymous(hs256_key):
    encoded = jwt.encode({"sub": "group-sync@techacct.local"}, "other", algorithm="HS256")
    assert (await resolve_caller(encoded, None)).is_anonymous


@pytest.mark.asyncio
async def test_jwt_without_subject_is_anonymous(hs256_key):
    encoded = jwt.encode({"scope": "sync"}, hs256_key, algorithm="HS256")
    assert (await resolve_caller(encoded, None)).is_anonymous


@pytest.mark.asyncio
async def test_jwt_without_configured_key_is_anonymous(monkeypatch):
    monkeypatch.setattr(settings, "jwt_public_key_path", None)
    monkeypatch.setattr(settings, "jwt_private_key_path", None)
    token_module.reset_jwt_key_cache()
    encoded = jwt.encode({"sub": "someone"}, SECRET, algorithm="HS256")
    assert (await resolve_caller(encoded, None)).is_anonymous


@pytest.mark.asyncio
async def test_api_key_resolves_to_account(session_factory):
    async with session_factory() as db:
        account = await get_or_create_service_account(db, "group-sync@techacct.local")
        full_key, api_key = await create_api_key_for_account(db, account)

        auth = await resolve_caller(full_key, db)
        assert auth.auth_type == "db_api_key"
        assert auth.caller_id == "group-sync@techacct.local"

        await db.refresh(api_key)
        assert api_key.usage_count == 1
        assert api_key.last_used is not None


@pytest.mark.asyncio
async def test_get_or_create_service_account_is_idempotent(session_factory):
    async with session_factory() as db:
        first = await get_or_create_service_account(db, "group-sync@techacct.local")
        second = await get_or_create_service_account(db, "group-sync@techacct.local")
        assert first.id == second.id


@pytest.mark.asyncio
async def test_revoked_expired_and_inactive_keys_are_anonymous(session_factory):
    async with session_factory() as db:
        account = await get_or_create_service_account(db, "group-sync@techacct.local")
        revoked_key, revoked = await create_api_key_for_account(db, account, name="revoked")
        expired_key, expired = await create_api_key_for_account(db, account, name="expired")
        revoked.is_revoked = True
        expired.expires_at = utc_now() - timedelta(minutes=1)
        await db.commit()

        assert (await resolve_caller(revoked_key, db)).is_anonymous
        assert (await resolve_caller(expired_key, db)).is_anonymous
        assert (await resolve_caller(f"{API_KEY_PREFIX}unknown", db)).is_anonymous
        assert (await resolve_caller("not-a-known-format", db)).is_anonymous

        active_key, _ = await create_api_key_for_account(db, account, name="active")
        account.is_active = False
        await db.commit()
        assert (await resolve_caller(active_key, db)).is_anonymous


@pytest.mark.asyncio
async def test_insecure_dev_mode_trusts_every_caller(monkeypatch):
    monkeypatch.setattr(settings, "allow_insecure_dev", True)
    monkeypatch.setattr(settings, "env", Environment.DEVELOPMENT)

    auth = await verify_caller(authorization=None, x_api_key=None, session=None)

    assert auth.auth_type == "insecure_dev"
    assert auth.caller_id == settings.trusted_caller_id


def test_insecure_dev_refused_outside_development(monkeypatch):
    monkeypatch.setattr(settings, "allow_insecure_dev", True)
    monkeypatch.setattr(settings, "env", Environment.PRODUCTION)
    with pytest.raises(RuntimeError, match="allow_insecure_dev"):
        validate_auth_config()


def test_secure_config_validates(monkeypatch):
    monkeypatch.setattr(settings, "allow_insecure_dev", False)
    monkeypatch.setattr(settings, "env", Environment.PRODUCTION)
    validate_auth_config()
