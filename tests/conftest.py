"""
Pytest fixtures for PrincipalSync tests.
"""

import os

import pytest
from httpx import ASGITransport, AsyncClient

# Ensure test config is set before importing principalsync modules.
os.environ.setdefault("PRINCIPALSYNC_ENV", "development")
os.environ.setdefault("PRINCIPALSYNC_ALLOW_INSECURE_DEV", "false")
os.environ.setdefault("PRINCIPALSYNC_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from principalsync.config import settings
from principalsync.db import base
from principalsync.db.base import Base, build_engine, build_session_factory
from principalsync.db.store import DirectoryStore
import principalsync.auth.models  # noqa: F401
import principalsync.db.tables  # noqa: F401

pytest_plugins = ("pytest_asyncio",)

USER_ROOT = "/home/users"
GROUP_ROOT = "/home/groups"
IDP = "saml-idp"


def group_path(group_id: str) -> str:
    return f"{GROUP_ROOT}/{group_id[:1].lower()}/{group_id}"


@pytest.fixture
async def engine(tmp_path):
    """Per-test SQLite database wired into principalsync.db.base."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'directory.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    original_engine, original_factory = base.engine, base.async_session_factory
    base.engine = engine
    base.async_session_factory = build_session_factory(engine)

    yield engine

    base.engine, base.async_session_factory = original_engine, original_factory
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return DirectoryStore(
        session_factory,
        allowed_service_users=[settings.service_user],
        user_root=USER_ROOT,
        group_root=GROUP_ROOT,
    )


@pytest.fixture
def seed(store):
    """Create users, groups and direct memberships in one committed session."""

    async def _seed(users=(), groups=(), memberships=(), properties=None):
        properties = properties or {}
        async with store.service_session(settings.service_user) as directory:
            for user_id in users:
                user = await directory.create_user(user_id)
                user.properties = dict(properties.get(user_id, {}))
            for group_id in groups:
                group = await directory.create_group(group_id)
                group.properties = dict(properties.get(group_id, {}))
            for group_id, member_id in memberships:
                group = await directory.find_by_id(group_id)
                member = await directory.find_by_id(member_id)
                await directory.add_member(group, member)
            await directory.commit()

    return _seed


@pytest.fixture
def snapshot(store):
    """Read an authorizable's properties and direct members from a fresh session."""

    async def _snapshot(authorizable_id):
        async with store.service_session(settings.service_user) as directory:
            authorizable = await directory.find_by_id(authorizable_id)
            if authorizable is None:
                return None
            members = []
            if authorizable.is_group:
                members = [m.id async for m in directory.declared_members(authorizable)]
            return {
                "is_group": authorizable.is_group,
                "properties": dict(authorizable.properties or {}),
                "members": members,
            }

    return _snapshot


@pytest.fixture
async def client(store):
    """Async test client authenticated as the trusted technical account."""
    from principalsync.api.deps import get_directory_store, verify_caller
    from principalsync.auth.context import AuthContext
    from principalsync.main import app

    async def override_verify_caller():
        return AuthContext(caller_id=settings.trusted_caller_id, auth_type="jwt")

    app.dependency_overrides[get_directory_store] = lambda: store
    app.dependency_overrides[verify_caller] = override_verify_caller

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def unauthenticated_client(store):
    """Async test client with real caller resolution."""
    from principalsync.api.deps import get_directory_store
    from principalsync.main import app

    app.dependency_overrides[get_directory_store] = lambda: store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
