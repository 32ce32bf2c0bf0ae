"""
Directory store adapter tests: session lifecycle, properties, membership edges.
"""

import pytest

from principalsync.config import settings
from principalsync.engine.errors import (
    ConflictError,
    StoreConnectionError,
    StoreError,
    TypeMismatchError,
)
from principalsync.observability.metrics import metrics
from principalsync.principals import EXTERNAL_PRINCIPAL_NAMES

from conftest import group_path


@pytest.mark.asyncio
async def test_unknown_service_user_is_rejected(store):
    opened = metrics.counter_value("directory.sessions.opened")
    with pytest.raises(StoreConnectionError):
        async with store.service_session("someone-else"):
            pass
    assert metrics.counter_value("directory.sessions.opened") == opened


@pytest.mark.asyncio
async def test_session_closed_on_success_and_failure(store):
    async with store.service_session(settings.service_user) as directory:
        assert directory.live
    assert not directory.live

    with pytest.raises(RuntimeError):
        async with store.service_session(settings.service_user) as directory:
            raise RuntimeError("boom")
    assert not directory.live


@pytest.mark.asyncio
async def test_create_and_find_by_id_and_path(store):
    async with store.service_session(settings.service_user) as directory:
        user = await directory.create_user("alice")
        group = await directory.create_group("marketing")
        await directory.commit()

    assert user.path == "/home/users/a/alice"
    assert group.path == group_path("marketing")

    async with store.service_session(settings.service_user) as directory:
        found = await directory.find_by_path(group_path("marketing"))
        assert found is not None and found.is_group
        assert (await directory.find_by_id("alice")).is_group is False
        assert await directory.find_by_id("nobody") is None
        assert await directory.find_by_path("/home/groups/n/nothing") is None


@pytest.mark.asyncio
async def test_create_existing_id_conflicts(store, seed):
    await seed(users=["alice"])
    async with store.service_session(settings.service_user) as directory:
        with pytest.raises(ConflictError):
            await directory.create_group("alice")


@pytest.mark.asyncio
async def test_uncommitted_changes_are_discarded(store, snapshot):
    async with store.service_session(settings.service_user) as directory:
        await directory.create_user("ghost")
    assert await snapshot("ghost") is None


@pytest.mark.asyncio
async def test_property_accessors(store, seed, snapshot):
    await seed(users=["alice"])
    async with store.service_session(settings.service_user) as directory:
        alice = await directory.find_by_id("alice")
        assert directory.get_multi_valued(alice, EXTERNAL_PRINCIPAL_NAMES) == []
        assert directory.get_single_valued(alice, "rep:externalId") is None

        directory.set_multi_valued(alice, EXTERNAL_PRINCIPAL_NAMES, ["a;idp", "b;idp"])
        directory.set_single_valued(alice, "rep:externalId", "alice;idp")
        await directory.commit()

    stored = (await snapshot("alice"))["properties"]
    assert stored[EXTERNAL_PRINCIPAL_NAMES] == ["a;idp", "b;idp"]
    assert stored["rep:externalId"] == "alice;idp"

    async with store.service_session(settings.service_user) as directory:
        alice = await directory.find_by_id("alice")
        directory.set_single_valued(alice, "rep:externalId", None)
        await directory.commit()

    assert "rep:externalId" not in (await snapshot("alice"))["properties"]


@pytest.mark.asyncio
async def test_single_string_read_as_multi_value(store, seed):
    await seed(users=["alice"], properties={"alice": {EXTERNAL_PRINCIPAL_NAMES: "x;idp"}})
    async with store.service_session(settings.service_user) as directory:
        alice = await directory.find_by_id("alice")
        assert directory.get_multi_valued(alice, EXTERNAL_PRINCIPAL_NAMES) == ["x;idp"]


@pytest.mark.asyncio
async def test_membership_edges(store, seed, snapshot):
    await seed(users=["alice", "bob"], groups=["marketing", "sub"])
    async with store.service_session(settings.service_user) as directory:
        marketing = await directory.find_by_id("marketing")
        alice = await directory.find_by_id("alice")
        bob = await directory.find_by_id("bob")
        sub = await directory.find_by_id("sub")

        assert await directory.add_member(marketing, alice) is True
        assert await directory.add_member(marketing, alice) is False
        assert await directory.add_member(marketing, marketing) is False
        assert await directory.add_member(marketing, sub) is True
        assert await directory.add_member(marketing, bob) is True

        members = [m.id async for m in directory.declared_members(marketing)]
        assert members == ["alice", "sub", "bob"]
        groups = [g.id async for g in directory.declared_member_of(alice)]
        assert groups == ["marketing"]

        assert await directory.remove_member(marketing, bob) is True
        assert await directory.remove_member(marketing, bob) is False
        await directory.commit()

    assert (await snapshot("marketing"))["members"] == ["alice", "sub"]


@pytest.mark.asyncio
async def test_membership_on_user_is_type_mismatch(store, seed):
    await seed(users=["alice", "bob"])
    async with store.service_session(settings.service_user) as directory:
        alice = await directory.find_by_id("alice")
        bob = await directory.find_by_id("bob")
        with pytest.raises(TypeMismatchError):
            await directory.add_member(alice, bob)
        with pytest.raises(TypeMismatchError):
            [m async for m in directory.declared_members(alice)]


@pytest.mark.asyncio
async def test_concurrent_write_surfaces_store_error(store, seed, snapshot):
    """Two sessions writing the same user: the second commit fails, the first wins."""
    await seed(users=["alice"])

    async with store.service_session(settings.service_user) as first, \
            store.service_session(settings.service_user) as second:
        alice_first = await first.find_by_id("alice")
        alice_second = await second.find_by_id("alice")

        first.set_multi_valued(alice_first, EXTERNAL_PRINCIPAL_NAMES, ["first;idp"])
        await first.commit()

        second.set_multi_valued(alice_second, EXTERNAL_PRINCIPAL_NAMES, ["second;idp"])
        with pytest.raises(StoreError):
            await second.commit()

    stored = (await snapshot("alice"))["properties"]
    assert stored[EXTERNAL_PRINCIPAL_NAMES] == ["first;idp"]
