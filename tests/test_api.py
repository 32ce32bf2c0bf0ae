"""
HTTP interface tests: status codes and JSON bodies.
"""

import pytest

from principalsync.api.deps import get_directory_store
from principalsync.engine.errors import StoreError
from principalsync.main import app
from principalsync.principals import EXTERNAL_ID

from conftest import group_path

MARKETING = group_path("marketing")


@pytest.fixture
async def marketing(seed):
    await seed(
        users=["user1", "user2"],
        groups=["marketing", "child-group"],
        memberships=[
            ("marketing", "user1"),
            ("marketing", "user2"),
            ("marketing", "child-group"),
        ],
    )


@pytest.mark.asyncio
async def test_provisioner_defaults(client, snapshot):
    response = await client.post("/group-provisioner?userId=testuser")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["userId"] == "testuser"
    assert body["principalName"] == "marketing:saml-idp"
    assert body["userCreated"] is True
    assert body["groupCreated"] is True
    assert body["allPrincipals"] == ["marketing:saml-idp"]
    assert "Successfully added external principal" in body["message"]
    assert (await snapshot("testuser"))["properties"][EXTERNAL_ID] == "testuser;saml-idp"


@pytest.mark.asyncio
async def test_provisioner_user_defaults_to_caller(client, snapshot):
    from principalsync.config import settings

    response = await client.post("/group-provisioner?principalName=sales&idpName=okta")

    assert response.status_code == 200
    assert response.json()["userId"] == settings.trusted_caller_id
    assert await snapshot(settings.trusted_caller_id) is not None


@pytest.mark.asyncio
async def test_provisioner_rejects_anonymous_user(client):
    response = await client.post("/group-provisioner?userId=anonymous")
    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "No userId provided and no authenticated user found",
    }


@pytest.mark.asyncio
async def test_provisioner_anonymous_default_user(client, monkeypatch, snapshot):
    from principalsync.config import settings

    monkeypatch.setattr(settings, "trusted_caller_id", "anonymous")

    response = await client.post("/group-provisioner")

    assert response.status_code == 400
    assert await snapshot("anonymous") is None


@pytest.mark.asyncio
async def test_provisioner_get_lists_principals(client):
    await client.post("/group-provisioner?userId=testuser&principalName=sales")

    response = await client.get("/group-provisioner?userId=testuser")

    assert response.status_code == 200
    body = response.json()
    assert body["externalPrincipalNames"] == ["sales"]
    assert body["count"] == 1


@pytest.mark.asyncio
async def test_migration_steps_over_http(client, marketing, snapshot):
    step1 = await client.post(f"/migration-step1?groupPath={MARKETING}&idpName=saml-idp")
    assert step1.status_code == 200
    assert step1.json()["externalGroupPrincipalName"] == "marketing;saml-idp"
    assert step1.json()["externalGroupCreated"] is True

    for user_id in ("user1", "user2"):
        step2 = await client.post(f"/migration-step2?userId={user_id}&idpName=saml-idp")
        assert step2.status_code == 200
        assert step2.json()["principalsAdded"] == 1
        assert step2.json()["userConverted"] is True

    state = await client.get(f"/migration-state?groupPath={MARKETING}&idpName=saml-idp")
    assert state.json()["state"] == "dynamic_membership_granted"

    step3 = await client.post(f"/migration-step3?groupPath={MARKETING}")
    assert step3.status_code == 200
    body = step3.json()
    assert body["usersRemoved"] == 2
    assert body["groupMembersPreserved"] == 1
    assert (await snapshot("marketing"))["members"] == ["child-group", "marketing;saml-idp"]


@pytest.mark.asyncio
async def test_group_migration_over_http(client, marketing):
    response = await client.post(f"/group-migration?groupPath={MARKETING}&idpName=saml-idp")

    assert response.status_code == 200
    body = response.json()
    assert body["externalGroupId"] == "marketing;saml-idp"
    assert body["usersProcessed"] == 2
    assert body["usersUpdated"] == 2
    assert body["groupMembersSkipped"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "path,error",
    [
        ("/migration-step1?idpName=saml-idp", "groupPath parameter is required"),
        (f"/migration-step1?groupPath={MARKETING}", "idpName parameter is required"),
        ("/migration-step2?userId=%20%20&idpName=saml-idp", "userId parameter is required"),
        ("/migration-step3", "groupPath parameter is required"),
        (f"/group-migration?groupPath={MARKETING}&idpName=bad%3Bidp", "Invalid idpName"),
    ],
)
async def test_missing_parameters_are_400(client, path, error):
    response = await client.post(path)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert error in body["error"]


@pytest.mark.asyncio
async def test_not_found_and_type_mismatch(client, marketing):
    missing = await client.post("/migration-step2?userId=nobody&idpName=saml-idp")
    assert missing.status_code == 404
    assert missing.json()["error"] == "User not found: nobody"

    group_as_user = await client.post("/migration-step2?userId=marketing&idpName=saml-idp")
    assert group_as_user.status_code == 400

    user_as_group = await client.post("/migration-step3?groupPath=/home/users/u/user1")
    assert user_as_group.status_code == 400


@pytest.mark.asyncio
async def test_conflict_is_store_error(client, marketing):
    response = await client.post("/group-provisioner?userId=marketing&principalName=sales")
    assert response.status_code == 500
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_store_error_message_is_sanitized(client, store):
    class BrokenStore:
        def service_session(self, service_name):
            raise StoreError("line one\nline two\x00")

    app.dependency_overrides[get_directory_store] = lambda: BrokenStore()

    response = await client.get("/group-provisioner?userId=alice")

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "line one line two"}


@pytest.mark.asyncio
async def test_unexpected_error_keeps_json_envelope(client, seed, monkeypatch):
    from httpx import ASGITransport, AsyncClient

    from principalsync.engine.reconciliation import ReconciliationEngine

    await seed(users=["alice"])

    async def explode(self, user_id, idp):
        raise RuntimeError("unexpected\nfailure")

    monkeypatch.setattr(ReconciliationEngine, "reconcile_user_dynamic_groups", explode)

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as raw_client:
        response = await raw_client.post("/migration-step2?userId=alice&idpName=saml-idp")

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    assert response.json() == {"success": False, "error": "Internal error: unexpected failure"}


@pytest.mark.asyncio
async def test_metrics_snapshot_route(client):
    await client.post("/group-provisioner?userId=testuser")

    response = await client.get("/metrics")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["counters"]["directory.sessions.opened"] >= 1
    assert body["counters"]["reconcile.principals_added"] >= 1
    queries = body["histograms"]["db.query.duration_ms"]
    assert queries["count"] > 0
    assert queries["max"] >= queries["avg"] >= 0
