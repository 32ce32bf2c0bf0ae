"""REST API router."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from principalsync import __version__
from principalsync.api.deps import get_directory_store, require_param, require_trusted_caller
from principalsync.api.schemas import (
    DirectMembershipStripResponse,
    DynamicGroupSyncResponse,
    ExternalGroupLinkResponse,
    ExternalPrincipalsResponse,
    GroupMigrationResponse,
    HealthResponse,
    MetricsResponse,
    MigrationStateResponse,
    PrincipalProvisionResponse,
    UsageResponse,
)
from principalsync.auth.context import AuthContext
from principalsync.config import settings
from principalsync.db.store import DirectoryStore
from principalsync.engine.errors import ValidationError
from principalsync.engine.phases import MigrationPhases
from principalsync.engine.reconciliation import ReconciliationEngine
from principalsync.engine.workflow import GroupExternalizationWorkflow
from principalsync.observability.metrics import metrics
from principalsync.principals import ANONYMOUS_ID, validate_idp_name

# Every route here passes the access gate before a directory session is opened
router = APIRouter(dependencies=[Depends(require_trusted_caller)])

# Read-only descriptions, no gate
info_router = APIRouter()


# ============================================================================
# Group provisioner
# ============================================================================


@router.post("/group-provisioner", response_model=PrincipalProvisionResponse)
async def provision_principal(
    user_id: Optional[str] = Query(None, alias="userId"),
    principal_name: Optional[str] = Query(None, alias="principalName"),
    idp_name: Optional[str] = Query(None, alias="idpName"),
    auth: AuthContext = Depends(require_trusted_caller),
    store: DirectoryStore = Depends(get_directory_store),
):
    """
    Grant one external principal name to a user.

    ``userId`` falls back to the calling identity; ``principalName`` and
    ``idpName`` fall back to the configured defaults.
    """
    user_id = (user_id or "").strip() or auth.caller_id
    # Explicit userId=anonymous, or a trusted caller id configured as anonymous
    if user_id == ANONYMOUS_ID:
        raise ValidationError("No userId provided and no authenticated user found")
    principal_name = (principal_name or "").strip() or settings.default_principal_name
    idp = validate_idp_name((idp_name or "").strip() or settings.default_idp_name)

    async with store.service_session(settings.service_user) as directory:
        result = await ReconciliationEngine(directory).add_single_principal(
            user_id, principal_name, idp
        )
    return PrincipalProvisionResponse.from_result(result)


@router.get("/group-provisioner", response_model=ExternalPrincipalsResponse)
async def list_external_principals(
    user_id: Optional[str] = Query(None, alias="userId"),
    store: DirectoryStore = Depends(get_directory_store),
):
    """Current rep:externalPrincipalNames of a user."""
    user_id = require_param(user_id, "userId")

    async with store.service_session(settings.service_user) as directory:
        names = await ReconciliationEngine(directory).get_external_principal_names(user_id)
    return ExternalPrincipalsResponse(
        user_id=user_id, external_principal_names=names, count=len(names)
    )


# ============================================================================
# Migration phases
# ============================================================================


@router.post("/migration-step1", response_model=ExternalGroupLinkResponse)
async def migration_step1(
    group_path: Optional[str] = Query(None, alias="groupPath"),
    idp_name: Optional[str] = Query(None, alias="idpName"),
    store: DirectoryStore = Depends(get_directory_store),
):
    """Phase 1: create the external group and link it into the local group."""
    group_path = require_param(group_path, "groupPath")
    idp = validate_idp_name(require_param(idp_name, "idpName"))

    async with store.service_session(settings.service_user) as directory:
        phases = MigrationPhases(ReconciliationEngine(directory))
        result = await phases.link_external_group(group_path, idp)
    return ExternalGroupLinkResponse.from_result(result)


@router.post("/migration-step2", response_model=DynamicGroupSyncResponse)
async def migration_step2(
    user_id: Optional[str] = Query(None, alias="userId"),
    idp_name: Optional[str] = Query(None, alias="idpName"),
    store: DirectoryStore = Depends(get_directory_store),
):
    """Phase 2: grant dynamic principals for every direct group of a user."""
    user_id = require_param(user_id, "userId")
    idp = validate_idp_name(require_param(idp_name, "idpName"))

    async with store.service_session(settings.service_user) as directory:
        phases = MigrationPhases(ReconciliationEngine(directory))
        result = await phases.assign_dynamic_groups(user_id, idp)
    return DynamicGroupSyncResponse.from_result(result)


@router.post("/migration-step3", response_model=DirectMembershipStripResponse)
async def migration_step3(
    group_path: Optional[str] = Query(None, alias="groupPath"),
    store: DirectoryStore = Depends(get_directory_store),
):
    """Phase 3: remove direct user members; group members stay."""
    group_path = require_param(group_path, "groupPath")

    async with store.service_session(settings.service_user) as directory:
        phases = MigrationPhases(ReconciliationEngine(directory))
        result = await phases.strip_direct_user_members(group_path)
    return DirectMembershipStripResponse.from_result(result)


@router.post("/group-migration", response_model=GroupMigrationResponse)
async def group_migration(
    group_path: Optional[str] = Query(None, alias="groupPath"),
    idp_name: Optional[str] = Query(None, alias="idpName"),
    store: DirectoryStore = Depends(get_directory_store),
):
    """Externalize a local group and all of its direct user members at once."""
    group_path = require_param(group_path, "groupPath")
    idp = validate_idp_name(require_param(idp_name, "idpName"))

    async with store.service_session(settings.service_user) as directory:
        workflow = GroupExternalizationWorkflow(ReconciliationEngine(directory))
        result = await workflow.externalize_group(group_path, idp)
    return GroupMigrationResponse.from_result(result)


@router.get("/migration-state", response_model=MigrationStateResponse)
async def migration_state(
    group_path: Optional[str] = Query(None, alias="groupPath"),
    idp_name: Optional[str] = Query(None, alias="idpName"),
    store: DirectoryStore = Depends(get_directory_store),
):
    """Where a local group stands in the three-phase migration."""
    group_path = require_param(group_path, "groupPath")
    idp = validate_idp_name(require_param(idp_name, "idpName"))

    async with store.service_session(settings.service_user) as directory:
        phases = MigrationPhases(ReconciliationEngine(directory))
        result = await phases.describe_state(group_path, idp)
    return MigrationStateResponse.from_result(result)


# ============================================================================
# Info & health
# ============================================================================


@info_router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


@info_router.get("/metrics", response_model=MetricsResponse)
async def metrics_snapshot():
    """In-process counters and histograms (sessions, principals, gate, DB queries)."""
    return MetricsResponse(**metrics.snapshot())


@info_router.get("/migration-step1", response_model=UsageResponse)
async def migration_step1_usage():
    return UsageResponse(
        endpoint="/migration-step1",
        description=(
            "Phase 1: creates the external group '<groupId>;<idpName>' and adds it "
            "as a member of the local group."
        ),
        parameters={
            "groupPath": "Path of the local group, e.g. /home/groups/m/marketing",
            "idpName": "Identity provider name, e.g. saml-idp",
        },
    )


@info_router.get("/migration-step2", response_model=UsageResponse)
async def migration_step2_usage():
    return UsageResponse(
        endpoint="/migration-step2",
        description=(
            "Phase 2: sets rep:externalId on the user if missing and adds "
            "'<groupId>;<idpName>' to rep:externalPrincipalNames for every direct group."
        ),
        parameters={
            "userId": "ID of the user to process",
            "idpName": "Identity provider name, e.g. saml-idp",
        },
    )


@info_router.get("/migration-step3", response_model=UsageResponse)
async def migration_step3_usage():
    return UsageResponse(
        endpoint="/migration-step3",
        description=(
            "Phase 3: removes every direct user member from the local group. "
            "Group members are preserved. Run Phase 2 for those users first."
        ),
        parameters={"groupPath": "Path of the local group"},
    )


@info_router.get("/group-migration", response_model=UsageResponse)
async def group_migration_usage():
    return UsageResponse(
        endpoint="/group-migration",
        description=(
            "Creates and links the external group, then grants its principal to every "
            "direct user member in a single transaction."
        ),
        parameters={
            "groupPath": "Path of the local group",
            "idpName": "Identity provider name, e.g. saml-idp",
        },
    )
