"""External identity references and reserved directory property names."""

from typing import Iterable

from principalsync.engine.errors import ValidationError

PROPERTY_PREFIX = "rep:"
EXTERNAL_ID = f"{PROPERTY_PREFIX}externalId"
EXTERNAL_PRINCIPAL_NAMES = f"{PROPERTY_PREFIX}externalPrincipalNames"
LAST_DYNAMIC_SYNC = f"{PROPERTY_PREFIX}lastDynamicSync"
LAST_SYNCED = f"{PROPERTY_PREFIX}lastSynced"

EXTERNAL_ID_SEPARATOR = ";"
SYSTEM_GROUP_ID = "everyone"
ANONYMOUS_ID = "anonymous"


def validate_idp_name(idp: str) -> str:
    """Reject idp names that would make an external reference ambiguous."""
    if not idp or EXTERNAL_ID_SEPARATOR in idp:
        raise ValidationError(
            f"Invalid idpName '{idp}': must be non-empty and must not contain "
            f"'{EXTERNAL_ID_SEPARATOR}'"
        )
    return idp


def external_identity_ref(local_id: str, idp: str) -> str:
    """
    Return the canonical external id ``<local_id>;<idp>``.

    Nothing is escaped. ``local_id`` may itself contain the separator (external
    group ids do), but an idp name containing it is rejected.
    """
    return f"{local_id}{EXTERNAL_ID_SEPARATOR}{validate_idp_name(idp)}"


def is_system_group(group_id: str, system_group_ids: Iterable[str] | None = None) -> bool:
    """Return True if group_id names a system group (``everyone`` by default)."""
    if system_group_ids is None:
        return group_id == SYSTEM_GROUP_ID
    return group_id in set(system_group_ids)


def dedupe_principal_names(names: Iterable[str]) -> list[str]:
    """Order-preserving de-duplication of principal names."""
    return list(dict.fromkeys(names))
