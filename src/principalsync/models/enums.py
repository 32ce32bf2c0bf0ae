"""PrincipalSync enumerations."""

from enum import Enum


class MigrationState(str, Enum):
    """Where a local group stands in the static-to-dynamic membership migration."""

    # No external counterpart linked yet
    UNMIGRATED = "unmigrated"
    # Phase 1 done: <group>;<idp> exists and is a member of the local group
    EXTERNAL_GROUP_LINKED = "external_group_linked"
    # Phase 2 done for every direct user member
    DYNAMIC_MEMBERSHIP_GRANTED = "dynamic_membership_granted"
    # Phase 3 done: no direct user members left
    DIRECT_MEMBERSHIP_STRIPPED = "direct_membership_stripped"
