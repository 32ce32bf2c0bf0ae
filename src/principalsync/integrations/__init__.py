"""External service integrations."""

from principalsync.integrations.userinfo import (
    ExternalCredentials,
    UserInfoClient,
    build_external_credentials,
    extract_access_token,
    map_userinfo_claims,
    parse_userinfo_response,
)

__all__ = [
    "ExternalCredentials",
    "UserInfoClient",
    "build_external_credentials",
    "extract_access_token",
    "map_userinfo_claims",
    "parse_userinfo_response",
]
