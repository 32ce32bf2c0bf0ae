"""PrincipalSync authentication module."""

from principalsync.auth.context import AuthContext
from principalsync.auth.gate import enforce_access_gate, is_trusted_caller
from principalsync.auth.models import ServiceAccount, APIKey
from principalsync.auth.middleware import (
    hash_api_key,
    verify_api_key_hash,
    generate_api_key,
    verify_request_api_key,
)

__all__ = [
    "AuthContext",
    "ServiceAccount",
    "APIKey",
    "enforce_access_gate",
    "is_trusted_caller",
    "hash_api_key",
    "verify_api_key_hash",
    "generate_api_key",
    "verify_request_api_key",
]
