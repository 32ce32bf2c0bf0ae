"""PrincipalSync HTTP API."""

from principalsync.api.router import info_router, router

__all__ = ["info_router", "router"]
