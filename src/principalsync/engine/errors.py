"""PrincipalSync engine errors."""


class PrincipalSyncError(Exception):
    """Base error for PrincipalSync operations."""

    status_code = 500

    def __init__(self, message: str, code: str = "PRINCIPALSYNC_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(PrincipalSyncError):
    """A required parameter is missing, blank or malformed."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, "VALIDATION_ERROR")


class NotFoundError(PrincipalSyncError):
    """Authorizable does not exist."""

    status_code = 404

    def __init__(self, message: str):
        super().__init__(message, "NOT_FOUND")


class TypeMismatchError(PrincipalSyncError):
    """A group was given where a user was expected, or vice versa."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, "TYPE_MISMATCH")


class ForbiddenError(PrincipalSyncError):
    """Caller is not the trusted technical account."""

    status_code = 403

    def __init__(self, caller_id: str | None):
        super().__init__(
            "Access denied. Only authorized technical accounts can access this endpoint. "
            f"Caller: {caller_id or ''}",
            "FORBIDDEN",
        )
        self.caller_id = caller_id


class StoreError(PrincipalSyncError):
    """The directory store rejected or failed an operation."""

    status_code = 500

    def __init__(self, message: str, code: str = "STORE_ERROR"):
        super().__init__(message, code)


class ConflictError(StoreError):
    """An id is already taken by an authorizable of the wrong kind."""

    def __init__(self, message: str):
        super().__init__(message, "CONFLICT")


class StoreConnectionError(StoreError):
    """A service session could not be opened."""

    def __init__(self, message: str):
        super().__init__(message, "STORE_CONNECTION_ERROR")
