"""Authentication context helpers."""

from dataclasses import dataclass
from typing import Literal

from principalsync.principals import ANONYMOUS_ID


@dataclass(frozen=True)
class AuthContext:
    """Authenticated caller identity for the current request."""

    caller_id: str
    auth_type: Literal["db_api_key", "jwt", "insecure_dev", "anonymous"]

    @property
    def is_anonymous(self) -> bool:
        return self.auth_type == "anonymous" or self.caller_id == ANONYMOUS_ID

    @classmethod
    def anonymous(cls) -> "AuthContext":
        return cls(caller_id=ANONYMOUS_ID, auth_type="anonymous")
