"""OIDC userinfo adapter - turns an IdP userinfo response into external credentials."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from jose import JWTError, jwt

from principalsync.config import settings
from principalsync.principals import EXTERNAL_ID_SEPARATOR

logger = logging.getLogger(__name__)

PROFILE_PREFIX = "profile/"

# Claims copied verbatim to profile/<claim>
PROFILE_CLAIMS = (
    "email",
    "given_name",
    "family_name",
    "name",
    "sub",
    "iss",
    "aud",
    "phone",
    "zip",
    "birth_date",
    "uuid",
    "social",
    "credential_option_preverified",
)

# Legacy claim names used only when the standard claim is absent
LEGACY_CLAIMS = {"fname": "given_name", "lname": "family_name"}


@dataclass
class ExternalCredentials:
    """Identity handed to the login layer after a successful IdP round-trip."""

    user_id: str
    idp: str
    attributes: dict[str, str] = field(default_factory=dict)


def extract_access_token(token_response: str) -> Optional[str]:
    """Read ``access_token`` from a JSON token response."""
    try:
        data = json.loads(token_response)
    except (TypeError, ValueError):
        logger.error("Failed to extract access token from token response")
        return None
    if not isinstance(data, dict):
        return None
    token = data.get("access_token")
    return str(token) if token else None


def parse_userinfo_response(body: Optional[str]) -> Optional[dict[str, Any]]:
    """
    Parse a userinfo body that is either a JWT or plain JSON.

    Surrounding quotes are stripped first. JWT payloads are read without
    signature verification.
    """
    if not body:
        return None

    cleaned = body.strip()
    if len(cleaned) >= 2 and cleaned.startswith('"') and cleaned.endswith('"'):
        cleaned = cleaned[1:-1]

    if cleaned.count(".") == 2:
        try:
            claims = jwt.get_unverified_claims(cleaned)
        except JWTError as exc:
            logger.error(f"Failed to decode userinfo JWT payload: {exc}")
            return None
        return claims if isinstance(claims, dict) else None

    try:
        data = json.loads(cleaned)
    except ValueError as exc:
        logger.error(f"Failed to parse userinfo response as JSON: {exc}")
        return None
    return data if isinstance(data, dict) else None


def map_userinfo_claims(claims: dict[str, Any]) -> dict[str, str]:
    """Map claims onto ``profile/<name>`` attributes, skipping null and empty values."""
    attributes: dict[str, str] = {}

    def copy(source: str, target: str) -> None:
        value = claims.get(source)
        if value is None:
            return
        value = str(value)
        if value:
            attributes[PROFILE_PREFIX + target] = value

    for claim in PROFILE_CLAIMS:
        copy(claim, claim)
    for legacy, standard in LEGACY_CLAIMS.items():
        if standard not in claims:
            copy(legacy, standard)

    return attributes


def build_external_credentials(
    subject: str,
    idp: str,
    claims: Optional[dict[str, Any]] = None,
    idp_name_in_principals: Optional[bool] = None,
) -> ExternalCredentials:
    """Credentials for ``subject``; the user id gets ``;<idp>`` when configured."""
    if idp_name_in_principals is None:
        idp_name_in_principals = settings.idp_name_in_principals
    user_id = f"{subject}{EXTERNAL_ID_SEPARATOR}{idp}" if idp_name_in_principals else subject

    credentials = ExternalCredentials(user_id=user_id, idp=idp)
    if claims:
        credentials.attributes.update(map_userinfo_claims(claims))
    logger.debug("Created credentials for user: %s", user_id)
    return credentials


class UserInfoClient:
    """
    Fetches userinfo from the IdP with the access token of a token response.

    Usage:
        client = UserInfoClient()
        credentials = await client.process(token_response, subject, idp)
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint or settings.userinfo_endpoint
        self.timeout = timeout if timeout is not None else settings.userinfo_timeout_seconds
        self._transport = transport

    async def fetch(self, access_token: Optional[str]) -> Optional[dict[str, Any]]:
        """GET the userinfo endpoint; None on missing token, non-200 or transport failure."""
        if not access_token:
            logger.warning("Access token is missing, cannot fetch userinfo")
            return None

        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.endpoint, headers=headers)
        except httpx.HTTPError as exc:
            logger.error(f"Error fetching userinfo from {self.endpoint}: {exc}")
            return None

        if response.status_code != 200:
            logger.error(f"Failed to fetch userinfo. Status: {response.status_code}")
            return None
        return parse_userinfo_response(response.text)

    async def process(
        self,
        token_response: str,
        subject: str,
        idp: str,
        idp_name_in_principals: Optional[bool] = None,
    ) -> ExternalCredentials:
        """Token response in, external credentials out; profile attributes when available."""
        claims = await self.fetch(extract_access_token(token_response))
        return build_external_credentials(subject, idp, claims, idp_name_in_principals)
