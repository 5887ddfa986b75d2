"""
Identity provider adapters for staff-only operations.

The public booking path is unauthenticated. Status transitions and the
admin routes require a bearer token, which is exchanged here for a
``VerifiedIdentity``.

    FirebaseIdentityProvider  Identity Toolkit ``accounts:lookup`` over httpx
    StaticIdentityProvider    fixed token map for local runs and tests
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from booking_admission.schemas.staff_schema import VerifiedIdentity

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_LOOKUP_URL = "https://identitytoolkit.googleapis.com/v1/accounts:lookup"


class AuthenticationError(Exception):
    """Raised when a token is missing, invalid, or expired."""


class IdentityProvider(Protocol):
    def verify(self, token: str) -> VerifiedIdentity: ...


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


@dataclass
class FirebaseIdentityProvider:
    """Verifies Firebase ID tokens by looking up the account they belong to."""

    api_key: str
    timeout_seconds: float = 10.0
    transport: Optional[httpx.BaseTransport] = None

    def verify(self, token: str) -> VerifiedIdentity:
        if not token:
            raise AuthenticationError("No authorization token provided")
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self.transport) as client:
                resp = client.post(
                    IDENTITY_TOOLKIT_LOOKUP_URL,
                    params={"key": self.api_key},
                    json={"idToken": token},
                )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning("Token verification failed: HTTP %s", e.response.status_code)
            raise AuthenticationError("Invalid or expired token") from e
        except httpx.HTTPError as e:
            logger.error("Identity provider unreachable: %s", e)
            raise AuthenticationError("Identity provider unavailable") from e

        try:
            data = resp.json()
        except ValueError as e:
            logger.error("Identity provider returned a non-JSON body")
            raise AuthenticationError("Identity provider unavailable") from e
        users = data.get("users") if isinstance(data, dict) else None
        users = users or []
        if not users:
            raise AuthenticationError("Invalid or expired token")
        user = users[0]
        identity = VerifiedIdentity(subject_id=user["localId"], email=user.get("email"))
        logger.info("Auth successful for user: %s", identity.email or identity.subject_id)
        return identity


class StaticIdentityProvider:
    """Token map built from ``token:subject:email`` entries."""

    def __init__(self, identities: dict[str, VerifiedIdentity]) -> None:
        self._identities = dict(identities)

    @classmethod
    def from_entries(cls, entries: tuple[str, ...]) -> "StaticIdentityProvider":
        identities: dict[str, VerifiedIdentity] = {}
        for entry in entries:
            parts = entry.split(":")
            if len(parts) < 2 or not parts[0] or not parts[1]:
                raise ValueError(f"Invalid STAFF_TOKENS entry: {entry!r}")
            email = parts[2] if len(parts) > 2 and parts[2] else None
            identities[parts[0]] = VerifiedIdentity(subject_id=parts[1], email=email)
        return cls(identities)

    def verify(self, token: str) -> VerifiedIdentity:
        identity = self._identities.get(token)
        if identity is None:
            raise AuthenticationError("Invalid or expired token")
        return identity
