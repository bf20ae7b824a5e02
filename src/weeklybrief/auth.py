"""Bearer token verification.

the app never issues tokens, it just checks firebase id tokens the dashboard
already has. anything wrong with the token - missing, malformed, expired,
wrong audience - is the same AuthError, and the http layer turns every one
of them into the same bare 401.
"""

from dataclasses import dataclass
from typing import Protocol

from google.auth.exceptions import GoogleAuthError
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from weeklybrief.errors import AuthError
from weeklybrief.log_utils import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    subject: str
    audience: str | None = None
    email: str | None = None


class TokenVerifier(Protocol):
    def verify(self, token: str) -> AuthenticatedUser: ...


def extract_bearer(header: str | None) -> str:
    """Pull the token out of an `Authorization: Bearer ...` header."""
    if not header:
        raise AuthError("missing Authorization header")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Authorization header is not a bearer token")
    return token.strip()


class FirebaseTokenVerifier:
    """Checks firebase id tokens with google-auth against one project."""

    def __init__(self, audience: str | None) -> None:
        self.audience = audience
        self._request = google_requests.Request()

    def verify(self, token: str) -> AuthenticatedUser:
        if not self.audience:
            # without an audience any firebase project's token would pass
            raise AuthError("auth audience is not configured")
        try:
            claims = id_token.verify_firebase_token(token, self._request, audience=self.audience)
        except (ValueError, GoogleAuthError) as e:
            logger.info("Token rejected: %s", e)
            raise AuthError(str(e)) from e
        if not claims or not claims.get("sub"):
            raise AuthError("token has no subject")
        return AuthenticatedUser(subject=claims["sub"], audience=claims.get("aud"), email=claims.get("email"))


class StaticTokenVerifier:
    """Accepts a fixed set of tokens. for local runs and tests, never production."""

    def __init__(self, tokens: dict[str, str]) -> None:
        self.tokens = tokens  # token -> subject

    def verify(self, token: str) -> AuthenticatedUser:
        subject = self.tokens.get(token)
        if subject is None:
            raise AuthError("unknown token")
        return AuthenticatedUser(subject=subject, audience="static")
