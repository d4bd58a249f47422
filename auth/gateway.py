"""
auth/gateway.py -- Per-request entry point for bearer authentication.

SessionGateway turns an Authorization header into an IdentityContext or
fails with Unauthenticated. It holds nothing but a reference to the
CredentialIssuer, so one instance is shared by every request.

The identity is returned to the caller and passed explicitly down the call
chain; nothing is stored in globals or thread-locals.
"""

from __future__ import annotations

import logging

from auth.models import IdentityContext, TokenKind
from auth.tokens import CredentialIssuer
from core.errors import CredentialError, Unauthenticated

logger = logging.getLogger("tasktrack.gateway")

_BEARER_PREFIX = "bearer "


def extract_bearer(authorization: str | None) -> str:
    """Return the token from an "Authorization: Bearer <token>" header value."""
    if not authorization or not authorization.lower().startswith(_BEARER_PREFIX):
        raise Unauthenticated()
    token = authorization[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise Unauthenticated()
    return token


class SessionGateway:
    def __init__(self, issuer: CredentialIssuer) -> None:
        self._issuer = issuer

    def authenticate(self, authorization: str | None) -> IdentityContext:
        """Verify the bearer access token and return the caller's identity."""
        token = extract_bearer(authorization)
        try:
            claims = self._issuer.verify(token, TokenKind.ACCESS)
        except CredentialError as exc:
            logger.info("Rejected access token: %s", exc.code)
            raise Unauthenticated() from exc
        return IdentityContext.from_claims(claims)
