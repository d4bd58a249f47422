"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The SessionGateway built at startup lives on app.state; these helpers read
the Authorization header, hand it to the gateway and return the resulting
IdentityContext as an ordinary route argument. Handlers then pass that
identity explicitly to the policy and stores they call.

Only "Authorization: Bearer <access token>" is accepted. Refresh tokens are
rejected here (WrongKind -> Unauthenticated).

Layer rule: no imports from api/ or tracker/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency wiring.
"""

from __future__ import annotations

from fastapi import Request

from auth.gateway import SessionGateway, extract_bearer
from auth.models import IdentityContext


def get_identity(request: Request) -> IdentityContext:
    """Require a valid access token. Raises Unauthenticated (HTTP 401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: IdentityContext = Depends(get_identity)): ...
    """
    gateway: SessionGateway = request.app.state.gateway
    return gateway.authenticate(request.headers.get("Authorization"))


def get_bearer_token(request: Request) -> str:
    """Return the raw bearer token without verifying it."""
    return extract_bearer(request.headers.get("Authorization"))
