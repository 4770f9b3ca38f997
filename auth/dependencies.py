"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

One auth method: the Authorization: Bearer <token> header sent by the SPA
after login. The gate itself lives on app.state (wired in the lifespan), so
tests can swap in a gate with a fixed clock.

get_identity() raises Unauthenticated (-> 401) for a missing/invalid/expired token.
require_admin() additionally raises Forbidden (-> 403) for a non-admin token.
Both errors are rendered by the FeedbackAppError handler in api/main.py.

Layer rule: auth/dependencies.py may import from fastapi (for Request) because
this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import ROLE_ADMIN, Identity
from auth.tokens import AuthorizationGate
from core.errors import Unauthenticated


def bearer_token(request: Request) -> str | None:
    """Extract the raw token from the Authorization header, if present."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_identity(request: Request) -> Identity:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_identity)): ...
    """
    token = bearer_token(request)
    if token is None:
        raise Unauthenticated(detail="missing bearer token")
    gate: AuthorizationGate = request.app.state.gate
    return gate.authorize(token)


def require_admin(request: Request) -> Identity:
    """Require admin role. 401 if unauthenticated, 403 if not admin."""
    token = bearer_token(request)
    if token is None:
        raise Unauthenticated(detail="missing bearer token")
    gate: AuthorizationGate = request.app.state.gate
    return gate.authorize(token, required_role=ROLE_ADMIN)
