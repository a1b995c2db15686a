"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and roles.

get_current_identity() reads `Authorization: Bearer <token>`, verifies it with
the TokenIssuer on app.state, and stores the resulting Identity on
request.state.identity. No store round-trip: the token claims are the identity.

require_role(*roles) wraps get_current_identity() and raises 403 when the
caller's role is not listed. require_admin is the common case.

Failures raise BusTrackError subclasses, which api/main.py renders as the
standard error envelope:
  missing header / wrong scheme / blank token  -> 401 UNAUTHORIZED
  expired                                      -> 401 TOKEN_EXPIRED
  bad signature, claims or format              -> 401 TOKEN_INVALID
  wrong role                                   -> 403 FORBIDDEN

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system. No imports from fleet/.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.models import Identity
from auth.tokens import TokenIssuer
from core.errors import AuthenticationError, AuthorizationError, TokenExpiredError


def get_current_identity(request: Request) -> Identity:
    """Require a valid access token. Raises 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: Identity = Depends(get_current_identity)): ...
    """
    header = request.headers.get("Authorization")
    if not header:
        raise AuthenticationError("Authorization header is required")
    scheme, _, token = header.partition(" ")
    if scheme != "Bearer":
        raise AuthenticationError("Authorization header must be in format: Bearer <token>")
    if not token.strip():
        raise AuthenticationError("Token is missing")

    tokens: TokenIssuer = request.app.state.tokens
    try:
        identity = tokens.verify_access(token.strip())
    except TokenExpiredError as exc:
        raise TokenExpiredError("Token has expired. Please login again.") from exc
    request.state.identity = identity
    return identity


def require_role(*roles: str) -> Callable[..., Identity]:
    """Build a dependency that admits only the given roles.

    Use as a FastAPI dependency:
        @router.delete("/buses/{bus_id}")
        async def route(identity: Identity = Depends(require_role("admin"))): ...
    """
    allowed = ", ".join(roles)

    def dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        if not identity.has_role(*roles):
            raise AuthorizationError(f"Access denied. Required role(s): {allowed}")
        return identity

    return dependency


require_admin = require_role("admin")
