"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Per request the token check is a small state machine:

    NoToken --(Authorization: Bearer <token>)--> Verifying --> Authorized
                                                          +--> Rejected

  - No header, or a non-Bearer scheme  -> 401 unauthorized
  - Token present but fails to verify  -> 403 forbidden
  - Token verifies, role does not match -> 403 forbidden

401 vs 403 is the only distinction a client sees. The response body never
says which check failed; the specific TokenFailure is logged at DEBUG.

get_current_identity() requires any valid token.
require_role(role) wraps it and additionally requires an exact role match.
login_throttle() gates the login route before the body is authenticated.

The services live on app.state (built once by the lifespan); these helpers
only read them from the request.

Layer rule: no imports from api/, audit/, or inventory/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import HTTPException, Request

from auth.errors import TokenFailure
from auth.models import Identity
from auth.throttle import LoginThrottle
from auth.tokens import TokenService

logger = logging.getLogger("homeinv.auth")

_UNAUTHORIZED = {"code": "unauthorized", "message": "Authentication required."}
_FORBIDDEN = {"code": "forbidden", "message": "Forbidden."}


def bearer_token(request: Request) -> str | None:
    """Return the token from 'Authorization: Bearer <token>', or None."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_identity(request: Request) -> Identity:
    """Require a valid session token. Raises 401 if absent, 403 if invalid.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: Identity = Depends(get_current_identity)): ...

    The verified identity is also left on request.state.identity so the
    request-logging middleware and audit calls can see who acted.
    """
    token = bearer_token(request)
    if token is None:
        raise HTTPException(status_code=401, detail=_UNAUTHORIZED, headers={"WWW-Authenticate": "Bearer"})

    tokens: TokenService = request.app.state.tokens
    try:
        identity = tokens.verify(token)
    except TokenFailure as exc:
        logger.debug("Rejected token on %s: %s", request.url.path, type(exc).__name__)
        raise HTTPException(status_code=403, detail=_FORBIDDEN) from exc

    request.state.identity = identity
    return identity


def require_role(role: str) -> Callable[[Request], Identity]:
    """Build a dependency that requires a valid token carrying exactly `role`.

    Use as a FastAPI dependency:
        @router.post("/admin-only")
        async def route(identity: Identity = Depends(require_role("admin"))): ...
    """

    def dependency(request: Request) -> Identity:
        identity = get_current_identity(request)
        if identity.role != role:
            logger.info("Role %r required on %s; %s has %r", role, request.url.path, identity.username, identity.role)
            raise HTTPException(status_code=403, detail=_FORBIDDEN)
        return identity

    return dependency


def login_throttle(request: Request) -> None:
    """Count this login attempt against the caller's address.

    Raises TooManyAttempts (handled as 429 in api/main.py) once the window is
    full. Runs as a route dependency, so it fires before authentication.
    """
    throttle: LoginThrottle = request.app.state.login_throttle
    throttle.hit(request.client.host if request.client else "unknown")
