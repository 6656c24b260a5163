"""
api/routes/auth.py -- Login, registration, and identity endpoints.

Routes:
  POST /api/auth/login     -- password login; returns a bearer token (throttled)
  POST /api/auth/register  -- create a user (admin only)
  GET  /api/auth/me        -- identity asserted by the caller's token

Security:
  POST /login is throttled per client address by LoginThrottle. The throttle
      dependency runs before authentication, so every attempt counts.
  Unknown username and wrong password return the same 401 body. Directory
      outages also return it -- the difference is only in the server log.
  Cache-Control: no-store on every login response.
  Registration never echoes or logs the password; the audit entry carries
      username, role and auth mode only.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.models import LoginRequest, LoginResponse, MeResponse, UserCreate, UserResponse
from api.routes.users import user_to_response
from audit.recorder import AuditRecorder
from auth.dependencies import get_current_identity, login_throttle, require_role
from auth.errors import AuthFailure
from auth.models import AuthMode, Identity, User
from auth.passwords import hash_password
from auth.service import AuthenticationService
from auth.store import UserStore
from auth.tokens import TokenService

# Auth policy:
# - POST /api/auth/login:     public, throttled (login_throttle)
# - POST /api/auth/register:  requires admin (require_role("admin"))
# - GET  /api/auth/me:        requires auth (get_current_identity)
router = APIRouter()

_BAD_CREDENTIALS = {"error": {"code": "bad_credentials", "message": "Invalid username or password."}}


@router.post("/auth/login", response_model=LoginResponse, dependencies=[Depends(login_throttle)])
async def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; return a signed session token."""
    service: AuthenticationService = request.app.state.authenticator
    tokens: TokenService = request.app.state.tokens

    try:
        identity = await service.authenticate(body.username, body.password)
    except AuthFailure:
        resp = JSONResponse(status_code=401, content=_BAD_CREDENTIALS)
        resp.headers["Cache-Control"] = "no-store"
        return resp

    token = tokens.issue(identity)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=token,
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=tokens.lifetime_seconds,
            username=identity.username,
            role=identity.role,
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/register", response_model=UserResponse, status_code=201)
async def register(
    request: Request,
    body: UserCreate,
    current: Identity = Depends(require_role("admin")),
) -> UserResponse:
    """Create a user account. Admin only.

    Local accounts get a bcrypt hash of the supplied password. Directory
    accounts are stored without one; their logins go to LDAP.
    """
    users: UserStore = request.app.state.users
    recorder: AuditRecorder = request.app.state.audit

    password_hash: str | None = None
    if body.local:
        password_hash = await run_in_threadpool(hash_password, body.password, request.app.state.settings.bcrypt_rounds)

    new_user = User(
        username=body.username,
        role=body.role.value,
        auth_mode=AuthMode.LOCAL if body.local else AuthMode.DIRECTORY,
        password_hash=password_hash,
        email=body.email,
        display_name=body.display_name,
        avatar_url=body.avatar_url,
        ui_theme=body.ui_theme,
        team=body.team,
        bio=body.bio,
    )
    try:
        user_id = await run_in_threadpool(users.create_user, new_user)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that username already exists."},
        ) from exc

    recorder.record(
        f"{request.method} {request.url.path}",
        {"ID": user_id, "Username": new_user.username, "Role": new_user.role, "AuthMode": new_user.auth_mode.value},
        current.username,
    )
    created = await run_in_threadpool(users.get_by_id, user_id)
    return user_to_response(created)


@router.get("/auth/me", response_model=MeResponse)
async def me(identity: Identity = Depends(get_current_identity)) -> MeResponse:
    """Return the identity asserted by the caller's token."""
    return MeResponse(username=identity.username, role=identity.role)
