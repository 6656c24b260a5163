"""
api/routes/users.py -- User directory endpoints.

Routes:
  GET    /api/users              -- list users (any authenticated caller)
  GET    /api/users/{username}   -- one user by username, case-insensitive
  PUT    /api/users/{user_id}    -- update profile / role / auth mode (admin only)
  DELETE /api/users/{user_id}    -- delete a user (admin only)

Responses are built from UserResponse, which has no password hash field, so
PasswordHash can never leave the server through these routes.

Reads are audited only at high verbosity; writes are always audited.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError

from api.models import UserResponse, UserUpdate
from audit.recorder import AuditRecorder
from auth.dependencies import get_current_identity, require_role
from auth.models import AuthMode, Identity, User
from auth.store import UserStore

router = APIRouter()


def user_to_response(user: User | None) -> UserResponse:
    if user is None:
        raise HTTPException(
            status_code=500,
            detail={"code": "internal_error", "message": "User not found after write."},
        )
    return UserResponse(
        id=user.id or "",
        username=user.username,
        role=user.role,
        auth_mode=user.auth_mode.value,
        email=user.email,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
        ui_theme=user.ui_theme,
        team=user.team,
        bio=user.bio,
    )


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "not_found", "message": "User not found."})


@router.get("/users", response_model=list[UserResponse])
async def list_users(request: Request, identity: Identity = Depends(get_current_identity)) -> list[UserResponse]:
    users: UserStore = request.app.state.users
    recorder: AuditRecorder = request.app.state.audit
    result = await run_in_threadpool(users.list_users)
    recorder.record(f"{request.method} {request.url.path}", dict(request.query_params), identity.username, read_only=True)
    return [user_to_response(u) for u in result]


@router.get("/users/{username}", response_model=UserResponse)
async def get_user(
    request: Request,
    username: str,
    identity: Identity = Depends(get_current_identity),
) -> UserResponse:
    users: UserStore = request.app.state.users
    recorder: AuditRecorder = request.app.state.audit
    user = await run_in_threadpool(users.get_by_username, username)
    if user is None:
        raise _not_found()
    recorder.record(f"{request.method} {request.url.path}", {"Username": username}, identity.username, read_only=True)
    return user_to_response(user)


@router.put("/users/{user_id}", response_model=UserResponse)
async def update_user(
    request: Request,
    user_id: str,
    body: UserUpdate,
    identity: Identity = Depends(require_role("admin")),
) -> UserResponse:
    """Update a user's profile fields, role, or auth mode. Admin only.

    Role changes do not touch tokens already issued to that user; they take
    effect at the user's next login.
    """
    users: UserStore = request.app.state.users
    recorder: AuditRecorder = request.app.state.audit

    fields = body.model_dump(exclude_none=True, exclude={"local"})
    if "role" in fields:
        fields["role"] = body.role.value
    if body.local is not None:
        fields["auth_mode"] = AuthMode.LOCAL if body.local else AuthMode.DIRECTORY
    if not fields:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )

    try:
        updated = await run_in_threadpool(lambda: users.update_user(user_id, **fields))
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "conflict", "message": "A user with that username already exists."},
        ) from exc
    if not updated:
        raise _not_found()

    audit_payload = {k: (v.value if isinstance(v, AuthMode) else v) for k, v in fields.items()}
    recorder.record(f"{request.method} {request.url.path}", {"ID": user_id, **audit_payload}, identity.username)
    return user_to_response(await run_in_threadpool(users.get_by_id, user_id))


@router.delete("/users/{user_id}", status_code=204)
async def delete_user(
    request: Request,
    user_id: str,
    identity: Identity = Depends(require_role("admin")),
) -> Response:
    """Delete a user. Admin only. Admins cannot delete their own account."""
    users: UserStore = request.app.state.users
    recorder: AuditRecorder = request.app.state.audit

    target = await run_in_threadpool(users.get_by_id, user_id)
    if target is None:
        raise _not_found()
    if target.username == identity.username:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deletion", "message": "You cannot delete your own account."},
        )
    await run_in_threadpool(users.delete_user, user_id)
    recorder.record(f"{request.method} {request.url.path}", {"ID": user_id}, identity.username)
    return Response(status_code=204)
