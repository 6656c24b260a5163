"""
auth/store.py -- Credential store for auth entities.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. It sits on top of the data-access gateway (anything with an
execute_query(table, operation, params) method -- InventoryStore in
production, a fake in unit tests) and translates Users rows into User
dataclasses and back.

Usernames are normalized to lowercase on every read and write so lookups are
case-insensitive end to end.

The SQL_USER column carries the auth mode: 1 means the password is checked
against PasswordHash, 0 means the directory checks it.

Layer rule: no imports from api/, audit/, or inventory/. The gateway is
injected, not imported.
"""

from __future__ import annotations

import uuid
from typing import Protocol

from auth.models import AuthMode, User

_TABLE = "Users"


class QueryGateway(Protocol):
    def execute_query(self, table: str, operation: str, params: dict | None = None): ...


def normalize_username(username: str) -> str:
    return username.strip().lower()


class UserStore:
    """Repository for User records.

    Usage:
        users = UserStore(inventory_store)
        users.create_user(User(username="admin", role="admin", password_hash=hash_password("secret")))
        user = users.get_by_username("Admin")   # case-insensitive
    """

    def __init__(self, gateway: QueryGateway) -> None:
        self._gateway = gateway

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by username (case-insensitive). Returns None if not found."""
        rows = self._gateway.execute_query(_TABLE, "READ", {"Username": normalize_username(username)})
        return _row_to_user(rows[0]) if rows else None

    def get_by_id(self, user_id: str) -> User | None:
        rows = self._gateway.execute_query(_TABLE, "READ", {"ID": user_id})
        return _row_to_user(rows[0]) if rows else None

    def list_users(self) -> list[User]:
        return [_row_to_user(r) for r in self._gateway.execute_query(_TABLE, "READ", {})]

    def create_user(self, user: User) -> str:
        """Insert a new user and return its assigned ID.

        Raises sqlalchemy.exc.IntegrityError (via the gateway) if the username
        already exists. Callers treat that as a 409.
        """
        user_id = user.id or str(uuid.uuid4())
        self._gateway.execute_query(_TABLE, "CREATE", {**_user_to_params(user), "ID": user_id})
        return user_id

    def update_user(self, user_id: str, **fields) -> bool:
        """Update profile fields. Accepts the User attribute names; None values are skipped.

        Returns True if a row was updated, False if user_id was not found.
        """
        params = {_FIELD_TO_COLUMN[k]: v for k, v in fields.items() if k in _FIELD_TO_COLUMN}
        if "auth_mode" in fields and fields["auth_mode"] is not None:
            params["SQL_USER"] = 1 if AuthMode(fields["auth_mode"]) is AuthMode.LOCAL else 0
        if "username" in fields and fields["username"]:
            params["Username"] = normalize_username(fields["username"])
        params["ID"] = user_id
        return self._gateway.execute_query(_TABLE, "UPDATE", params) > 0

    def delete_user(self, user_id: str) -> bool:
        return self._gateway.execute_query(_TABLE, "DELETE", {"ID": user_id}) > 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------

_FIELD_TO_COLUMN = {
    "role": "Role",
    "password_hash": "PasswordHash",
    "email": "Email",
    "display_name": "DisplayName",
    "avatar_url": "AvatarURL",
    "ui_theme": "UITheme",
    "team": "Team",
    "bio": "Bio",
}


def _user_to_params(user: User) -> dict:
    params = {column: getattr(user, field) for field, column in _FIELD_TO_COLUMN.items()}
    params["Username"] = normalize_username(user.username)
    params["SQL_USER"] = 1 if user.auth_mode is AuthMode.LOCAL else 0
    return params


def _row_to_user(row: dict) -> User:
    # SQL_USER may come back as bool, int, or "1"/"0" depending on the driver.
    local = str(row.get("SQL_USER", 1)).strip().lower() in ("1", "true")
    return User(
        id=row.get("ID"),
        username=normalize_username(row["Username"]),
        role=row.get("Role") or "viewer",
        auth_mode=AuthMode.LOCAL if local else AuthMode.DIRECTORY,
        password_hash=row.get("PasswordHash"),
        email=row.get("Email"),
        display_name=row.get("DisplayName"),
        avatar_url=row.get("AvatarURL"),
        ui_theme=row.get("UITheme"),
        team=row.get("Team"),
        bio=row.get("Bio"),
    )
