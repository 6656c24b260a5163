"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these types only carry shape.

Layer rule: no imports from api/, audit/, core/, or inventory/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AuthMode(str, Enum):
    """Where a user's password is checked.

    LOCAL     -- bcrypt hash stored in the Users table (SQL_USER = 1).
    DIRECTORY -- no local credential; verified by an LDAP bind (SQL_USER = 0).
    """

    LOCAL = "local"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class Identity:
    """A verified username/role pair.

    Produced by AuthenticationService on login and by TokenService when a
    session token verifies. Frozen: downstream handlers and the audit trail
    read it, nothing rewrites it.
    """

    username: str
    role: str


@dataclass
class User:
    """A user record as held by the credential store.

    username is always lowercase -- the store normalizes on read and write so
    "Alice" and "alice" are the same account.

    password_hash is None for directory users (they have no local password).
    """

    username: str
    role: str  # "admin", "editor", "viewer"
    auth_mode: AuthMode = AuthMode.LOCAL
    id: str | None = None
    password_hash: str | None = None
    email: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    ui_theme: str | None = None
    team: str | None = None
    bio: str | None = None

    def identity(self) -> Identity:
        return Identity(username=self.username, role=self.role)
