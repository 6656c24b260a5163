"""
API request and response models for HomeInv REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request bodies accept both the snake_case field names and the historical
PascalCase keys (Username, DisplayName, SQL_USER, ...) that existing clients
send. Inventory payloads are dumped by alias so they line up with the table
columns in inventory/store.py.
"""

from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

# bcrypt only looks at the first 72 bytes of a password.
_BCRYPT_MAX_BYTES = 72


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    admin = "admin"
    editor = "editor"
    viewer = "viewer"


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login.

    The username is trimmed; the password is passed on byte-exact, since the
    directory bind and bcrypt both need exactly what the user typed.
    """

    username: str = Field(min_length=1, max_length=255, validation_alias=AliasChoices("username", "Username"))
    password: str = Field(min_length=1, max_length=255, validation_alias=AliasChoices("password", "Password"))

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value):
        return value.strip() if isinstance(value, str) else value


class LoginResponse(BaseModel):
    """Response for a successful login. The token is an opaque bearer credential.

    `token` is the field existing clients read; `access_token` carries the
    same value under its OAuth2 name.
    """

    model_config = ConfigDict(frozen=True)

    token: str
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    username: str
    role: str


class MeResponse(BaseModel):
    """Identity asserted by the caller's token."""

    model_config = ConfigDict(frozen=True)

    username: str
    role: str


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/auth/register.

    local=True (SQL_USER=1) accounts need a password; directory accounts must
    not send one -- their password lives in the directory.
    """

    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(min_length=1, max_length=255, alias="Username")
    password: Optional[str] = Field(default=None, min_length=8, max_length=255, alias="Password")
    role: RoleEnum = Field(default=RoleEnum.viewer, alias="Role")
    local: bool = Field(default=True, alias="SQL_USER")
    email: Optional[str] = Field(default=None, max_length=255, alias="Email")
    display_name: Optional[str] = Field(default=None, max_length=255, alias="DisplayName")
    avatar_url: Optional[str] = Field(default=None, max_length=2048, alias="AvatarURL")
    ui_theme: Optional[str] = Field(default=None, max_length=30, alias="UITheme")
    team: Optional[str] = Field(default=None, max_length=100, alias="Team")
    bio: Optional[str] = Field(default=None, max_length=2000, alias="Bio")

    @field_validator("username", "email", "display_name", "avatar_url", "ui_theme", "team", "bio", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value.encode("utf-8")) > _BCRYPT_MAX_BYTES:
            raise ValueError(f"Password must be at most {_BCRYPT_MAX_BYTES} bytes.")
        return value

    @model_validator(mode="after")
    def password_matches_mode(self) -> "UserCreate":
        if self.local and not self.password:
            raise ValueError("Local accounts require a password.")
        if not self.local and self.password:
            raise ValueError("Directory accounts must not have a local password.")
        return self


class UserUpdate(BaseModel):
    """Request body for PUT /api/users/{user_id}. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    username: Optional[str] = Field(default=None, min_length=1, max_length=255, alias="Username")
    role: Optional[RoleEnum] = Field(default=None, alias="Role")
    local: Optional[bool] = Field(default=None, alias="SQL_USER")
    email: Optional[str] = Field(default=None, max_length=255, alias="Email")
    display_name: Optional[str] = Field(default=None, max_length=255, alias="DisplayName")
    avatar_url: Optional[str] = Field(default=None, max_length=2048, alias="AvatarURL")
    ui_theme: Optional[str] = Field(default=None, max_length=30, alias="UITheme")
    team: Optional[str] = Field(default=None, max_length=100, alias="Team")
    bio: Optional[str] = Field(default=None, max_length=2000, alias="Bio")


class UserResponse(BaseModel):
    """A user record as returned to clients. Never carries the password hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    role: str
    auth_mode: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    ui_theme: Optional[str] = None
    team: Optional[str] = None
    bio: Optional[str] = None


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


class ItemWrite(BaseModel):
    """Request body for POST /api/inventory and PUT /api/inventory/{item_id}."""

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255, alias="Name")
    description: Optional[str] = Field(default=None, max_length=2000, alias="Description")
    location: Optional[str] = Field(default=None, max_length=255, alias="Location")
    bin: Optional[str] = Field(default=None, max_length=100, alias="Bin")
    quantity: Optional[int] = Field(default=None, ge=0, alias="Quantity")
    image: Optional[str] = Field(default=None, alias="Image")
    owner: Optional[str] = Field(default=None, max_length=255, alias="Owner")


class LocationWrite(BaseModel):
    """Request body for POST /api/locations and PUT /api/locations/{location_id}."""

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255, alias="Name")
    description: Optional[str] = Field(default=None, max_length=2000, alias="Description")
    building: Optional[str] = Field(default=None, max_length=255, alias="Building")
    owner: Optional[str] = Field(default=None, max_length=255, alias="Owner")
    image: Optional[str] = Field(default=None, alias="Image")


class WriteResult(BaseModel):
    """Response for inventory writes."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    id: Optional[str] = None
