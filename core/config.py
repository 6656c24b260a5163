"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for HomeInv happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The app
      lifespan calls it once and hands the instance to each service; request
      handlers never look it up themselves.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

  frozen=True: the instance is immutable after construction. Services keep a
      reference to it, so nothing may change the signing secret underneath them.

Security notes:
  JWT_SECRET shorter than 32 chars is rejected outright. HS256 signing relies
  on key entropy -- a short key weakens every issued token.

  In production mode (DEBUG not set or false), a missing JWT_SECRET is a hard
  startup failure. There is no safe default for a signing secret.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, audit/, or inventory/.
"""

import logging
import re
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("homeinv.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'inventory' / 'homeinv.db'}"

# "90", "90s", "30m", "1h", "8h", "1d" -- the formats TOKEN_EXPIRY has always accepted.
_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str | int) -> int:
    """Convert a duration like '1h' or '3600' into whole seconds.

    Raises ValueError for anything else, including zero and negative values.
    """
    if isinstance(value, int):
        seconds = value
    else:
        match = _DURATION_RE.match(value.strip("'\""))
        if match is None:
            raise ValueError(f"Unrecognized duration {value!r}; expected e.g. 3600, 30m, 1h, 1d.")
        seconds = int(match.group(1)) * _DURATION_UNITS[match.group(2)]
    if seconds <= 0:
        raise ValueError("Duration must be positive.")
    return seconds


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields except JWT_SECRET have defaults so Settings() can be
    instantiated in test environments without a real .env file (tests set
    DEBUG=true, which generates a throwaway secret).

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `ldap_url` reads from LDAP_URL, `debug` reads from DEBUG.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    # debug must stay above jwt_secret: the secret validator reads it.
    debug: bool = False
    # Empty string is the sentinel for "not configured". The validator below
    # either generates a dev key or raises, so callers never see "".
    jwt_secret: str = Field(default="", validate_default=True)
    database_url: str = _DEFAULT_DB_URL
    cors_origins: list[str] = ["http://localhost:3000"]
    allowed_hosts: list[str] = ["*"]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    token_expiry_seconds: int = Field(
        default=3600,
        validation_alias=AliasChoices("TOKEN_EXPIRY", "TOKEN_EXPIRY_SECONDS"),
    )
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    # ------------------------------------------------------------------
    # Directory service (empty URL means directory logins are disabled)
    # ------------------------------------------------------------------

    ldap_url: str = ""
    # Base path the user RDN is prepended to, e.g. "cn=users,dc=example,dc=tld"
    ldap_domain_components: str = ""
    ldap_user_attribute: str = "cn"
    ldap_timeout_seconds: float = Field(default=5.0, gt=0)
    ldap_validate_cert: bool = True

    # ------------------------------------------------------------------
    # Login throttling
    # ------------------------------------------------------------------

    login_max_attempts: int = Field(default=10, ge=1)
    login_window_seconds: int = Field(default=60, ge=1)

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    # "high" also records read-only routes. LOGGING is the historical name.
    audit_verbosity: str = Field(
        default="normal",
        validation_alias=AliasChoices("LOGGING", "AUDIT_VERBOSITY"),
    )

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, value: str, info: ValidationInfo) -> str:
        """Enforce the signing-secret policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode: refuse to start without JWT_SECRET.

        Both modes: reject keys shorter than 32 characters.
        """
        if not value:
            if info.data.get("debug"):
                logger.warning("Using auto-generated JWT_SECRET. Sessions will not persist across restarts.")
                return secrets.token_hex(32)
            raise ValueError(
                "JWT_SECRET is required in production mode. "
                "Set JWT_SECRET in your environment or .env file. "
                "To run in development mode, set DEBUG=true."
            )
        if len(value) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters.")
        return value

    @field_validator("token_expiry_seconds", mode="before")
    @classmethod
    def validate_token_expiry(cls, value):
        return parse_duration(value)

    @field_validator("audit_verbosity")
    @classmethod
    def normalize_verbosity(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def audit_reads(self) -> bool:
        return self.audit_verbosity == "high"


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    In tests: call get_settings.cache_clear() if you need to inject different
    environment variables.
    """
    return Settings()
