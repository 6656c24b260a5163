"""
auth/service.py -- Login orchestration across the two trust sources.

AuthenticationService.authenticate() is the only way a password becomes an
Identity:

  1. Normalize the username and look the user up in the credential store.
  2. Switch on the record's auth mode:
       AuthMode.LOCAL     -> bcrypt verify against PasswordHash
       AuthMode.DIRECTORY -> LDAP bind with the original password, bounded
                             by directory_timeout
  3. Return the identity snapshot, or raise an AuthFailure subclass.

Enumeration resistance: an unknown username still costs one bcrypt verify
(against a dummy hash), and the HTTP layer returns the same body for
UnknownUser and BadPassword.

Directory outages: timeouts and unexpected errors are logged here as
DirectoryUnavailable and raised as that class, which is a BadPassword --
callers cannot tell an outage from a wrong password, operators can.

Blocking work (store lookup, bcrypt, ldap3) runs in worker threads via
asyncio.to_thread so concurrent logins never stall the event loop. The
service holds no per-request state and is safe to share.

Layer rule: no imports from api/, audit/, or inventory/.
"""

from __future__ import annotations

import asyncio
import logging

from auth.directory import DirectoryAuthenticator
from auth.errors import BadPassword, DirectoryUnavailable, UnknownUser
from auth.models import AuthMode, Identity, User
from auth.passwords import DEFAULT_ROUNDS, hash_password, verify_password
from auth.store import UserStore, normalize_username

logger = logging.getLogger("homeinv.auth")


class AuthenticationService:
    """Verifies username/password pairs and yields an Identity.

    Usage:
        service = AuthenticationService(users, directory, directory_timeout=5.0)
        identity = await service.authenticate("Alice", "secret")
    """

    def __init__(
        self,
        users: UserStore,
        directory: DirectoryAuthenticator,
        directory_timeout: float = 5.0,
        bcrypt_rounds: int = DEFAULT_ROUNDS,
    ) -> None:
        self._users = users
        self._directory = directory
        self._directory_timeout = directory_timeout
        # Same cost factor as real hashes so unknown users take as long as known ones.
        self._dummy_hash = hash_password("homeinv_timing_dummy", rounds=bcrypt_rounds)

    async def authenticate(self, username: str, password: str) -> Identity:
        """Return the verified Identity or raise UnknownUser / BadPassword."""
        normalized = normalize_username(username)
        try:
            user = await asyncio.to_thread(self._users.get_by_username, normalized)
        except Exception as exc:
            # Fail closed: a broken store must never let a login through.
            logger.exception("Credential store lookup failed during login for %s", normalized)
            raise BadPassword("Credential store unavailable") from exc

        if user is None:
            await asyncio.to_thread(verify_password, password, self._dummy_hash)
            logger.info("Login failed for %s: unknown user", normalized)
            raise UnknownUser(normalized)

        if user.auth_mode is AuthMode.LOCAL:
            await self._verify_local(user, password)
        elif user.auth_mode is AuthMode.DIRECTORY:
            await self._verify_directory(user, password)
        else:
            logger.error("Login failed for %s: unsupported auth mode %r", normalized, user.auth_mode)
            raise BadPassword("Unsupported auth mode")

        logger.info("Login succeeded for %s (%s)", user.username, user.auth_mode.value)
        return user.identity()

    async def _verify_local(self, user: User, password: str) -> None:
        if not user.password_hash:
            await asyncio.to_thread(verify_password, password, self._dummy_hash)
            logger.warning("Login failed for %s: local account has no password hash", user.username)
            raise BadPassword(user.username)
        if not await asyncio.to_thread(verify_password, password, user.password_hash):
            logger.info("Login failed for %s: password mismatch", user.username)
            raise BadPassword(user.username)

    async def _verify_directory(self, user: User, password: str) -> None:
        try:
            accepted = await asyncio.wait_for(
                asyncio.to_thread(self._directory.bind, user.username, password),
                timeout=self._directory_timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning(
                "Login failed for %s: directory bind timed out after %.1fs",
                user.username,
                self._directory_timeout,
            )
            raise DirectoryUnavailable(user.username) from exc
        except Exception as exc:
            logger.exception("Login failed for %s: directory bind raised", user.username)
            raise DirectoryUnavailable(user.username) from exc

        if not accepted:
            logger.info("Login failed for %s: directory rejected credentials", user.username)
            raise BadPassword(user.username)
