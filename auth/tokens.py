"""
auth/tokens.py -- Session token issuance and verification.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with the configured
       JWT_SECRET and carry sub (username), role, iat and exp. Nothing else --
       the token is a bearer credential and clients treat it as opaque.

  Stateless: there is no server-side session table and no revocation list. A
       token is valid while its signature verifies against the current secret
       and exp has not elapsed. Rotating JWT_SECRET invalidates every session.

  Verification faults are split into MalformedToken / BadSignature /
       TokenExpired so they can be logged and tested separately. The HTTP
       layer maps all three to the same 403 response.

The signing secret arrives with the Settings instance passed to the
constructor; this module never reads configuration on its own.

Layer rule: no imports from api/, audit/, or inventory/. Import from core/
is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from auth.errors import BadSignature, MalformedToken, TokenExpired
from auth.models import Identity

logger = logging.getLogger("homeinv.auth")

_ALGORITHM = "HS256"


class TokenService:
    """Issues and verifies signed, time-limited session tokens.

    Usage:
        tokens = TokenService(settings.jwt_secret, settings.token_expiry_seconds)
        token = tokens.issue(Identity("alice", "admin"))
        identity = tokens.verify(token)      # raises TokenFailure subclasses
    """

    def __init__(self, secret: str, lifetime_seconds: int = 3600) -> None:
        if not secret:
            raise ValueError("TokenService requires a signing secret.")
        self._secret = secret
        self._lifetime = timedelta(seconds=lifetime_seconds)

    @property
    def lifetime_seconds(self) -> int:
        return int(self._lifetime.total_seconds())

    def issue(self, identity: Identity, now: datetime | None = None) -> str:
        """Encode a signed JWT for the identity.

        Args:
            identity: The verified username/role snapshot to embed.
            now:      Issue time. Defaults to the current UTC time; tests pass
                      a past value to mint tokens that are already expired.
        """
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "sub": identity.username,
            "role": identity.role,
            "iat": issued_at,
            "exp": issued_at + self._lifetime,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str) -> Identity:
        """Verify a token and return the identity it asserts.

        Pure and synchronous. Parsing happens first so a garbage string is
        reported as malformed rather than as a signature failure.

        Raises:
            MalformedToken: not a JWT, sub/role missing, or a claim malformed.
            BadSignature:   signature does not match this secret.
            TokenExpired:   signature valid, exp in the past.
        """
        try:
            jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise MalformedToken("Token could not be parsed") from exc

        try:
            claims = jwt.decode(token, self._secret, algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            raise TokenExpired("Token has expired") from exc
        except JWTClaimsError as exc:
            # Signature verified; a registered claim (sub, iat, ...) has the wrong shape.
            raise MalformedToken("Token claims are invalid") from exc
        except JWTError as exc:
            raise BadSignature("Token signature did not verify") from exc

        username = claims.get("sub")
        role = claims.get("role")
        if not isinstance(username, str) or not isinstance(role, str) or not username:
            raise MalformedToken("Token is missing identity claims")
        return Identity(username=username, role=role)
