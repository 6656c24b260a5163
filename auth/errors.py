"""
auth/errors.py -- Failure taxonomy for the auth subsystem.

Two families, each with a single base class so callers can catch broadly:

  AuthFailure  -- a login did not produce an Identity.
      UnknownUser, BadPassword, DirectoryUnavailable (a BadPassword: the
      caller must not be able to tell an outage from a wrong password).

  TokenFailure -- a presented session token did not verify.
      MalformedToken, BadSignature, TokenExpired.

The HTTP layer collapses each family into one generic response. The specific
subclass exists for logging and tests, never for response bodies.
"""

from __future__ import annotations


class AuthFailure(Exception):
    """Base class: credentials did not authenticate."""


class UnknownUser(AuthFailure):
    """No user record matches the normalized username."""


class BadPassword(AuthFailure):
    """The password did not verify against the hash or the directory."""


class DirectoryUnavailable(BadPassword):
    """The directory could not be reached or did not answer in time."""


class TokenFailure(Exception):
    """Base class: a session token was presented but is not acceptable."""


class MalformedToken(TokenFailure):
    """The token cannot be parsed or lacks the required claims."""


class BadSignature(TokenFailure):
    """The token signature does not match the current signing secret."""


class TokenExpired(TokenFailure):
    """The token signature is valid but its exp claim has elapsed."""


class TooManyAttempts(Exception):
    """A client address exceeded the login attempt budget for the window.

    retry_after is the number of whole seconds until another attempt will be
    accepted; the HTTP layer sends it back as the Retry-After header.
    """

    def __init__(self, retry_after: int) -> None:
        super().__init__(f"Too many login attempts; retry after {retry_after}s")
        self.retry_after = retry_after
