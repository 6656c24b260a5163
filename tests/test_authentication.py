"""
tests/test_authentication.py -- Unit tests for AuthenticationService.

The service is driven with asyncio.run() against an in-memory user table and
the FakeDirectory from conftest, so no database or LDAP server is involved.

Covers:
  - Local login: correct password, wrong password, one-character mutation
  - Case-insensitive usernames (login as "ALICE" yields identity "alice")
  - Unknown users still pay for one bcrypt verify
  - Directory login: accepted, rejected, timed out, raising
  - A broken credential store fails closed
"""

from __future__ import annotations

import asyncio
import logging

import pytest

import auth.service as service_module
from auth.errors import AuthFailure, BadPassword, DirectoryUnavailable, UnknownUser
from auth.models import AuthMode, Identity, User
from auth.passwords import hash_password
from auth.service import AuthenticationService
from conftest import FakeDirectory

_ALICE_PASSWORD = "correct horse battery"


class FakeUsers:
    """Minimal stand-in for UserStore keyed by lowercase username."""

    def __init__(self, *users: User) -> None:
        self._users = {u.username: u for u in users}
        self.lookups: list[str] = []

    def get_by_username(self, username: str) -> User | None:
        self.lookups.append(username)
        return self._users.get(username.lower())


class BrokenUsers:
    def get_by_username(self, username: str) -> User | None:
        raise ConnectionError("database is down")


@pytest.fixture(scope="module")
def alice() -> User:
    return User(username="alice", role="editor", password_hash=hash_password(_ALICE_PASSWORD, rounds=4))


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory({"bob": "directory-secret"})


@pytest.fixture
def service(alice: User, directory: FakeDirectory) -> AuthenticationService:
    bob = User(username="bob", role="viewer", auth_mode=AuthMode.DIRECTORY)
    return AuthenticationService(FakeUsers(alice, bob), directory, directory_timeout=0.2, bcrypt_rounds=4)


def _login(service: AuthenticationService, username: str, password: str) -> Identity:
    return asyncio.run(service.authenticate(username, password))


class TestLocalLogin:
    def test_correct_password(self, service: AuthenticationService) -> None:
        assert _login(service, "alice", _ALICE_PASSWORD) == Identity("alice", "editor")

    def test_username_is_case_insensitive(self, service: AuthenticationService) -> None:
        assert _login(service, "  ALICE ", _ALICE_PASSWORD).username == "alice"

    def test_wrong_password(self, service: AuthenticationService) -> None:
        with pytest.raises(BadPassword):
            _login(service, "alice", "wrong password")

    @pytest.mark.parametrize(
        "mutated",
        [
            _ALICE_PASSWORD[:-1],
            _ALICE_PASSWORD + "!",
            "C" + _ALICE_PASSWORD[1:],
            _ALICE_PASSWORD.upper(),
        ],
    )
    def test_single_character_mutations_fail(self, service: AuthenticationService, mutated: str) -> None:
        with pytest.raises(BadPassword):
            _login(service, "alice", mutated)

    def test_local_user_without_hash_fails(self, directory: FakeDirectory) -> None:
        users = FakeUsers(User(username="carol", role="viewer", password_hash=None))
        service = AuthenticationService(users, directory, bcrypt_rounds=4)
        with pytest.raises(BadPassword):
            _login(service, "carol", "anything")


class TestUnknownUser:
    def test_unknown_user_raises_unknown_user(self, service: AuthenticationService) -> None:
        with pytest.raises(UnknownUser):
            _login(service, "mallory", "whatever")

    def test_unknown_user_and_bad_password_share_a_base(self, service: AuthenticationService) -> None:
        failures = []
        for username in ("mallory", "alice"):
            with pytest.raises(AuthFailure) as exc_info:
                _login(service, username, "not the password")
            failures.append(exc_info.value)
        assert all(isinstance(f, AuthFailure) for f in failures)

    def test_unknown_user_still_runs_bcrypt(self, service: AuthenticationService, monkeypatch) -> None:
        calls = []
        real_verify = service_module.verify_password

        def counting_verify(plain: str, hashed: str) -> bool:
            calls.append(hashed)
            return real_verify(plain, hashed)

        monkeypatch.setattr(service_module, "verify_password", counting_verify)
        with pytest.raises(UnknownUser):
            _login(service, "mallory", "whatever")
        assert len(calls) == 1
        assert calls[0].startswith("$2")


class TestDirectoryLogin:
    def test_accepted_bind(self, service: AuthenticationService, directory: FakeDirectory) -> None:
        assert _login(service, "Bob", "directory-secret") == Identity("bob", "viewer")
        assert directory.calls == ["bob"]

    def test_rejected_bind(self, service: AuthenticationService) -> None:
        with pytest.raises(BadPassword) as exc_info:
            _login(service, "bob", "wrong")
        assert not isinstance(exc_info.value, DirectoryUnavailable)

    def test_directory_timeout_fails_closed(self, service: AuthenticationService, directory: FakeDirectory) -> None:
        directory.delay = 0.6
        with pytest.raises(DirectoryUnavailable):
            _login(service, "bob", "directory-secret")

    def test_directory_error_fails_closed(
        self, service: AuthenticationService, directory: FakeDirectory, caplog: pytest.LogCaptureFixture
    ) -> None:
        directory.error = OSError("connection refused")
        with caplog.at_level(logging.ERROR, logger="homeinv.auth"):
            with pytest.raises(BadPassword):
                _login(service, "bob", "directory-secret")
        assert "directory bind raised" in caplog.text

    def test_directory_user_never_checks_local_hash(self, directory: FakeDirectory) -> None:
        # A stray hash on a directory account must not open a second way in.
        bob = User(
            username="bob",
            role="viewer",
            auth_mode=AuthMode.DIRECTORY,
            password_hash=hash_password("local-password", rounds=4),
        )
        service = AuthenticationService(FakeUsers(bob), directory, bcrypt_rounds=4)
        with pytest.raises(BadPassword):
            _login(service, "bob", "local-password")


class TestStoreFailure:
    def test_store_error_is_a_bad_password(self, directory: FakeDirectory, caplog: pytest.LogCaptureFixture) -> None:
        service = AuthenticationService(BrokenUsers(), directory, bcrypt_rounds=4)
        with caplog.at_level(logging.ERROR, logger="homeinv.auth"):
            with pytest.raises(BadPassword):
                _login(service, "alice", _ALICE_PASSWORD)
        assert "Credential store lookup failed" in caplog.text
