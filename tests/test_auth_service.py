"""
tests/test_auth_service.py -- End-to-end tests for auth/service.AuthService.

Exercises register -> login -> refresh -> logout against real SQLite stores,
including refresh-token replay and concurrent rotation of one token.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from auth.models import Role, TokenKind
from auth.service import AuthService
from core.errors import (
    AlreadyRevoked,
    EmailTaken,
    InvalidCredentials,
    PasswordTooLong,
    RegistrationClosed,
    RotationError,
    Unauthenticated,
    UnknownToken,
    WrongKind,
)


class TestRegisterAndLogin:
    def test_end_to_end(self, auth_service: AuthService) -> None:
        auth_service.register("a@x.com", "secret1")
        assert auth_service.login("a@x.com", "secret1").user.email == "a@x.com"
        with pytest.raises(InvalidCredentials):
            auth_service.login("a@x.com", "wrong")
        with pytest.raises(EmailTaken):
            auth_service.register("a@x.com", "secret1")

    def test_register_returns_identity_and_tokens(self, auth_service: AuthService) -> None:
        result = auth_service.register("ada@example.com", "secret1", "Ada")
        assert result.user.id is not None
        assert result.user.role is Role.USER
        assert result.user.name == "Ada"

        claims = auth_service.issuer.verify(result.tokens.access_token, TokenKind.ACCESS)
        assert claims.subject_id == result.user.id
        assert auth_service.sessions.get(result.tokens.refresh_token).revoked is False

    def test_duplicate_email(self, auth_service: AuthService) -> None:
        auth_service.register("ada@example.com", "secret1")
        with pytest.raises(EmailTaken):
            auth_service.register("ada@example.com", "other-secret")

    def test_email_is_normalized(self, auth_service: AuthService) -> None:
        auth_service.register("  Ada@Example.COM ", "secret1")
        with pytest.raises(EmailTaken):
            auth_service.register("ada@example.com", "secret1")
        assert auth_service.login("ADA@example.com", "secret1").user.email == "ada@example.com"

    def test_password_is_not_stored_in_plain(self, auth_service: AuthService) -> None:
        user = auth_service.register("ada@example.com", "secret1").user
        assert user.hashed_password != "secret1"

    def test_login(self, auth_service: AuthService) -> None:
        registered = auth_service.register("ada@example.com", "secret1").user
        result = auth_service.login("ada@example.com", "secret1")
        assert result.user.id == registered.id
        assert auth_service.users.get_by_id(registered.id).last_login is not None

    def test_wrong_password_and_unknown_email_look_alike(self, auth_service: AuthService) -> None:
        auth_service.register("ada@example.com", "secret1")
        with pytest.raises(InvalidCredentials) as wrong_password:
            auth_service.login("ada@example.com", "nope")
        with pytest.raises(InvalidCredentials) as unknown_email:
            auth_service.login("nobody@example.com", "secret1")
        assert wrong_password.value.to_dict() == unknown_email.value.to_dict()

    def test_over_long_password_creates_nothing(self, auth_service: AuthService) -> None:
        with pytest.raises(PasswordTooLong):
            auth_service.register("long@example.com", "\u00e9" * 40)
        assert auth_service.users.get_by_email("long@example.com") is None

    def test_registration_closed(self, issuer, users, sessions) -> None:
        service = AuthService(issuer, users, sessions, self_registration_enabled=False)
        with pytest.raises(RegistrationClosed):
            service.register("ada@example.com", "secret1")
        admin = service.create_identity("root@example.com", "secret1", role=Role.ADMIN)
        assert admin.role is Role.ADMIN
        assert service.login("root@example.com", "secret1").user.role is Role.ADMIN


class TestRefresh:
    def test_refresh_issues_new_pair_and_revokes_old(self, auth_service: AuthService) -> None:
        first = auth_service.register("ada@example.com", "secret1").tokens
        second = auth_service.refresh(first.refresh_token)

        assert second.refresh_token != first.refresh_token
        assert auth_service.sessions.get(first.refresh_token).revoked is True
        assert auth_service.sessions.get(second.refresh_token).revoked is False

    def test_refresh_chain(self, auth_service: AuthService) -> None:
        tokens = auth_service.register("ada@example.com", "secret1").tokens
        for _ in range(3):
            tokens = auth_service.refresh(tokens.refresh_token)
        assert auth_service.current_identity(tokens.access_token).email == "ada@example.com"

    def test_replay_is_rejected(self, auth_service: AuthService) -> None:
        first = auth_service.register("ada@example.com", "secret1").tokens
        auth_service.refresh(first.refresh_token)
        with pytest.raises(AlreadyRevoked):
            auth_service.refresh(first.refresh_token)

    def test_access_token_cannot_refresh(self, auth_service: AuthService) -> None:
        tokens = auth_service.register("ada@example.com", "secret1").tokens
        with pytest.raises(WrongKind):
            auth_service.refresh(tokens.access_token)

    def test_unrecorded_token_is_unknown(self, auth_service: AuthService) -> None:
        user = auth_service.register("ada@example.com", "secret1").user
        stray = auth_service.issuer.issue(user.id, user.email, user.role)
        with pytest.raises(UnknownToken):
            auth_service.refresh(stray.refresh_token)

    def test_concurrent_refresh_has_one_winner(self, auth_service: AuthService) -> None:
        tokens = auth_service.register("ada@example.com", "secret1").tokens
        barrier = threading.Barrier(4)

        def attempt(_):
            barrier.wait()
            try:
                return auth_service.refresh(tokens.refresh_token)
            except RotationError as exc:
                return exc

        with ThreadPoolExecutor(max_workers=4) as pool:
            outcomes = list(pool.map(attempt, range(4)))

        assert sum(not isinstance(o, Exception) for o in outcomes) == 1
        assert sum(isinstance(o, AlreadyRevoked) for o in outcomes) == 3


class TestLogout:
    def test_logout_twice(self, auth_service: AuthService) -> None:
        tokens = auth_service.register("ada@example.com", "secret1").tokens
        auth_service.logout(tokens.refresh_token)
        auth_service.logout(tokens.refresh_token)
        assert auth_service.sessions.get(tokens.refresh_token).revoked is True

    def test_logout_unknown_token_succeeds(self, auth_service: AuthService) -> None:
        auth_service.logout("never-issued")

    def test_refresh_after_logout(self, auth_service: AuthService) -> None:
        tokens = auth_service.register("ada@example.com", "secret1").tokens
        auth_service.logout(tokens.refresh_token)
        with pytest.raises(AlreadyRevoked):
            auth_service.refresh(tokens.refresh_token)


class TestCurrentIdentity:
    def test_resolves_access_token(self, auth_service: AuthService) -> None:
        result = auth_service.register("ada@example.com", "secret1", "Ada")
        user = auth_service.current_identity(result.tokens.access_token)
        assert user.id == result.user.id
        assert user.name == "Ada"

    def test_refresh_token_is_not_an_identity(self, auth_service: AuthService) -> None:
        tokens = auth_service.register("ada@example.com", "secret1").tokens
        with pytest.raises(Unauthenticated):
            auth_service.current_identity(tokens.refresh_token)

    def test_garbage(self, auth_service: AuthService) -> None:
        with pytest.raises(Unauthenticated):
            auth_service.current_identity("garbage")
