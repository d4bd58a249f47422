"""
auth/service.py -- Register, login, refresh, logout and "who am I".

AuthService composes the CredentialIssuer, UserStore and SessionStore. It is
built once at startup (api/main.py lifespan, or main.py for the CLI) and
passed to whatever needs it; there is no container or global instance.

Every issued refresh token is recorded in the SessionStore exactly once:
at registration, at login, and as the successor inside rotate().

Layer rule: no imports from api/ or tracker/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from auth.models import Role, TokenKind, TokenPair, User
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import CredentialIssuer, authenticate_user, hash_password
from core.errors import (
    CredentialError,
    EmailTaken,
    InvalidCredentials,
    RegistrationClosed,
    Unauthenticated,
    UnknownToken,
)

logger = logging.getLogger("tasktrack.auth")


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True)
class AuthResult:
    user: User
    tokens: TokenPair


class AuthService:
    def __init__(
        self,
        issuer: CredentialIssuer,
        users: UserStore,
        sessions: SessionStore,
        self_registration_enabled: bool = True,
    ) -> None:
        self.issuer = issuer
        self.users = users
        self.sessions = sessions
        self.self_registration_enabled = self_registration_enabled

    def _start_session(self, user: User) -> TokenPair:
        tokens = self.issuer.issue(user.id, user.email, user.role)
        self.sessions.record(user.id, tokens.refresh_token, tokens.refresh_expires_at)
        return tokens

    def create_identity(self, email: str, password: str, name: str | None = None, role: Role = Role.USER) -> User:
        """Create an identity without issuing credentials. Raises EmailTaken.

        The UNIQUE(email) constraint decides concurrent duplicates; the
        pre-check only avoids a bcrypt round for the common case.
        """
        email = normalize_email(email)
        if self.users.get_by_email(email) is not None:
            raise EmailTaken()
        user = User(email=email, hashed_password=hash_password(password), name=name, role=role)
        try:
            user.id = self.users.create_user(user)
        except IntegrityError as exc:
            raise EmailTaken() from exc
        logger.info("Registered user_id=%s role=%s", user.id, user.role.value)
        return self.users.get_by_id(user.id) or user

    def register(self, email: str, password: str, name: str | None = None) -> AuthResult:
        """Self-service registration. Returns the identity and a first token pair."""
        if not self.self_registration_enabled:
            raise RegistrationClosed()
        user = self.create_identity(email, password, name)
        return AuthResult(user=user, tokens=self._start_session(user))

    def login(self, email: str, password: str) -> AuthResult:
        """Raises InvalidCredentials for an unknown email and a wrong password alike."""
        user = authenticate_user(self.users, normalize_email(email), password)
        if user is None:
            logger.info("Failed login attempt")
            raise InvalidCredentials()
        self.users.update_last_login(user.id)
        logger.info("Login user_id=%s", user.id)
        return AuthResult(user=user, tokens=self._start_session(user))

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair, revoking the old token.

        Verification failures surface as InvalidSignature / Expired / WrongKind;
        store failures as UnknownToken / AlreadyRevoked / SubjectMismatch.
        A StoreUnavailable from here must not be retried by the caller with the
        same token.
        """
        claims = self.issuer.verify(refresh_token, TokenKind.REFRESH)
        user = self.users.get_by_id(claims.subject_id)
        if user is None:
            raise UnknownToken()
        tokens = self.issuer.issue(user.id, user.email, user.role)
        self.sessions.rotate(refresh_token, claims.subject_id, tokens.refresh_token, tokens.refresh_expires_at)
        logger.info("Rotated refresh token for user_id=%s", user.id)
        return tokens

    def logout(self, refresh_token: str) -> None:
        """Revoke refresh_token. Succeeds for unknown and already-revoked tokens."""
        if self.sessions.revoke(refresh_token):
            logger.info("Session revoked on logout")

    def current_identity(self, access_token: str) -> User:
        """Resolve an access token to the stored identity."""
        try:
            claims = self.issuer.verify(access_token, TokenKind.ACCESS)
        except CredentialError as exc:
            raise Unauthenticated() from exc
        user = self.users.get_by_id(claims.subject_id)
        if user is None:
            raise Unauthenticated()
        return user
