"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in tracker/models.py -- dataclasses own domain shape; stores, the credential
issuer and routes do the work.

Layer rule: no imports from api/ or tracker/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass
class User:
    """A registered identity.

    email is unique and stored normalized (stripped, lowercased).
    hashed_password is the bcrypt digest; the plaintext is never stored.
    Identities are created at registration and never deleted.
    """

    email: str
    hashed_password: str
    role: Role = Role.USER
    name: str | None = None
    id: int | None = None
    created_at: str | None = None
    last_login: str | None = None


@dataclass(frozen=True)
class Claims:
    """Verified contents of a bearer credential. Never mutated after issuance."""

    subject_id: int
    email: str
    role: Role
    kind: TokenKind
    expires_at: int  # seconds since epoch, UTC
    token_id: str  # random jti so two tokens issued in the same second differ


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_at: int
    refresh_expires_at: int


@dataclass
class SessionRecord:
    """Server-side record of one issued refresh token.

    token_hash is SHA-256 of the raw token -- the raw value is never persisted.
    revoked only ever moves False -> True. Records are never deleted, so the
    table doubles as an audit trail of every rotation.
    """

    token_hash: str
    user_id: int
    expires_at: str  # ISO 8601
    revoked: bool = False
    created_at: str | None = None
    revoked_at: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class IdentityContext:
    """Authenticated caller, passed explicitly from the gateway to handlers."""

    subject_id: int
    email: str
    role: Role

    @classmethod
    def from_claims(cls, claims: Claims) -> IdentityContext:
        return cls(subject_id=claims.subject_id, email=claims.email, role=claims.role)
