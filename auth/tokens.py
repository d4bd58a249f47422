"""
auth/tokens.py -- Credential issuance/verification and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Access and refresh tokens are signed with two
       different secrets and carry sub, email, role, typ ("access" | "refresh"),
       exp, iat and a random jti. A party holding one secret cannot mint the
       other kind of token.

  Kind confusion: verify() picks the secret matching the kind the token
       *claims* to be, checks the signature, then compares that kind with the
       kind the caller expects. A refresh token presented as an access token
       therefore fails with WrongKind (valid signature, wrong kind), and a
       token that claims "refresh" but was signed with the access secret fails
       with InvalidSignature. Both defences hold even if the secrets were ever
       configured identically.

  Expiry: checked here against an injectable clock rather than by jose, so the
       boundary is exact (now >= exp is expired) and tests can move time.

  Passwords: bcrypt used directly (no passlib wrapper). The _DUMMY_HASH
       constant enables timing equalization in authenticate_user() so response
       time does not reveal whether an email is registered.

Layer rule: no imports from api/ or tracker/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import Claims, Role, TokenKind, TokenPair
from core.config import Settings, get_settings
from core.errors import Expired, InvalidSignature, PasswordTooLong, WrongKind

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("tasktrack.auth")

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


MAX_PASSWORD_BYTES = 72


def password_too_long(plain: str) -> bool:
    """Return True if plain exceeds what bcrypt accepts (72 bytes, UTF-8).

    The limit is in bytes, not characters: 40 accented characters are 80 bytes.
    """
    return len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Raises PasswordTooLong above 72 UTF-8 bytes; bcrypt refuses such input.
    """
    if password_too_long(plain):
        raise PasswordTooLong()
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    if password_too_long(plain):
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash -- treat as a mismatch, never as a match.
        return False


# Timing equalization dummy hash. Computed once at module load so the first
# login attempt is not measurably slower than subsequent ones.
_DUMMY_HASH: str = hash_password("tasktrack_timing_dummy")


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password pair with timing equalization.

    Always runs bcrypt whether or not the email is registered:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure. The caller turns None
    into InvalidCredentials so both cases look identical to the client.
    """
    user = store.get_by_email(email)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# Credential Issuer
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialIssuer:
    """Signs and verifies access and refresh credentials. Stateless.

    Usage:
        issuer = CredentialIssuer.from_settings(get_settings())
        pair = issuer.issue(user.id, user.email, user.role)
        claims = issuer.verify(pair.access_token, TokenKind.ACCESS)
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl_seconds: int,
        refresh_ttl_seconds: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._secrets = {TokenKind.ACCESS: access_secret, TokenKind.REFRESH: refresh_secret}
        self._ttls = {TokenKind.ACCESS: access_ttl_seconds, TokenKind.REFRESH: refresh_ttl_seconds}
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], datetime] = _utcnow) -> CredentialIssuer:
        return cls(
            access_secret=settings.jwt_access_secret,
            refresh_secret=settings.jwt_refresh_secret,
            access_ttl_seconds=settings.access_token_ttl_seconds,
            refresh_ttl_seconds=settings.refresh_token_ttl_seconds,
            clock=clock,
        )

    def _now(self) -> int:
        return int(self._clock().timestamp())

    def _sign(self, kind: TokenKind, subject_id: int, email: str, role: Role) -> tuple[str, int]:
        issued_at = self._now()
        expires_at = issued_at + self._ttls[kind]
        payload = {
            "sub": str(subject_id),
            "email": email,
            "role": Role(role).value,
            "typ": kind.value,
            "iat": issued_at,
            "exp": expires_at,
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, self._secrets[kind], algorithm=_ALGORITHM), expires_at

    def issue(self, subject_id: int, email: str, role: Role) -> TokenPair:
        """Issue a fresh access/refresh pair for the given identity."""
        access, access_exp = self._sign(TokenKind.ACCESS, subject_id, email, role)
        refresh, refresh_exp = self._sign(TokenKind.REFRESH, subject_id, email, role)
        return TokenPair(
            access_token=access,
            refresh_token=refresh,
            access_expires_at=access_exp,
            refresh_expires_at=refresh_exp,
        )

    def verify(self, token: str, expected_kind: TokenKind) -> Claims:
        """Verify signature, expiry and kind. Returns the token's Claims.

        Raises:
            InvalidSignature: malformed token, unknown kind, or bad signature.
            Expired:          current time >= exp.
            WrongKind:        validly signed, but not the expected kind.
        """
        try:
            claimed_kind = TokenKind(jwt.get_unverified_claims(token).get("typ"))
        except (JWTError, ValueError) as exc:
            raise InvalidSignature() from exc

        try:
            payload = jwt.decode(
                token,
                self._secrets[claimed_kind],
                algorithms=[_ALGORITHM],
                options={"verify_exp": False, "verify_iat": False},
            )
            claims = Claims(
                subject_id=int(payload["sub"]),
                email=payload["email"],
                role=Role(payload["role"]),
                kind=claimed_kind,
                expires_at=int(payload["exp"]),
                token_id=payload.get("jti", ""),
            )
        except (JWTError, KeyError, ValueError, TypeError) as exc:
            raise InvalidSignature() from exc

        if self._now() >= claims.expires_at:
            raise Expired()
        if claims.kind != TokenKind(expected_kind):
            raise WrongKind()
        return claims
