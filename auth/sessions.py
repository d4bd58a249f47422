"""
auth/sessions.py -- Durable record of issued refresh tokens.

Pattern: Repository + Data Mapper, like auth/store.py.

Replay defence:
  rotate() revokes the old record with a single conditional UPDATE

      UPDATE sessions SET revoked = 1, revoked_at = :now
      WHERE token_hash = :old AND revoked = 0 AND user_id = :subject

  and inserts the successor record in the same transaction. The database
  serialises the two competing UPDATEs, so when two requests race to rotate
  the same token exactly one sees rowcount == 1. The loser sees rowcount == 0,
  re-reads the row inside its transaction and fails with AlreadyRevoked.
  There is no read-then-write window in application code.

  The raw token is never stored: token_hash is SHA-256 of the token string
  (tokens are long random-bearing JWTs, so an unsalted digest is enough for
  lookup and does not let a DB reader replay a token).

Revocation is monotonic and records are never deleted.

Layer rule: no imports from api/ or tracker/.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone

from sqlalchemy import Column, Index, Integer, MetaData, String, Table
from sqlalchemy.engine import Engine

from auth.models import SessionRecord
from core.config import get_settings
from core.database import make_engine, store_errors
from core.errors import AlreadyRevoked, SubjectMismatch, UnknownToken

logger = logging.getLogger("tasktrack.sessions")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # SHA-256 hex
    Column("user_id", Integer, nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("revoked", Integer, nullable=False, server_default="0"),  # boolean stored as 0/1
    Column("created_at", String(32), nullable=False),
    Column("revoked_at", String(32)),
    Index("ix_sessions_user_id", "user_id"),
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _epoch_to_iso(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def token_digest(token: str) -> str:
    """Return the SHA-256 hex digest under which a refresh token is stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for SessionRecord entities.

    Usage:
        sessions = SessionStore()
        sessions.record(user.id, pair.refresh_token, pair.refresh_expires_at)
        sessions.rotate(old_token, user.id, new_pair.refresh_token, new_pair.refresh_expires_at)
        sessions.revoke(token)
        sessions.close()
    """

    def __init__(self, db_url: str | None = None, timeout_seconds: float | None = None) -> None:
        settings = get_settings()
        self.engine: Engine = make_engine(
            db_url or settings.database_url,
            timeout_seconds if timeout_seconds is not None else settings.store_timeout_seconds,
        )
        _metadata.create_all(self.engine)

    def record(self, user_id: int, refresh_token: str, expires_at: int) -> SessionRecord:
        """Persist a new non-revoked record for a freshly issued refresh token.

        Raises sqlalchemy.exc.IntegrityError if a record for this token value
        already exists (UNIQUE token_hash).
        """
        record = SessionRecord(
            token_hash=token_digest(refresh_token),
            user_id=user_id,
            expires_at=_epoch_to_iso(expires_at),
            created_at=_now_iso(),
        )
        with store_errors("record"), self.engine.begin() as conn:
            result = conn.execute(
                _sessions.insert().values(
                    token_hash=record.token_hash,
                    user_id=record.user_id,
                    expires_at=record.expires_at,
                    revoked=0,
                    created_at=record.created_at,
                )
            )
            record.id = result.inserted_primary_key[0]
        return record

    def rotate(self, old_token: str, user_id: int, new_token: str, new_expires_at: int) -> SessionRecord:
        """Revoke old_token and record new_token as one indivisible step.

        Raises:
            UnknownToken:    no record exists for old_token.
            AlreadyRevoked:  the record was already revoked (reuse or a lost race).
            SubjectMismatch: the record belongs to a different identity.
        """
        old_hash = token_digest(old_token)
        now = _now_iso()
        successor = SessionRecord(
            token_hash=token_digest(new_token),
            user_id=user_id,
            expires_at=_epoch_to_iso(new_expires_at),
            created_at=now,
        )
        with store_errors("rotate"), self.engine.begin() as conn:
            result = conn.execute(
                _sessions.update()
                .where(
                    (_sessions.c.token_hash == old_hash)
                    & (_sessions.c.revoked == 0)
                    & (_sessions.c.user_id == user_id)
                )
                .values(revoked=1, revoked_at=now)
            )
            if result.rowcount != 1:
                row = conn.execute(_sessions.select().where(_sessions.c.token_hash == old_hash)).fetchone()
                if row is None:
                    raise UnknownToken()
                if row.revoked:
                    logger.warning(
                        "Refresh token reuse detected for user_id=%s (session id=%s) -- possible replay",
                        row.user_id,
                        row.id,
                    )
                    raise AlreadyRevoked()
                raise SubjectMismatch()
            inserted = conn.execute(
                _sessions.insert().values(
                    token_hash=successor.token_hash,
                    user_id=successor.user_id,
                    expires_at=successor.expires_at,
                    revoked=0,
                    created_at=successor.created_at,
                )
            )
            successor.id = inserted.inserted_primary_key[0]
        return successor

    def revoke(self, token: str) -> bool:
        """Mark the record for token revoked. Idempotent.

        Returns True if this call flipped the flag, False if the token was
        unknown or already revoked. Never raises for those cases.
        """
        with store_errors("revoke"), self.engine.begin() as conn:
            result = conn.execute(
                _sessions.update()
                .where((_sessions.c.token_hash == token_digest(token)) & (_sessions.c.revoked == 0))
                .values(revoked=1, revoked_at=_now_iso())
            )
        return result.rowcount > 0

    def get(self, token: str) -> SessionRecord | None:
        """Look up the record for a raw token. Returns None if not found."""
        with store_errors("get"), self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.token_hash == token_digest(token))).fetchone()
        return _row_to_session(row) if row is not None else None

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_session(row) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        token_hash=row.token_hash,
        user_id=row.user_id,
        expires_at=row.expires_at,
        revoked=bool(row.revoked),
        created_at=row.created_at,
        revoked_at=row.revoked_at,
    )
