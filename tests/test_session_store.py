"""
tests/test_session_store.py -- Unit tests for auth/sessions.SessionStore.

Covers:
  - record/get round trip; the raw token is never stored
  - rotate(): success, AlreadyRevoked, UnknownToken, SubjectMismatch
  - a failed rotate leaves the store unchanged (successor not recorded)
  - revoke() is idempotent and never raises
  - two threads rotating the same token: exactly one wins
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.exc import IntegrityError

from auth.sessions import SessionStore, token_digest
from core.errors import AlreadyRevoked, RotationError, SubjectMismatch, UnknownToken

EXPIRES = int(time.time()) + 3600


class TestRecord:
    def test_record_and_get(self, sessions: SessionStore) -> None:
        record = sessions.record(1, "token-one", EXPIRES)
        assert record.id is not None
        assert record.token_hash == token_digest("token-one")
        assert record.token_hash != "token-one"

        stored = sessions.get("token-one")
        assert stored is not None
        assert stored.user_id == 1
        assert stored.revoked is False
        assert stored.revoked_at is None

    def test_get_unknown_returns_none(self, sessions: SessionStore) -> None:
        assert sessions.get("never-issued") is None

    def test_duplicate_token_rejected(self, sessions: SessionStore) -> None:
        sessions.record(1, "dup", EXPIRES)
        with pytest.raises(IntegrityError):
            sessions.record(1, "dup", EXPIRES)


class TestRotate:
    def test_rotate_revokes_old_and_records_new(self, sessions: SessionStore) -> None:
        sessions.record(1, "old", EXPIRES)
        successor = sessions.rotate("old", 1, "new", EXPIRES + 60)

        assert successor.token_hash == token_digest("new")
        old = sessions.get("old")
        assert old.revoked is True
        assert old.revoked_at is not None
        assert sessions.get("new").revoked is False

    def test_rotating_a_rotated_token_fails(self, sessions: SessionStore) -> None:
        sessions.record(1, "old", EXPIRES)
        sessions.rotate("old", 1, "new", EXPIRES)
        with pytest.raises(AlreadyRevoked):
            sessions.rotate("old", 1, "newer", EXPIRES)
        assert sessions.get("newer") is None

    def test_unknown_token(self, sessions: SessionStore) -> None:
        with pytest.raises(UnknownToken):
            sessions.rotate("ghost", 1, "new", EXPIRES)
        assert sessions.get("new") is None

    def test_subject_mismatch_leaves_record_live(self, sessions: SessionStore) -> None:
        sessions.record(1, "owned-by-1", EXPIRES)
        with pytest.raises(SubjectMismatch):
            sessions.rotate("owned-by-1", 2, "stolen", EXPIRES)
        assert sessions.get("owned-by-1").revoked is False
        assert sessions.get("stolen") is None

    def test_rotation_chain(self, sessions: SessionStore) -> None:
        sessions.record(1, "t0", EXPIRES)
        for i in range(1, 5):
            sessions.rotate(f"t{i - 1}", 1, f"t{i}", EXPIRES)
        assert [sessions.get(f"t{i}").revoked for i in range(5)] == [True, True, True, True, False]


class TestRevoke:
    def test_revoke_is_idempotent(self, sessions: SessionStore) -> None:
        sessions.record(1, "tok", EXPIRES)
        assert sessions.revoke("tok") is True
        assert sessions.revoke("tok") is False
        assert sessions.get("tok").revoked is True

    def test_revoke_unknown_does_not_raise(self, sessions: SessionStore) -> None:
        assert sessions.revoke("never-issued") is False

    def test_revoked_token_cannot_rotate(self, sessions: SessionStore) -> None:
        sessions.record(1, "tok", EXPIRES)
        sessions.revoke("tok")
        with pytest.raises(AlreadyRevoked):
            sessions.rotate("tok", 1, "next", EXPIRES)


class TestConcurrentRotate:
    @pytest.mark.parametrize("contenders", [2, 8])
    def test_exactly_one_rotation_wins(self, sessions: SessionStore, contenders: int) -> None:
        sessions.record(1, "shared", EXPIRES)
        barrier = threading.Barrier(contenders)

        def attempt(i: int):
            barrier.wait()
            try:
                return sessions.rotate("shared", 1, f"successor-{i}", EXPIRES)
            except RotationError as exc:
                return exc

        with ThreadPoolExecutor(max_workers=contenders) as pool:
            outcomes = list(pool.map(attempt, range(contenders)))

        winners = [o for o in outcomes if not isinstance(o, Exception)]
        losers = [o for o in outcomes if isinstance(o, Exception)]
        assert len(winners) == 1
        assert all(isinstance(o, AlreadyRevoked) for o in losers)

        live = [i for i in range(contenders) if sessions.get(f"successor-{i}") is not None]
        assert len(live) == 1
