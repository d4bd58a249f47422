"""
tracker/sequence.py -- Collision-free, gap-free sequential numbers per scope.

Each scope (an owner for project numbers, a project for task numbers) has one
counter row in the sequences table. A number is taken with

    UPDATE sequences SET value = value + 1 WHERE kind = :kind AND parent_id = :parent

followed by reading the row back, inside the SAME transaction that inserts the
numbered resource. The UPDATE takes the write lock on the counter, so two
concurrent creations in one scope are serialised by the database and can
never see the same value. If the resource insert fails the whole transaction
rolls back, counter included, so no number is burned.

Numbers are never derived from the live max(number), and the counter is never
decremented, so numbers of deleted resources stay retired.

The first number in a scope inserts the counter row. Two first-creators can
race on that INSERT on databases that do not serialise the preceding
zero-row UPDATE (PostgreSQL); the loser gets IntegrityError and allocate()
retries, this time taking the UPDATE path. The UNIQUE(scope, number)
constraints in tracker/store.py are the backstop that turns any remaining
collision into a retry instead of a duplicate.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Optional, TypeVar

from sqlalchemy import Column, Integer, MetaData, PrimaryKeyConstraint, String, Table, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from core.database import store_errors
from core.errors import AllocationConflict
from tracker.models import SequenceScope

logger = logging.getLogger("tasktrack.sequence")

T = TypeVar("T")

_metadata = MetaData()

_sequences = Table(
    "sequences",
    _metadata,
    Column("kind", String(20), nullable=False),  # "project" | "task"
    Column("parent_id", Integer, nullable=False),
    Column("value", Integer, nullable=False),
    PrimaryKeyConstraint("kind", "parent_id", name="pk_sequences"),
)


class SequenceAllocator:
    """Hands out 1, 2, 3, ... per scope, backed by persisted counter rows.

    Usage:
        allocator = SequenceAllocator(engine, max_retries=5)
        number = allocator.next(SequenceScope.for_owner(user_id))
        project = allocator.allocate(SequenceScope.for_owner(user_id), insert_project)
    """

    def __init__(self, engine: Engine, max_retries: int = 5) -> None:
        self.engine = engine
        self.max_retries = max_retries
        _metadata.create_all(engine)

    def next(self, scope: SequenceScope, conn: Optional[Connection] = None) -> int:
        """Return the next number for scope.

        With conn, the increment joins the caller's transaction and is undone
        if that transaction rolls back. Without conn it commits on its own.
        """
        if conn is not None:
            return self._advance(conn, scope)
        with store_errors("sequence_next"), self.engine.begin() as own:
            return self._advance(own, scope)

    def allocate(self, scope: SequenceScope, insert: Callable[[Connection, int], T]) -> T:
        """Take the next number for scope and call insert(conn, number) in one transaction.

        Retries the whole transaction on IntegrityError. Raises
        AllocationConflict once max_retries attempts have all conflicted.
        """
        last_error: Optional[IntegrityError] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                with store_errors("allocate"), self.engine.begin() as conn:
                    number = self._advance(conn, scope)
                    return insert(conn, number)
            except IntegrityError as exc:
                last_error = exc
                logger.warning(
                    "Sequence conflict in scope %s/%s (attempt %d/%d)",
                    scope.kind,
                    scope.parent_id,
                    attempt,
                    self.max_retries,
                )
        logger.error("Sequence allocation exhausted retries for scope %s/%s", scope.kind, scope.parent_id)
        raise AllocationConflict() from last_error

    def _advance(self, conn: Connection, scope: SequenceScope) -> int:
        where = (_sequences.c.kind == scope.kind) & (_sequences.c.parent_id == scope.parent_id)
        result = conn.execute(_sequences.update().where(where).values(value=_sequences.c.value + 1))
        if result.rowcount == 0:
            conn.execute(_sequences.insert().values(kind=scope.kind, parent_id=scope.parent_id, value=1))
            return 1
        return conn.execute(select(_sequences.c.value).where(where)).scalar_one()
