"""
tracker/store.py -- SQLAlchemy-backed persistence layer for projects and tasks.

Uses SQLAlchemy Core (not ORM) so the dataclasses in tracker/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. TrackerStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL directly.

Numbering: every insert of a project or task goes through
SequenceAllocator.allocate(), which takes the number and writes the row in
one transaction. UNIQUE(owner_id, number) and UNIQUE(project_id, number)
back it up at the database level.

Authorization is NOT checked here. Routes ask auth/policy.py first.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = TrackerStore()
    project = store.create_project(owner_id, "Website relaunch")
    task = store.create_task(project.id, "Draft copy", assigned_to=other_id)
    store.update_task(task.id, status=TaskStatus.DONE)
    store.close()
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, UniqueConstraint, select
from sqlalchemy.engine import Connection, Engine

from core.config import get_settings
from core.database import make_engine, store_errors
from tracker.models import Project, SequenceScope, Task, TaskStatus
from tracker.sequence import SequenceAllocator

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_projects = Table(
    "projects",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, nullable=False),
    Column("number", Integer, nullable=False),
    Column("name", String(120), nullable=False),
    Column("description", Text),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("owner_id", "number", name="uq_project_owner_number"),
)

_tasks = Table(
    "tasks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, nullable=False),
    Column("number", Integer, nullable=False),
    Column("title", String(180), nullable=False),
    Column("description", Text),
    Column("status", String(20), nullable=False, server_default=TaskStatus.TODO.value),
    Column("position", Integer, nullable=False, server_default="0"),
    Column("due_date", String(32)),
    Column("assigned_to", Integer),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("project_id", "number", name="uq_task_project_number"),
    Index("ix_tasks_assigned_to", "assigned_to"),
)

# Columns a caller may change after creation. Anything else is rejected with
# ValueError before any SQL is built.
_PROJECT_MUTABLE = frozenset({"name", "description"})
_TASK_MUTABLE = frozenset({"title", "description", "status", "position", "due_date", "assigned_to"})


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TrackerStore:
    """Repository for Project and Task entities."""

    def __init__(
        self,
        db_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.engine: Engine = make_engine(
            db_url or settings.database_url,
            timeout_seconds if timeout_seconds is not None else settings.store_timeout_seconds,
        )
        metadata.create_all(self.engine)
        self.allocator = SequenceAllocator(
            self.engine,
            max_retries=max_retries if max_retries is not None else settings.allocator_max_retries,
        )

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(self, owner_id: int, name: str, description: Optional[str] = None) -> Project:
        """Insert a project under the owner's next free number."""
        created_at = _now_iso()

        def insert(conn: Connection, number: int) -> Project:
            result = conn.execute(
                _projects.insert().values(
                    owner_id=owner_id,
                    number=number,
                    name=name,
                    description=description,
                    created_at=created_at,
                )
            )
            return Project(
                id=result.inserted_primary_key[0],
                owner_id=owner_id,
                number=number,
                name=name,
                description=description,
                created_at=created_at,
            )

        return self.allocator.allocate(SequenceScope.for_owner(owner_id), insert)

    def get_project(self, owner_id: int, number: int) -> Optional[Project]:
        """Look up a project by its external address (owner, number)."""
        with store_errors("get_project"), self.engine.connect() as conn:
            row = conn.execute(
                _projects.select().where((_projects.c.owner_id == owner_id) & (_projects.c.number == number))
            ).fetchone()
        return _row_to_project(row) if row is not None else None

    def get_project_by_id(self, project_id: int) -> Optional[Project]:
        with store_errors("get_project_by_id"), self.engine.connect() as conn:
            row = conn.execute(_projects.select().where(_projects.c.id == project_id)).fetchone()
        return _row_to_project(row) if row is not None else None

    def list_projects(self, owner_id: int) -> list[Project]:
        """Return the owner's projects in number order."""
        with store_errors("list_projects"), self.engine.connect() as conn:
            rows = conn.execute(
                _projects.select().where(_projects.c.owner_id == owner_id).order_by(_projects.c.number)
            ).fetchall()
        return [_row_to_project(r) for r in rows]

    def update_project(self, project_id: int, **fields) -> Optional[Project]:
        """Update name and/or description. Returns the updated project, None if absent.

        Unknown field names raise ValueError.
        """
        unknown = set(fields) - _PROJECT_MUTABLE
        if unknown:
            raise ValueError(f"Unknown project fields: {sorted(unknown)!r}")
        if fields:
            with store_errors("update_project"), self.engine.begin() as conn:
                conn.execute(_projects.update().where(_projects.c.id == project_id).values(**fields))
        return self.get_project_by_id(project_id)

    def delete_project(self, project_id: int) -> bool:
        """Delete a project and all of its tasks.

        The owner's counter is untouched, so this project's number is never
        handed out again.
        """
        with store_errors("delete_project"), self.engine.begin() as conn:
            conn.execute(_tasks.delete().where(_tasks.c.project_id == project_id))
            result = conn.execute(_projects.delete().where(_projects.c.id == project_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def create_task(
        self,
        project_id: int,
        title: str,
        description: Optional[str] = None,
        status: TaskStatus = TaskStatus.TODO,
        position: int = 0,
        due_date: Optional[str] = None,
        assigned_to: Optional[int] = None,
    ) -> Task:
        """Insert a task under the project's next free number."""
        now = _now_iso()
        task = Task(
            project_id=project_id,
            title=title,
            description=description,
            status=TaskStatus(status),
            position=position,
            due_date=due_date,
            assigned_to=assigned_to,
            created_at=now,
            updated_at=now,
        )

        def insert(conn: Connection, number: int) -> Task:
            result = conn.execute(
                _tasks.insert().values(
                    project_id=project_id,
                    number=number,
                    title=task.title,
                    description=task.description,
                    status=task.status.value,
                    position=task.position,
                    due_date=task.due_date,
                    assigned_to=task.assigned_to,
                    created_at=now,
                    updated_at=now,
                )
            )
            task.id = result.inserted_primary_key[0]
            task.number = number
            return task

        return self.allocator.allocate(SequenceScope.for_project(project_id), insert)

    def get_task(self, project_id: int, number: int) -> Optional[Task]:
        """Look up a task by (project, number). Returns None if not found."""
        with store_errors("get_task"), self.engine.connect() as conn:
            row = conn.execute(
                _tasks.select().where((_tasks.c.project_id == project_id) & (_tasks.c.number == number))
            ).fetchone()
        return _row_to_task(row) if row is not None else None

    def get_task_by_id(self, task_id: int) -> Optional[Task]:
        with store_errors("get_task_by_id"), self.engine.connect() as conn:
            row = conn.execute(_tasks.select().where(_tasks.c.id == task_id)).fetchone()
        return _row_to_task(row) if row is not None else None

    def list_tasks(self, project_id: int) -> list[Task]:
        """Return a project's tasks ordered by position, then number."""
        with store_errors("list_tasks"), self.engine.connect() as conn:
            rows = conn.execute(
                _tasks.select()
                .where(_tasks.c.project_id == project_id)
                .order_by(_tasks.c.position, _tasks.c.number)
            ).fetchall()
        return [_row_to_task(r) for r in rows]

    def list_assigned(self, user_id: int) -> list[tuple[Project, Task]]:
        """Return (project, task) pairs for every task assigned to user_id."""
        query = (
            select(_projects, _tasks)
            .select_from(_tasks.join(_projects, _tasks.c.project_id == _projects.c.id))
            .where(_tasks.c.assigned_to == user_id)
            .order_by(_projects.c.owner_id, _projects.c.number, _tasks.c.number)
        )
        with store_errors("list_assigned"), self.engine.connect() as conn:
            rows = conn.execute(query).mappings().fetchall()
        return [(_mapping_to_project(r), _mapping_to_task(r)) for r in rows]

    def update_task(self, task_id: int, **fields) -> Optional[Task]:
        """Update mutable task fields. Returns the updated task, None if absent.

        Which of these fields a given caller may change is decided by
        AuthorizationPolicy before this is called. Unknown field names raise
        ValueError.
        """
        unknown = set(fields) - _TASK_MUTABLE
        if unknown:
            raise ValueError(f"Unknown task fields: {sorted(unknown)!r}")
        if "status" in fields:
            fields["status"] = TaskStatus(fields["status"]).value
        if fields:
            with store_errors("update_task"), self.engine.begin() as conn:
                conn.execute(
                    _tasks.update().where(_tasks.c.id == task_id).values(updated_at=_now_iso(), **fields)
                )
        return self.get_task_by_id(task_id)

    def delete_task(self, task_id: int) -> bool:
        """Delete a task. Its number is not reused within the project."""
        with store_errors("delete_task"), self.engine.begin() as conn:
            result = conn.execute(_tasks.delete().where(_tasks.c.id == task_id))
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_project(row) -> Project:
    return Project(
        id=row.id,
        owner_id=row.owner_id,
        number=row.number,
        name=row.name,
        description=row.description,
        created_at=row.created_at,
    )


def _row_to_task(row) -> Task:
    return Task(
        id=row.id,
        project_id=row.project_id,
        number=row.number,
        title=row.title,
        description=row.description,
        status=TaskStatus(row.status),
        position=row.position,
        due_date=row.due_date,
        assigned_to=row.assigned_to,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _mapping_to_project(m) -> Project:
    # Joined rows: both tables have id/number/description/created_at, so read
    # through the Column objects rather than by bare name.
    return Project(
        id=m[_projects.c.id],
        owner_id=m[_projects.c.owner_id],
        number=m[_projects.c.number],
        name=m[_projects.c.name],
        description=m[_projects.c.description],
        created_at=m[_projects.c.created_at],
    )


def _mapping_to_task(m) -> Task:
    return Task(
        id=m[_tasks.c.id],
        project_id=m[_tasks.c.project_id],
        number=m[_tasks.c.number],
        title=m[_tasks.c.title],
        description=m[_tasks.c.description],
        status=TaskStatus(m[_tasks.c.status]),
        position=m[_tasks.c.position],
        due_date=m[_tasks.c.due_date],
        assigned_to=m[_tasks.c.assigned_to],
        created_at=m[_tasks.c.created_at],
        updated_at=m[_tasks.c.updated_at],
    )
