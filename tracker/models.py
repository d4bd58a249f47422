"""
tracker/models.py -- Domain dataclasses for projects and tasks.

These are pure data containers with zero logic. Numbering lives in
tracker/sequence.py; persistence lives in tracker/store.py; who may touch
what lives in auth/policy.py.

id fields are internal and never leave the process. Callers outside the
core address resources by (owner_id, number) and (project, number).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class TaskStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    BLOCKED = "BLOCKED"


@dataclass
class Project:
    """A resource owned by one identity.

    number is unique per owner and allocated 1, 2, 3, ... in creation order.
    Numbers of deleted projects are never handed out again.

    id is None before the record is written to the database.
    """

    owner_id: int
    name: str
    number: int = 0  # set by the store on insert
    description: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class Task:
    """A child resource of a project.

    number is unique per project, allocated the same way as project numbers.
    assigned_to is the id of the identity allowed limited edits (status,
    position) without owning the project.
    """

    project_id: int
    title: str
    number: int = 0
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    position: int = 0
    due_date: Optional[str] = None  # ISO 8601
    assigned_to: Optional[int] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class SequenceScope:
    """The parent within which sequential numbers are allocated.

    kind "project" -> parent_id is the owner's identity id.
    kind "task"    -> parent_id is the project's internal id.
    """

    kind: str
    parent_id: int

    @classmethod
    def for_owner(cls, owner_id: int) -> "SequenceScope":
        return cls("project", owner_id)

    @classmethod
    def for_project(cls, project_id: int) -> "SequenceScope":
        return cls("task", project_id)
