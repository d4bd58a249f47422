"""
API request and response models for TaskTrack REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
tracker/models.py, which own the internal domain representation. Route
handlers map between the two.

Internal project and task ids never appear in a response. Resources are
addressed by owner_id + project_number (+ task_number).
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from auth.models import Role, User
from auth.tokens import MAX_PASSWORD_BYTES, password_too_long
from tracker.models import Project, Task, TaskStatus

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _reject_nulls(values, fields: tuple[str, ...]):
    """Refuse an explicit null for a field that cannot be cleared."""
    if isinstance(values, dict):
        cleared = [f for f in fields if f in values and values[f] is None]
        if cleared:
            raise ValueError(f"Fields cannot be null: {', '.join(cleared)}")
    return values


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=_EMAIL_PATTERN)
    password: str = Field(min_length=6, max_length=72)
    name: Optional[str] = Field(default=None, max_length=255)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        if password_too_long(value):
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded.")
        return value


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255)
    password: str = Field(max_length=72)


class RefreshRequest(BaseModel):
    """Body for POST /auth/refresh and POST /auth/logout."""

    refresh_token: str = Field(min_length=1, max_length=4096)


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: Optional[str]
    role: Role
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            created_at=user.created_at or "",
        )


class TokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    access_expires_at: int
    refresh_expires_at: int


class AuthResponse(TokenResponse):
    """Body returned by register and login: the identity plus a token pair."""

    user: UserResponse


class LogoutResponse(BaseModel):
    ok: bool = True


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class ProjectCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=2000)


class ProjectUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode="before")
    @classmethod
    def no_null_name(cls, values):
        return _reject_nulls(values, ("name",))


class ProjectResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    owner_id: int
    project_number: int
    name: str
    description: Optional[str]
    created_at: str

    @classmethod
    def from_project(cls, project: Project) -> "ProjectResponse":
        return cls(
            owner_id=project.owner_id,
            project_number=project.number,
            name=project.name,
            description=project.description,
            created_at=project.created_at,
        )


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=180)
    description: Optional[str] = Field(default=None, max_length=4000)
    status: TaskStatus = TaskStatus.TODO
    position: int = Field(default=0, ge=0)
    due_date: Optional[date] = None
    assigned_to: Optional[int] = None


class TaskUpdate(BaseModel):
    """PATCH body. Only fields present in the request are applied.

    Which fields the caller may send depends on the policy decision: the
    project owner may send any of them, the assignee only status and position.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=180)
    description: Optional[str] = Field(default=None, max_length=4000)
    status: Optional[TaskStatus] = None
    position: Optional[int] = Field(default=None, ge=0)
    due_date: Optional[date] = None
    assigned_to: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def no_null_required(cls, values):
        return _reject_nulls(values, ("title", "status", "position"))


class TaskResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    owner_id: int
    project_number: int
    task_number: int
    title: str
    description: Optional[str]
    status: TaskStatus
    position: int
    due_date: Optional[str]
    assigned_to: Optional[int]
    created_at: str
    updated_at: str

    @classmethod
    def from_task(cls, project: Project, task: Task) -> "TaskResponse":
        return cls(
            owner_id=project.owner_id,
            project_number=project.number,
            task_number=task.number,
            title=task.title,
            description=task.description,
            status=task.status,
            position=task.position,
            due_date=task.due_date,
            assigned_to=task.assigned_to,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
