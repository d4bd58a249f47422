"""
api/routes/v1/tasks.py -- Task routes for the TaskTrack REST API.

Routes:
  GET    /users/{owner_id}/projects/{project_number}/tasks                 -- list (owner)
  POST   /users/{owner_id}/projects/{project_number}/tasks                 -- create (owner)
  GET    /users/{owner_id}/projects/{project_number}/tasks/{task_number}   -- detail (owner or assignee)
  PATCH  /users/{owner_id}/projects/{project_number}/tasks/{task_number}   -- update (policy decision)
  DELETE /users/{owner_id}/projects/{project_number}/tasks/{task_number}   -- delete (owner)
  GET    /tasks/assigned                                                   -- tasks assigned to caller

PATCH applies the policy decision to exactly the fields present in the body.
The project owner may send any field; the assignee only status and position.
A body with any other field from the assignee is rejected with 403 and
nothing is written.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import TaskCreate, TaskResponse, TaskUpdate
from api.routes.v1.projects import owned_project
from auth.dependencies import get_identity
from auth.models import IdentityContext
from auth.policy import AuthorizationPolicy
from auth.service import AuthService
from core.errors import NotFound
from tracker.models import Project, Task
from tracker.store import TrackerStore

router = APIRouter()

_TASK_ROUTE = "/users/{owner_id}/projects/{project_number}/tasks/{task_number}"


def _load(request: Request, owner_id: int, project_number: int, task_number: int) -> tuple[Project | None, Task | None]:
    tracker: TrackerStore = request.app.state.tracker
    project = tracker.get_project(owner_id, project_number)
    task = tracker.get_task(project.id, task_number) if project is not None else None
    return project, task


def _require_assignee_exists(request: Request, assigned_to: int | None) -> None:
    if assigned_to is None:
        return
    service: AuthService = request.app.state.auth_service
    if service.users.get_by_id(assigned_to) is None:
        raise NotFound("Assignee not found.")


@router.get("/users/{owner_id}/projects/{project_number}/tasks", response_model=list[TaskResponse])
def list_tasks(
    request: Request,
    owner_id: int,
    project_number: int,
    identity: IdentityContext = Depends(get_identity),
) -> list[TaskResponse]:
    project = owned_project(request, identity, owner_id, project_number)
    tracker: TrackerStore = request.app.state.tracker
    return [TaskResponse.from_task(project, t) for t in tracker.list_tasks(project.id)]


@router.post("/users/{owner_id}/projects/{project_number}/tasks", response_model=TaskResponse, status_code=201)
def create_task(
    request: Request,
    owner_id: int,
    project_number: int,
    body: TaskCreate,
    identity: IdentityContext = Depends(get_identity),
) -> TaskResponse:
    """Create a task. Its task_number is the project's next number."""
    project = owned_project(request, identity, owner_id, project_number)
    _require_assignee_exists(request, body.assigned_to)
    tracker: TrackerStore = request.app.state.tracker
    task = tracker.create_task(
        project.id,
        body.title,
        description=body.description,
        status=body.status,
        position=body.position,
        due_date=body.due_date.isoformat() if body.due_date else None,
        assigned_to=body.assigned_to,
    )
    return TaskResponse.from_task(project, task)


@router.get(_TASK_ROUTE, response_model=TaskResponse)
def get_task(
    request: Request,
    owner_id: int,
    project_number: int,
    task_number: int,
    identity: IdentityContext = Depends(get_identity),
) -> TaskResponse:
    project, task = _load(request, owner_id, project_number, task_number)
    policy: AuthorizationPolicy = request.app.state.policy
    policy.assert_can_view(project, task, identity.subject_id)
    return TaskResponse.from_task(project, task)


@router.patch(_TASK_ROUTE, response_model=TaskResponse)
def update_task(
    request: Request,
    owner_id: int,
    project_number: int,
    task_number: int,
    body: TaskUpdate,
    identity: IdentityContext = Depends(get_identity),
) -> TaskResponse:
    project, task = _load(request, owner_id, project_number, task_number)
    policy: AuthorizationPolicy = request.app.state.policy
    decision = policy.evaluate_modify(project, task, identity.subject_id)
    changes = body.model_dump(exclude_unset=True)
    policy.enforce(decision, changes.keys())

    if "assigned_to" in changes:
        _require_assignee_exists(request, changes["assigned_to"])
    if changes.get("due_date") is not None:
        changes["due_date"] = changes["due_date"].isoformat()

    tracker: TrackerStore = request.app.state.tracker
    updated = tracker.update_task(task.id, **changes)
    return TaskResponse.from_task(project, updated or task)


@router.delete(_TASK_ROUTE, status_code=204)
def delete_task(
    request: Request,
    owner_id: int,
    project_number: int,
    task_number: int,
    identity: IdentityContext = Depends(get_identity),
) -> Response:
    project = owned_project(request, identity, owner_id, project_number)
    tracker: TrackerStore = request.app.state.tracker
    task = tracker.get_task(project.id, task_number)
    if task is None:
        raise NotFound()
    tracker.delete_task(task.id)
    return Response(status_code=204)


@router.get("/tasks/assigned", response_model=list[TaskResponse])
def list_assigned(request: Request, identity: IdentityContext = Depends(get_identity)) -> list[TaskResponse]:
    """Tasks assigned to the caller across every owner's projects."""
    tracker: TrackerStore = request.app.state.tracker
    return [TaskResponse.from_task(p, t) for p, t in tracker.list_assigned(identity.subject_id)]
