"""
api/routes/v1/projects.py -- Project routes for the TaskTrack REST API.

Routes:
  GET    /users/{owner_id}/projects                     -- list owner's projects
  POST   /users/{owner_id}/projects                     -- create (number allocated)
  GET    /users/{owner_id}/projects/{project_number}    -- detail
  PATCH  /users/{owner_id}/projects/{project_number}    -- rename / re-describe
  DELETE /users/{owner_id}/projects/{project_number}    -- delete project and its tasks

Every route requires a bearer access token and is owner-only: the caller's
identity must equal owner_id. An absent project is 404, someone else's is 403.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import ProjectCreate, ProjectResponse, ProjectUpdate
from auth.dependencies import get_identity
from auth.models import IdentityContext
from auth.policy import AuthorizationPolicy, OwnerScope
from tracker.models import Project
from tracker.store import TrackerStore

router = APIRouter()


def owned_project(request: Request, identity: IdentityContext, owner_id: int, project_number: int) -> Project:
    """Load (owner_id, project_number) and require the caller to own it."""
    tracker: TrackerStore = request.app.state.tracker
    policy: AuthorizationPolicy = request.app.state.policy
    project = tracker.get_project(owner_id, project_number)
    policy.assert_owner(project, identity.subject_id)
    return project


@router.get("/users/{owner_id}/projects", response_model=list[ProjectResponse])
def list_projects(
    request: Request,
    owner_id: int,
    identity: IdentityContext = Depends(get_identity),
) -> list[ProjectResponse]:
    """Return the owner's projects in number order."""
    policy: AuthorizationPolicy = request.app.state.policy
    policy.assert_owner(OwnerScope(owner_id), identity.subject_id)
    tracker: TrackerStore = request.app.state.tracker
    return [ProjectResponse.from_project(p) for p in tracker.list_projects(owner_id)]


@router.post("/users/{owner_id}/projects", response_model=ProjectResponse, status_code=201)
def create_project(
    request: Request,
    owner_id: int,
    body: ProjectCreate,
    identity: IdentityContext = Depends(get_identity),
) -> ProjectResponse:
    """Create a project. Its project_number is the owner's next number."""
    policy: AuthorizationPolicy = request.app.state.policy
    policy.assert_owner(OwnerScope(owner_id), identity.subject_id)
    tracker: TrackerStore = request.app.state.tracker
    project = tracker.create_project(owner_id, body.name, body.description)
    return ProjectResponse.from_project(project)


@router.get("/users/{owner_id}/projects/{project_number}", response_model=ProjectResponse)
def get_project(
    request: Request,
    owner_id: int,
    project_number: int,
    identity: IdentityContext = Depends(get_identity),
) -> ProjectResponse:
    return ProjectResponse.from_project(owned_project(request, identity, owner_id, project_number))


@router.patch("/users/{owner_id}/projects/{project_number}", response_model=ProjectResponse)
def update_project(
    request: Request,
    owner_id: int,
    project_number: int,
    body: ProjectUpdate,
    identity: IdentityContext = Depends(get_identity),
) -> ProjectResponse:
    project = owned_project(request, identity, owner_id, project_number)
    tracker: TrackerStore = request.app.state.tracker
    updated = tracker.update_project(project.id, **body.model_dump(exclude_unset=True))
    return ProjectResponse.from_project(updated or project)


@router.delete("/users/{owner_id}/projects/{project_number}", status_code=204)
def delete_project(
    request: Request,
    owner_id: int,
    project_number: int,
    identity: IdentityContext = Depends(get_identity),
) -> Response:
    """Delete a project and its tasks. The number is not reused."""
    project = owned_project(request, identity, owner_id, project_number)
    tracker: TrackerStore = request.app.state.tracker
    tracker.delete_project(project.id)
    return Response(status_code=204)
