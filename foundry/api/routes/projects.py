"""Project routes.

GET    /projects                          : the caller organization's projects, newest first
POST   /projects                          : create a project owned by the caller
GET    /projects/{project_id}             : project detail with source count
PUT    /projects/{project_id}             : rename / re-describe
DELETE /projects/{project_id}             : soft delete, stopping active jobs
GET    /projects/{project_id}/datasets    : datasets produced from any of the project's sources
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from foundry.api.deps import get_access_guard, get_current_user, get_db, get_job_service
from foundry.api.views import PAGE_SIZE_DEFAULT, dataset_summary, page_window, pagination, project_summary
from foundry.core.auth import AuthUser
from foundry.db.repositories import DatasetRepository, ProjectRepository, SourceRepository
from foundry.services.access import AccessGuard
from foundry.services.jobs import JobService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])


class CreateProjectBody(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)


class UpdateProjectBody(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)


@router.get("", summary="List projects in the caller's organization")
def list_projects(
    page: int = 1,
    page_size: int = Query(default=PAGE_SIZE_DEFAULT, alias="pageSize"),
    caller: AuthUser = Depends(get_current_user),
    guard: AccessGuard = Depends(get_access_guard),
):
    user = guard.require_user(caller)
    page, page_size, offset = page_window(page, page_size)
    projects = ProjectRepository(guard.db)
    sources = SourceRepository(guard.db)

    rows = projects.list_for_organization(user.organization_id, limit=page_size, offset=offset)
    return {
        "data": [project_summary(p, sources.count_by_project(p.id)) for p in rows],
        "pagination": pagination(page, page_size, projects.count_for_organization(user.organization_id)),
    }


@router.post("", status_code=201, summary="Create a project")
def create_project(
    body: CreateProjectBody,
    caller: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    guard: AccessGuard = Depends(get_access_guard),
):
    user = guard.require_user(caller)
    project = ProjectRepository(db).create(user_id=user.id, name=body.name, description=body.description)
    db.refresh(project)
    logger.info("Project %s created by user %s", project.id, user.id)
    return {"data": project_summary(project)}


@router.get("/{project_id}", summary="Get project detail")
def get_project(
    project_id: int,
    caller: AuthUser = Depends(get_current_user),
    guard: AccessGuard = Depends(get_access_guard),
):
    project = guard.authorize_project(project_id, caller)
    return {"data": project_summary(project, SourceRepository(guard.db).count_by_project(project.id))}


@router.put("/{project_id}", summary="Update a project")
def update_project(
    project_id: int,
    body: UpdateProjectBody,
    caller: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    guard: AccessGuard = Depends(get_access_guard),
):
    project = guard.authorize_project(project_id, caller)
    changes = {}
    if body.name is not None:
        changes["name"] = body.name
    # An explicit null clears the description; an omitted one leaves it alone.
    if "description" in body.model_fields_set:
        changes["description"] = body.description
    ProjectRepository(db).update(project, **changes)
    db.refresh(project)
    return {"data": project_summary(project)}


@router.delete("/{project_id}", status_code=204, summary="Soft-delete a project")
def delete_project(
    project_id: int,
    caller: AuthUser = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    service.delete_project(project_id, caller)
    return Response(status_code=204)


@router.get("/{project_id}/datasets", summary="List datasets for a project")
def list_project_datasets(
    project_id: int,
    caller: AuthUser = Depends(get_current_user),
    guard: AccessGuard = Depends(get_access_guard),
):
    project = guard.authorize_project(project_id, caller)
    rows = DatasetRepository(guard.db).list_by_project(project.id)
    return {
        "data": [
            {**dataset_summary(ds), "sourceId": source.id, "sourceName": source.name}
            for ds, source in rows
        ]
    }
