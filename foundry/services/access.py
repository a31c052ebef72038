"""Tenant isolation guard.

Every stateful operation resolves its entity through one of these methods
first.  The caller's organization is read from the ``users`` table rather
than trusted from the token, and compared with the organization of the user
who owns the entity's project.

Missing or soft-deleted entities, and anything under a soft-deleted source or
project, raise ``NotFoundError``; entities of another
organization raise ``ForbiddenError``.
"""
from __future__ import annotations

from sqlalchemy.orm import Session

from foundry.core.auth import AuthUser
from foundry.core.errors import ForbiddenError, NotFoundError
from foundry.db.models import Dataset, ProcessingJob, Project, Source, User


class AccessGuard:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _caller_organization(self, caller: AuthUser) -> int | None:
        user = self.db.get(User, caller.user_id)
        return user.organization_id if user is not None else None

    def _check_project(self, project: Project, caller: AuthUser) -> None:
        owner_org = project.owner.organization_id if project.owner is not None else None
        if owner_org is None or self._caller_organization(caller) != owner_org:
            raise ForbiddenError("Access denied")

    @staticmethod
    def _is_live(source: Source) -> bool:
        return source.deleted_at is None and source.project.deleted_at is None

    def require_user(self, caller: AuthUser) -> User:
        """The caller's ``users`` row; organization-wide listings start here."""
        user = self.db.get(User, caller.user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def authorize_project(self, project_id: int, caller: AuthUser) -> Project:
        project = self.db.get(Project, project_id)
        if project is None or project.deleted_at is not None:
            raise NotFoundError("Project not found")
        self._check_project(project, caller)
        return project

    def authorize_source(self, source_id: int, caller: AuthUser) -> Source:
        source = self.db.get(Source, source_id)
        if source is None or not self._is_live(source):
            raise NotFoundError("Source not found")
        self._check_project(source.project, caller)
        return source

    def authorize_job(self, job_id: int, caller: AuthUser) -> ProcessingJob:
        job = self.db.get(ProcessingJob, job_id)
        if job is None or not self._is_live(job.source):
            raise NotFoundError("Job not found")
        self._check_project(job.source.project, caller)
        return job

    def authorize_dataset(self, dataset_id: int, caller: AuthUser) -> Dataset:
        dataset = self.db.get(Dataset, dataset_id)
        if dataset is None or not self._is_live(dataset.processing_job.source):
            raise NotFoundError("Dataset not found")
        self._check_project(dataset.processing_job.source.project, caller)
        return dataset
