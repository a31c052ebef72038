from __future__ import annotations

from typing import Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from foundry.core.constants import ACTIVE_JOB_STATUSES
from foundry.db import models

ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    model: type[ModelT]

    def __init__(self, db: Session):
        self.db = db

    def create(self, **kwargs) -> ModelT:
        entity = self.model(**kwargs)
        self.db.add(entity)
        self.db.flush()
        return entity

    def get(self, entity_id: int) -> ModelT | None:
        return self.db.get(self.model, entity_id)

    def list(self, limit: int = 100, offset: int = 0) -> list[ModelT]:
        stmt = select(self.model).offset(offset).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def update(self, entity: ModelT, **kwargs) -> ModelT:
        for key, value in kwargs.items():
            setattr(entity, key, value)
        self.db.flush()
        return entity

    def delete(self, entity: ModelT) -> None:
        self.db.delete(entity)
        self.db.flush()


class OrganizationRepository(BaseRepository[models.Organization]):
    model = models.Organization


class UserRepository(BaseRepository[models.User]):
    model = models.User


class ProjectRepository(BaseRepository[models.Project]):
    model = models.Project

    def _live_for_organization(self, organization_id: int):
        return (
            select(models.Project)
            .join(models.User, models.Project.user_id == models.User.id)
            .where(models.User.organization_id == organization_id, models.Project.deleted_at.is_(None))
        )

    def list_for_organization(self, organization_id: int, limit: int = 20, offset: int = 0) -> list[models.Project]:
        stmt = (
            self._live_for_organization(organization_id)
            .order_by(models.Project.created_at.desc(), models.Project.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def count_for_organization(self, organization_id: int) -> int:
        stmt = select(func.count()).select_from(self._live_for_organization(organization_id).subquery())
        return self.db.execute(stmt).scalar_one()


class SourceRepository(BaseRepository[models.Source]):
    model = models.Source

    def list_by_project(self, project_id: int, limit: int = 20, offset: int = 0) -> list[models.Source]:
        stmt = (
            select(models.Source)
            .where(models.Source.project_id == project_id, models.Source.deleted_at.is_(None))
            .order_by(models.Source.created_at.desc(), models.Source.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def count_by_project(self, project_id: int) -> int:
        stmt = select(func.count(models.Source.id)).where(
            models.Source.project_id == project_id, models.Source.deleted_at.is_(None)
        )
        return self.db.execute(stmt).scalar_one()


class SourceFileRepository(BaseRepository[models.SourceFile]):
    model = models.SourceFile

    def get_by_source(self, source_id: int) -> models.SourceFile | None:
        stmt = select(models.SourceFile).where(models.SourceFile.source_id == source_id)
        return self.db.execute(stmt).scalars().first()


class SourceConfigurationRepository(BaseRepository[models.SourceConfiguration]):
    model = models.SourceConfiguration

    def get_by_source(self, source_id: int) -> models.SourceConfiguration | None:
        stmt = select(models.SourceConfiguration).where(models.SourceConfiguration.source_id == source_id)
        return self.db.execute(stmt).scalars().first()

    def upsert(self, source_id: int, **kwargs) -> models.SourceConfiguration:
        existing = self.get_by_source(source_id)
        if existing is None:
            return self.create(source_id=source_id, **kwargs)
        return self.update(existing, **kwargs)


class ProcessingJobRepository(BaseRepository[models.ProcessingJob]):
    """Job Record Store.  Last write wins per field; there is no version guard."""

    model = models.ProcessingJob

    def list_by_source(self, source_id: int) -> list[models.ProcessingJob]:
        stmt = (
            select(models.ProcessingJob)
            .where(models.ProcessingJob.source_id == source_id)
            .order_by(models.ProcessingJob.created_at.desc(), models.ProcessingJob.id.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_active_for_source(self, source_id: int) -> models.ProcessingJob | None:
        stmt = (
            select(models.ProcessingJob)
            .where(
                models.ProcessingJob.source_id == source_id,
                models.ProcessingJob.status.in_(ACTIVE_JOB_STATUSES),
            )
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def latest_for_source(self, source_id: int) -> models.ProcessingJob | None:
        jobs = self.list_by_source(source_id)
        return jobs[0] if jobs else None


class DatasetRepository(BaseRepository[models.Dataset]):
    model = models.Dataset

    def list_by_job(self, job_id: int) -> list[models.Dataset]:
        stmt = (
            select(models.Dataset)
            .where(models.Dataset.processing_job_id == job_id)
            .order_by(models.Dataset.id.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_by_project(self, project_id: int) -> list[tuple[models.Dataset, models.Source]]:
        stmt = (
            select(models.Dataset, models.Source)
            .join(models.ProcessingJob, models.Dataset.processing_job_id == models.ProcessingJob.id)
            .join(models.Source, models.ProcessingJob.source_id == models.Source.id)
            .where(models.Source.project_id == project_id, models.Source.deleted_at.is_(None))
            .order_by(models.Dataset.created_at.desc(), models.Dataset.id.desc())
        )
        return [(row[0], row[1]) for row in self.db.execute(stmt).all()]
