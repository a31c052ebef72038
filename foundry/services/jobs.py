"""Job control: start, inspect, list and cancel processing jobs.

Deleting a source or a project fails its active jobs before the soft delete.

``start_processing`` commits the new job before handing it to the
``JobRegistry`` so the worker thread, which opens its own session, can see
it.  The check for an existing active job, the insert and the hand-off run
under one process-wide lock; a second request for the same source either
sees the committed job or the registered run.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from foundry.core.auth import AuthUser
from foundry.core.constants import (
    ACTIVE_JOB_STATUSES,
    CANCELLED_MESSAGE,
    DATASET_FORMATS,
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_PENDING,
    PROJECT_DELETED,
    PROJECT_DELETED_MESSAGE,
    SOURCE_CONFIGURED,
    SOURCE_DELETED_MESSAGE,
    SOURCE_ERROR,
    SOURCE_PROCESSING,
)
from foundry.core.errors import BadRequestError, InternalServerError, UnprocessableError
from foundry.db.models import Dataset, ProcessingJob, Project, Source
from foundry.db.repositories import DatasetRepository, ProcessingJobRepository
from foundry.pipeline.registry import JobRegistry
from foundry.services.access import AccessGuard

logger = logging.getLogger(__name__)

_start_lock = threading.Lock()


class JobService:
    def __init__(self, db: Session, registry: JobRegistry) -> None:
        self.db = db
        self.registry = registry
        self.guard = AccessGuard(db)
        self.jobs = ProcessingJobRepository(db)
        self.datasets = DatasetRepository(db)

    def start_processing(
        self,
        source_id: int,
        caller: AuthUser,
        output_format: str | None = None,
    ) -> ProcessingJob:
        source = self.guard.authorize_source(source_id, caller)

        config = source.configuration
        if config is None or not config.target_fields:
            raise UnprocessableError("Source must be configured before processing")
        if output_format is not None and output_format not in DATASET_FORMATS:
            raise BadRequestError(f"Unsupported dataset format: {output_format!r}")

        with _start_lock:
            if self.jobs.get_active_for_source(source_id) is not None or self.registry.is_active(source_id):
                raise BadRequestError("A processing job is already running for this source")

            job = self.jobs.create(source_id=source_id, status=JOB_PENDING)
            source.status = SOURCE_PROCESSING
            self.db.commit()

            try:
                self.registry.submit(job.id, source_id, output_format)
            except Exception as exc:
                logger.error("Job %s could not be scheduled: %s", job.id, type(exc).__name__)
                self.jobs.update(job, status=JOB_FAILED, error_message="Processing could not be scheduled")
                source.status = SOURCE_ERROR
                self.db.commit()
                raise InternalServerError("Processing could not be scheduled") from exc

        logger.info("Job %s created for source %s", job.id, source_id)
        return job

    def get_job(self, job_id: int, caller: AuthUser) -> tuple[ProcessingJob, list[Dataset]]:
        job = self.guard.authorize_job(job_id, caller)
        datasets = self.datasets.list_by_job(job.id) if job.status == JOB_COMPLETED else []
        return job, datasets

    def get_progress(self, job_id: int, caller: AuthUser) -> ProcessingJob:
        return self.guard.authorize_job(job_id, caller)

    def list_jobs_for_source(self, source_id: int, caller: AuthUser) -> list[ProcessingJob]:
        self.guard.authorize_source(source_id, caller)
        return self.jobs.list_by_source(source_id)

    def cancel(self, job_id: int, caller: AuthUser) -> ProcessingJob:
        job = self.guard.authorize_job(job_id, caller)
        if job.status not in ACTIVE_JOB_STATUSES:
            raise BadRequestError("Only pending or running jobs can be cancelled")

        self.jobs.update(job, status=JOB_FAILED, error_message=CANCELLED_MESSAGE)
        job.source.status = SOURCE_CONFIGURED
        self.db.commit()

        self.registry.cancel(job.id)
        logger.info("Job %s cancelled by user %s", job.id, caller.user_id)
        return job

    def delete_source(self, source_id: int, caller: AuthUser) -> Source:
        """Soft-delete a source, failing its active job first."""
        source = self.guard.authorize_source(source_id, caller)
        job = self.jobs.get_active_for_source(source.id)
        if job is not None:
            self.jobs.update(job, status=JOB_FAILED, error_message=SOURCE_DELETED_MESSAGE)
        source.deleted_at = datetime.now(timezone.utc)
        self.db.commit()

        if job is not None:
            self.registry.cancel(job.id)
            logger.info("Job %s stopped because source %s was deleted", job.id, source.id)
        logger.info("Source %s deleted by user %s", source.id, caller.user_id)
        return source

    def delete_project(self, project_id: int, caller: AuthUser) -> Project:
        """Soft-delete a project, failing the active jobs of its sources first."""
        project = self.guard.authorize_project(project_id, caller)
        stopped: list[int] = []
        for source in project.sources:
            if source.deleted_at is not None:
                continue
            job = self.jobs.get_active_for_source(source.id)
            if job is not None:
                self.jobs.update(job, status=JOB_FAILED, error_message=PROJECT_DELETED_MESSAGE)
                stopped.append(job.id)
        project.status = PROJECT_DELETED
        project.deleted_at = datetime.now(timezone.utc)
        self.db.commit()

        for job_id in stopped:
            self.registry.cancel(job_id)
            logger.info("Job %s stopped because project %s was deleted", job_id, project.id)
        logger.info("Project %s deleted by user %s", project.id, caller.user_id)
        return project
