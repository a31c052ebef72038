"""Stage pipeline executor: drive one processing job through ``PIPELINE_STAGES``.

State machine
-------------
pending → running(parsing) → running(detecting_pii) → running(deidentifying)
        → running(mapping) → completed
Any running state → failed.

Every stage transition is committed on its own so pollers see it.  Before
each transition the executor checks the cancellation signal and re-reads the
job: a job that was marked failed from outside (cancel) is never written
back to running/completed.

The check-then-write is not atomic.  A cancel that lands between the check
and the following commit is overwritten by the executor's write; there is no
version column to detect it.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from datetime import datetime, timezone

from sqlalchemy.orm import Session, sessionmaker

from foundry.core.constants import (
    INTERRUPTED_MESSAGE,
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_PENDING,
    JOB_RUNNING,
    SOURCE_ERROR,
    SOURCE_READY,
    STAGE_COMPLETE,
    TERMINAL_JOB_STATUSES,
)
from foundry.core.security import SecurityService
from foundry.core.settings import Settings, get_settings
from foundry.db.models import ProcessingJob, Source
from foundry.db.repositories import ProcessingJobRepository, SourceRepository
from foundry.pipeline.context import SourcePayload, StageContext, StageError
from foundry.pipeline.emitter import DatasetEmitter, render_records
from foundry.pipeline.stages import COMPLETION_PROGRESS, PIPELINE_STAGES, StageDescriptor, validate_stages

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PipelineExecutor:
    """Run the stage pipeline for a job, one stage at a time."""

    def __init__(
        self,
        session_factory: sessionmaker,
        settings: Settings | None = None,
        stages: Sequence[StageDescriptor] = PIPELINE_STAGES,
        security: SecurityService | None = None,
        stage_delay: float | None = None,
    ) -> None:
        validate_stages(stages)
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.stages = tuple(stages)
        self.security = security or SecurityService.from_settings(self.settings)
        self.stage_delay = (
            self.settings.processing_stage_delay_seconds if stage_delay is None else stage_delay
        )

    # -- public -------------------------------------------------------------

    def run(
        self,
        job_id: int,
        cancel_event: threading.Event | None = None,
        output_format: str | None = None,
    ) -> str | None:
        """Execute the pipeline for *job_id*; return the job status it left behind."""
        cancel_event = cancel_event or threading.Event()
        fmt = output_format or self.settings.dataset_default_format

        with self.session_factory() as db:
            jobs = ProcessingJobRepository(db)
            job = jobs.get(job_id)
            if job is None:
                logger.error("Job %s not found; nothing to run", job_id)
                return None
            if job.status != JOB_PENDING:
                logger.info("Job %s is %s, not pending; skipping run", job_id, job.status)
                return job.status

            current_stage: str | None = None
            try:
                ctx = self._build_context(db, job, fmt)

                for stage in self.stages:
                    if self._stopped(db, job, cancel_event):
                        return self._halt(db, job)
                    current_stage = stage.name
                    self._enter_stage(db, jobs, job, stage, ctx)
                    if self.stage_delay > 0 and cancel_event.wait(self.stage_delay):
                        self._stopped(db, job, cancel_event)
                        return self._halt(db, job)
                    stage.handler(ctx)

                if self._stopped(db, job, cancel_event):
                    return self._halt(db, job)
                current_stage = STAGE_COMPLETE
                self._complete(db, jobs, job, ctx)
                return JOB_COMPLETED

            except Exception as exc:
                message = self._describe(exc, current_stage)
                logger.error("Job %s failed at stage %s: %s", job_id, current_stage, type(exc).__name__)
                logger.debug("Job %s failure detail", job_id, exc_info=True)
                db.rollback()
                self._fail(db, job_id, message)
                return JOB_FAILED

    # -- transitions --------------------------------------------------------

    def _enter_stage(
        self,
        db: Session,
        jobs: ProcessingJobRepository,
        job: ProcessingJob,
        stage: StageDescriptor,
        ctx: StageContext,
    ) -> None:
        fields: dict[str, object] = {
            "status": JOB_RUNNING,
            "stage": stage.name,
            "progress": max(job.progress or 0, stage.progress),
        }
        if job.started_at is None:
            fields["started_at"] = _now()
        if ctx.total_records is not None:
            fields["total_records"] = ctx.total_records
            fields["records_processed"] = ctx.total_records * stage.progress // COMPLETION_PROGRESS
        jobs.update(job, **fields)
        db.commit()
        logger.info("Job %s entered stage %s (progress=%d)", job.id, stage.name, job.progress)

    def _complete(
        self,
        db: Session,
        jobs: ProcessingJobRepository,
        job: ProcessingJob,
        ctx: StageContext,
    ) -> None:
        record_count = len(ctx.records)
        emitter = DatasetEmitter(db, retention_days=self.settings.dataset_retention_days)
        emitter.emit(
            job.id,
            render_records(ctx.records, ctx.output_format),
            ctx.output_format,
            record_count,
            name=f"{ctx.source_name} - {_now().isoformat()}",
            metadata=ctx.dataset_metadata(),
        )
        jobs.update(
            job,
            status=JOB_COMPLETED,
            stage=STAGE_COMPLETE,
            progress=COMPLETION_PROGRESS,
            total_records=record_count,
            records_processed=record_count,
            completed_at=_now(),
        )
        source = db.get(Source, job.source_id)
        if source is not None:
            source.status = SOURCE_READY
        db.commit()
        logger.info("Job %s completed with %d record(s)", job.id, record_count)

    def _fail(self, db: Session, job_id: int, message: str) -> None:
        try:
            job = db.get(ProcessingJob, job_id)
            if job is None:
                return
            db.refresh(job)
            if job.status in TERMINAL_JOB_STATUSES:
                logger.info("Job %s already %s; failure not recorded", job_id, job.status)
                return
            ProcessingJobRepository(db).update(job, status=JOB_FAILED, error_message=message)
            source = SourceRepository(db).get(job.source_id)
            if source is not None:
                source.status = SOURCE_ERROR
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Job %s could not be marked failed", job_id)

    def _halt(self, db: Session, job: ProcessingJob) -> str:
        # Signalled without a cancel write: the registry is shutting down.
        if job.status not in TERMINAL_JOB_STATUSES:
            self._fail(db, job.id, INTERRUPTED_MESSAGE)
            db.refresh(job)
        return job.status

    def _stopped(self, db: Session, job: ProcessingJob, cancel_event: threading.Event) -> bool:
        db.refresh(job)
        if cancel_event.is_set() or job.status in TERMINAL_JOB_STATUSES:
            logger.info("Job %s was cancelled (status=%s); stopping", job.id, job.status)
            return True
        return False

    # -- helpers ------------------------------------------------------------

    def _build_context(self, db: Session, job: ProcessingJob, fmt: str) -> StageContext:
        source = db.get(Source, job.source_id)
        if source is None:
            raise StageError("Source not found")
        config = source.configuration
        if config is None or not config.target_fields:
            raise StageError("Source must be configured before processing")

        payload = None
        if source.source_file is not None:
            payload = SourcePayload(
                filename=source.source_file.filename,
                mime_type=source.source_file.mime_type,
                file_data=source.source_file.file_data,
            )

        return StageContext(
            job_id=job.id,
            source_id=source.id,
            source_name=source.name,
            source_type=source.type,
            target_schema=dict(config.target_schema),
            field_mappings=dict(config.field_mappings or {}),
            deidentification_rules=list(config.deidentification_rules or []),
            security=self.security,
            payload=payload,
            output_format=fmt,
        )

    @staticmethod
    def _describe(exc: Exception, stage: str | None) -> str:
        if isinstance(exc, StageError):
            detail = str(exc)
        else:
            detail = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
        return f"{stage} failed: {detail}" if stage else detail
