"""camelCase response shapes shared by the route modules."""
from __future__ import annotations

import math
from datetime import datetime

from foundry.db.models import Dataset, ProcessingJob, Project, Source, SourceConfiguration

PAGE_SIZE_DEFAULT = 20
PAGE_SIZE_MAX = 100


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def job_created(job: ProcessingJob) -> dict:
    return {
        "id": job.id,
        "sourceId": job.source_id,
        "status": job.status,
        "stage": job.stage,
        "progress": job.progress,
        "createdAt": _iso(job.created_at),
    }


def job_summary(job: ProcessingJob) -> dict:
    return {
        "id": job.id,
        "sourceId": job.source_id,
        "status": job.status,
        "stage": job.stage,
        "progress": job.progress,
        "recordsProcessed": job.records_processed,
        "totalRecords": job.total_records,
        "errorMessage": job.error_message,
        "startedAt": _iso(job.started_at),
        "completedAt": _iso(job.completed_at),
        "createdAt": _iso(job.created_at),
        "updatedAt": _iso(job.updated_at),
    }


def job_progress(job: ProcessingJob) -> dict:
    return {
        "id": job.id,
        "status": job.status,
        "stage": job.stage,
        "progress": job.progress,
        "recordsProcessed": job.records_processed,
        "totalRecords": job.total_records,
        "errorMessage": job.error_message,
    }


def dataset_summary(ds: Dataset) -> dict:
    return {
        "id": ds.id,
        "processingJobId": ds.processing_job_id,
        "name": ds.name,
        "format": ds.format,
        "recordCount": ds.record_count,
        "fileSize": ds.file_size,
        "storageKey": ds.storage_key,
        "downloadUrl": ds.download_url,
        "metadata": ds.metadata_json or {},
        "expiresAt": _iso(ds.expires_at),
        "createdAt": _iso(ds.created_at),
    }


def configuration_summary(config: SourceConfiguration | None) -> dict | None:
    if config is None:
        return None
    return {
        "targetSchema": config.target_schema,
        "fieldMappings": config.field_mappings or {},
        "deidentificationRules": config.deidentification_rules or [],
        "updatedAt": _iso(config.updated_at),
    }


def source_summary(source: Source) -> dict:
    return {
        "id": source.id,
        "projectId": source.project_id,
        "name": source.name,
        "type": source.type,
        "status": source.status,
        "metadata": source.metadata_json or {},
        "createdAt": _iso(source.created_at),
        "updatedAt": _iso(source.updated_at),
    }


def project_summary(project: Project, source_count: int | None = None) -> dict:
    summary = {
        "id": project.id,
        "userId": project.user_id,
        "name": project.name,
        "description": project.description,
        "status": project.status,
        "createdAt": _iso(project.created_at),
        "updatedAt": _iso(project.updated_at),
    }
    if source_count is not None:
        summary["sourceCount"] = source_count
    return summary


def page_window(page: int, page_size: int) -> tuple[int, int, int]:
    """Clamp ``page``/``pageSize`` query values; returns ``(page, page_size, offset)``."""
    page = max(1, page)
    page_size = max(1, min(page_size, PAGE_SIZE_MAX))
    return page, page_size, (page - 1) * page_size


def pagination(page: int, page_size: int, total: int) -> dict:
    return {"page": page, "pageSize": page_size, "total": total, "totalPages": math.ceil(total / page_size)}
