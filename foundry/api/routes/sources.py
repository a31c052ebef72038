"""Source routes.

POST   /projects/{project_id}/sources     : create a source, uploading its file (base64)
GET    /projects/{project_id}/sources     : live sources of a project, newest first
GET    /sources/{source_id}               : source detail, configuration and latest job
PUT    /sources/{source_id}/configuration : replace the processing configuration
DELETE /sources/{source_id}               : soft delete
POST   /sources/{source_id}/process       : start a processing job (returns at once)
GET    /sources/{source_id}/jobs          : jobs for the source, newest first
"""
from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Literal

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from foundry.api.deps import get_access_guard, get_current_user, get_db, get_job_service
from foundry.api.views import (
    PAGE_SIZE_DEFAULT,
    configuration_summary,
    job_created,
    job_summary,
    page_window,
    pagination,
    source_summary,
)
from foundry.core.auth import AuthUser
from foundry.core.constants import SOURCE_CONFIGURED, SOURCE_PENDING, SOURCE_PROCESSING, SOURCE_TYPE_FILE
from foundry.core.errors import BadRequestError, ValidationError
from foundry.core.settings import get_settings
from foundry.db.repositories import (
    ProcessingJobRepository,
    SourceConfigurationRepository,
    SourceFileRepository,
    SourceRepository,
)
from foundry.services.access import AccessGuard
from foundry.services.jobs import JobService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sources", tags=["sources"])
project_sources_router = APIRouter(prefix="/projects/{project_id}/sources", tags=["sources"])

EMPTY_TARGET_SCHEMA = {"name": "", "fields": []}


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateSourceBody(_CamelModel):
    name: str = Field(min_length=1, max_length=100)
    type: Literal["file", "teamwork_desk", "api"]
    file_data: str | None = None
    filename: str | None = Field(default=None, max_length=512)
    mime_type: str | None = Field(default=None, max_length=128)


class SchemaFieldBody(_CamelModel):
    name: str = Field(min_length=1)
    type: str
    required: bool = False


class TargetSchemaBody(_CamelModel):
    name: str
    fields: list[SchemaFieldBody]


class DeidentificationRuleBody(_CamelModel):
    field: str = Field(min_length=1)
    action: Literal["redact", "tokenize", "hash", "mask", "remove"]
    pattern: str | None = None

    @field_validator("pattern")
    @classmethod
    def _pattern_compiles(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"invalid regular expression: {exc}") from exc
        return value


class UpdateConfigurationBody(_CamelModel):
    target_schema: TargetSchemaBody
    field_mappings: dict[str, str] = {}
    deidentification_rules: list[DeidentificationRuleBody] = []


class ProcessSourceBody(BaseModel):
    format: Literal["jsonl", "json", "csv"] | None = None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.get("/{source_id}", summary="Get source detail")
def get_source(
    source_id: int,
    caller: AuthUser = Depends(get_current_user),
    guard: AccessGuard = Depends(get_access_guard),
):
    source = guard.authorize_source(source_id, caller)
    latest = ProcessingJobRepository(guard.db).latest_for_source(source.id)
    return {
        "data": {
            **source_summary(source),
            "configuration": configuration_summary(source.configuration),
            "latestJob": job_summary(latest) if latest is not None else None,
        }
    }


@router.put("/{source_id}/configuration", summary="Replace the source configuration")
def update_configuration(
    source_id: int,
    body: UpdateConfigurationBody,
    caller: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    guard: AccessGuard = Depends(get_access_guard),
):
    source = guard.authorize_source(source_id, caller)
    config = SourceConfigurationRepository(db).upsert(
        source.id,
        target_schema=body.target_schema.model_dump(),
        field_mappings=dict(body.field_mappings),
        deidentification_rules=[rule.model_dump() for rule in body.deidentification_rules],
    )
    # A running job keeps the source in "processing"; it reads its
    # configuration once at start.
    if source.status != SOURCE_PROCESSING:
        source.status = SOURCE_CONFIGURED
    db.flush()
    db.refresh(config)
    logger.info("Source %s configuration updated (%d field(s))", source.id, len(config.target_fields))
    return {"data": configuration_summary(config)}


@router.delete("/{source_id}", status_code=204, summary="Soft-delete a source")
def delete_source(
    source_id: int,
    caller: AuthUser = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    service.delete_source(source_id, caller)
    return Response(status_code=204)


@router.post("/{source_id}/process", status_code=201, summary="Start processing a source")
def process_source(
    source_id: int,
    body: ProcessSourceBody | None = None,
    caller: AuthUser = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    job = service.start_processing(source_id, caller, body.format if body else None)
    return {"data": job_created(job)}


@router.get("/{source_id}/jobs", summary="List processing jobs for a source")
def list_source_jobs(
    source_id: int,
    caller: AuthUser = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    return {"data": [job_summary(job) for job in service.list_jobs_for_source(source_id, caller)]}


# ---------------------------------------------------------------------------
# Project-scoped routes
# ---------------------------------------------------------------------------

@project_sources_router.post("", status_code=201, summary="Create a source in a project")
def create_source(
    project_id: int,
    body: CreateSourceBody,
    caller: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    guard: AccessGuard = Depends(get_access_guard),
):
    project = guard.authorize_project(project_id, caller)
    raw = _decode_upload(body, get_settings().max_file_size_mb) if body.type == SOURCE_TYPE_FILE else None

    metadata = {}
    if body.filename is not None:
        metadata["originalFilename"] = body.filename
    if body.mime_type is not None:
        metadata["mimeType"] = body.mime_type

    source = SourceRepository(db).create(
        project_id=project.id,
        name=body.name,
        type=body.type,
        status=SOURCE_PENDING,
        metadata_json=metadata,
    )
    if raw is not None:
        SourceFileRepository(db).create(
            source_id=source.id,
            filename=body.filename,
            mime_type=body.mime_type,
            file_size=len(raw),
            file_data=body.file_data,
        )
    SourceConfigurationRepository(db).create(
        source_id=source.id,
        target_schema=dict(EMPTY_TARGET_SCHEMA),
        field_mappings={},
        deidentification_rules=[],
    )
    db.refresh(source)
    logger.info("Source %s (%s) created in project %s", source.id, source.type, project.id)
    return {"data": source_summary(source)}


@project_sources_router.get("", summary="List sources in a project")
def list_project_sources(
    project_id: int,
    page: int = 1,
    page_size: int = Query(default=PAGE_SIZE_DEFAULT, alias="pageSize"),
    caller: AuthUser = Depends(get_current_user),
    guard: AccessGuard = Depends(get_access_guard),
):
    project = guard.authorize_project(project_id, caller)
    page, page_size, offset = page_window(page, page_size)
    sources = SourceRepository(guard.db)
    rows = sources.list_by_project(project.id, limit=page_size, offset=offset)
    return {
        "data": [source_summary(source) for source in rows],
        "pagination": pagination(page, page_size, sources.count_by_project(project.id)),
    }


def _decode_upload(body: CreateSourceBody, max_file_size_mb: int) -> bytes:
    """Decoded bytes of a file upload; the stored copy stays base64."""
    if not (body.file_data and body.filename and body.mime_type):
        raise BadRequestError("File data, filename, and mimeType are required for file sources")
    try:
        raw = base64.b64decode(body.file_data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError(
            "File data must be base64 encoded",
            details={"issues": [{"path": ["body", "fileData"], "message": str(exc), "code": "base64"}]},
        ) from exc
    if len(raw) > max_file_size_mb * 1024 * 1024:
        raise BadRequestError(f"File size exceeds {max_file_size_mb}MB limit")
    return raw
