"""Processing job routes.

GET  /jobs/{job_id}          : job detail, with datasets once completed
GET  /jobs/{job_id}/progress : lightweight view for polling
POST /jobs/{job_id}/cancel   : cancel a pending or running job

Starting a job lives under the source: POST /sources/{source_id}/process.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response

from foundry.api.deps import get_current_user, get_job_service
from foundry.api.views import dataset_summary, job_progress, job_summary
from foundry.core.auth import AuthUser
from foundry.services.jobs import JobService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("/{job_id}", summary="Get job detail")
def get_job(
    job_id: int,
    caller: AuthUser = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    job, datasets = service.get_job(job_id, caller)
    return {"data": {**job_summary(job), "datasets": [dataset_summary(ds) for ds in datasets]}}


@router.get("/{job_id}/progress", summary="Poll job progress")
def get_job_progress(
    job_id: int,
    caller: AuthUser = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    return {"data": job_progress(service.get_progress(job_id, caller))}


@router.post("/{job_id}/cancel", status_code=204, summary="Cancel a pending or running job")
def cancel_job(
    job_id: int,
    caller: AuthUser = Depends(get_current_user),
    service: JobService = Depends(get_job_service),
):
    service.cancel(job_id, caller)
    return Response(status_code=204)
