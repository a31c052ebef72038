"""GET /health: liveness check."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from foundry.api.deps import get_job_registry
from foundry.core.settings import get_settings
from foundry.pipeline.registry import JobRegistry

router = APIRouter(tags=["health"])


@router.get("/health", summary="Basic health check")
def health_check(registry: JobRegistry = Depends(get_job_registry)) -> dict:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.app_env,
        "activeJobs": len(registry.active_job_ids()),
    }
