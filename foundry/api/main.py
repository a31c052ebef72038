"""FastAPI application factory.

Assembles CORS, the error envelope handlers, the job registry and all API
routers.  This module is the authoritative app object; foundry/main.py
re-exports it.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from foundry.api.errors import register_exception_handlers
from foundry.api.routes.datasets import router as datasets_router
from foundry.api.routes.health import router as health_router
from foundry.api.routes.jobs import router as jobs_router
from foundry.api.routes.projects import router as projects_router
from foundry.api.routes.sources import project_sources_router
from foundry.api.routes.sources import router as sources_router
from foundry.core.logging import setup_logging
from foundry.core.settings import get_settings
from foundry.db.session import get_session_factory
from foundry.pipeline.executor import PipelineExecutor
from foundry.pipeline.registry import JobRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    settings = get_settings()
    executor = PipelineExecutor(get_session_factory(), settings=settings)
    registry = JobRegistry(executor, max_workers=settings.processing_max_workers)
    recovered = registry.recover_interrupted()
    if recovered:
        logger.warning("Recovered %d job(s) left running by a previous process", recovered)
    app.state.job_registry = registry
    yield
    registry.shutdown(wait=True)


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS: restrict origins in production via ALLOWED_ORIGINS env var
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(health_router)
app.include_router(sources_router)
app.include_router(jobs_router)
app.include_router(datasets_router)
app.include_router(projects_router)
app.include_router(project_sources_router)
