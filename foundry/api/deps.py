"""FastAPI dependency injection: database sessions, caller identity and services."""
from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from foundry.core.auth import AuthUser, decode_token
from foundry.core.errors import UnauthorizedError
from foundry.core.settings import get_settings
from foundry.db.session import get_session_factory
from foundry.pipeline.registry import JobRegistry
from foundry.services.access import AccessGuard
from foundry.services.jobs import JobService

bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """Yield a SQLAlchemy session; commit on success, rollback on error."""
    db = get_session_factory()()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthUser:
    """Decode the bearer token into the caller's identity."""
    if credentials is None:
        raise UnauthorizedError("No authentication token provided")
    settings = get_settings()
    return decode_token(credentials.credentials, settings.jwt_secret, settings.jwt_algorithm)


def get_job_registry(request: Request) -> JobRegistry:
    """Return the registry created by the application lifespan."""
    return request.app.state.job_registry


def get_access_guard(db: Session = Depends(get_db)) -> AccessGuard:
    return AccessGuard(db)


def get_job_service(
    db: Session = Depends(get_db),
    registry: JobRegistry = Depends(get_job_registry),
) -> JobService:
    return JobService(db, registry)
