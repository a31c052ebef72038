import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

from helpers import JWT_SECRET, TENANT_SALT


@pytest.fixture
def app_settings(tmp_path, monkeypatch: pytest.MonkeyPatch):
    """Settings pointing at a throwaway SQLite file with all tables created.

    A file database (not :memory:) so request threads and job runner threads
    share one store.
    """
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{tmp_path / 'foundry.db'}")
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("JWT_SECRET", JWT_SECRET)
    monkeypatch.setenv("TENANT_SALT", TENANT_SALT)
    monkeypatch.setenv("FERNET_KEY", Fernet.generate_key().decode("ascii"))
    monkeypatch.setenv("PROCESSING_STAGE_DELAY_SECONDS", "0")

    from foundry.core.settings import get_settings
    from foundry.db import models  # noqa: F401
    from foundry.db.base import Base
    from foundry.db.session import get_engine, reset_session_factory

    get_settings.cache_clear()
    reset_session_factory()
    Base.metadata.create_all(bind=get_engine())

    yield get_settings()

    reset_session_factory()
    get_settings.cache_clear()


@pytest.fixture
def session_factory(app_settings):
    from foundry.db.session import get_session_factory

    return get_session_factory()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(app_settings) -> TestClient:
    from foundry.api.main import app

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def registry(client):
    return client.app.state.job_registry
