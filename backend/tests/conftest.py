import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

import shareasecret.main as main_module
from shareasecret.config import Settings, settings
from shareasecret.database import Base, build_engine
from shareasecret.main import app
from shareasecret.services.secret_service import SecretLifecycle
from shareasecret.services.secret_store import SecretStore


@pytest.fixture
def engine():
    """Create a fresh in-memory database for each test."""
    engine = build_engine("sqlite:///:memory:", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def file_engine(tmp_path):
    """File-backed database for tests that hit the store from many threads."""
    engine = build_engine(f"sqlite:///{tmp_path / 'secrets.db'}", connect_args={"timeout": 30})
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return SecretStore(engine)


@pytest.fixture
def test_settings():
    return Settings(base_url="https://secrets.example.com", _env_file=None)


@pytest.fixture
def lifecycle(store, test_settings):
    return SecretLifecycle(store, test_settings)


@pytest.fixture
def client(engine, monkeypatch):
    """Create a test client bound to the test database with the sweeper disabled."""
    monkeypatch.setattr(settings, "scheduler_enabled", False)
    monkeypatch.setattr(main_module, "engine", engine)
    # Leave structlog unconfigured so capture_logs works across tests
    monkeypatch.setattr(main_module, "setup_logging", lambda: None)

    with TestClient(app) as test_client:
        yield test_client
