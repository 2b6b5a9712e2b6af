import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_voiceover.db")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from voiceover.config import Settings, get_settings
from voiceover.database import Base
from voiceover.dependencies import get_notifier, get_providers, get_storage
from voiceover.lifecycle import CustomerInfo, OrderLifecycleService
from voiceover.main import app as fastapi_app
from tests.fakes import WEBHOOK_SECRET, FakeNotifier, FakeProvider, FakeStorage

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_voiceover.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db():
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def settings():
    return Settings(
        jwt_secret="test-jwt-secret",
        admin_email="admin@example.com",
        webhook_secrets={"A": WEBHOOK_SECRET},
    )


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def service(db, provider, storage, notifier, settings):
    return OrderLifecycleService(db, {"A": provider}, storage, notifier, settings)


@pytest.fixture
def customer():
    return CustomerInfo("Jane", "Doe", "jane@example.com", "5551234567")


@pytest.fixture
def client(monkeypatch, provider, storage, notifier, settings):
    monkeypatch.setattr("voiceover.dependencies.SessionLocal", TestingSessionLocal)

    fastapi_app.dependency_overrides[get_providers] = lambda: {"A": provider}
    fastapi_app.dependency_overrides[get_storage] = lambda: storage
    fastapi_app.dependency_overrides[get_notifier] = lambda: notifier
    fastapi_app.dependency_overrides[get_settings] = lambda: settings

    with TestClient(fastapi_app) as c:
        yield c

    fastapi_app.dependency_overrides.clear()
