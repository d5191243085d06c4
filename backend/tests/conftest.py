# backend/tests/conftest.py
from __future__ import annotations

import os

# Must run before rentflow.config is imported anywhere.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTH_MODE", "dev")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rentflow import models  # noqa: F401
from rentflow.db import Base, get_db
from rentflow.deps import get_orchestrator
from rentflow.main import create_app
from rentflow.services.lifecycle_orchestrator import LifecycleOrchestrator
from rentflow.services.notifications import RecordingNotifier

from lifecycle_factories import FakeClock, FakePaymentProvider


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def provider():
    return FakePaymentProvider()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def orch(db, provider, notifier, clock):
    return LifecycleOrchestrator(db, payment_provider=provider, notifier=notifier, clock=clock)


@pytest.fixture()
def client(session_factory, provider, notifier, clock):
    app = create_app()

    def _db():
        s = session_factory()
        try:
            yield s
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()

    def _orch():
        s = session_factory()
        try:
            yield LifecycleOrchestrator(s, payment_provider=provider, notifier=notifier, clock=clock)
        finally:
            s.close()

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_orchestrator] = _orch
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
