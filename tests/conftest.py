"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of viaguild.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite has no JSONB; render it as TEXT and let SQLAlchemy's JSON type
# handle (de)serialisation.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from viaguild.config import ViaGuildConfig  # noqa: E402
from viaguild.database.models import Base  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all ViaGuild tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` in ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    """Point asset storage at a per-test temporary directory."""
    from viaguild.services import storage_service

    monkeypatch.setattr(storage_service, "UPLOAD_DIR", tmp_path)
    return tmp_path


@pytest.fixture
def test_config() -> ViaGuildConfig:
    return ViaGuildConfig(site_name="ViaGuild Test", frontend_url="http://localhost:5173")


def make_user_token(sub: str, username: str = "fixture-user") -> str:
    """Create a user JWT.  Usable as both a fixture helper and a factory."""
    import jwt

    from viaguild.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": sub, "username": username}, JWT_SECRET, algorithm=JWT_ALGORITHM)


@pytest.fixture
def client(db_engine, test_config, upload_dir):
    """FastAPI TestClient wired to the in-memory engine and test config.

    Overrides are keyed on the functions the routers captured at import
    time, which survive reloads of ``viaguild.api.deps``.
    """
    from fastapi.testclient import TestClient

    from viaguild.api.main import app
    from viaguild.api.routes import badges as badges_routes

    app.dependency_overrides[badges_routes.get_engine] = lambda: db_engine
    app.dependency_overrides[badges_routes.get_config] = lambda: test_config
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------
def make_user(engine: Engine, username: str) -> str:
    """Insert a user and return its id."""
    from viaguild.services.user_directory import create_user

    return create_user(engine, username).id


def make_template(engine: Engine, owner_id: str, **overrides) -> str:
    """Create a USER-owned template via the service and return its id."""
    from viaguild.services import template_service

    data = {
        "template_slug": "helper",
        "default_badge_name": "Helper",
        "default_border_config": {"type": "simple-color", "version": 1, "color": "#112233"},
    }
    data.update(overrides)
    return template_service.create_template(engine, data, actor_id=owner_id).id
