"""pytest fixtures for tutorcast backend tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- postgres_container: Session-scoped database (SQLite file by default, PostgreSQL testcontainer
  with migrations applied when TEST_USE_POSTGRES=1)
- session_factory / session: Database access with table cleanup
- uow_factory: Function-scoped UnitOfWork factory
- avatar / voice: Catalog entries
- make_video_job: Factory for persisted VideoJob rows
- video_client / relocator: Service mocks
- test_client: AsyncClient bound to an app wired to the test database and mocks
"""

import os

# Settings are read at import time of tutorcast.app; configure the test environment first
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./.pytest_tutorcast.db")
os.environ["TZ"] = "UTC"

import subprocess  # noqa: E402
import sys  # noqa: E402
from pathlib import Path  # noqa: E402
from typing import AsyncGenerator  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import text  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

from tutorcast import models  # noqa: E402,F401
from tutorcast.app import create_app  # noqa: E402
from tutorcast.core.config import Settings  # noqa: E402
from tutorcast.core.database import setup_db_session  # noqa: E402
from tutorcast.models.catalog import Avatar, Voice  # noqa: E402
from tutorcast.models.video_job import VideoJob, VideoStatus  # noqa: E402
from tutorcast.services.heygen.client import HeyGenClient  # noqa: E402
from tutorcast.services.relocation.relocator import AssetRelocator  # noqa: E402
from tutorcast.services.webhook_signature import generate_webhook_secret  # noqa: E402
from tutorcast.uow import create_uow_factory  # noqa: E402
from tutorcast.workers.video_sync_worker import VideoSyncSweeper  # noqa: E402

PROJECT_ROOT = Path(__file__).resolve().parent.parent
USE_POSTGRES = os.environ.get("TEST_USE_POSTGRES") == "1"


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests.

    Autouse fixture ensures TZ=UTC is set before any test runs.
    This prevents timezone-dependent behavior and ensures reproducible tests.
    """
    os.environ["TZ"] = "UTC"
    yield


@pytest.fixture(scope="session")
def postgres_container():
    """Provide session-scoped PostgreSQL container with migrations applied.

    Only started when TEST_USE_POSTGRES=1. Migrations are applied using subprocess to avoid
    asyncio event loop conflicts.
    """
    if not USE_POSTGRES:
        yield None
        return

    from testcontainers.postgres import PostgresContainer

    with PostgresContainer(
        image="postgres:17",
        username="test",
        password="test",
        dbname="test_tutorcast",
    ).with_bind_ports(5432, None) as container:
        db_url = container.get_connection_url(driver="psycopg")

        env = os.environ.copy()
        env["DATABASE_URL"] = db_url

        subprocess.run(
            [sys.executable, "-m", "alembic", "upgrade", "head"],
            check=True,
            capture_output=True,
            text=True,
            env=env,
            cwd=PROJECT_ROOT,
        )

        yield container


@pytest_asyncio.fixture(scope="function")
async def session_factory(postgres_container, tmp_path):
    """Provide a session factory bound to a clean database.

    SQLite: fresh database file per test, schema created from SQLModel metadata.
    PostgreSQL: shared migrated database, tables emptied after each test.
    """
    if postgres_container is not None:
        db_url = postgres_container.get_connection_url(driver="psycopg")
        factory = setup_db_session(db_url, pool_size=5)
    else:
        db_url = f"sqlite+aiosqlite:///{tmp_path / 'tutorcast_test.db'}"
        factory = setup_db_session(db_url)
        async with factory.kw["bind"].begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    yield factory

    engine = factory.kw["bind"]
    if postgres_container is not None:
        async with factory() as cleanup:
            # Order matters: delete from dependent tables first
            await cleanup.execute(text("DELETE FROM video_jobs"))
            await cleanup.execute(text("DELETE FROM avatars"))
            await cleanup.execute(text("DELETE FROM voices"))
            await cleanup.commit()
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory."""
    return create_uow_factory(session_factory)


@pytest_asyncio.fixture
async def avatar(session: AsyncSession) -> Avatar:
    avatar = Avatar(provider_avatar_id="Daisy-inskirt-20220818", name="Daisy", avatar_style="normal")
    session.add(avatar)
    await session.commit()
    return avatar


@pytest_asyncio.fixture
async def voice(session: AsyncSession) -> Voice:
    voice = Voice(
        provider_voice_id="2d5b0e6cf36f460aa7fc47e3eee4ba54", name="Sara", language="English"
    )
    session.add(voice)
    await session.commit()
    return voice


@pytest_asyncio.fixture
async def make_video_job(session_factory, avatar: Avatar, voice: Voice):
    """Factory that persists a VideoJob with sensible defaults.

    Example:
        job = await make_video_job(status=VideoStatus.PROCESSING, provider_job_id="vid_1")
    """
    counter = {"n": 0}

    async def _make(**overrides) -> VideoJob:
        counter["n"] += 1
        values = {
            "avatar_id": avatar.id,
            "voice_id": voice.id,
            "input_text": "Welcome to lesson one.",
            "status": VideoStatus.PENDING,
            "provider_job_id": f"vid_{counter['n']:04d}",
            "webhook_secret": generate_webhook_secret(),
        }
        values.update(overrides)
        job = VideoJob(**values)
        async with session_factory() as session:
            session.add(job)
            await session.commit()
        return job

    return _make


@pytest.fixture
def video_client():
    """Provider gateway mock shared by the app under test."""
    return AsyncMock(spec=HeyGenClient)


@pytest.fixture
def relocator():
    """Relocator mock; relocation succeeds with a fixed durable URL unless overridden."""
    relocator = AsyncMock(spec=AssetRelocator)
    relocator.relocate.return_value = (
        "https://project.supabase.test/storage/v1/object/public/videos/videos/result.mp4"
    )
    return relocator


@pytest_asyncio.fixture
async def test_client(session_factory, uow_factory, video_client, relocator):
    """Provide AsyncClient for testing API endpoints with database access.

    ASGITransport does not run the lifespan, so services are injected into app.state the
    way the lifespan would.
    """
    settings = Settings()  # type: ignore[call-arg]
    app = create_app(settings)
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.video_client = video_client
    app.state.relocator = relocator
    app.state.sweeper = VideoSyncSweeper(session_factory, video_client, relocator, settings)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
