from typing import AsyncGenerator

import pytest
import pytest_asyncio
from libs.auth.models import AuthUser
from libs.db.base import Base
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Import all models so metadata includes every table
from services.progress_service import models as _progress_models  # noqa: F401


@pytest_asyncio.fixture
async def test_engine():
    """
    Fresh in-memory database per test. StaticPool keeps the single
    connection alive so every session sees the same tables.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session configured like the application's session factory.
    """
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    session = session_factory()

    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def make_user():
    """Build an AuthUser; ``role`` and ``club_id`` decide what it may do."""

    def _make(role="director", club=None, member=None, user_id=None):
        return AuthUser(
            user_id=user_id or f"{role}-user",
            role=role,
            club_id=club.id if club is not None else None,
            member_id=member.id if member is not None else None,
        )

    return _make


@pytest.fixture
def persist(db_session):
    """
    Insert model instances and detach them, so later reads go back to the
    database the way a fresh request session would.
    """

    async def _persist(*objects):
        db_session.add_all(objects)
        await db_session.commit()
        db_session.expunge_all()
        return objects

    return _persist


@pytest.fixture
def reload(db_session):
    """Fetch a fresh copy of a row after service calls have committed."""

    async def _reload(model, ident):
        db_session.expunge_all()
        return await db_session.get(model, ident)

    return _reload
