"""
Integration test fixtures.

The progress app runs in-process over ASGITransport with the database
dependency bound to the per-test session. Tests pick the caller by
setting ``acting_as`` before issuing requests.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db


class CallerState:
    def __init__(self):
        self.user = AuthUser(user_id="director-user", role="director")

    def __call__(self, user: AuthUser) -> AuthUser:
        self.user = user
        return user


@pytest.fixture
def acting_as() -> CallerState:
    return CallerState()


@pytest_asyncio.fixture
async def progress_client(db_session, acting_as) -> AsyncGenerator[AsyncClient, None]:
    from services.progress_service.app.main import app

    async def _db_override():
        yield db_session

    async def _user_override():
        return acting_as.user

    app.dependency_overrides[get_async_db] = _db_override
    app.dependency_overrides[get_current_user] = _user_override

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()
