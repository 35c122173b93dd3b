"""Shared fixtures for route tests.

Routes are exercised through TestClient with the database session and the
service calls patched out.
"""

from contextlib import asynccontextmanager
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from linkdesk.models import SessionUser, UserType
from linkdesk.web.app import app
from linkdesk.web.auth import get_current_user
from linkdesk.web.rate_limit import share_rate_limiter


@pytest.fixture(autouse=True)
def reset_app_state():
    share_rate_limiter.memory.clear()
    yield
    app.dependency_overrides.clear()
    share_rate_limiter.memory.clear()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def internal_user():
    user = SessionUser(user_id=uuid4(), user_type=UserType.INTERNAL, email="ops@linkdesk.io")
    app.dependency_overrides[get_current_user] = lambda: user
    return user


@pytest.fixture
def account_user():
    user = SessionUser(user_id=uuid4(), user_type=UserType.ACCOUNT, email="owner@client.com")
    app.dependency_overrides[get_current_user] = lambda: user
    return user


@pytest.fixture
def fake_session():
    """Stand-in for ``get_session``; the yielded session is a MagicMock."""
    session = MagicMock()
    calls = []

    @asynccontextmanager
    async def _get_session():
        calls.append(session)
        yield session

    _get_session.session = session
    _get_session.calls = calls
    return _get_session
