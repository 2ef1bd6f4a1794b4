"""Pytest configuration and shared fixtures."""

from datetime import datetime

import pytest

from signoff.core.approval.service import ApprovalService
from signoff.core.config import Settings
from signoff.core.permissions import Actor
from signoff.store.sql import SqlAlchemyApprovalStore
from tests.factories import FakeClock, RecordingDispatcher


@pytest.fixture
def settings():
    """Settings with fast retries for tests."""
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        transaction_max_attempts=3,
        transaction_retry_wait=0,
    )


@pytest.fixture
def database_url(tmp_path):
    """File-backed SQLite so separate sessions use separate connections."""
    return f"sqlite:///{tmp_path / 'signoff.db'}"


@pytest.fixture
def store(database_url):
    store = SqlAlchemyApprovalStore.from_url(database_url, echo=False)
    store.create_schema()
    yield store
    store.engine.dispose()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 9, 0, 0))


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def service(store, dispatcher, settings, clock):
    return ApprovalService(store, dispatcher=dispatcher, settings=settings, clock=clock)


@pytest.fixture
def creator():
    return Actor(
        user_id="creator",
        name="Casey Creator",
        email="casey@example.com",
        ip_address="10.0.0.1",
        user_agent="pytest-browser/1.0",
        session_id="sess-creator",
    )


@pytest.fixture
def admin():
    return Actor(user_id="admin", name="Ada Admin", permissions=["approvals:*"])


@pytest.fixture
def actor_for():
    """Build an approver actor by user id."""
    def _actor(user_id: str, **kwargs) -> Actor:
        kwargs.setdefault("name", user_id.title())
        kwargs.setdefault("ip_address", "10.0.0.20")
        kwargs.setdefault("user_agent", "pytest-browser/1.0")
        return Actor(user_id=user_id, **kwargs)
    return _actor
