from __future__ import annotations

from datetime import datetime, timezone

import pytest

from database import connection
from stampwallet.core.config import settings
from tests.fakes import FakeClock, FakePushClient, FakeSupabase


@pytest.fixture(autouse=True)
def fake_db(monkeypatch) -> FakeSupabase:
    db = FakeSupabase()
    monkeypatch.setattr(connection, "get_client", lambda: db)
    monkeypatch.setattr(settings, "render_cache_enabled", False)
    return db


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def push_client() -> FakePushClient:
    return FakePushClient()
