"""Shared pytest fixtures for SERP Intelligence tests."""

import sys
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Ensure project root is on sys.path so 'serp_intel' is importable.
_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)


@pytest.fixture(autouse=True)
def _reset_db_engine():
    """Autouse fixture: reset the global DB engine before and after every test."""
    from serp_intel.database import reset_engine
    reset_engine()
    yield
    reset_engine()


@pytest.fixture(autouse=True)
def _no_provider_key(monkeypatch):
    """Keep a developer's real SerpApi key out of every test."""
    monkeypatch.delenv("SERPAPI_API_KEY", raising=False)
    monkeypatch.delenv("SERP_API_KEY", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)


@pytest.fixture()
def test_db():
    """Provide an in-memory SQLite database with all tables created."""
    from serp_intel.database import init_db, reset_engine
    reset_engine()
    db_url = "sqlite:///:memory:"
    init_db(database_url=db_url, echo=False)
    yield db_url


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Records requested sleeps and advances the paired clock instead of waiting."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.clock.advance(seconds)


@pytest.fixture()
def fake_clock():
    return FakeClock()


@pytest.fixture()
def fake_sleep(fake_clock):
    return FakeSleep(fake_clock)


@pytest.fixture()
def instant_pacer(fake_clock, fake_sleep):
    """A RequestPacer with the production spacing but no real waiting."""
    from serp_intel.utils.rate_limiter import RequestPacer
    return RequestPacer(min_interval=1.5, name="test", clock=fake_clock, sleep=fake_sleep)


def organic(*links: str) -> list[dict[str, Any]]:
    """Build normalised organic results, ranked in the given order."""
    return [
        {
            "position": idx,
            "title": f"Result {idx}",
            "link": link,
            "snippet": "",
            "domain": "",
        }
        for idx, link in enumerate(links, 1)
    ]


@pytest.fixture()
def mock_serp_client():
    """Return a configured mock SerpApiClient with canned organic results."""
    client = MagicMock()
    client.is_configured = True
    client.result_depth = 20
    client.search = AsyncMock(return_value=organic(
        "https://competitor.com/a",
        "https://www.example.com/services",
        "https://example.com/other",
    ))
    client.close = AsyncMock()
    return client


@pytest.fixture()
def make_organic():
    """Factory fixture building organic results from a list of links."""
    return organic
