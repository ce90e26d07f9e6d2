import asyncio
import os

import pytest
from dotenv import load_dotenv

from api.base_client import BaseLegalClient
from models.search import Query, SearchSuccess, SourceId
from orchestrator.source_registry import SourceRegistry

# Load environment variables from .env file for tests
load_dotenv()


class FakeLegalClient(BaseLegalClient):
    """
    Fake backend client for testing purposes.

    Returns the queued outcomes in order (the last one repeats) and counts calls.
    """

    def __init__(
        self,
        source: SourceId,
        endpoint,
        outcomes=None,
        delay: float = 0.0,
        raises: Exception | None = None,
        tracker: dict | None = None,
        api_key: str = "test-key",
    ):
        self.source_id = source
        super().__init__(api_key=api_key, endpoint=endpoint)
        self.outcomes = list(outcomes or [SearchSuccess()])
        self.delay = delay
        self.raises = raises
        self.tracker = tracker
        self.calls = 0
        self.detail_calls: list[str] = []

    async def search(self, query: Query):
        self.calls += 1
        if self.tracker is not None:
            self.tracker["active"] = self.tracker.get("active", 0) + 1
            self.tracker["peak"] = max(self.tracker.get("peak", 0), self.tracker["active"])
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.raises is not None:
                raise self.raises
            return self.outcomes[min(self.calls, len(self.outcomes)) - 1]
        finally:
            if self.tracker is not None:
                self.tracker["active"] -= 1

    async def get_detail(self, record_id: str):
        self.detail_calls.append(record_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.outcomes[min(len(self.detail_calls), len(self.outcomes)) - 1]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove LAW_* variables so a developer's .env never leaks into tests."""
    for key in list(os.environ):
        if key.startswith("LAW_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(scope="session")
def registry():
    return SourceRegistry.from_yaml()


@pytest.fixture
def make_client(registry):
    """Factory fixture building FakeLegalClient instances."""

    def _make(source: SourceId, *outcomes, **kwargs) -> FakeLegalClient:
        return FakeLegalClient(source, registry.get(source), outcomes=outcomes, **kwargs)

    return _make


@pytest.fixture
def mock_env(monkeypatch):
    """Fixture to mock environment variables for testing."""
    env_vars = {
        "LAW_API_KEY": "test-oc-key",
        "LAW_REQUEST_TIMEOUT_S": "5",
        "LAW_PRECEDENT_CACHE_TTL_S": "60",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest.fixture
def no_sleep():
    """Backoff sleep replacement recording requested delays."""
    delays: list[float] = []

    async def _sleep(delay: float):
        delays.append(delay)

    _sleep.delays = delays
    return _sleep
