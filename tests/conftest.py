"""Shared fixtures: isolated home directory, configs and pipeline stubs."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable

import pytest

from trendboard.config import ConfigLocator, ConfigRepository, GlobalConfig, SourceConfig
from trendboard.engine import CategoryOutcome, TrendingRecord
from trendboard.events import EventType, ProgressEvent


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("TRENDBOARD_HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def sample_global_config(tmp_path: Path) -> GlobalConfig:
    return GlobalConfig(
        categories=["go", "rust"],
        thread_pool_workers=2,
        cache_path=tmp_path / "cache" / "trending.json",
        source=SourceConfig(request_timeout=2.0),
    )


@pytest.fixture
def temp_config_repository(tmp_path: Path) -> Iterable[ConfigRepository]:
    locator = ConfigLocator(project_root=tmp_path)
    yield ConfigRepository(locator)


def make_record(
    category: str,
    slug: str,
    stars: int = 10,
    today: int | None = 1,
    forks: int | None = 2,
) -> TrendingRecord:
    return TrendingRecord(
        category=category,
        source_url=f"https://github.com/{slug}",
        primary_metric=stars,
        delta_metric=today,
        secondary_metric=forks,
    )


class StubCategoryFetcher:
    """Answers ``fetch_category`` from a table of records or exceptions."""

    def __init__(
        self,
        responses: dict[str, list[TrendingRecord] | Exception],
        gate: threading.Event | None = None,
    ) -> None:
        self.responses = responses
        self.gate = gate
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def fetch_category(self, category: str) -> CategoryOutcome:
        with self._lock:
            self.calls.append(category)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        answer = self.responses.get(category, [])
        if isinstance(answer, Exception):
            return CategoryOutcome.failure(category, str(answer))
        return CategoryOutcome.success(category, answer)


class RecordingObserver:
    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []
        self.closed = False
        self._lock = threading.Lock()

    def send(self, event: ProgressEvent) -> None:
        with self._lock:
            self.events.append(event)

    def close(self) -> None:
        self.closed = True

    def types(self) -> list[EventType]:
        with self._lock:
            return [event.type for event in self.events]


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def record_factory() -> Callable[..., TrendingRecord]:
    return make_record


@pytest.fixture
def recording_observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def fixed_clock() -> FixedClock:
    return FixedClock(datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def stub_fetcher_factory() -> Callable[..., StubCategoryFetcher]:
    return StubCategoryFetcher
