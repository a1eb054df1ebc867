from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from trendboard.cache import CacheStore
from trendboard.config import DeliveryMode
from trendboard.engine import AggregateResult, Aggregator, ThreadPoolManager
from trendboard.errors import RefreshFailed
from trendboard.events import EventType, ProgressChannel, QueueObserver
from trendboard.orchestrator import CoordinatorState, RefreshStatus, RequestCoordinator

CATEGORIES = ["go", "rust", ""]


@pytest.fixture
def pool():
    manager = ThreadPoolManager(default_workers=4)
    yield manager
    manager.shutdown()


def _responses(record_factory):
    return {
        "go": [record_factory("go", "a/x"), record_factory("go", "a/y")],
        "rust": [record_factory("rust", "a/y")],
        "": [record_factory("", "a/z")],
    }


def _coordinator(fetcher, pool, clock, channel=None, cache=None):
    return RequestCoordinator(
        Aggregator(fetcher, pool),
        cache or CacheStore(),
        channel or ProgressChannel(DeliveryMode.BROADCAST),
        CATEGORIES,
        clock=clock,
        thread_pool=pool,
    )


def test_concurrent_requests_share_one_run(
    stub_fetcher_factory, record_factory, pool, fixed_clock, recording_observer
) -> None:
    gate = threading.Event()
    fetcher = stub_fetcher_factory(_responses(record_factory), gate=gate)
    channel = ProgressChannel(DeliveryMode.BROADCAST)
    channel.connect(recording_observer)
    coordinator = _coordinator(fetcher, pool, fixed_clock, channel=channel)

    first = coordinator.request_refresh()
    second = coordinator.request_refresh()
    forced = coordinator.request_refresh(force_refresh=True)

    assert first.status is RefreshStatus.STARTED
    assert second.status is RefreshStatus.IN_PROGRESS
    assert forced.status is RefreshStatus.IN_PROGRESS
    assert second.result is first.result
    assert coordinator.state is CoordinatorState.FETCHING

    gate.set()
    result = first.wait(timeout=5)
    assert second.wait(timeout=5) is result
    coordinator.shutdown(wait=True)

    assert sorted(fetcher.calls) == sorted(CATEGORIES)
    assert result.count == 3
    assert result.generated_at == fixed_clock().date()
    assert coordinator.state is CoordinatorState.IDLE
    assert coordinator.cache.is_valid(fixed_clock())

    types = recording_observer.types()
    assert types[0] is EventType.RUN_STARTED
    assert types[-1] is EventType.RUN_COMPLETED
    assert types.count(EventType.RUN_COMPLETED) == 1
    assert types.count(EventType.CATEGORY_STARTED) == len(CATEGORIES)
    completed = recording_observer.events[-1].payload
    assert completed["finalCount"] == 3
    assert completed["failedCategories"] == []


def test_valid_cache_is_served_without_fetching(
    stub_fetcher_factory, record_factory, pool, fixed_clock, recording_observer
) -> None:
    fetcher = stub_fetcher_factory(_responses(record_factory))
    channel = ProgressChannel(DeliveryMode.BROADCAST)
    coordinator = _coordinator(fetcher, pool, fixed_clock, channel=channel)
    fresh = coordinator.refresh(timeout=5)
    coordinator.shutdown(wait=True)
    calls = len(fetcher.calls)

    channel.connect(recording_observer)
    ticket = coordinator.request_refresh()
    assert ticket.status is RefreshStatus.CACHED
    assert ticket.wait(timeout=1) is fresh
    assert ticket.to_dict() == {"status": "cached", "generatedAt": "2024-05-01"}
    assert len(fetcher.calls) == calls
    assert recording_observer.types() == [EventType.CACHED]


def test_force_refresh_bypasses_valid_cache(
    stub_fetcher_factory, record_factory, pool, fixed_clock
) -> None:
    fetcher = stub_fetcher_factory(_responses(record_factory))
    coordinator = _coordinator(fetcher, pool, fixed_clock)
    coordinator.refresh(timeout=5)

    ticket = coordinator.request_refresh(force_refresh=True)
    assert ticket.status is RefreshStatus.STARTED
    assert ticket.to_dict() == {"status": "started"}
    ticket.wait(timeout=5)
    coordinator.shutdown(wait=True)
    assert len(fetcher.calls) == 2 * len(CATEGORIES)


def test_next_day_triggers_a_new_run(
    stub_fetcher_factory, record_factory, pool, fixed_clock
) -> None:
    fetcher = stub_fetcher_factory(_responses(record_factory))
    coordinator = _coordinator(fetcher, pool, fixed_clock)
    coordinator.refresh(timeout=5)

    fixed_clock.now = fixed_clock.now + timedelta(days=1)
    ticket = coordinator.request_refresh()
    assert ticket.status is RefreshStatus.STARTED
    assert ticket.wait(timeout=5).generated_at == fixed_clock().date()
    coordinator.shutdown(wait=True)


def test_partial_failure_still_completes(
    stub_fetcher_factory, record_factory, pool, fixed_clock, recording_observer
) -> None:
    responses = _responses(record_factory)
    responses["rust"] = RuntimeError("HTTP 500")
    channel = ProgressChannel(DeliveryMode.BROADCAST)
    channel.connect(recording_observer)
    coordinator = _coordinator(stub_fetcher_factory(responses), pool, fixed_clock, channel=channel)

    result = coordinator.refresh(timeout=5)
    coordinator.shutdown(wait=True)

    assert sorted(record.source_url for record in result.records) == [
        "https://github.com/a/x",
        "https://github.com/a/y",
        "https://github.com/a/z",
    ]
    assert recording_observer.types().count(EventType.CATEGORY_FAILED) == 1
    assert recording_observer.events[-1].payload["failedCategories"] == ["rust"]


def test_aborted_run_releases_lock_and_reports(
    record_factory, fixed_clock, recording_observer
) -> None:
    class ExplodingAggregator:
        def __init__(self) -> None:
            self.calls = 0

        def run_all(self, categories, publish=None):
            self.calls += 1
            raise RuntimeError("pool exhausted")

    channel = ProgressChannel(DeliveryMode.BROADCAST)
    channel.connect(recording_observer)
    aggregator = ExplodingAggregator()
    coordinator = RequestCoordinator(
        aggregator, CacheStore(), channel, CATEGORIES, clock=fixed_clock
    )

    ticket = coordinator.request_refresh()
    with pytest.raises(RefreshFailed) as excinfo:
        ticket.wait(timeout=5)
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert recording_observer.types()[-1] is EventType.RUN_FAILED
    coordinator.shutdown(wait=True)

    assert coordinator.state is CoordinatorState.IDLE
    assert coordinator.cache.get() is None
    assert recording_observer.types() == [EventType.RUN_STARTED, EventType.RUN_FAILED]
    assert recording_observer.events[-1].payload["reason"] == "pool exhausted"


def test_submit_failure_is_reported(fixed_clock, recording_observer) -> None:
    class IdleAggregator:
        def run_all(self, categories, publish=None):
            raise AssertionError("must not run")

    stopped = ThreadPoolManager(default_workers=1)
    stopped.shutdown()
    channel = ProgressChannel(DeliveryMode.BROADCAST)
    channel.connect(recording_observer)
    coordinator = RequestCoordinator(
        IdleAggregator(), CacheStore(), channel, CATEGORIES, clock=fixed_clock, thread_pool=stopped
    )

    ticket = coordinator.request_refresh()
    with pytest.raises(RefreshFailed):
        ticket.wait(timeout=1)
    assert coordinator.state is CoordinatorState.IDLE
    assert recording_observer.types() == [EventType.RUN_FAILED]


def test_session_tokens_joining_a_run_are_notified(
    stub_fetcher_factory, record_factory, pool, fixed_clock
) -> None:
    gate = threading.Event()
    fetcher = stub_fetcher_factory(_responses(record_factory), gate=gate)
    channel = ProgressChannel(DeliveryMode.SESSION)
    starter, joiner, stranger = QueueObserver(), QueueObserver(), QueueObserver()
    channel.connect(starter, token="starter")
    channel.connect(joiner, token="joiner")
    channel.connect(stranger, token="stranger")
    coordinator = _coordinator(fetcher, pool, fixed_clock, channel=channel)

    coordinator.request_refresh(token="starter")
    joined = coordinator.request_refresh(token="joiner")
    assert joined.status is RefreshStatus.IN_PROGRESS
    assert joined.token == "joiner"

    gate.set()
    joined.wait(timeout=5)
    coordinator.shutdown(wait=True)

    starter_types = [event.type for event in starter]
    joiner_types = [event.type for event in joiner]
    assert starter_types[0] is EventType.RUN_STARTED
    assert starter_types[-1] is EventType.RUN_COMPLETED
    assert joiner_types[-1] is EventType.RUN_COMPLETED
    assert starter.closed and joiner.closed
    assert not stranger.closed
    assert stranger.drain() == []


class BrokenObserver:
    def send(self, event) -> None:
        raise ConnectionError("peer went away")

    def close(self) -> None:
        return None


def test_failing_observer_does_not_abort_the_run(
    stub_fetcher_factory, record_factory, pool, fixed_clock, recording_observer
) -> None:
    channel = ProgressChannel(DeliveryMode.BROADCAST)
    channel.connect(BrokenObserver())
    channel.connect(recording_observer)
    coordinator = _coordinator(
        stub_fetcher_factory(_responses(record_factory)), pool, fixed_clock, channel=channel
    )

    result = coordinator.refresh(timeout=5)
    coordinator.shutdown(wait=True)

    assert result.count == 3
    assert channel.observer_count == 1
    assert EventType.RUN_FAILED not in recording_observer.types()
    assert EventType.CATEGORY_FAILED not in recording_observer.types()
    assert coordinator.cache.is_valid(fixed_clock())


def test_session_token_without_observer_still_completes(
    stub_fetcher_factory, record_factory, pool, fixed_clock
) -> None:
    channel = ProgressChannel(DeliveryMode.SESSION)
    coordinator = _coordinator(
        stub_fetcher_factory(_responses(record_factory)), pool, fixed_clock, channel=channel
    )

    result = coordinator.refresh(token="nobody-connected", timeout=5)
    coordinator.shutdown(wait=True)

    assert result.count == 3
    assert coordinator.cache.is_valid(fixed_clock())


def test_connect_replays_todays_cache(
    stub_fetcher_factory, record_factory, pool, fixed_clock
) -> None:
    coordinator = _coordinator(stub_fetcher_factory(_responses(record_factory)), pool, fixed_clock)
    before = QueueObserver()
    coordinator.connect(before)
    assert before.drain() == []
    coordinator.disconnect(before)

    coordinator.refresh(timeout=5)
    coordinator.shutdown(wait=True)

    late = QueueObserver()
    coordinator.connect(late)
    events = late.drain()
    assert [event.type for event in events] == [EventType.CACHED]
    assert events[0].payload["finalCount"] == 3

    fixed_clock.now = fixed_clock.now + timedelta(days=1)
    next_day = QueueObserver()
    coordinator.connect(next_day)
    assert next_day.drain() == []


def test_terminal_event_is_delivered_before_waiters_wake(
    stub_fetcher_factory, record_factory, pool, fixed_clock, recording_observer
) -> None:
    channel = ProgressChannel(DeliveryMode.BROADCAST)
    channel.connect(recording_observer)
    coordinator = _coordinator(
        stub_fetcher_factory(_responses(record_factory)), pool, fixed_clock, channel=channel
    )

    coordinator.request_refresh().wait(timeout=5)
    assert recording_observer.types()[-1] is EventType.RUN_COMPLETED
    coordinator.shutdown(wait=True)


def test_runs_are_submitted_on_the_shared_pool(pool, fixed_clock) -> None:
    seen: list[str] = []

    class RecordingAggregator:
        def run_all(self, categories, publish=None):
            seen.append(threading.current_thread().name)
            return AggregateResult(records=[], outcomes={})

    coordinator = RequestCoordinator(
        RecordingAggregator(),
        CacheStore(),
        ProgressChannel(DeliveryMode.BROADCAST),
        CATEGORIES,
        clock=fixed_clock,
        thread_pool=pool,
    )
    coordinator.refresh(timeout=5)
    coordinator.shutdown(wait=True)

    assert len(seen) == 1
    assert seen[0].startswith("trendboard_")
    assert pool.get().submit(lambda: "still open").result(timeout=5) == "still open"
