"""Refresh coordination: cache policy, single-flight runs and lifecycle events."""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from threading import Lock
from typing import Any, Callable, Iterable, Protocol, Sequence

import structlog

from .cache import CachedResult, CacheStore
from .engine.records import AggregateResult
from .engine.thread_pool import ThreadPoolManager
from .errors import RefreshFailed
from .events import Observer, ProgressChannel, ProgressEvent
from .logging_conf import configure_logging

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SupportsRunAll(Protocol):
    def run_all(self, categories: Sequence[str], publish=None) -> AggregateResult:
        ...


class CoordinatorState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"


class RefreshStatus(str, Enum):
    CACHED = "cached"
    STARTED = "started"
    IN_PROGRESS = "in-progress"


@dataclass(slots=True)
class RefreshTicket:
    """Immediate answer to a refresh request; ``result`` resolves with the run."""

    status: RefreshStatus
    result: Future[CachedResult]
    generated_at: date | None = None
    token: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"status": self.status.value}
        if self.status is RefreshStatus.CACHED and self.generated_at is not None:
            payload["generatedAt"] = self.generated_at.isoformat()
        return payload

    def wait(self, timeout: float | None = None) -> CachedResult:
        return self.result.result(timeout=timeout)


class RefreshState:
    """Process-wide in-flight marker guarding "start a new run"."""

    def __init__(self) -> None:
        self.in_flight = False
        self.in_flight_result: Future[CachedResult] | None = None
        self.tokens: list[str] = []
        self.lock = Lock()

    def add_token(self, token: str | None) -> None:
        if token and token not in self.tokens:
            self.tokens.append(token)

    def snapshot_tokens(self) -> list[str]:
        with self.lock:
            return list(self.tokens)


class RequestCoordinator:
    """Decide between cache hit, joining a run, or starting a new one."""

    def __init__(
        self,
        aggregator: SupportsRunAll,
        cache: CacheStore,
        channel: ProgressChannel,
        categories: Iterable[str],
        clock: Clock | None = None,
        thread_pool: ThreadPoolManager | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.aggregator = aggregator
        self.cache = cache
        self.channel = channel
        self.categories: tuple[str, ...] = tuple(categories)
        self.clock = clock or utc_now
        self.refresh_state = RefreshState()
        self._owns_pool = thread_pool is None
        self.thread_pool = thread_pool or ThreadPoolManager(default_workers=1)
        self.logger = logger or configure_logging().bind(component="coordinator")

    @property
    def state(self) -> CoordinatorState:
        with self.refresh_state.lock:
            return CoordinatorState.FETCHING if self.refresh_state.in_flight else CoordinatorState.IDLE

    def request_refresh(self, force_refresh: bool = False, token: str | None = None) -> RefreshTicket:
        """Trigger a refresh and return without waiting for it."""

        cached: CachedResult | None = None
        with self.refresh_state.lock:
            if not force_refresh and self.cache.is_valid(self.clock()):
                cached = self.cache.get()
            if cached is None:
                if self.refresh_state.in_flight and self.refresh_state.in_flight_result is not None:
                    self.refresh_state.add_token(token)
                    self.logger.info("refresh_joined", token=token, forced=force_refresh)
                    return RefreshTicket(
                        status=RefreshStatus.IN_PROGRESS,
                        result=self.refresh_state.in_flight_result,
                        token=token,
                    )
                future: Future[CachedResult] = Future()
                self.refresh_state.in_flight = True
                self.refresh_state.in_flight_result = future
                self.refresh_state.tokens = []
                self.refresh_state.add_token(token)
                # Emptiness becomes visible only now that a run is certain.
                self.cache.clear()

        if cached is not None:
            return self._serve_cached(cached, token)

        self.logger.info(
            "refresh_started", token=token, forced=force_refresh, categories=len(self.categories)
        )
        try:
            self.thread_pool.get().submit(self._run, future)
        except Exception as exc:  # noqa: BLE001
            self._finish_failed(future, exc)
        return RefreshTicket(status=RefreshStatus.STARTED, result=future, token=token)

    def connect(self, observer: Observer, token: str | None = None) -> None:
        """Attach an observer; it gets today's result straight away when one is cached."""

        cached = self.cache.get() if self.cache.is_valid(self.clock()) else None
        self.channel.connect(observer, token=token, cached=cached)

    def disconnect(self, observer: Observer, token: str | None = None) -> None:
        self.channel.disconnect(observer=observer, token=token)

    def refresh(
        self,
        force_refresh: bool = False,
        token: str | None = None,
        timeout: float | None = None,
    ) -> CachedResult:
        """Synchronous shape: block until the merged set is available."""

        return self.request_refresh(force_refresh=force_refresh, token=token).wait(timeout)

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_pool:
            self.thread_pool.shutdown(wait=wait)

    def _serve_cached(self, cached: CachedResult, token: str | None) -> RefreshTicket:
        self.logger.info(
            "refresh_cache_hit", token=token, generated_at=cached.generated_at.isoformat()
        )
        self.channel.publish(ProgressEvent.cached(cached), tokens=[token] if token else None)
        future: Future[CachedResult] = Future()
        future.set_result(cached)
        return RefreshTicket(
            status=RefreshStatus.CACHED,
            result=future,
            generated_at=cached.generated_at,
            token=token,
        )

    def _publish(self, event: ProgressEvent) -> None:
        self.channel.publish(event, tokens=self.refresh_state.snapshot_tokens())

    def _run(self, future: Future[CachedResult]) -> None:
        try:
            self._publish(ProgressEvent.run_started(len(self.categories)))
            aggregate = self.aggregator.run_all(self.categories, publish=self._publish)
            result = CachedResult.build(aggregate.records, self.clock())
            self.cache.replace(result)
        except Exception as exc:  # noqa: BLE001
            self._finish_failed(future, exc)
            return

        tokens = self._release()
        self.logger.info(
            "refresh_completed",
            count=result.count,
            generated_at=result.generated_at.isoformat(),
            failed=aggregate.failed_categories,
        )
        # observers see the terminal event before waiters wake up
        self.channel.publish(
            ProgressEvent.run_completed(
                result.count, result.generated_at, aggregate.failed_categories
            ),
            tokens=tokens,
        )
        future.set_result(result)

    def _finish_failed(self, future: Future[CachedResult], exc: BaseException) -> None:
        self.logger.error("refresh_failed", error=str(exc), exc_info=exc)
        tokens = self._release()
        failure = RefreshFailed(f"Refresh aborted: {exc}")
        failure.__cause__ = exc
        self.channel.publish(ProgressEvent.run_failed(str(exc)), tokens=tokens)
        if not future.done():
            future.set_exception(failure)

    def _release(self) -> list[str]:
        with self.refresh_state.lock:
            tokens = list(self.refresh_state.tokens)
            self.refresh_state.in_flight = False
            self.refresh_state.in_flight_result = None
            self.refresh_state.tokens = []
        return tokens


__all__ = [
    "CoordinatorState",
    "RefreshState",
    "RefreshStatus",
    "RefreshTicket",
    "RequestCoordinator",
    "utc_now",
]
