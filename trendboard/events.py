"""Progress channel delivering refresh lifecycle events to observers.

Two delivery modes are supported:

* ``broadcast``: every connected observer receives every event.
* ``session``: observers connect with a correlation token; an event is only
  delivered to the tokens it is addressed to and the session is closed once
  a terminal event (``run-completed``, ``run-failed`` or ``cached``) went out.

Delivery is best effort. An observer whose ``send`` raises is dropped and the
failure is logged; producers never see observer errors.
"""

from __future__ import annotations

import queue
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from threading import Lock
from typing import TYPE_CHECKING, Any, Iterable, Iterator, Protocol

import structlog

from .config import DeliveryMode

if TYPE_CHECKING:
    from .cache import CachedResult


class EventType(str, Enum):
    RUN_STARTED = "run-started"
    CATEGORY_STARTED = "category-started"
    CATEGORY_SUCCEEDED = "category-succeeded"
    CATEGORY_FAILED = "category-failed"
    RUN_COMPLETED = "run-completed"
    RUN_FAILED = "run-failed"
    CACHED = "cached"


TERMINAL_EVENTS = frozenset({EventType.RUN_COMPLETED, EventType.RUN_FAILED, EventType.CACHED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """A single lifecycle or per-category notification."""

    type: EventType
    payload: dict[str, Any] = field(default_factory=dict)
    emitted_at: datetime = field(default_factory=_utcnow)

    @property
    def terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    @property
    def category(self) -> str | None:
        return self.payload.get("category")

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "payload": dict(self.payload),
            "emittedAt": self.emitted_at.isoformat(),
        }

    @classmethod
    def run_started(cls, total: int) -> "ProgressEvent":
        return cls(EventType.RUN_STARTED, {"totalCategories": total})

    @classmethod
    def category_started(cls, category: str) -> "ProgressEvent":
        return cls(EventType.CATEGORY_STARTED, {"category": category})

    @classmethod
    def category_succeeded(cls, category: str, count: int) -> "ProgressEvent":
        return cls(EventType.CATEGORY_SUCCEEDED, {"category": category, "count": count})

    @classmethod
    def category_failed(cls, category: str, reason: str) -> "ProgressEvent":
        return cls(EventType.CATEGORY_FAILED, {"category": category, "reason": reason})

    @classmethod
    def run_completed(
        cls, final_count: int, generated_at: date, failed_categories: Iterable[str] = ()
    ) -> "ProgressEvent":
        return cls(
            EventType.RUN_COMPLETED,
            {
                "finalCount": final_count,
                "generatedAt": generated_at.isoformat(),
                "failedCategories": list(failed_categories),
            },
        )

    @classmethod
    def run_failed(cls, reason: str) -> "ProgressEvent":
        return cls(EventType.RUN_FAILED, {"reason": reason})

    @classmethod
    def cached(cls, result: "CachedResult") -> "ProgressEvent":
        return cls(
            EventType.CACHED,
            {
                "records": [record.to_dict() for record in result.records],
                "generatedAt": result.generated_at.isoformat(),
                "finalCount": len(result.records),
            },
        )


class Observer(Protocol):
    """Transport-side consumer of progress events."""

    def send(self, event: ProgressEvent) -> None:
        ...

    def close(self) -> None:
        ...


class QueueObserver:
    """Observer buffering events in a thread-safe queue.

    Iterating the observer yields events until the channel closes it.
    """

    _CLOSED = object()

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=maxsize)
        self.closed = False

    def send(self, event: ProgressEvent) -> None:
        if self.closed:
            raise RuntimeError("observer is closed")
        self._queue.put_nowait(event)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put(self._CLOSED)

    def get(self, timeout: float | None = None) -> ProgressEvent | None:
        """Next event, or ``None`` once the observer is closed or the wait times out."""

        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is self._CLOSED:
            # keep the sentinel so later readers stop too
            self._queue.put(self._CLOSED)
            return None
        return item

    def drain(self) -> list[ProgressEvent]:
        events: list[ProgressEvent] = []
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is self._CLOSED:
                self._queue.put(self._CLOSED)
                break
            events.append(item)
        return events

    def __iter__(self) -> Iterator[ProgressEvent]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event


class ProgressChannel:
    """Publish/subscribe hub between the refresh pipeline and its observers."""

    def __init__(
        self,
        mode: DeliveryMode = DeliveryMode.BROADCAST,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.mode = DeliveryMode(mode)
        self.logger = logger or structlog.get_logger("trendboard.events")
        self._observers: list[Observer] = []
        self._sessions: dict[str, Observer] = {}
        self._lock = Lock()

    @property
    def observer_count(self) -> int:
        with self._lock:
            return len(self._observers) + len(self._sessions)

    def connect(
        self,
        observer: Observer,
        token: str | None = None,
        cached: "CachedResult | None" = None,
    ) -> None:
        """Attach an observer; ``cached`` is sent to it straight away when given."""

        replaced: Observer | None = None
        with self._lock:
            if self.mode is DeliveryMode.SESSION:
                if not token:
                    raise ValueError("session delivery requires a correlation token")
                replaced = self._sessions.get(token)
                self._sessions[token] = observer
            else:
                self._observers.append(observer)
        if replaced is not None and replaced is not observer:
            self._close_quietly(replaced)
        self.logger.debug("observer_connected", mode=self.mode.value, token=token)
        if cached is not None:
            self._deliver(observer, ProgressEvent.cached(cached), token)

    def disconnect(self, observer: Observer | None = None, token: str | None = None) -> None:
        with self._lock:
            if token is not None:
                self._sessions.pop(token, None)
            if observer is not None:
                self._observers = [item for item in self._observers if item is not observer]
                for key in [key for key, item in self._sessions.items() if item is observer]:
                    del self._sessions[key]

    def publish(self, event: ProgressEvent, tokens: Iterable[str] | None = None) -> int:
        """Deliver ``event``; return how many observers received it."""

        if self.mode is DeliveryMode.SESSION:
            wanted = [token for token in (tokens or ()) if token]
            with self._lock:
                targets = [(token, self._sessions.get(token)) for token in wanted]
            delivered = 0
            for token, observer in targets:
                if observer is None:
                    self.logger.debug("session_missing", token=token, event_type=event.type.value)
                    continue
                if self._deliver(observer, event, token):
                    delivered += 1
                if event.terminal:
                    self.close_session(token)
            return delivered

        with self._lock:
            targets_broadcast = list(self._observers)
        return sum(1 for observer in targets_broadcast if self._deliver(observer, event, None))

    def close_session(self, token: str) -> None:
        with self._lock:
            observer = self._sessions.pop(token, None)
        if observer is not None:
            self._close_quietly(observer)

    def close(self) -> None:
        with self._lock:
            observers = list(self._observers) + list(self._sessions.values())
            self._observers.clear()
            self._sessions.clear()
        for observer in observers:
            self._close_quietly(observer)

    def _deliver(self, observer: Observer, event: ProgressEvent, token: str | None) -> bool:
        try:
            observer.send(event)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning(
                "observer_send_failed", event_type=event.type.value, token=token, error=str(exc)
            )
            self.disconnect(observer=observer)
            return False
        return True

    def _close_quietly(self, observer: Observer) -> None:
        try:
            observer.close()
        except Exception as exc:  # noqa: BLE001
            self.logger.debug("observer_close_failed", error=str(exc))


__all__ = [
    "EventType",
    "Observer",
    "ProgressChannel",
    "ProgressEvent",
    "QueueObserver",
    "TERMINAL_EVENTS",
]
