"""Thread pool abstraction keeping fan-out and coordination work apart."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from threading import Lock
from typing import Dict


class ThreadPoolManager:
    """Manage the shared pool plus named pools."""

    def __init__(self, default_workers: int = 8) -> None:
        self.default_workers = default_workers
        self._default_executor = ThreadPoolExecutor(
            max_workers=default_workers, thread_name_prefix="trendboard"
        )
        self._executors: Dict[str, ThreadPoolExecutor] = {}
        self._lock = Lock()

    def get(self, name: str | None = None, max_workers: int | None = None) -> ThreadPoolExecutor:
        """Return the named pool; its size is fixed by the first caller."""

        if name is None:
            return self._default_executor
        with self._lock:
            if name not in self._executors:
                workers = max(1, max_workers or self.default_workers)
                self._executors[name] = ThreadPoolExecutor(
                    max_workers=workers, thread_name_prefix=f"trendboard-{name}"
                )
            return self._executors[name]

    def shutdown(self, wait: bool = False) -> None:
        self._default_executor.shutdown(wait=wait)
        with self._lock:
            executors = list(self._executors.values())
            self._executors.clear()
        for executor in executors:
            executor.shutdown(wait=wait)


__all__ = ["ThreadPoolManager"]
