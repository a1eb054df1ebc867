"""First-occurrence deduplication keyed on the record locator."""

from __future__ import annotations

from threading import Lock
from typing import Iterable

from .records import TrendingRecord


class RecordDeduplicator:
    """Keep the first record seen for each ``source_url``.

    Scoped to a single run; nothing is remembered across runs.
    """

    def __init__(self) -> None:
        self._seen: set[str] = set()
        self._records: list[TrendingRecord] = []
        self._duplicates = 0
        self._lock = Lock()

    def add(self, record: TrendingRecord) -> bool:
        with self._lock:
            if record.source_url in self._seen:
                self._duplicates += 1
                return False
            self._seen.add(record.source_url)
            self._records.append(record)
            return True

    def add_many(self, records: Iterable[TrendingRecord]) -> int:
        return sum(1 for record in records if self.add(record))

    @property
    def duplicates(self) -> int:
        return self._duplicates

    def records(self) -> list[TrendingRecord]:
        with self._lock:
            return list(self._records)


def dedupe_records(records: Iterable[TrendingRecord]) -> list[TrendingRecord]:
    deduplicator = RecordDeduplicator()
    deduplicator.add_many(records)
    return deduplicator.records()


__all__ = ["RecordDeduplicator", "dedupe_records"]
