"""Day-scoped result cache with optional JSON persistence."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Iterable

import structlog

from .engine.records import TrendingRecord
from .errors import CacheIOError


@dataclass(frozen=True, slots=True)
class CachedResult:
    """Merged records of one successful run plus when they were built."""

    records: tuple[TrendingRecord, ...]
    generated_at: date
    built_at: datetime

    @classmethod
    def build(cls, records: Iterable[TrendingRecord], now: datetime) -> "CachedResult":
        return cls(records=tuple(records), generated_at=now.date(), built_at=now)

    @property
    def count(self) -> int:
        return len(self.records)

    def to_document(self) -> dict[str, Any]:
        return {
            "records": [record.to_dict() for record in self.records],
            "generatedAt": self.generated_at.isoformat(),
            "builtAt": self.built_at.isoformat(),
        }

    @classmethod
    def from_document(cls, payload: dict[str, Any]) -> "CachedResult":
        # {repos, lastFetchedDate} is the layout written by earlier releases
        raw_records = payload.get("records", payload.get("repos"))
        raw_date = payload.get("generatedAt", payload.get("lastFetchedDate"))
        if not isinstance(raw_records, list) or not raw_date:
            raise ValueError("cache document is missing records or generatedAt")
        generated_at = date.fromisoformat(str(raw_date))
        built_raw = payload.get("builtAt")
        if built_raw:
            built_at = datetime.fromisoformat(str(built_raw))
        else:
            built_at = datetime.combine(generated_at, datetime.min.time(), tzinfo=timezone.utc)
        records = []
        for item in raw_records:
            if not isinstance(item, dict):
                continue
            try:
                records.append(TrendingRecord.from_dict(item))
            except ValueError:
                continue
        return cls(records=tuple(records), generated_at=generated_at, built_at=built_at)


class CacheFile:
    """Single JSON document holding the last successful result."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def read(self) -> CachedResult | None:
        if not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(payload, dict):
                raise ValueError("cache document must be a JSON object")
            return CachedResult.from_document(payload)
        except (OSError, ValueError) as exc:
            raise CacheIOError(f"Unable to read cache file {self.path}: {exc}") from exc

    def write(self, result: CachedResult) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as stream:
                    json.dump(result.to_document(), stream, ensure_ascii=False)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise CacheIOError(f"Unable to write cache file {self.path}: {exc}") from exc

    def delete(self) -> bool:
        if self.path.exists():
            self.path.unlink()
            return True
        return False


class CacheStore:
    """Hold the current ``CachedResult``; every swap is a single reference replace."""

    def __init__(
        self,
        cache_file: CacheFile | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.cache_file = cache_file
        self.logger = logger or structlog.get_logger("trendboard.cache")
        self._result: CachedResult | None = None
        self._loaded = cache_file is None
        self._lock = Lock()

    def load(self) -> None:
        """Read the persisted document once, if memory holds nothing yet."""

        with self._lock:
            if self._loaded:
                return
            self._loaded = True
            if self.cache_file is None:
                return
            try:
                stored = self.cache_file.read()
            except CacheIOError as exc:
                self.logger.warning("cache_read_failed", error=str(exc))
                return
            if stored is not None and self._result is None:
                self._result = stored
                self.logger.info(
                    "cache_loaded", generated_at=stored.generated_at.isoformat(), count=stored.count
                )

    def get(self) -> CachedResult | None:
        self.load()
        with self._lock:
            return self._result

    def is_valid(self, now: datetime | date) -> bool:
        result = self.get()
        if result is None:
            return False
        today = now.date() if isinstance(now, datetime) else now
        return result.generated_at == today

    def replace(self, new_result: CachedResult) -> None:
        with self._lock:
            self._result = new_result
            self._loaded = True
        if self.cache_file is None:
            return
        try:
            self.cache_file.write(new_result)
        except CacheIOError as exc:
            self.logger.warning("cache_write_failed", error=str(exc))

    def clear(self) -> None:
        with self._lock:
            self._result = None
            # a cleared store must not fall back to the stale document
            self._loaded = True


__all__ = ["CacheFile", "CacheStore", "CachedResult"]
