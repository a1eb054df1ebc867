"""Fan-out of category fetches and merge of their results."""

from __future__ import annotations

from concurrent.futures import Future, as_completed
from typing import Callable, Protocol, Sequence

import structlog

from ..events import ProgressEvent
from .dedup import dedupe_records
from .records import AggregateResult, CategoryOutcome, TrendingRecord
from .thread_pool import ThreadPoolManager

Publish = Callable[[ProgressEvent], None]


class SupportsFetchCategory(Protocol):
    def fetch_category(self, category: str) -> CategoryOutcome:
        ...


class Aggregator:
    """Run one fetch per category concurrently and merge the results.

    Records are deduplicated on ``source_url`` keeping the first occurrence in
    completion order. A failing category only marks its own outcome as failed.
    """

    pool_name = "aggregator"

    def __init__(
        self,
        category_fetcher: SupportsFetchCategory,
        thread_pool: ThreadPoolManager,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.category_fetcher = category_fetcher
        self.thread_pool = thread_pool
        self.logger = logger or structlog.get_logger("trendboard.aggregator")

    def run_all(self, categories: Sequence[str], publish: Publish | None = None) -> AggregateResult:
        categories = list(categories)
        if not categories:
            return AggregateResult(records=[], outcomes={})

        executor = self.thread_pool.get(self.pool_name, max_workers=len(categories))
        futures: dict[Future[CategoryOutcome], str] = {
            executor.submit(self._fetch_one, category, publish): category
            for category in categories
        }

        outcomes: dict[str, CategoryOutcome] = {}
        collected: list[TrendingRecord] = []
        for future in as_completed(futures):
            category = futures[future]
            try:
                outcome = future.result()
            except Exception as exc:  # noqa: BLE001
                self.logger.error("category_task_crashed", category=category, error=str(exc))
                outcome = CategoryOutcome.failure(category, str(exc))
            outcomes[category] = outcome
            collected.extend(outcome.records)
            if outcome.ok:
                self._emit(publish, ProgressEvent.category_succeeded(category, outcome.count))
            else:
                self._emit(
                    publish,
                    ProgressEvent.category_failed(category, outcome.reason or "unknown error"),
                )

        records = dedupe_records(collected)
        result = AggregateResult(records=records, outcomes=outcomes)
        self.logger.info(
            "aggregate_completed",
            categories=len(categories),
            fetched=len(collected),
            records=len(records),
            failed=result.failed_categories,
        )
        return result

    def _fetch_one(self, category: str, publish: Publish | None) -> CategoryOutcome:
        self._emit(publish, ProgressEvent.category_started(category))
        return self.category_fetcher.fetch_category(category)

    def _emit(self, publish: Publish | None, event: ProgressEvent) -> None:
        if publish is None:
            return
        try:
            publish(event)
        except Exception as exc:  # noqa: BLE001
            self.logger.warning("progress_publish_failed", event_type=event.type.value, error=str(exc))


__all__ = ["Aggregator", "Publish", "SupportsFetchCategory"]
