"""Engine components orchestrating fetch → extract → dedup → merge."""

from .aggregator import Aggregator
from .dedup import RecordDeduplicator, dedupe_records
from .extractor import RecordExtractor, TrendingPageExtractor
from .fetcher import CategoryFetcher, FetchRequest, FetchResponse, Fetcher
from .records import AggregateResult, CategoryOutcome, OutcomeStatus, TrendingRecord
from .thread_pool import ThreadPoolManager

__all__ = [
    "AggregateResult",
    "Aggregator",
    "CategoryFetcher",
    "CategoryOutcome",
    "FetchRequest",
    "FetchResponse",
    "Fetcher",
    "OutcomeStatus",
    "RecordDeduplicator",
    "RecordExtractor",
    "ThreadPoolManager",
    "TrendingPageExtractor",
    "TrendingRecord",
    "dedupe_records",
]
