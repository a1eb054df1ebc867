"""HTTP fetching and the per-category fetch boundary."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict
from urllib.parse import quote

import httpx
import structlog

from ..config import GlobalConfig, SourceConfig
from ..errors import FetchError
from ..logging_conf import category_logger
from .extractor import RecordExtractor, TrendingPageExtractor
from .records import CategoryOutcome


@dataclass(slots=True)
class FetchRequest:
    """Input for the fetcher."""

    url: str
    headers: dict[str, str] | None = None
    timeout: float | None = None


@dataclass(slots=True)
class FetchResponse:
    """Standardised response wrapper."""

    url: str
    status_code: int
    text: str
    headers: Dict[str, str]
    raw: httpx.Response | None = field(repr=False, default=None)


class Fetcher:
    """Execute GET requests with a fixed identification header."""

    def __init__(
        self,
        global_config: GlobalConfig,
        logger: structlog.BoundLogger | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.global_config = global_config
        self.logger = logger or structlog.get_logger("trendboard.fetcher")
        self._client = httpx.Client(
            follow_redirects=True,
            timeout=global_config.source.request_timeout,
            headers={"User-Agent": global_config.user_agent},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def fetch(self, request: FetchRequest) -> FetchResponse:
        timeout = request.timeout or self.global_config.source.request_timeout
        try:
            response = self._client.get(request.url, headers=request.headers, timeout=timeout)
        except httpx.TimeoutException as exc:
            raise FetchError(f"Timed out after {timeout}s: {request.url}", request.url) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"Request failed: {exc}", request.url) from exc
        if self._is_failure(response):
            raise FetchError(
                f"Unexpected status {response.status_code}",
                request.url,
                status_code=response.status_code,
            )
        return FetchResponse(
            url=str(response.url),
            status_code=response.status_code,
            text=response.text,
            headers=dict(response.headers),
            raw=response,
        )

    @staticmethod
    def _is_failure(response: httpx.Response) -> bool:
        return not response.is_success


class CategoryFetcher:
    """One retrieval plus extraction for one category; never raises."""

    def __init__(
        self,
        fetcher: Fetcher,
        source: SourceConfig,
        extractor: RecordExtractor | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.source = source
        self.extractor = extractor or TrendingPageExtractor(source.selectors, source.base_url)

    def category_url(self, category: str) -> str:
        if not category:
            return self.source.overall_url.format(since=self.source.since)
        return self.source.url_template.format(
            category=quote(category, safe=""), since=self.source.since
        )

    def fetch_category(self, category: str) -> CategoryOutcome:
        log = category_logger(category)
        url = self.category_url(category)
        try:
            response = self.fetcher.fetch(
                FetchRequest(url=url, timeout=self.source.request_timeout)
            )
        except FetchError as exc:
            log.warning(
                "category_fetch_failed", url=url, status=exc.status_code, error=str(exc)
            )
            return CategoryOutcome.failure(category, str(exc))
        except Exception as exc:  # noqa: BLE001
            log.error("category_fetch_error", url=url, error=str(exc))
            return CategoryOutcome.failure(category, str(exc))

        try:
            records = self.extractor.extract(response.text, category)
        except Exception as exc:  # noqa: BLE001
            log.error("category_extract_error", url=url, error=str(exc))
            return CategoryOutcome.failure(category, f"extraction failed: {exc}")
        log.info("category_fetched", url=url, count=len(records))
        return CategoryOutcome.success(category, records)


__all__ = ["CategoryFetcher", "FetchRequest", "FetchResponse", "Fetcher"]
