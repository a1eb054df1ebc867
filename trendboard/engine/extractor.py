"""Listing extraction: raw category HTML in, trending records out."""

from __future__ import annotations

import re
from typing import Protocol
from urllib.parse import urljoin

import structlog
from selectolax.parser import HTMLParser, Node

from ..config import ExtractorSelectors
from .records import TrendingRecord

_DIGITS = re.compile(r"\d[\d,]*")


class RecordExtractor(Protocol):
    """Contract for per-source extractors.

    Implementations are pure: no I/O and no shared state. A malformed item is
    omitted and the rest of the content still yields records; an empty list
    is a valid answer, never an error.
    """

    def extract(self, raw_content: str, category: str) -> list[TrendingRecord]:
        ...


def parse_count(text: str | None) -> int | None:
    """Parse ``"1,234"``-style counters; ``None`` when no digits are present."""

    if not text:
        return None
    match = _DIGITS.search(text)
    if match is None:
        return None
    return int(match.group(0).replace(",", ""))


class TrendingPageExtractor:
    """Extract records from a trending listing page using CSS selectors."""

    def __init__(
        self,
        selectors: ExtractorSelectors | None = None,
        base_url: str = "https://github.com",
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.selectors = selectors or ExtractorSelectors()
        self.base_url = base_url
        self.logger = logger or structlog.get_logger("trendboard.extractor")
        self._delta_pattern = re.compile(self.selectors.delta_pattern, re.IGNORECASE)

    def extract(self, raw_content: str, category: str) -> list[TrendingRecord]:
        if not raw_content:
            return []
        parser = HTMLParser(raw_content)
        records: list[TrendingRecord] = []
        for row in self._rows(parser):
            try:
                record = self._parse_row(row, category)
            except Exception as exc:  # noqa: BLE001
                self.logger.debug("row_parse_failed", category=category, error=str(exc))
                continue
            if record is not None:
                records.append(record)
        return records

    def _rows(self, parser: HTMLParser) -> list[Node]:
        for selector in self.selectors.row:
            rows = parser.css(selector)
            if rows:
                return rows
        return []

    def _parse_row(self, row: Node, category: str) -> TrendingRecord | None:
        link = row.css_first(self.selectors.link)
        href = (link.attributes.get("href") or "").strip() if link is not None else ""
        if not href:
            return None
        source_url = urljoin(self.base_url, href)

        primary_node = row.css_first(self.selectors.primary)
        primary = parse_count(primary_node.text(strip=True)) if primary_node is not None else None

        secondary_node = row.css_first(self.selectors.secondary)
        secondary = (
            parse_count(secondary_node.text(strip=True)) if secondary_node is not None else None
        )

        return TrendingRecord(
            category=category,
            source_url=source_url,
            primary_metric=primary if primary is not None else 0,
            delta_metric=self._delta(row),
            secondary_metric=secondary,
        )

    def _delta(self, row: Node) -> int | None:
        node = row.css_first(self.selectors.delta)
        haystack = node.text(separator=" ", strip=True) if node is not None else ""
        match = self._delta_pattern.search(haystack)
        if match is None:
            match = self._delta_pattern.search(row.text(separator=" ", strip=True))
        if match is None:
            return None
        return int(match.group(1).replace(",", ""))


__all__ = ["RecordExtractor", "TrendingPageExtractor", "parse_count"]
