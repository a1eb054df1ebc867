"""Sortable Rich table over trending records."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Sequence

from rich import box
from rich.table import Table

from ..engine.records import TrendingRecord
from .progress import display_category

SORT_FIELDS: dict[str, Callable[[TrendingRecord], Any]] = {
    "category": lambda record: record.category,
    "url": lambda record: record.source_url,
    "stars": lambda record: record.primary_metric,
    "today": lambda record: record.delta_metric,
    "forks": lambda record: record.secondary_metric,
}


def sort_records(
    records: Iterable[TrendingRecord], field: str = "category", descending: bool = False
) -> list[TrendingRecord]:
    """Sort by a column name; missing values always go last."""

    if field not in SORT_FIELDS:
        raise ValueError(f"Unknown sort field: {field}")
    key = SORT_FIELDS[field]
    records = list(records)
    present = [record for record in records if key(record) is not None]
    missing = [record for record in records if key(record) is None]
    present.sort(key=key, reverse=descending)
    return present + missing


def _fmt(value: int | None) -> str:
    return "N/A" if value is None else f"{value:,}"


def render_records_table(
    records: Sequence[TrendingRecord],
    title: str,
    sort_field: str = "category",
    descending: bool = False,
    limit: int | None = None,
) -> Table:
    arrow = "↓" if descending else "↑"
    headers = {
        "category": "Category",
        "url": "URL",
        "stars": "Stars",
        "today": "Today",
        "forks": "Forks",
    }
    table = Table(title=title, box=box.SIMPLE_HEAD, show_lines=False)
    for name, label in headers.items():
        heading = f"{label} {arrow}" if name == sort_field else label
        justify = "left" if name in ("category", "url") else "right"
        table.add_column(heading, justify=justify, no_wrap=name != "url", overflow="fold")
    ordered = sort_records(records, sort_field, descending)
    if limit is not None:
        ordered = ordered[:limit]
    for record in ordered:
        table.add_row(
            display_category(record.category),
            record.source_url,
            _fmt(record.primary_metric),
            _fmt(record.delta_metric),
            _fmt(record.secondary_metric),
        )
    return table


__all__ = ["SORT_FIELDS", "render_records_table", "sort_records"]
