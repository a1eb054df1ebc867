"""Terminal presentation helpers."""

from .progress import CategoryProgress, ProgressState
from .table import SORT_FIELDS, render_records_table, sort_records

__all__ = [
    "CategoryProgress",
    "ProgressState",
    "SORT_FIELDS",
    "render_records_table",
    "sort_records",
]
