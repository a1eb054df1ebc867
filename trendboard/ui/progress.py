"""Terminal progress observer with Rich-based rendering."""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock

from rich.console import Console
from rich.errors import LiveError
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from ..events import EventType, ProgressEvent


@dataclass
class ProgressState:
    total: int = 0
    success: int = 0
    failed: int = 0
    records: int = 0
    current_category: str | None = None
    failed_categories: dict[str, str] = field(default_factory=dict)
    finished: bool = False
    final_count: int | None = None
    error: str | None = None


def display_category(category: str | None) -> str:
    if category is None:
        return ""
    return category or "(overall)"


class CategoryProgress:
    """Observer rendering one bar across the category set.

    Counters are kept even when rendering is disabled, so callers can read
    the summary in non-interactive environments.
    """

    def __init__(self, enabled: bool = True, console: Console | None = None) -> None:
        self.enabled = enabled
        self.console = console
        self.state = ProgressState()
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None
        self._lock = Lock()

    def send(self, event: ProgressEvent) -> None:
        with self._lock:
            if event.type is EventType.RUN_STARTED:
                self._start(int(event.payload.get("totalCategories", 0)))
            elif event.type is EventType.CATEGORY_STARTED:
                self.state.current_category = event.category
                self._render()
            elif event.type is EventType.CATEGORY_SUCCEEDED:
                self.state.success += 1
                self.state.records += int(event.payload.get("count", 0))
                self.state.current_category = event.category
                self._render(advance=1)
            elif event.type is EventType.CATEGORY_FAILED:
                self.state.failed += 1
                self.state.failed_categories[event.category or ""] = str(
                    event.payload.get("reason", "")
                )
                self.state.current_category = event.category
                self._render(advance=1)
            elif event.type is EventType.RUN_COMPLETED:
                self.state.final_count = int(event.payload.get("finalCount", 0))
                self._finish()
            elif event.type is EventType.RUN_FAILED:
                self.state.error = str(event.payload.get("reason", ""))
                self._finish()
            elif event.type is EventType.CACHED:
                self.state.final_count = int(event.payload.get("finalCount", 0))
                self.state.finished = True

    def close(self) -> None:
        with self._lock:
            self._stop()

    def summary(self) -> dict[str, int]:
        return {
            "success": self.state.success,
            "failed": self.state.failed,
            "records": self.state.records,
        }

    def _start(self, total: int) -> None:
        self.state = ProgressState(total=total)
        if not self.enabled:
            return
        if self.console is None:
            self.console = Console()
        if not self.console.is_terminal:
            # non-interactive output stays silent
            self.enabled = False
            return
        self._progress = Progress(
            SpinnerColumn(style="cyan"),
            TextColumn("[bold blue]{task.fields[label]:<12}", justify="left"),
            BarColumn(bar_width=None, complete_style="green", finished_style="green"),
            TaskProgressColumn(show_speed=False),
            TimeElapsedColumn(),
            TextColumn("[green]✓{task.fields[success]:>3}", justify="right"),
            TextColumn("[red]✗{task.fields[failed]:>3}", justify="right"),
            TextColumn("[dim]{task.fields[current]}", justify="left"),
            refresh_per_second=12,
            expand=True,
            transient=True,
            console=self.console,
        )
        try:
            self._progress.start()
        except LiveError:
            # another live display owns the console
            self.enabled = False
            self._progress = None
            return
        self._task_id = self._progress.add_task(
            "refresh",
            total=total,
            label="trending",
            success=0,
            failed=0,
            current="waiting…",
        )

    def _render(self, advance: int = 0) -> None:
        if self._progress is None or self._task_id is None:
            return
        self._progress.update(
            self._task_id,
            advance=advance,
            success=self.state.success,
            failed=self.state.failed,
            current=display_category(self.state.current_category),
        )

    def _finish(self) -> None:
        self.state.finished = True
        if self._progress is not None and self._task_id is not None:
            self._progress.update(
                self._task_id,
                completed=self.state.success + self.state.failed,
                current="done" if self.state.error is None else "failed",
            )
        self._stop()

    def _stop(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
        self._task_id = None


__all__ = ["CategoryProgress", "ProgressState", "display_category"]
