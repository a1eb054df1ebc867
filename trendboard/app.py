"""Typer CLI entrypoint for trendboard."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .cache import CacheFile, CacheStore
from .config import ConfigRepository, DeliveryMode, GlobalConfig
from .engine import Aggregator, CategoryFetcher, Fetcher, ThreadPoolManager
from .errors import RefreshFailed
from .events import ProgressChannel
from .logging_conf import (
    available_category_logs,
    category_log_path,
    configure_logging,
    main_log_path,
    tail_log,
)
from .orchestrator import RefreshStatus, RequestCoordinator
from .scheduler import APSchedulerAdapter
from .ui import SORT_FIELDS, CategoryProgress, render_records_table
from .ui.progress import display_category

app = typer.Typer(
    help="trendboard: aggregated trending listings, cached once per day",
    no_args_is_help=True,
    rich_markup_mode=None,
)
cache_app = typer.Typer(name="cache", help="Inspect or drop the cached result.", no_args_is_help=True)
log_app = typer.Typer(name="log", help="Read log files.", no_args_is_help=True)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    config: GlobalConfig
    thread_pool: ThreadPoolManager
    fetcher: Fetcher
    cache: CacheStore
    channel: ProgressChannel
    coordinator: RequestCoordinator
    scheduler: APSchedulerAdapter

    def close(self) -> None:
        self.coordinator.shutdown(wait=False)
        self.thread_pool.shutdown()
        self.fetcher.close()


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    repository = ConfigRepository()
    config = repository.load_global_config()
    thread_pool = ThreadPoolManager(config.thread_pool_workers)
    fetcher = Fetcher(config)
    aggregator = Aggregator(CategoryFetcher(fetcher, config.source), thread_pool)
    cache_file = CacheFile(repository.cache_path()) if config.persist_cache else None
    cache = CacheStore(cache_file)
    channel = ProgressChannel(config.delivery_mode)
    coordinator = RequestCoordinator(
        aggregator, cache, channel, config.category_set(), thread_pool=thread_pool
    )
    return AppState(
        repository=repository,
        config=config,
        thread_pool=thread_pool,
        fetcher=fetcher,
        cache=cache,
        channel=channel,
        coordinator=coordinator,
        scheduler=APSchedulerAdapter(),
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _progress_default_enabled() -> bool:
    return console.is_terminal


def _validate_sort(sort: str) -> str:
    if sort not in SORT_FIELDS:
        raise typer.BadParameter(f"choose one of: {', '.join(SORT_FIELDS)}", param_hint="--sort")
    return sort


def _render_failures(failures: dict[str, str]) -> Table:
    table = Table(title=f"Failed categories · {len(failures)}", box=box.SIMPLE_HEAD)
    table.add_column("Category", style="red", no_wrap=True)
    table.add_column("Reason", style="dim", overflow="fold")
    for category, reason in sorted(failures.items()):
        table.add_row(display_category(category), reason)
    return table


app.add_typer(cache_app, name="cache")
app.add_typer(log_app, name="log")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    state = build_state(verbose)
    ctx.obj = state
    ctx.call_on_close(state.close)


@app.command("refresh", help="Fetch every category, or serve today's cached result.")
def refresh(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", help="Ignore today's cache and fetch again."),
    sort: str = typer.Option("category", "--sort", help="Sort column: category|url|stars|today|forks."),
    desc: bool = typer.Option(False, "--desc", help="Sort descending."),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="Show at most N rows."),
    quiet: bool = typer.Option(False, "--quiet", help="Only print the summary line."),
) -> None:
    state = _get_state(ctx)
    sort = _validate_sort(sort)
    token = uuid4().hex if state.channel.mode is DeliveryMode.SESSION else None
    progress = CategoryProgress(enabled=not quiet and _progress_default_enabled(), console=console)
    state.coordinator.connect(progress, token=token)
    try:
        ticket = state.coordinator.request_refresh(force_refresh=force, token=token)
        result = ticket.wait()
    except RefreshFailed as exc:
        console.print(f"Refresh failed: {exc}", style="red")
        raise typer.Exit(code=1)
    finally:
        progress.close()
        state.coordinator.disconnect(progress, token=token)

    if ticket.status is RefreshStatus.CACHED:
        console.print(
            f"Served {result.count} records from the cache generated on {result.generated_at.isoformat()}.",
            style="green",
        )
    else:
        summary = progress.summary()
        console.print(
            f"Fetched {result.count} unique records · "
            f"{summary['success']} categories ok · {summary['failed']} failed.",
            style="green" if not summary["failed"] else "yellow",
        )
    if quiet:
        return
    console.print(
        render_records_table(
            result.records,
            title=f"Trending · {result.generated_at.isoformat()}",
            sort_field=sort,
            descending=desc,
            limit=limit,
        )
    )
    failures = progress.state.failed_categories
    if failures:
        console.print(_render_failures(failures))


@app.command("categories", help="List the configured category set.")
def categories(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    category_set = state.config.category_set()
    table = Table(title=f"Categories · {len(category_set)}", box=box.SIMPLE_HEAD)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Category", style="cyan")
    for index, category in enumerate(category_set, start=1):
        table.add_row(str(index), display_category(category))
    console.print(table)


@app.command("schedule", help="Run the daily refresh job until interrupted.")
def schedule(
    ctx: typer.Context,
    run_now: bool = typer.Option(False, "--run-now", help="Trigger one refresh immediately."),
) -> None:
    state = _get_state(ctx)
    state.scheduler.schedule_refresh(state.coordinator.request_refresh, state.config.schedule)
    state.scheduler.start()
    for job in state.scheduler.list_jobs():
        console.print(f"{job['id']} · next run {job['next_run_time']} · {job['trigger']}", style="cyan")
    if run_now:
        ticket = state.coordinator.request_refresh()
        console.print(f"Refresh {ticket.status.value}.", style="dim")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("Stopping scheduler.", style="yellow")
    finally:
        state.scheduler.shutdown()


@cache_app.command("show", help="Render the cached result without fetching.")
def cache_show(
    ctx: typer.Context,
    sort: str = typer.Option("category", "--sort", help="Sort column: category|url|stars|today|forks."),
    desc: bool = typer.Option(False, "--desc", help="Sort descending."),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="Show at most N rows."),
) -> None:
    state = _get_state(ctx)
    sort = _validate_sort(sort)
    cached = state.cache.get()
    if cached is None:
        console.print("No cached result yet. Run `trendboard refresh`.", style="yellow")
        raise typer.Exit(code=0)
    fresh = state.cache.is_valid(state.coordinator.clock())
    status = "fresh" if fresh else "stale"
    console.print(
        render_records_table(
            cached.records,
            title=f"Cached trending · {cached.generated_at.isoformat()} ({status}) · {cached.count} records",
            sort_field=sort,
            descending=desc,
            limit=limit,
        )
    )


@cache_app.command("clear", help="Drop the cached result and its file.")
def cache_clear(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    state.cache.clear()
    removed = state.cache.cache_file.delete() if state.cache.cache_file is not None else False
    console.print("Cache cleared." if removed else "Nothing persisted; memory cache cleared.", style="green")


@log_app.command("list", help="List category log files.")
def log_list() -> None:
    logs = list(available_category_logs())
    if not logs:
        console.print("No category logs yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("tail", help="Show the last lines of a category log or the main log.")
def log_tail(
    category: Optional[str] = typer.Argument(None, help="Category name; omit for the main log."),
    lines: int = typer.Option(100, "--lines", "-n", min=1, help="Number of lines."),
) -> None:
    if category is None:
        path = main_log_path()
    else:
        path = category_log_path(category)
    content = tail_log(path, lines)
    if not content:
        console.print("No log lines yet.", style="dim")
        return
    console.print(f"{path.name} · last {len(content)} lines", style="cyan")
    console.print("".join(content), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
