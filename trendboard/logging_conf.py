"""Logging configuration built around structlog JSON logging."""

from __future__ import annotations

import logging
import logging.config
import threading
from pathlib import Path
from typing import Any, Iterable

import structlog

from .config.loader import resolve_home

_CONFIGURED: tuple[Path, str] | None = None
_STRUCTLOG_READY = False
_CONFIG_LOCK = threading.Lock()


def _default_log_dir() -> Path:
    return resolve_home() / "logs"


def category_slug(category: str) -> str:
    """Filesystem-safe name for a category; the empty category is ``overall``."""

    if not category:
        return "overall"
    replacements = {"#": "sharp", "+": "plus"}
    slug = "".join(replacements.get(ch, ch.lower() if ch.isalnum() else "-") for ch in category)
    return slug.strip("-") or "overall"


def _handler_config(log_dir: Path, level: str) -> dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "json",
            },
            "app_file": {
                "class": "logging.FileHandler",
                "level": "INFO",
                "filename": str(log_dir / "trendboard.log"),
                "encoding": "utf-8",
                "formatter": "json",
            },
            "error_file": {
                "class": "logging.FileHandler",
                "level": "ERROR",
                "filename": str(log_dir / "error.log"),
                "encoding": "utf-8",
                "formatter": "json",
            },
        },
        "loggers": {
            "trendboard": {
                "handlers": ["console", "app_file", "error_file"],
                "level": level,
                "propagate": False,
            },
        },
    }


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers and return the application logger.

    Handlers are rebuilt only when the log directory or the level changes, so
    repeated calls are cheap. A ``verbose`` call switches to DEBUG; later
    non-verbose calls keep whatever level is active.
    """

    global _CONFIGURED, _STRUCTLOG_READY
    log_dir = _default_log_dir()
    level = "DEBUG" if verbose else "INFO"

    # category workers reach this concurrently on the first run
    with _CONFIG_LOCK:
        (log_dir / "categories").mkdir(parents=True, exist_ok=True)
        if _CONFIGURED is not None and _CONFIGURED[0] == log_dir and not verbose:
            level = _CONFIGURED[1]
        if _CONFIGURED != (log_dir, level):
            logging.config.dictConfig(_handler_config(log_dir, level))
            _CONFIGURED = (log_dir, level)

        if not _STRUCTLOG_READY:
            structlog.configure(
                processors=[
                    structlog.contextvars.merge_contextvars,
                    structlog.processors.TimeStamper(fmt="iso"),
                    structlog.stdlib.add_log_level,
                    structlog.processors.StackInfoRenderer(),
                    structlog.processors.format_exc_info,
                    structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
                ],
                logger_factory=structlog.stdlib.LoggerFactory(),
                cache_logger_on_first_use=True,
            )
            _STRUCTLOG_READY = True
    return structlog.get_logger("trendboard")


def category_logger(category: str, verbose: bool = False) -> structlog.BoundLogger:
    """Logger bound to ``category`` that also writes ``logs/categories/<slug>.log``."""

    configure_logging(verbose)
    slug = category_slug(category)
    path = category_log_path(category)

    py_logger = logging.getLogger(f"trendboard.category.{slug}")
    with _CONFIG_LOCK:
        stale = [
            handler
            for handler in py_logger.handlers
            if isinstance(handler, logging.FileHandler) and handler.baseFilename != str(path)
        ]
        for handler in stale:
            py_logger.removeHandler(handler)
            handler.close()
        if not any(isinstance(handler, logging.FileHandler) for handler in py_logger.handlers):
            file_handler = logging.FileHandler(path, encoding="utf-8")
            app_handlers = logging.getLogger("trendboard").handlers
            if app_handlers:
                file_handler.setFormatter(app_handlers[0].formatter)
            file_handler.setLevel(logging.INFO)
            py_logger.addHandler(file_handler)

    return structlog.get_logger(py_logger.name).bind(category=category)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    """Return the last N lines from a log file."""

    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        lines = stream.readlines()
    return lines[-line_count:]


def main_log_path() -> Path:
    return _default_log_dir() / "trendboard.log"


def category_log_path(category: str) -> Path:
    return _default_log_dir() / "categories" / f"{category_slug(category)}.log"


def available_category_logs() -> Iterable[Path]:
    categories_dir = _default_log_dir() / "categories"
    if not categories_dir.exists():
        return []
    return sorted(categories_dir.glob("*.log"))


__all__ = [
    "available_category_logs",
    "category_log_path",
    "category_logger",
    "category_slug",
    "configure_logging",
    "main_log_path",
    "tail_log",
]
