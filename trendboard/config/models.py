"""Pydantic models used across the trendboard configuration flow."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_CATEGORIES: tuple[str, ...] = (
    "astro",
    "c",
    "c#",
    "c++",
    "clojure",
    "dart",
    "gdscript",
    "go",
    "haskell",
    "html",
    "java",
    "javascript",
    "kotlin",
    "lua",
    "nim",
    "nix",
    "ocaml",
    "php",
    "powershell",
    "python",
    "ruby",
    "rust",
    "scala",
    "svelte",
    "swift",
    "typescript",
    "vue",
    "zig",
)


class DeliveryMode(str, Enum):
    """How progress events reach observers."""

    BROADCAST = "broadcast"
    SESSION = "session"


class ExtractorSelectors(BaseModel):
    """CSS selectors describing one trending listing row."""

    row: list[str] = Field(default_factory=lambda: ["article.Box-row", ".Box-row"])
    link: str = "h2 a"
    primary: str = 'a[href$="/stargazers"]'
    secondary: str = 'a[href$="/forks"]'
    delta: str = "span.d-inline-block.float-sm-right"
    delta_pattern: str = r"([\d,]+)\s+stars?\s+today"

    @field_validator("row", mode="before")
    @classmethod
    def _coerce_rows(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            value = [value]
        rows = [str(item).strip() for item in value or [] if str(item).strip()]
        if not rows:
            raise ValueError("At least one row selector is required")
        return rows


class SourceConfig(BaseModel):
    """Where category listings come from and how to read them."""

    url_template: str = "https://github.com/trending/{category}?since={since}"
    overall_url: str = "https://github.com/trending?since={since}"
    base_url: str = "https://github.com"
    since: str = "daily"
    request_timeout: float = 20.0
    selectors: ExtractorSelectors = Field(default_factory=ExtractorSelectors)

    @model_validator(mode="after")
    def _validate_source(self) -> "SourceConfig":
        if "{category}" not in self.url_template:
            raise ValueError("url_template must contain a {category} placeholder")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be > 0")
        if self.since not in ("daily", "weekly", "monthly"):
            raise ValueError(f"Unsupported trending window: {self.since}")
        return self


class ScheduleConfig(BaseModel):
    """When the background refresh job fires."""

    cron: str = "5 0 * * *"

    @field_validator("cron")
    @classmethod
    def _validate_cron(cls, value: str) -> str:
        if len(value.split()) != 5:
            raise ValueError("cron expects five space separated fields")
        return value


class GlobalConfig(BaseModel):
    """Global controls shared across the refresh pipeline."""

    categories: list[str] = Field(default_factory=lambda: list(DEFAULT_CATEGORIES))
    user_agent: str = "Mozilla/5.0"
    thread_pool_workers: int = 8
    delivery_mode: DeliveryMode = DeliveryMode.BROADCAST
    persist_cache: bool = True
    cache_path: Path = Field(default=Path("cache/trending.json"))
    source: SourceConfig = Field(default_factory=SourceConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)

    @field_validator("categories", mode="before")
    @classmethod
    def _coerce_categories(cls, value: Any) -> list[str]:
        if value is None:
            return list(DEFAULT_CATEGORIES)
        if not isinstance(value, (list, tuple)):
            raise ValueError("categories expects a list of identifiers")
        seen: set[str] = set()
        categories: list[str] = []
        for item in value:
            # None/"" both denote the overall listing
            name = "" if item is None else str(item).strip()
            if name in seen:
                continue
            seen.add(name)
            categories.append(name)
        return categories

    @field_validator("cache_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    @field_validator("thread_pool_workers")
    @classmethod
    def _validate_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("thread_pool_workers must be >= 1")
        return value

    def category_set(self) -> tuple[str, ...]:
        return tuple(self.categories)

    def resolved_cache_path(self, base_dir: Path) -> Path:
        """Return the cache document path relative to the data directory."""

        if not self.cache_path.is_absolute():
            return (base_dir / self.cache_path).resolve()
        return self.cache_path


__all__ = [
    "DEFAULT_CATEGORIES",
    "DeliveryMode",
    "ExtractorSelectors",
    "GlobalConfig",
    "ScheduleConfig",
    "SourceConfig",
]
