"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    DEFAULT_CATEGORIES,
    DeliveryMode,
    ExtractorSelectors,
    GlobalConfig,
    ScheduleConfig,
    SourceConfig,
)

__all__ = [
    "ConfigLocator",
    "ConfigRepository",
    "DEFAULT_CATEGORIES",
    "DeliveryMode",
    "ExtractorSelectors",
    "GlobalConfig",
    "ScheduleConfig",
    "SourceConfig",
]
