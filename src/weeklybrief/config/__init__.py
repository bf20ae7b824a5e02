"""Settings loading."""

from weeklybrief.config.loader import (
    AuthSettings,
    CacheSettings,
    ChannelRule,
    ChannelSettings,
    CostSettings,
    MetricSource,
    ReentrySettings,
    ReshapeSettings,
    Settings,
    WarehouseSettings,
    load_settings,
)

__all__ = [
    "AuthSettings",
    "CacheSettings",
    "ChannelRule",
    "ChannelSettings",
    "CostSettings",
    "MetricSource",
    "ReentrySettings",
    "ReshapeSettings",
    "Settings",
    "WarehouseSettings",
    "load_settings",
]
