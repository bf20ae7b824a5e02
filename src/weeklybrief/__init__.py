"""Weekly Brief - cost-controlled KPI queries and year-aligned chart series."""

from weeklybrief.config.loader import Settings, load_settings
from weeklybrief.service import BriefService

__version__ = "0.1.0"

__all__ = ["BriefService", "Settings", "load_settings"]
