"""Core components for ShopAssist."""

from shopassist.core.config import Settings, configure_logging, get_settings
from shopassist.core.connection import DatabaseConnection
from shopassist.core.schema import APPLICATION_TABLES, metadata

__all__ = [
    "APPLICATION_TABLES",
    "DatabaseConnection",
    "Settings",
    "configure_logging",
    "get_settings",
    "metadata",
]
