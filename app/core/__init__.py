"""Shared infrastructure for the sales analytics service.

Settings, the async database session, the in-process cache, structured
logging and RFC 7807 error handling live here; feature packages under
``app.features`` build on them.
"""

from app.core.cache import CacheStore, derive_key, get_cache
from app.core.config import Settings, get_settings
from app.core.database import Base, get_db
from app.core.logging import get_logger

__all__ = [
    "Base",
    "CacheStore",
    "Settings",
    "derive_key",
    "get_cache",
    "get_db",
    "get_logger",
    "get_settings",
]
