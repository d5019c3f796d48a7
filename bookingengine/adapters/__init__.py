"""
Adapters layer - Record store and settings caching.
"""

from .memory_store import InMemoryRecordStore
from .settings_cache import SettingsCache

__all__ = ["InMemoryRecordStore", "SettingsCache"]
