# =============================================================================
# mindcare_core/offline/cache_manager.py
# In-Memory Entity Cache
# =============================================================================
"""
EntityCache - zero-latency holder for the warmed collections of a session.

Values are deep-copied on the way in and out, so a caller editing a list it
got from the cache can never change what the next reader sees.
"""

from __future__ import annotations
import copy
from datetime import datetime
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


class EntityCache:
    """
    Per-collection in-memory cache (patients, appointments, settings).

    Usage:
        cache = EntityCache()
        cache.set("patients", patients)
        cache.get("patients")        # copy of the stored snapshot
        cache.invalidate()           # next read re-fetches every collection
    """

    def __init__(self):
        self._entries: Dict[str, Any] = {}
        self._loaded_at: Dict[str, datetime] = {}

    def get(self, collection: str) -> Optional[Any]:
        """Return a copy of the cached snapshot, or None when cold."""
        if collection not in self._entries:
            return None
        return copy.deepcopy(self._entries[collection])

    def set(self, collection: str, data: Any) -> None:
        self._entries[collection] = copy.deepcopy(data)
        self._loaded_at[collection] = datetime.now()

    def has(self, collection: str) -> bool:
        return collection in self._entries

    def invalidate(self, collection: Optional[str] = None) -> None:
        """
        Clear one collection, or all of them when ``collection`` is None.
        """
        if collection is None:
            self._entries.clear()
            self._loaded_at.clear()
            logger.debug("Entity cache cleared")
        else:
            self._entries.pop(collection, None)
            self._loaded_at.pop(collection, None)
            logger.debug(f"Entity cache invalidated: {collection}")

    def get_info(self) -> Dict[str, Any]:
        """Get information about cached collections."""
        items = []
        for name, data in self._entries.items():
            items.append({
                "collection": name,
                "records": len(data) if isinstance(data, list) else 1,
                "loaded_at": self._loaded_at[name].isoformat(),
            })
        return {
            "item_count": len(items),
            "items": items,
        }
