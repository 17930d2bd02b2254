"""
local_cache.py - Per-identity snapshot of the last known record set

Each identity's records are stored as one JSON value. The snapshot is
always replaced wholesale, never patched in place.
"""

import json
import logging
from typing import List, Sequence

from .local_db import KeyValueStore
from .models import Record

logger = logging.getLogger("LocalCache")

CACHE_KEY_PREFIX = "salesync_cache_"


class LocalCache:

    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def _key(identity_id: int) -> str:
        return f"{CACHE_KEY_PREFIX}{identity_id}"

    def cache_data(self, identity_id: int, records: Sequence[Record]):
        """
        Overwrite the entire snapshot for an identity.

        Args:
            identity_id: Owner of the snapshot
            records: Full record set; replaces whatever was cached
        """
        serialized = json.dumps([r.to_dict() for r in records])
        self.store.set(self._key(identity_id), serialized)
        logger.debug(f"Cached {len(records)} records for identity {identity_id}")

    def get_cached_data(self, identity_id: int) -> List[Record]:
        """Return the cached records, or an empty list if nothing usable is cached."""
        serialized = self.store.get(self._key(identity_id))
        if not serialized:
            return []
        try:
            return [Record.from_dict(item) for item in json.loads(serialized)]
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Failed to read cache for identity {identity_id}: {e}")
            return []

    def clear_user_cache(self, identity_id: int):
        """
        Erase one identity's snapshot.

        Args:
            identity_id: Owner of the snapshot
        """
        self.store.remove(self._key(identity_id))

    def clear_all_cache(self):
        """Erase every identity's snapshot."""
        keys = self.store.keys(CACHE_KEY_PREFIX)
        self.store.remove_many(keys)
        if keys:
            logger.info(f"Cleared {len(keys)} cached snapshots")
