"""
pending_log.py - Durable FIFO of mutations awaiting remote confirmation

The log is one process-wide entry in the key-value store: only one
identity holds a session on a device at a time.
"""

import json
import logging
from typing import List

from .local_db import KeyValueStore
from .models import PendingOperation

logger = logging.getLogger("PendingLog")

PENDING_OPS_KEY = "salesync_pending_ops"
PENDING_OPS_BACKUP_KEY = "salesync_pending_ops_unreadable"


class PendingOperationLog:

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _read_raw(self) -> List[dict]:
        serialized = self.store.get(PENDING_OPS_KEY)
        if not serialized:
            return []
        try:
            data = json.loads(serialized)
        except ValueError as e:
            logger.error(f"Pending operation log unreadable: {e}")
            self._back_up(serialized)
            return []
        if not isinstance(data, list):
            logger.error("Pending operation log is not a list")
            self._back_up(serialized)
            return []
        return data

    def _back_up(self, serialized: str):
        """Keep the unreadable log aside so the next append cannot destroy it."""
        if self.store.get(PENDING_OPS_BACKUP_KEY) != serialized:
            self.store.set(PENDING_OPS_BACKUP_KEY, serialized)
            logger.warning(f"Unreadable pending log saved under '{PENDING_OPS_BACKUP_KEY}'")

    def append(self, operation: PendingOperation):
        """
        Add an operation at the tail of the log.

        Args:
            operation: Upload or delete awaiting remote confirmation
        """
        ops = self._read_raw()
        ops.append(operation.to_dict())
        self.store.set(PENDING_OPS_KEY, json.dumps(ops))
        logger.info(
            f"Queued {operation.kind.value} of '{operation.record_id}' "
            f"({len(ops)} pending)"
        )

    def drain(self) -> List[PendingOperation]:
        """Read every queued operation in enqueue order, without removing them."""
        operations = []
        for item in self._read_raw():
            try:
                operations.append(PendingOperation.from_dict(item))
            except (ValueError, KeyError, TypeError) as e:
                logger.error(f"Skipping unreadable pending operation: {e}")
        return operations

    def clear(self, include_backup: bool = False):
        """
        Empty the log.

        Args:
            include_backup: Also drop a saved unreadable log (used when local
                data is erased for an identity)
        """
        keys = [PENDING_OPS_KEY]
        if include_backup:
            keys.append(PENDING_OPS_BACKUP_KEY)
        self.store.remove_many(keys)

    def count(self) -> int:
        return len(self._read_raw())

    def __len__(self) -> int:
        return self.count()
