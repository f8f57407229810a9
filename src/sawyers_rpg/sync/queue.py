from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_MAX_PENDING = 100


@dataclass(frozen=True)
class PendingSync:
    slot_index: int
    timestamp: int
    record: Dict[str, Any]
    queued_at: int

    @property
    def key(self) -> Tuple[int, int]:
        return (self.slot_index, self.timestamp)


class PendingSyncQueue:
    """Uploads deferred while offline, keyed by ``(slot, timestamp)``.

    Adding the same snapshot twice is a no-op and a newer snapshot for a slot
    supersedes any older one still waiting.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_PENDING) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._entries: "OrderedDict[Tuple[int, int], PendingSync]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Tuple[int, int]) -> bool:
        return key in self._entries

    def add(self, entry: PendingSync) -> bool:
        if entry.key in self._entries:
            return False
        for key, existing in list(self._entries.items()):
            if existing.slot_index == entry.slot_index:
                if existing.timestamp > entry.timestamp:
                    logger.debug("Ignoring stale pending sync for slot %s", entry.slot_index)
                    return False
                del self._entries[key]
        if len(self._entries) >= self.max_size:
            dropped_key, _ = self._entries.popitem(last=False)
            logger.warning("Pending sync queue full; dropped %s", dropped_key)
        self._entries[entry.key] = entry
        logger.info("Queued cloud sync for slot %s (timestamp %s)", entry.slot_index, entry.timestamp)
        return True

    def pending(self) -> List[PendingSync]:
        return list(self._entries.values())

    def for_slot(self, slot_index: int) -> Optional[PendingSync]:
        for entry in self._entries.values():
            if entry.slot_index == slot_index:
                return entry
        return None

    def remove(self, key: Tuple[int, int]) -> None:
        self._entries.pop(key, None)

    def discard_through(self, slot_index: int, timestamp: int) -> None:
        """Forget queued uploads for a slot that are no newer than ``timestamp``."""
        for key, entry in list(self._entries.items()):
            if entry.slot_index == slot_index and entry.timestamp <= timestamp:
                del self._entries[key]
