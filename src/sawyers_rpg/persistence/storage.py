from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import QuotaExceededError, StructuralError
from ..utils.fs import atomic_write_bytes, ensure_dir, is_disk_full
from ..utils.jsonutil import canonical_dumps, strict_loads

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "sawyers_rpg_save_slot_"


class SlotStorage(ABC):
    """Key-value storage for serialized save records, one key per slot."""

    def __init__(self, *, key_prefix: str = DEFAULT_KEY_PREFIX, quota_bytes: Optional[int] = None) -> None:
        self.key_prefix = key_prefix
        self.quota_bytes = quota_bytes

    def key_for(self, slot_index: int) -> str:
        return f"{self.key_prefix}{slot_index}"

    @abstractmethod
    def read_raw(self, slot_index: int) -> Optional[str]:
        """Return the stored text for a slot, or None if the slot is empty."""

    @abstractmethod
    def write_raw(self, slot_index: int, text: str) -> None:
        """Replace the slot's contents. Must be all-or-nothing."""

    @abstractmethod
    def delete(self, slot_index: int) -> bool:
        """Remove a slot. Returns False if it was already empty."""

    @abstractmethod
    def used_bytes(self, exclude_slot: Optional[int] = None) -> int:
        """Total bytes stored, optionally ignoring one slot."""

    def read(self, slot_index: int) -> Optional[Dict[str, Any]]:
        try:
            text = self.read_raw(slot_index)
        except UnicodeDecodeError as exc:
            logger.error("Slot %s is not UTF-8 text: %s", slot_index, exc)
            raise StructuralError(f"Slot {slot_index} is not UTF-8 text") from exc
        if text is None:
            return None
        try:
            return strict_loads(text)
        except ValueError as exc:
            logger.error("Slot %s holds unreadable data: %s", slot_index, exc)
            raise StructuralError(f"Slot {slot_index} is not valid JSON: {exc}") from exc

    def write(self, slot_index: int, record: Dict[str, Any]) -> int:
        """Serialize and store a record. Returns the stored size in bytes."""
        text = canonical_dumps(record)
        size = len(text.encode("utf-8"))
        if self.quota_bytes is not None:
            total = self.used_bytes(exclude_slot=slot_index) + size
            if total > self.quota_bytes:
                logger.warning("Quota exceeded writing slot %s: %d > %d bytes", slot_index, total, self.quota_bytes)
                raise QuotaExceededError(f"Writing slot {slot_index} needs {total} bytes; quota is {self.quota_bytes}")
        self.write_raw(slot_index, text)
        return size


class LocalFileSlotStorage(SlotStorage):
    """Stores each slot as ``<base_dir>/saves/<key>.json``."""

    def __init__(self, base_dir: Path, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.save_dir = Path(base_dir) / "saves"
        ensure_dir(self.save_dir)

    def path_for(self, slot_index: int) -> Path:
        return self.save_dir / f"{self.key_for(slot_index)}.json"

    def read_raw(self, slot_index: int) -> Optional[str]:
        path = self.path_for(slot_index)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write_raw(self, slot_index: int, text: str) -> None:
        path = self.path_for(slot_index)
        try:
            atomic_write_bytes(path, text.encode("utf-8"))
        except OSError as exc:
            if is_disk_full(exc):
                logger.exception("Disk full while writing %s", path)
                raise QuotaExceededError(f"No space left to write {path}") from exc
            raise
        logger.debug("Wrote slot %s to %s", slot_index, path)

    def delete(self, slot_index: int) -> bool:
        path = self.path_for(slot_index)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Deleted save slot %s (%s)", slot_index, path)
        return True

    def used_bytes(self, exclude_slot: Optional[int] = None) -> int:
        skip = self.path_for(exclude_slot) if exclude_slot is not None else None
        total = 0
        for path in self.save_dir.glob(f"{self.key_prefix}*.json"):
            if path != skip:
                total += path.stat().st_size
        return total


class InMemorySlotStorage(SlotStorage):
    """Test/deterministic storage that keeps serialized records in a dict."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.items: Dict[str, str] = {}

    def read_raw(self, slot_index: int) -> Optional[str]:
        return self.items.get(self.key_for(slot_index))

    def write_raw(self, slot_index: int, text: str) -> None:
        self.items[self.key_for(slot_index)] = text

    def delete(self, slot_index: int) -> bool:
        return self.items.pop(self.key_for(slot_index), None) is not None

    def used_bytes(self, exclude_slot: Optional[int] = None) -> int:
        skip = self.key_for(exclude_slot) if exclude_slot is not None else None
        return sum(len(v.encode("utf-8")) for k, v in self.items.items() if k != skip)
