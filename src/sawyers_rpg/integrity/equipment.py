"""Equipment slot layout and cleanup of slots that reference unknown items."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

EQUIPMENT_VERSION = "1.0"
LEGACY_EQUIPMENT_VERSION = "0.0"

# 10-slot layout introduced with equipment version 1.0
EQUIPMENT_SLOTS: Tuple[str, ...] = (
    "weapon",
    "armor",
    "helmet",
    "necklace",
    "shield",
    "gloves",
    "boots",
    "ring1",
    "ring2",
    "charm",
)

LEGACY_SLOTS: Tuple[str, ...] = ("weapon", "armor", "accessory")

ItemLookup = Callable[[str], bool]


def empty_equipment() -> Dict[str, Optional[str]]:
    return {slot: None for slot in EQUIPMENT_SLOTS}


def catalog_lookup(item_ids: Iterable[str]) -> ItemLookup:
    return frozenset(item_ids).__contains__


@dataclass(frozen=True)
class EquipmentCleanup:
    equipment: Dict[str, Any]
    invalid_slots: Tuple[str, ...]
    warnings: Tuple[str, ...]

    @property
    def changed(self) -> bool:
        return bool(self.invalid_slots)


def clean_invalid_equipment(equipment: Dict[str, Any], item_exists: ItemLookup) -> EquipmentCleanup:
    """Clear every slot whose item id is unknown. Other slots are left untouched.

    Returns a new mapping; ``equipment`` is not modified.
    """
    cleaned = dict(equipment)
    invalid: List[str] = []
    warnings: List[str] = []
    for slot, item_id in equipment.items():
        if item_id is None:
            continue
        if isinstance(item_id, str) and item_exists(item_id):
            continue
        cleaned[slot] = None
        invalid.append(slot)
        warnings.append(f"Your {slot} item is no longer available and was unequipped.")
        logger.warning("Unequipped unknown item %r from slot %s", item_id, slot)
    return EquipmentCleanup(equipment=cleaned, invalid_slots=tuple(invalid), warnings=tuple(warnings))
