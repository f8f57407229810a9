from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from jsonschema import Draft202012Validator

from ..errors import StructuralError
from ..integrity.migration import INITIAL_VERSION

# Envelope stored in each slot. The payload itself is checked by the game-state validator.
RECORD_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["payload", "checksum", "metadata"],
    "properties": {
        "payload": {},
        "checksum": {"type": "string", "pattern": "^[0-9a-f]{64}$"},
        "metadata": {
            "type": "object",
            "required": ["timestamp", "slotIndex"],
            "properties": {
                "timestamp": {"type": "number", "minimum": 0},
                "totalPlayTime": {"type": "number", "minimum": 0},
                "equipmentVersion": {"type": "string"},
                "creatureVersion": {"type": "string"},
                "slotIndex": {"type": "integer", "minimum": 0},
                "name": {"type": "string"},
                "sourceChecksum": {"type": "string"},
            },
        },
    },
}

_RECORD_VALIDATOR = Draft202012Validator(RECORD_SCHEMA)


@dataclass
class SaveMetadata:
    timestamp: int
    slot_index: int
    total_play_time: float = 0
    equipment_version: str = INITIAL_VERSION
    creature_version: str = INITIAL_VERSION
    name: str = ""
    source_checksum: Optional[str] = None

    def versions(self) -> Dict[str, str]:
        return {"equipmentVersion": self.equipment_version, "creatureVersion": self.creature_version}

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "timestamp": self.timestamp,
            "totalPlayTime": self.total_play_time,
            "equipmentVersion": self.equipment_version,
            "creatureVersion": self.creature_version,
            "slotIndex": self.slot_index,
            "name": self.name,
        }
        if self.source_checksum is not None:
            d["sourceChecksum"] = self.source_checksum
        return d

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "SaveMetadata":
        # absent version tags mean the save predates them
        return SaveMetadata(
            timestamp=int(d["timestamp"]),
            slot_index=int(d["slotIndex"]),
            total_play_time=d.get("totalPlayTime", 0),
            equipment_version=d.get("equipmentVersion") or INITIAL_VERSION,
            creature_version=d.get("creatureVersion") or INITIAL_VERSION,
            name=d.get("name", ""),
            source_checksum=d.get("sourceChecksum"),
        )


@dataclass
class SaveRecord:
    payload: Any
    checksum: str
    metadata: SaveMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {"payload": self.payload, "checksum": self.checksum, "metadata": self.metadata.to_dict()}

    @property
    def is_legacy(self) -> bool:
        return not self.checksum

    @staticmethod
    def from_legacy(d: Dict[str, Any], slot_index: int) -> "SaveRecord":
        """Wrap a flat pre-envelope save (game state at top level, no checksum).

        The empty checksum never verifies, so loading routes it through recovery.
        """
        payload = {k: v for k, v in d.items() if k != "metadata"}
        meta = d.get("metadata") if isinstance(d.get("metadata"), dict) else {}
        timestamp = meta.get("timestamp", payload.get("timestamp", 0))
        play_time = meta.get("totalPlayTime", payload.get("totalPlayTime", 0))
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)) or timestamp < 0:
            timestamp = 0
        if isinstance(play_time, bool) or not isinstance(play_time, (int, float)) or play_time < 0:
            play_time = 0
        player = payload.get("player")
        name = meta.get("name")
        if not isinstance(name, str):
            name = player.get("name") if isinstance(player, dict) and isinstance(player.get("name"), str) else ""
        metadata = SaveMetadata(
            timestamp=int(timestamp),
            slot_index=slot_index,
            total_play_time=play_time,
            equipment_version=str(meta.get("equipmentVersion") or INITIAL_VERSION),
            creature_version=str(meta.get("creatureVersion") or INITIAL_VERSION),
            name=name,
        )
        return SaveRecord(payload=payload, checksum="", metadata=metadata)

    @staticmethod
    def from_dict(d: Any, slot_index: Optional[int] = None) -> "SaveRecord":
        """Parse a stored record.

        With ``slot_index`` given, an object holding ``player`` but no
        ``payload`` is read as a legacy flat save for that slot.
        """
        if slot_index is not None and isinstance(d, dict) and "payload" not in d and "player" in d:
            return SaveRecord.from_legacy(d, slot_index)
        errors = sorted(_RECORD_VALIDATOR.iter_errors(d), key=lambda e: list(e.path))
        if errors:
            details = "; ".join(f"{'/'.join(str(p) for p in e.path) or '<root>'}: {e.message}" for e in errors)
            raise StructuralError(f"Invalid save record: {details}")
        return SaveRecord(
            payload=d["payload"],
            checksum=d["checksum"],
            metadata=SaveMetadata.from_dict(d["metadata"]),
        )


@dataclass
class SlotSummary:
    slot_index: int
    occupied: bool
    name: str = ""
    timestamp: Optional[int] = None
    total_play_time: float = 0
    corrupted: bool = False
    details: Dict[str, Any] = field(default_factory=dict)
