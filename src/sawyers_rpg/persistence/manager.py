from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..errors import ChecksumMismatch, InvalidSlotError, MigrationError, RecoveryFailure, SlotEmptyError, StructuralError
from ..integrity.checksum import generate_checksum, verify_checksum
from ..integrity.equipment import ItemLookup, clean_invalid_equipment
from ..integrity.migration import MigrationEngine, default_engine
from ..integrity.recovery import CHECKSUM_FIELD, attempt_recovery
from ..integrity.schema import DEFAULT_GAME_STATE_SCHEMA, SchemaDescriptor
from ..integrity.validator import validate_structure
from .clock import Clock, SystemClock
from .models import SaveMetadata, SaveRecord, SlotSummary
from .session import GameSession
from .storage import SlotStorage

logger = logging.getLogger(__name__)

DEFAULT_SLOT_COUNT = 5


@dataclass
class SaveResult:
    slot_index: int
    metadata: SaveMetadata
    checksum: str
    size_bytes: int
    message: str = "Game saved."


@dataclass
class LoadResult:
    slot_index: int
    state: Dict[str, Any]
    metadata: SaveMetadata
    checksum_valid: bool
    recovered: bool = False
    repaired_fields: Tuple[str, ...] = ()
    migrations: List[str] = field(default_factory=list)
    cleaned_slots: Tuple[str, ...] = ()
    warnings: List[str] = field(default_factory=list)
    legacy: bool = False

    @property
    def message(self) -> str:
        if self.legacy:
            return "Your save was upgraded from an older version of the game."
        if self.recovered:
            return "Your save had some damage and was repaired."
        return "Game loaded."


class SaveSlotManager:
    """Saves and loads the live game state to numbered slots.

    Load pipeline: read -> checksum check -> validate -> recover (if needed)
    -> migrate -> clean equipment -> commit. Nothing reaches the session
    until every step has succeeded.
    """

    NOTICE_DAMAGED = "This save appears damaged and could not be repaired."
    NOTICE_TOO_NEW = "This save was made with a newer version of the game and cannot be loaded."

    def __init__(
        self,
        storage: SlotStorage,
        session: GameSession,
        *,
        clock: Optional[Clock] = None,
        schema: SchemaDescriptor = DEFAULT_GAME_STATE_SCHEMA,
        migration_engine: Optional[MigrationEngine] = None,
        item_exists: Optional[ItemLookup] = None,
        strict_mode: bool = False,
        deep_validation: bool = True,
        slot_count: int = DEFAULT_SLOT_COUNT,
    ) -> None:
        if slot_count < 1:
            raise ValueError("slot_count must be at least 1")
        self.storage = storage
        self.session = session
        self.clock = clock or SystemClock()
        self.schema = schema
        self.migrations = migration_engine or default_engine()
        self.item_exists = item_exists
        self.strict_mode = strict_mode
        self.deep_validation = deep_validation
        self.slot_count = slot_count

    def _check_slot(self, slot_index: int) -> None:
        if isinstance(slot_index, bool) or not isinstance(slot_index, int) or not 0 <= slot_index < self.slot_count:
            raise InvalidSlotError(f"Slot {slot_index!r} is outside 0..{self.slot_count - 1}")

    # Saving -----------------------------------------------------------------

    def build_record(self, state: Dict[str, Any], slot_index: int, *, name: str = "", timestamp: Optional[int] = None) -> SaveRecord:
        """Checksum ``state`` and wrap it in a record stamped with current versions."""
        ts = self.clock.now_ms() if timestamp is None else int(timestamp)
        payload = dict(state)
        payload["timestamp"] = ts
        play_time = payload.get("totalPlayTime", 0)
        if isinstance(play_time, bool) or not isinstance(play_time, (int, float)):
            play_time = 0
        player = payload.get("player")
        if not name and isinstance(player, dict) and isinstance(player.get("name"), str):
            name = player["name"]
        versions = self.migrations.current_versions()
        metadata = SaveMetadata(
            timestamp=ts,
            slot_index=slot_index,
            total_play_time=play_time,
            equipment_version=versions.get("equipmentVersion", "0.0"),
            creature_version=versions.get("creatureVersion", "0.0"),
            name=name,
        )
        try:
            checksum = generate_checksum(payload)
        except (TypeError, ValueError) as exc:
            raise StructuralError(f"Game state for slot {slot_index} cannot be serialized: {exc}") from exc
        return SaveRecord(payload=payload, checksum=checksum, metadata=metadata)

    def save(self, slot_index: int, name: str = "", timestamp: Optional[int] = None) -> SaveResult:
        """Write the live state to a slot, replacing whatever was there."""
        self._check_slot(slot_index)
        record = self.build_record(self.session.snapshot(), slot_index, name=name, timestamp=timestamp)
        size = self.storage.write(slot_index, record.to_dict())
        logger.info("Saved slot %s (%d bytes, checksum %s)", slot_index, size, record.checksum[:12])
        return SaveResult(slot_index=slot_index, metadata=record.metadata, checksum=record.checksum, size_bytes=size)

    def write_record(self, slot_index: int, record: SaveRecord) -> int:
        """Store a complete record (e.g. one restored from the cloud)."""
        self._check_slot(slot_index)
        if not verify_checksum(record.payload, record.checksum):
            raise ChecksumMismatch(f"Refusing to store slot {slot_index}: checksum does not match payload")
        metadata = dataclasses.replace(record.metadata, slot_index=slot_index)
        stored = SaveRecord(payload=record.payload, checksum=record.checksum, metadata=metadata)
        size = self.storage.write(slot_index, stored.to_dict())
        logger.info("Stored record for slot %s (%d bytes)", slot_index, size)
        return size

    def delete(self, slot_index: int) -> bool:
        self._check_slot(slot_index)
        removed = self.storage.delete(slot_index)
        if not removed:
            logger.debug("Delete on empty slot %s ignored", slot_index)
        return removed

    # Loading ----------------------------------------------------------------

    def read_record(self, slot_index: int) -> Optional[SaveRecord]:
        """Return the stored record or None. Raises StructuralError when unreadable."""
        self._check_slot(slot_index)
        raw = self.storage.read(slot_index)
        if raw is None:
            return None
        return SaveRecord.from_dict(raw, slot_index)

    def load(self, slot_index: int) -> LoadResult:
        try:
            record = self.read_record(slot_index)
        except StructuralError as exc:
            logger.exception("Save slot %s is unreadable", slot_index)
            raise RecoveryFailure(str(exc), user_message=self.NOTICE_DAMAGED) from exc
        if record is None:
            raise SlotEmptyError(f"Slot {slot_index} is empty")

        payload = record.payload
        checksum_valid = verify_checksum(payload, record.checksum)
        if record.is_legacy:
            logger.info("Slot %s holds a legacy save without a checksum", slot_index)
        elif not checksum_valid:
            logger.warning("Checksum mismatch in slot %s; attempting recovery", slot_index)

        validation = validate_structure(
            payload, self.schema, strict_mode=self.strict_mode, deep_validation=self.deep_validation
        )
        warnings = list(validation.warnings)
        recovered = False
        repaired: Tuple[str, ...] = ()
        if not validation.is_valid or not checksum_valid:
            corrupted = validation.corrupted_fields
            if not checksum_valid:
                corrupted = corrupted + (CHECKSUM_FIELD,)
            outcome = attempt_recovery(payload, dataclasses.replace(validation, corrupted_fields=corrupted), self.schema)
            if not outcome.recovered:
                raise RecoveryFailure(
                    f"Slot {slot_index} could not be repaired (field {outcome.failed_field!r}): "
                    + "; ".join(validation.errors),
                    user_message=self.NOTICE_DAMAGED,
                )
            payload = outcome.data
            recovered = True
            repaired = outcome.repaired_fields

        try:
            migrated = self.migrations.migrate(payload, record.metadata.versions())
        except MigrationError as exc:
            logger.exception("Migration failed for slot %s", slot_index)
            raise MigrationError(str(exc), user_message=self.NOTICE_TOO_NEW) from exc
        payload = migrated.payload

        cleaned: Tuple[str, ...] = ()
        player = payload.get("player")
        if self.item_exists is not None and isinstance(player, dict) and isinstance(player.get("equipment"), dict):
            cleanup = clean_invalid_equipment(player["equipment"], self.item_exists)
            if cleanup.changed:
                player["equipment"] = cleanup.equipment
                cleaned = cleanup.invalid_slots
                warnings.extend(cleanup.warnings)

        metadata = dataclasses.replace(
            record.metadata,
            equipment_version=migrated.versions.get("equipmentVersion", record.metadata.equipment_version),
            creature_version=migrated.versions.get("creatureVersion", record.metadata.creature_version),
        )
        self.session.replace(payload)
        logger.info(
            "Loaded slot %s (recovered=%s, migrations=%s, cleaned=%s)",
            slot_index,
            recovered,
            migrated.applied,
            list(cleaned),
        )
        return LoadResult(
            slot_index=slot_index,
            state=payload,
            metadata=metadata,
            checksum_valid=checksum_valid,
            recovered=recovered,
            repaired_fields=repaired,
            migrations=migrated.applied,
            cleaned_slots=cleaned,
            warnings=warnings,
            legacy=record.is_legacy,
        )

    # Inspection -------------------------------------------------------------

    def slot_info(self, slot_index: int) -> SlotSummary:
        try:
            record = self.read_record(slot_index)
        except StructuralError as exc:
            return SlotSummary(slot_index=slot_index, occupied=True, corrupted=True, details={"error": str(exc)})
        if record is None:
            return SlotSummary(slot_index=slot_index, occupied=False)
        validation = validate_structure(record.payload, self.schema, deep_validation=self.deep_validation)
        checksum_ok = verify_checksum(record.payload, record.checksum)
        return SlotSummary(
            slot_index=slot_index,
            occupied=True,
            name=record.metadata.name,
            timestamp=record.metadata.timestamp,
            total_play_time=record.metadata.total_play_time,
            corrupted=not (checksum_ok and validation.is_valid),
            details={
                "checksum_valid": checksum_ok,
                "legacy": record.is_legacy,
                "errors": list(validation.errors),
                "warnings": list(validation.warnings),
                "needs_migration": self.migrations.needs_migration(record.metadata.versions()),
            },
        )

    def list_slots(self) -> List[SlotSummary]:
        return [self.slot_info(i) for i in range(self.slot_count)]
