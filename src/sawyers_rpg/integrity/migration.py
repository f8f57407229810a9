"""Version-tagged migrations for persisted game state.

Each :class:`MigrationTrack` follows one version tag stored in the save
metadata (for example ``equipmentVersion``). Steps form an explicit lattice:
a step only fires when the stored tag equals its ``from_version`` and it
stamps ``to_version`` once applied. A missing tag means the oldest layout.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..errors import MigrationError
from .equipment import EQUIPMENT_SLOTS, EQUIPMENT_VERSION, LEGACY_EQUIPMENT_VERSION

logger = logging.getLogger(__name__)

INITIAL_VERSION = "0.0"
CREATURE_VERSION = "1.0"

# First empty slot wins when placing a legacy accessory
ACCESSORY_SLOT_PRIORITY: Tuple[str, ...] = ("necklace", "ring1", "charm")

Transform = Callable[[Dict[str, Any]], Dict[str, Any]]


@dataclass(frozen=True)
class MigrationStep:
    from_version: str
    to_version: str
    transform: Transform
    description: str = ""


@dataclass(frozen=True)
class MigrationTrack:
    name: str
    version_key: str
    current_version: str
    steps: Tuple[MigrationStep, ...]

    def __post_init__(self) -> None:
        sources = [s.from_version for s in self.steps]
        if len(set(sources)) != len(sources):
            raise ValueError(f"Track {self.name} has more than one step from the same version")

    def step_from(self, version: str) -> Optional[MigrationStep]:
        for step in self.steps:
            if step.from_version == version:
                return step
        return None


@dataclass
class MigrationOutcome:
    payload: Dict[str, Any]
    versions: Dict[str, str]
    applied: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.applied)


class MigrationEngine:
    def __init__(self, tracks: Sequence[MigrationTrack]) -> None:
        keys = [t.version_key for t in tracks]
        if len(set(keys)) != len(keys):
            raise ValueError("Migration tracks must use distinct version keys")
        self.tracks: Tuple[MigrationTrack, ...] = tuple(tracks)

    def current_versions(self) -> Dict[str, str]:
        return {t.version_key: t.current_version for t in self.tracks}

    def needs_migration(self, versions: Mapping[str, Any]) -> bool:
        return any(
            (versions.get(t.version_key) or INITIAL_VERSION) != t.current_version for t in self.tracks
        )

    def migrate(self, payload: Dict[str, Any], versions: Mapping[str, Any]) -> MigrationOutcome:
        """Bring every track up to its current version.

        ``payload`` is not modified. Raises :class:`MigrationError` when a
        stored version has no path forward (unknown or newer than this build).
        """
        data = copy.deepcopy(payload)
        stamped = {k: v for k, v in versions.items() if isinstance(v, str)}
        applied: List[str] = []

        for track in self.tracks:
            version = stamped.get(track.version_key) or INITIAL_VERSION
            visited = set()
            while version != track.current_version:
                step = track.step_from(version)
                if step is None or version in visited:
                    raise MigrationError(
                        f"No {track.name} migration from version {version!r} to {track.current_version!r}"
                    )
                visited.add(version)
                data = step.transform(data)
                logger.info("Migrated %s %s -> %s", track.name, step.from_version, step.to_version)
                applied.append(f"{track.name}:{step.from_version}->{step.to_version}")
                version = step.to_version
            stamped[track.version_key] = version

        return MigrationOutcome(payload=data, versions=stamped, applied=applied)


def migrate_legacy_equipment(equipment: Mapping[str, Any]) -> Dict[str, Any]:
    """Map the 3-slot ``{weapon, armor, accessory}`` layout onto the 10-slot one.

    Unknown legacy keys are kept as-is. All ten slots are always present.
    """
    migrated: Dict[str, Any] = {k: v for k, v in equipment.items() if k != "accessory"}
    for slot in EQUIPMENT_SLOTS:
        migrated.setdefault(slot, None)

    accessory = equipment.get("accessory")
    if accessory is not None:
        for slot in ACCESSORY_SLOT_PRIORITY:
            if migrated[slot] is None:
                migrated[slot] = accessory
                break
        else:
            logger.warning("No free accessory slot for legacy accessory %r; keeping it", accessory)
            migrated["accessory"] = accessory
    return migrated


def _equipment_0_to_1(payload: Dict[str, Any]) -> Dict[str, Any]:
    player = payload.get("player")
    if isinstance(player, dict):
        equipment = player.get("equipment")
        player["equipment"] = migrate_legacy_equipment(equipment if isinstance(equipment, dict) else {})
    return payload


BREEDING_DEFAULTS: Mapping[str, Any] = {
    "generation": 0,
    "breedingCount": 0,
    "exhaustionLevel": 0,
    "parentIds": [None, None],
    "inheritedAbilities": [],
    "passiveTraits": [],
}


def _iter_creatures(payload: Dict[str, Any]):
    collection = payload.get("creatures")
    if isinstance(collection, dict):
        creatures = collection.get("creatures")
        if isinstance(creatures, dict):
            yield from creatures.values()
        elif isinstance(creatures, list):
            yield from creatures
    captured = payload.get("capturedMonsters")
    if isinstance(captured, list):
        yield from captured


def _creatures_0_to_1(payload: Dict[str, Any]) -> Dict[str, Any]:
    for creature in _iter_creatures(payload):
        if not isinstance(creature, dict):
            continue
        for key, default in BREEDING_DEFAULTS.items():
            if creature.get(key) is None:
                creature[key] = copy.deepcopy(default)
    return payload


EQUIPMENT_TRACK = MigrationTrack(
    name="equipment",
    version_key="equipmentVersion",
    current_version=EQUIPMENT_VERSION,
    steps=(
        MigrationStep(LEGACY_EQUIPMENT_VERSION, EQUIPMENT_VERSION, _equipment_0_to_1, "3-slot to 10-slot equipment"),
    ),
)

CREATURE_TRACK = MigrationTrack(
    name="creatures",
    version_key="creatureVersion",
    current_version=CREATURE_VERSION,
    steps=(
        MigrationStep(INITIAL_VERSION, CREATURE_VERSION, _creatures_0_to_1, "breeding metadata defaults"),
    ),
)


def default_engine() -> MigrationEngine:
    return MigrationEngine([EQUIPMENT_TRACK, CREATURE_TRACK])
