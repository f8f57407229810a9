"""Declarative description of the persisted game state.

A :class:`SchemaDescriptor` is an ordered, immutable list of
:class:`FieldRule` entries. The validator walks the rules in order, so parent
paths must come before their children.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple

FIELD_TYPES = ("string", "number", "boolean", "array", "object")

MISSING = object()


@dataclass(frozen=True)
class FieldRule:
    path: str
    type: str
    required: bool = False
    min: Optional[float] = None
    max: Optional[float] = None
    max_length: Optional[int] = None
    deprecated: bool = False
    identity_key: Optional[str] = None
    items: Optional[str] = None

    def __post_init__(self) -> None:
        if self.type not in FIELD_TYPES:
            raise ValueError(f"Unknown field type {self.type!r} for {self.path}")
        if self.items is not None and self.items not in FIELD_TYPES:
            raise ValueError(f"Unknown element type {self.items!r} for {self.path}")
        if (self.identity_key or self.items or self.max_length is not None) and self.type != "array":
            raise ValueError(f"Element constraints require an array field: {self.path}")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"min > max for {self.path}")

    @property
    def parts(self) -> Tuple[str, ...]:
        return tuple(self.path.split("."))

    @property
    def parent(self) -> Optional[str]:
        if "." not in self.path:
            return None
        return self.path.rsplit(".", 1)[0]

    @property
    def has_elements(self) -> bool:
        return self.identity_key is not None or self.items is not None


@dataclass(frozen=True)
class SchemaDescriptor:
    version: str
    rules: Tuple[FieldRule, ...]

    def __post_init__(self) -> None:
        seen = set()
        for rule in self.rules:
            if rule.path in seen:
                raise ValueError(f"Duplicate rule for {rule.path}")
            seen.add(rule.path)

    def __iter__(self) -> Iterator[FieldRule]:
        return iter(self.rules)

    def rule_for(self, path: str) -> Optional[FieldRule]:
        for rule in self.rules:
            if rule.path == path:
                return rule
        return None


def matches_type(value: Any, expected: str) -> bool:
    if expected == "string":
        return isinstance(value, str)
    if expected == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return not (isinstance(value, float) and math.isnan(value))
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "array":
        return isinstance(value, list)
    if expected == "object":
        return isinstance(value, dict)
    return False


def type_name(value: Any) -> str:
    """JSON-ish name for ``value`` used in error messages."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def get_path(data: Any, path: str, default: Any = MISSING) -> Any:
    """Resolve a dot path. Missing intermediates and ``None`` count as missing."""
    current = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    if current is None:
        return default
    return current


def set_path(data: Dict[str, Any], path: str, value: Any) -> bool:
    """Set ``value`` at ``path``. Returns False if an intermediate is not an object."""
    parts = path.split(".")
    current: Any = data
    for part in parts[:-1]:
        if not isinstance(current, dict):
            return False
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            return False
        current = nxt
    if not isinstance(current, dict):
        return False
    current[parts[-1]] = value
    return True


def delete_path(data: Any, path: str) -> bool:
    parts = path.split(".")
    parent = get_path(data, ".".join(parts[:-1])) if len(parts) > 1 else data
    if not isinstance(parent, dict) or parts[-1] not in parent:
        return False
    del parent[parts[-1]]
    return True


DEFAULT_GAME_STATE_SCHEMA = SchemaDescriptor(
    version="1.0.0",
    rules=(
        FieldRule("player", "object", required=True),
        FieldRule("player.name", "string", required=True),
        FieldRule("player.level", "number", required=True, min=1, max=999),
        FieldRule("player.experience", "number", min=0, max=999_999_999),
        FieldRule("player.gold", "number", min=0),
        FieldRule("player.stats", "object"),
        FieldRule("player.equipment", "object"),
        FieldRule("inventory", "array", required=True, identity_key="id", max_length=1000),
        FieldRule("capturedMonsters", "array", identity_key="id"),
        FieldRule("creatures", "object"),
        FieldRule("creatures.creatures", "object"),
        FieldRule("currentArea", "string", required=True),
        FieldRule("unlockedAreas", "array", items="string"),
        FieldRule("storyFlags", "object"),
        FieldRule("completedQuests", "array", items="string"),
        FieldRule("breedingAttempts", "number", min=0),
        FieldRule("discoveredRecipes", "array", items="string"),
        FieldRule("breedingMaterials", "object"),
        FieldRule("totalPlayTime", "number", min=0),
        FieldRule("settings", "object"),
        FieldRule("timestamp", "number", required=True, min=0),
        FieldRule("oldPlayerData", "object", deprecated=True),
        FieldRule("legacyFlags", "object", deprecated=True),
        FieldRule("tempData", "object", deprecated=True),
    ),
)
