"""Best-effort repair of a game state that failed validation.

Recovery is a single pass over the corrupted fields reported by the
validator. Each field is repaired by the first strategy that applies; if any
field has no strategy the whole attempt fails and the input is returned
untouched.
"""
from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .equipment import empty_equipment
from .schema import DEFAULT_GAME_STATE_SCHEMA, MISSING, FieldRule, SchemaDescriptor, delete_path, get_path, matches_type, set_path
from .validator import ValidationResult, invalid_elements

logger = logging.getLogger(__name__)

CHECKSUM_FIELD = "_checksum"

DEFAULT_STATS = {
    "health": 100,
    "maxHealth": 100,
    "mana": 50,
    "maxMana": 50,
    "attack": 10,
    "defense": 10,
    "magicAttack": 10,
    "magicDefense": 10,
    "speed": 10,
    "accuracy": 10,
}


def default_player() -> Dict[str, Any]:
    return {
        "name": "Unknown Player",
        "level": 1,
        "experience": 0,
        "gold": 0,
        "stats": dict(DEFAULT_STATS),
        "equipment": empty_equipment(),
    }


DEFAULT_VALUES: Mapping[str, Any] = {
    "player": default_player(),
    "player.name": "Unknown Player",
    "player.level": 1,
    "player.stats": DEFAULT_STATS,
    "player.equipment": empty_equipment(),
    "currentArea": "starting_village",
    "unlockedAreas": ["starting_village"],
    "creatures": {"creatures": {}},
    "creatures.creatures": {},
    "storyFlags": {},
    "breedingMaterials": {},
    "settings": {},
}

_ZERO_VALUES = {"string": "", "number": 0, "boolean": False, "array": []}


@dataclass(frozen=True)
class RecoveryResult:
    recovered: bool
    data: Any
    repaired_fields: Tuple[str, ...] = ()
    failed_field: Optional[str] = None


def _coerce(value: Any, expected: str) -> Any:
    """Lossless primitive conversion, or MISSING when none exists."""
    if expected == "number":
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, str):
            try:
                number = float(value.strip())
            except ValueError:
                return MISSING
            if not math.isfinite(number):
                return MISSING
            return int(number) if number.is_integer() and "." not in value else number
    elif expected == "string":
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)) and not (isinstance(value, float) and not math.isfinite(value)):
            return str(value)
    elif expected == "boolean":
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        if isinstance(value, (int, float)) and value in (0, 1):
            return bool(value)
    return MISSING


def _clamp(rule: FieldRule, value: Any) -> Any:
    if rule.min is not None and value < rule.min:
        return rule.min
    if rule.max is not None and value > rule.max:
        return rule.max
    return value


def _default_for(rule: FieldRule, defaults: Mapping[str, Any]) -> Any:
    if rule.path in defaults:
        return copy.deepcopy(defaults[rule.path])
    if rule.type == "object":
        return MISSING
    return copy.deepcopy(_ZERO_VALUES[rule.type])


def _repair(rule: FieldRule, value: Any, defaults: Mapping[str, Any]) -> Any:
    if value is MISSING:
        fixed = _default_for(rule, defaults)
        return _clamp(rule, fixed) if rule.type == "number" and fixed is not MISSING else fixed

    if not matches_type(value, rule.type):
        if rule.type in ("array", "object"):
            if rule.type == "object":
                return copy.deepcopy(defaults.get(rule.path, {}))
            return []
        fixed = _coerce(value, rule.type)
        if fixed is MISSING:
            fixed = _ZERO_VALUES[rule.type]
        return _clamp(rule, fixed) if rule.type == "number" else fixed

    if rule.type == "number":
        return _clamp(rule, value)

    if rule.type == "array":
        kept = value
        if rule.has_elements:
            bad = {index for index, _ in invalid_elements(rule, value)}
            kept = [element for index, element in enumerate(value) if index not in bad]
        if rule.max_length is not None and len(kept) > rule.max_length:
            kept = kept[-rule.max_length:]
        return kept

    return MISSING


def _satisfied(data: Any, rule: FieldRule) -> bool:
    value = get_path(data, rule.path)
    if value is MISSING:
        return not rule.required
    if not matches_type(value, rule.type):
        return False
    if rule.type == "number" and _clamp(rule, value) != value:
        return False
    if rule.type == "array":
        if rule.max_length is not None and len(value) > rule.max_length:
            return False
        if rule.has_elements and invalid_elements(rule, value):
            return False
    return True


def _failed(state: Any, path: str, reason: str) -> RecoveryResult:
    logger.warning("Recovery failed at %s: %s", path, reason)
    return RecoveryResult(recovered=False, data=state, failed_field=path)


def attempt_recovery(
    state: Any,
    validation: ValidationResult,
    schema: SchemaDescriptor = DEFAULT_GAME_STATE_SCHEMA,
    *,
    defaults: Optional[Mapping[str, Any]] = None,
) -> RecoveryResult:
    """Repair the fields listed in ``validation.corrupted_fields``.

    Works on a deep copy. ``recovered=False`` means ``data`` is the original
    input and must not be trusted.
    """
    defaults = DEFAULT_VALUES if defaults is None else defaults
    if not isinstance(state, dict):
        return _failed(state, "", "game state is not an object")

    data = copy.deepcopy(state)
    repaired: List[str] = []
    for path in validation.corrupted_fields:
        if path == CHECKSUM_FIELD:
            repaired.append(path)
            continue
        rule = schema.rule_for(path)
        if rule is None:
            return _failed(state, path, "no rule describes this field")
        if rule.deprecated:
            delete_path(data, path)
            repaired.append(path)
            continue
        if _satisfied(data, rule):
            # fixed by a parent default earlier in this pass
            repaired.append(path)
            continue
        fixed = _repair(rule, get_path(data, path), defaults)
        if fixed is MISSING:
            return _failed(state, path, "no repair strategy applies")
        if not set_path(data, path, fixed):
            return _failed(state, path, "parent is not an object")
        repaired.append(path)

    logger.info("Recovered game state; repaired fields: %s", ", ".join(repaired) or "none")
    return RecoveryResult(recovered=True, data=data, repaired_fields=tuple(repaired))
