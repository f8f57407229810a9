from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft202012Validator

from .schema import DEFAULT_GAME_STATE_SCHEMA, MISSING, FieldRule, SchemaDescriptor, get_path, matches_type, type_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    corrupted_fields: Tuple[str, ...] = ()

    def to_human(self) -> str:
        lines = [f"valid: {self.is_valid}"]
        lines.extend(f"error: {e}" for e in self.errors)
        lines.extend(f"warning: {w}" for w in self.warnings)
        return "\n".join(lines)


@dataclass
class _Collector:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    corrupted: Dict[str, None] = field(default_factory=dict)

    def fail(self, path: str, message: str) -> None:
        self.errors.append(message)
        self.corrupted.setdefault(path, None)


@lru_cache(maxsize=None)
def element_validator(identity_key: Optional[str], items: Optional[str]) -> Draft202012Validator:
    """JSON Schema validator for a single array element."""
    if identity_key is not None:
        schema: Dict[str, Any] = {
            "type": "object",
            "required": [identity_key],
            "properties": {identity_key: {"type": "string", "minLength": 1}},
        }
    else:
        schema = {"type": items}
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def invalid_elements(rule: FieldRule, values: List[Any]) -> List[Tuple[int, str]]:
    """Return ``(index, message)`` for each element that breaks the rule's element schema."""
    validator = element_validator(rule.identity_key, rule.items)
    bad: List[Tuple[int, str]] = []
    for index, element in enumerate(values):
        errors = sorted(validator.iter_errors(element), key=lambda e: list(e.path))
        if errors:
            bad.append((index, errors[0].message))
    return bad


def _check_rule(rule: FieldRule, value: Any, out: _Collector, deep_validation: bool) -> None:
    if not matches_type(value, rule.type):
        out.fail(rule.path, f"Invalid type for field {rule.path}: expected {rule.type}, got {type_name(value)}")
        return

    if rule.type == "number":
        if rule.min is not None and value < rule.min:
            out.fail(rule.path, f"Field {rule.path} below minimum {rule.min}: {value}")
        elif rule.max is not None and value > rule.max:
            out.fail(rule.path, f"Field {rule.path} above maximum {rule.max}: {value}")

    if rule.type == "array":
        if rule.max_length is not None and len(value) > rule.max_length:
            out.fail(rule.path, f"Field {rule.path} exceeds maximum length {rule.max_length}: {len(value)}")
        if deep_validation and rule.has_elements:
            for index, message in invalid_elements(rule, value):
                out.fail(rule.path, f"Invalid element {rule.path}[{index}]: {message}")


def validate_structure(
    state: Any,
    schema: SchemaDescriptor = DEFAULT_GAME_STATE_SCHEMA,
    *,
    strict_mode: bool = False,
    deep_validation: bool = False,
) -> ValidationResult:
    """Check ``state`` against ``schema`` without modifying it.

    Problems are collected, never raised. ``strict_mode`` turns warnings
    (deprecated fields) into a failed result.
    """
    out = _Collector()
    if not isinstance(state, dict):
        out.warnings.append(f"Game state is {type_name(state)}, expected object")

    for rule in schema:
        value = get_path(state, rule.path)
        if rule.deprecated:
            if value is not MISSING:
                out.warnings.append(f"Deprecated field present: {rule.path}")
                if strict_mode:
                    out.corrupted.setdefault(rule.path, None)
            continue
        if value is MISSING:
            if rule.required:
                out.fail(rule.path, f"Missing required field: {rule.path}")
            continue
        _check_rule(rule, value, out, deep_validation)

    is_valid = not out.errors and not (strict_mode and out.warnings)
    result = ValidationResult(
        is_valid=is_valid,
        errors=tuple(out.errors),
        warnings=tuple(out.warnings),
        corrupted_fields=tuple(out.corrupted),
    )
    if not is_valid:
        logger.debug("Validation failed: %d errors, corrupted=%s", len(result.errors), result.corrupted_fields)
    return result
