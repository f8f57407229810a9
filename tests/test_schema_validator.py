from __future__ import annotations

import copy

import pytest

from sawyers_rpg.integrity.schema import FieldRule, SchemaDescriptor
from sawyers_rpg.integrity.validator import validate_structure


def test_valid_state_passes_deep_validation(make_state):
    result = validate_structure(make_state(), deep_validation=True)
    assert result.is_valid, result.to_human()
    assert result.errors == ()
    assert result.corrupted_fields == ()


def test_missing_player_reports_player_and_children(make_state):
    state = make_state()
    del state["player"]

    result = validate_structure(state)

    assert not result.is_valid
    assert result.corrupted_fields[:3] == ("player", "player.name", "player.level")
    assert "Missing required field: player" in result.errors


def test_null_counts_as_missing(make_state):
    result = validate_structure(make_state(player=None))
    assert "player" in result.corrupted_fields


def test_wrong_type_is_corrupted(make_state):
    state = make_state()
    state["player"]["level"] = "12"

    result = validate_structure(state)

    assert result.corrupted_fields == ("player.level",)
    assert "expected number, got string" in result.errors[0]


def test_booleans_are_not_numbers(make_state):
    result = validate_structure(make_state(totalPlayTime=True))
    assert result.corrupted_fields == ("totalPlayTime",)


def test_numeric_bounds(make_state):
    state = make_state()
    state["player"]["level"] = 0
    state["player"]["experience"] = -5

    result = validate_structure(state)

    assert result.corrupted_fields == ("player.level", "player.experience")


def test_deprecated_field_is_a_warning_unless_strict(make_state):
    state = make_state(legacyFlags={"oldTutorial": True})

    lenient = validate_structure(state)
    assert lenient.is_valid
    assert lenient.warnings == ("Deprecated field present: legacyFlags",)

    strict = validate_structure(state, strict_mode=True)
    assert not strict.is_valid
    assert strict.corrupted_fields == ("legacyFlags",)


def test_deep_validation_checks_each_array_element(make_state):
    state = make_state(inventory=[{"id": "potion"}, {"quantity": 2}, "junk"])

    assert validate_structure(state).is_valid

    result = validate_structure(state, deep_validation=True)
    assert not result.is_valid
    assert result.corrupted_fields == ("inventory",)
    assert any("inventory[1]" in e for e in result.errors)
    assert any("inventory[2]" in e for e in result.errors)


def test_primitive_element_types(make_state):
    result = validate_structure(make_state(completedQuests=["tutorial", 7]), deep_validation=True)
    assert result.corrupted_fields == ("completedQuests",)


@pytest.mark.parametrize("state", [None, [], "save", {}])
def test_partial_or_bogus_states_never_raise(state):
    result = validate_structure(state, deep_validation=True)
    assert not result.is_valid
    assert "player" in result.corrupted_fields
    assert "timestamp" in result.corrupted_fields


def test_validation_does_not_modify_input(make_state):
    state = make_state(inventory=[{"quantity": 1}], legacyFlags={})
    before = copy.deepcopy(state)
    validate_structure(state, strict_mode=True, deep_validation=True)
    assert state == before


def test_custom_schema():
    schema = SchemaDescriptor(
        version="test",
        rules=(
            FieldRule("world", "object", required=True),
            FieldRule("world.seed", "number", min=0),
        ),
    )
    assert validate_structure({"world": {"seed": 3}}, schema).is_valid
    assert validate_structure({"world": {"seed": -1}}, schema).corrupted_fields == ("world.seed",)


def test_field_rule_rejects_bad_definitions():
    with pytest.raises(ValueError):
        FieldRule("x", "integer")
    with pytest.raises(ValueError):
        FieldRule("x", "object", identity_key="id")
    with pytest.raises(ValueError):
        SchemaDescriptor("v", (FieldRule("x", "string"), FieldRule("x", "number")))
