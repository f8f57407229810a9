from __future__ import annotations

import copy

from sawyers_rpg.integrity.equipment import EQUIPMENT_SLOTS
from sawyers_rpg.integrity.recovery import attempt_recovery
from sawyers_rpg.integrity.schema import FieldRule, SchemaDescriptor
from sawyers_rpg.integrity.validator import ValidationResult, validate_structure


def recover(state, **kwargs):
    return attempt_recovery(state, validate_structure(state, **kwargs))


def test_missing_player_gets_default_skeleton(make_state):
    state = make_state()
    del state["player"]

    result = recover(state)

    assert result.recovered
    player = result.data["player"]
    assert player["name"] == "Unknown Player"
    assert player["level"] == 1
    assert set(player["equipment"]) == set(EQUIPMENT_SLOTS)
    assert result.repaired_fields[:3] == ("player", "player.name", "player.level")
    assert "player" not in state
    assert validate_structure(result.data, deep_validation=True).is_valid


def test_non_object_player_is_replaced(make_state):
    result = recover(make_state(player="corrupted"))
    assert result.recovered
    assert result.data["player"]["level"] == 1


def test_lossless_coercions(make_state):
    state = make_state()
    state["player"]["level"] = "12"
    state["player"]["name"] = 42

    result = recover(state)

    assert result.data["player"]["level"] == 12
    assert result.data["player"]["name"] == "42"


def test_uncoercible_number_resets_within_bounds(make_state):
    state = make_state()
    state["player"]["level"] = "lots"

    assert recover(state).data["player"]["level"] == 1


def test_non_array_becomes_empty_list(make_state):
    result = recover(make_state(inventory="oops"))
    assert result.recovered
    assert result.data["inventory"] == []


def test_out_of_range_numbers_are_clamped(make_state):
    low = make_state()
    low["player"]["level"] = 0
    high = make_state()
    high["player"]["level"] = 5000

    assert recover(low).data["player"]["level"] == 1
    assert recover(high).data["player"]["level"] == 999


def test_malformed_elements_are_dropped(make_state):
    state = make_state(inventory=[{"id": "potion", "quantity": 1}, {"quantity": 4}, "junk", {"id": "ether"}])

    result = recover(state, deep_validation=True)

    assert result.recovered
    assert result.data["inventory"] == [{"id": "potion", "quantity": 1}, {"id": "ether"}]


def test_strict_mode_strips_deprecated_fields(make_state):
    result = recover(make_state(tempData={"x": 1}), strict_mode=True)
    assert result.recovered
    assert "tempData" not in result.data


def test_checksum_marker_is_accepted(make_state):
    state = make_state()
    validation = ValidationResult(is_valid=True, corrupted_fields=("_checksum",))

    result = attempt_recovery(state, validation)

    assert result.recovered
    assert result.data == state
    assert result.data is not state
    assert result.repaired_fields == ("_checksum",)


def test_unknown_field_fails_the_whole_attempt(make_state):
    state = make_state()
    state["player"]["level"] = 0
    validation = ValidationResult(is_valid=False, corrupted_fields=("player.level", "mystery"))

    result = attempt_recovery(state, validation)

    assert not result.recovered
    assert result.data is state
    assert result.failed_field == "mystery"
    assert state["player"]["level"] == 0


def test_required_object_without_default_is_unrecoverable():
    schema = SchemaDescriptor("test", (FieldRule("world", "object", required=True),))
    state = {"other": 1}
    before = copy.deepcopy(state)

    result = attempt_recovery(state, validate_structure(state, schema), schema)

    assert not result.recovered
    assert result.data == before


def test_non_object_root_is_unrecoverable():
    result = attempt_recovery([1, 2], validate_structure([1, 2]))
    assert not result.recovered
    assert result.data == [1, 2]
