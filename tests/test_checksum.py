from __future__ import annotations

import hashlib

import pytest

from sawyers_rpg.integrity.checksum import generate_checksum, verify_checksum


def test_checksum_is_sha256_hex(make_state):
    digest = generate_checksum(make_state())
    assert len(digest) == 64
    assert digest == digest.lower()
    assert generate_checksum(make_state()) == digest


def test_strings_are_hashed_verbatim():
    assert generate_checksum("abc") == hashlib.sha256(b"abc").hexdigest()


def test_key_order_does_not_matter():
    assert generate_checksum({"a": 1, "b": [1, 2]}) == generate_checksum({"b": [1, 2], "a": 1})


def test_any_field_change_breaks_verification(make_state):
    state = make_state()
    checksum = generate_checksum(state)
    assert verify_checksum(state, checksum) is True

    state["player"]["gold"] += 1
    assert verify_checksum(state, checksum) is False


def test_verify_rejects_non_string_checksum(make_state):
    assert verify_checksum(make_state(), None) is False
    assert verify_checksum(make_state(), 1234) is False


def test_unserializable_input_raises():
    cyclic = {}
    cyclic["self"] = cyclic
    with pytest.raises(ValueError):
        generate_checksum(cyclic)
    with pytest.raises(TypeError):
        generate_checksum({"tags": {"a", "b"}})
