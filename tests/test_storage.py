from __future__ import annotations

import errno
import json
from pathlib import Path

import pytest

from sawyers_rpg.errors import QuotaExceededError, StructuralError
from sawyers_rpg.persistence import storage as storage_mod
from sawyers_rpg.persistence.storage import InMemorySlotStorage, LocalFileSlotStorage


def test_file_storage_round_trip(tmp_path: Path):
    store = LocalFileSlotStorage(tmp_path)
    store.write(2, {"payload": {"a": 1}})

    assert store.path_for(2).name == "sawyers_rpg_save_slot_2.json"
    assert store.read(2) == {"payload": {"a": 1}}
    assert store.read(1) is None


def test_delete_is_idempotent(tmp_path: Path):
    store = LocalFileSlotStorage(tmp_path)
    store.write(0, {"x": 1})
    assert store.delete(0) is True
    assert store.delete(0) is False
    assert store.read(0) is None


def test_unreadable_file_raises_structural_error(tmp_path: Path):
    store = LocalFileSlotStorage(tmp_path)
    store.path_for(1).write_text("{not json", encoding="utf-8")
    with pytest.raises(StructuralError):
        store.read(1)


def test_non_utf8_file_raises_structural_error(tmp_path: Path):
    store = LocalFileSlotStorage(tmp_path)
    store.path_for(1).write_bytes(b"\xff\xfe\x00garbage")
    with pytest.raises(StructuralError, match="UTF-8"):
        store.read(1)


@pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity"])
def test_non_finite_numbers_raise_structural_error(literal):
    store = InMemorySlotStorage()
    store.write_raw(0, '{"payload":{"gold":' + literal + "}}")
    with pytest.raises(StructuralError):
        store.read(0)


def test_quota_blocks_write_and_keeps_old_record(tmp_path: Path):
    store = LocalFileSlotStorage(tmp_path, quota_bytes=64)
    store.write(0, {"v": 1})

    with pytest.raises(QuotaExceededError):
        store.write(0, {"v": "x" * 200})

    assert store.read(0) == {"v": 1}


def test_quota_ignores_the_slot_being_replaced():
    store = InMemorySlotStorage(quota_bytes=40)
    store.write(0, {"v": "a" * 20})
    store.write(0, {"v": "b" * 20})
    with pytest.raises(QuotaExceededError):
        store.write(1, {"v": "c" * 20})


def test_disk_full_maps_to_quota_error(tmp_path: Path, monkeypatch):
    store = LocalFileSlotStorage(tmp_path)

    def full(path, data):
        raise OSError(errno.ENOSPC, "No space left on device")

    monkeypatch.setattr(storage_mod, "atomic_write_bytes", full)
    with pytest.raises(QuotaExceededError):
        store.write(0, {"v": 1})


def test_records_are_canonical_json(tmp_path: Path):
    store = LocalFileSlotStorage(tmp_path)
    store.write(0, {"b": 1, "a": 2})
    assert store.path_for(0).read_text(encoding="utf-8") == json.dumps({"a": 2, "b": 1}, separators=(",", ":"))


def test_custom_key_prefix():
    store = InMemorySlotStorage(key_prefix="test_slot_")
    store.write(3, {})
    assert list(store.items) == ["test_slot_3"]
