from __future__ import annotations

from pathlib import Path

from conftest import SAVE_TIME
from sawyers_rpg.cli import main
from sawyers_rpg.integrity.checksum import generate_checksum
from sawyers_rpg.persistence.clock import ManualClock
from sawyers_rpg.persistence.manager import SaveSlotManager
from sawyers_rpg.persistence.session import GameSession
from sawyers_rpg.persistence.storage import LocalFileSlotStorage


def seed(tmp_path: Path, state) -> LocalFileSlotStorage:
    storage = LocalFileSlotStorage(tmp_path)
    SaveSlotManager(storage, GameSession(state), clock=ManualClock(SAVE_TIME)).save(0)
    return storage


def test_list(tmp_path: Path, make_state, capsys):
    seed(tmp_path, make_state())

    assert main(["--data-dir", str(tmp_path), "list"]) == 0

    out = capsys.readouterr().out
    assert f"[0] Sawyer saved={SAVE_TIME}" in out
    assert "[1] empty" in out


def test_verify(tmp_path: Path, make_state, capsys):
    seed(tmp_path, make_state())

    assert main(["--data-dir", str(tmp_path), "verify", "0"]) == 0
    assert "OK: slot 0 checksum_valid=True" in capsys.readouterr().out

    assert main(["--data-dir", str(tmp_path), "verify", "1"]) == 1
    assert "There is no save in that slot." in capsys.readouterr().out


def test_migrate_rewrites_legacy_slot(tmp_path: Path, make_state, capsys):
    storage = LocalFileSlotStorage(tmp_path)
    payload = make_state()
    payload["player"]["equipment"] = {"weapon": "iron_sword", "accessory": "amulet"}
    storage.write(
        0,
        {"payload": payload, "checksum": generate_checksum(payload), "metadata": {"timestamp": 5, "slotIndex": 0}},
    )

    assert main(["--data-dir", str(tmp_path), "migrate", "0"]) == 0
    assert "equipment:0.0->1.0" in capsys.readouterr().out

    record = storage.read(0)
    assert record["metadata"]["equipmentVersion"] == "1.0"
    assert record["metadata"]["timestamp"] == 5
    assert record["payload"]["player"]["equipment"]["necklace"] == "amulet"

    assert main(["--data-dir", str(tmp_path), "migrate", "0"]) == 0
    assert "already current" in capsys.readouterr().out


def test_inspect_and_delete(tmp_path: Path, make_state, capsys):
    seed(tmp_path, make_state())

    assert main(["--data-dir", str(tmp_path), "inspect", "0"]) == 0
    assert '"checksum_valid": true' in capsys.readouterr().out

    assert main(["--data-dir", str(tmp_path), "delete", "0"]) == 0
    assert main(["--data-dir", str(tmp_path), "delete", "0"]) == 0
    assert "already empty" in capsys.readouterr().out


def test_invalid_slot_is_reported(tmp_path: Path, capsys):
    assert main(["--data-dir", str(tmp_path), "delete", "9"]) == 2
    assert "ERROR" in capsys.readouterr().out
