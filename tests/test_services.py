from __future__ import annotations

import asyncio
import json
from pathlib import Path

from conftest import SAVE_TIME
from sawyers_rpg.persistence.clock import ManualClock
from sawyers_rpg.persistence.storage import InMemorySlotStorage
from sawyers_rpg.services import build_services
from sawyers_rpg.settings import PersistenceSettings
from sawyers_rpg.sync.remote import InMemoryRemoteStore


def test_local_only_services(tmp_path: Path, make_state):
    services = build_services(initial_state=make_state(), data_dir=tmp_path, clock=ManualClock(SAVE_TIME))

    assert services.cloud is None
    services.manager.save(0)
    assert (tmp_path / "saves" / "sawyers_rpg_save_slot_0.json").exists()


def test_autosave_writes_configured_slot(make_state):
    settings = PersistenceSettings.load()
    settings.autosave.slot = 3
    clock = ManualClock(SAVE_TIME)
    services = build_services(settings, initial_state=make_state(), storage=InMemorySlotStorage(), clock=clock)

    services.autosave.start()
    clock.advance(settings.autosave.initial_delay_ms)
    services.autosave.record_activity()

    assert services.autosave.tick() is True
    assert services.manager.read_record(3) is not None


def test_extra_denylist_reaches_cloud_copy(make_state):
    settings = PersistenceSettings.load()
    settings.sanitizer.extra_denylist = ["settings"]
    remote = InMemoryRemoteStore()
    services = build_services(
        settings, initial_state=make_state(), storage=InMemorySlotStorage(), remote=remote, clock=ManualClock(SAVE_TIME)
    )

    result = asyncio.run(services.cloud.smart_save(0))

    assert result.saved_to == "both"
    cloud = json.loads(remote.items["sawyers_rpg_save_slot_0"])
    assert "settings" not in cloud["payload"]
    assert services.manager.read_record(0).payload["settings"] == {"musicVolume": 0.5}
