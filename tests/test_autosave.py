from __future__ import annotations

import pytest

from sawyers_rpg.errors import QuotaExceededError
from sawyers_rpg.persistence.autosave import AutoSaveManager
from sawyers_rpg.persistence.clock import ManualClock
from sawyers_rpg.settings import AutoSaveSettings


class Recorder:
    def __init__(self, fail_with=None) -> None:
        self.slots = []
        self.fail_with = fail_with

    def __call__(self, slot: int) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.slots.append(slot)


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock(1_000_000)


def started(save, clock, **settings) -> AutoSaveManager:
    auto = AutoSaveManager(save, AutoSaveSettings(**settings), clock=clock)
    auto.start()
    return auto


def test_first_save_waits_for_initial_delay(clock):
    save = Recorder()
    auto = started(save, clock, slot=2)

    clock.advance(59_999)
    auto.record_activity()
    assert auto.tick() is False

    clock.advance(1)
    assert auto.tick() is True
    assert save.slots == [2]
    assert auto.time_until_save() == 150_000


def test_inactive_player_skips_and_reschedules(clock):
    save = Recorder()
    auto = started(save, clock)

    clock.advance(60_000)
    assert auto.tick() is False
    assert save.slots == []
    assert auto.time_until_save() == 150_000


def test_pause_and_resume(clock):
    save = Recorder()
    auto = started(save, clock)
    auto.pause()

    clock.advance(60_000)
    auto.record_activity()
    assert auto.tick() is False
    assert auto.force_save() is False

    auto.resume()
    assert auto.time_until_save() == 150_000


def test_disabled_after_repeated_failures(clock):
    reasons = []
    save = Recorder(fail_with=QuotaExceededError("full"))
    auto = AutoSaveManager(save, AutoSaveSettings(max_failures=3), clock=clock, on_disabled=reasons.append)
    auto.start()
    clock.advance(60_000)

    for _ in range(3):
        auto.record_activity()
        auto.tick()
        clock.advance(150_000)

    assert auto.state.consecutive_failures == 3
    assert not auto.state.is_active
    assert not auto.settings.enabled
    assert reasons == ["Too many consecutive failures (3)"]


def test_success_resets_failure_count(clock):
    save = Recorder(fail_with=QuotaExceededError("full"))
    auto = started(save, clock)
    clock.advance(60_000)
    auto.record_activity()
    auto.tick()
    assert auto.state.consecutive_failures == 1

    save.fail_with = None
    assert auto.force_save() is True
    assert auto.state.consecutive_failures == 0
    assert auto.state.last_save_success


def test_force_save_keeps_schedule(clock):
    auto = started(Recorder(), clock)
    before = auto.state.next_save_time
    assert auto.force_save() is True
    assert auto.state.next_save_time == before


def test_update_settings(clock):
    auto = started(Recorder(), clock)
    auto.update_settings(interval_ms=10_000)
    assert auto.time_until_save() == 10_000

    auto.update_settings(enabled=False)
    assert not auto.state.is_active

    auto.update_settings(enabled=True)
    assert auto.state.is_active


def test_disabled_settings_never_start(clock):
    auto = started(Recorder(), clock, enabled=False)
    assert not auto.state.is_active
    assert auto.tick() is False
