"""Periodic auto-save driven by the game loop.

The manager owns no timers or threads: the game loop calls :meth:`tick`
every frame (or every few) and the manager decides, from the injected clock,
whether a save is due.
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..errors import PersistenceError
from ..settings import AutoSaveSettings
from .clock import Clock, SystemClock

logger = logging.getLogger(__name__)

SaveCallback = Callable[[int], Any]


@dataclass
class AutoSaveState:
    is_active: bool = False
    is_paused: bool = False
    next_save_time: int = 0
    consecutive_failures: int = 0
    last_save_time: int = 0
    last_save_success: bool = True
    disabled_reason: Optional[str] = None


class AutoSaveManager:
    def __init__(
        self,
        save: SaveCallback,
        settings: Optional[AutoSaveSettings] = None,
        *,
        clock: Optional[Clock] = None,
        on_disabled: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._save = save
        self.settings = dataclasses.replace(settings) if settings is not None else AutoSaveSettings()
        self.clock = clock or SystemClock()
        self._on_disabled = on_disabled
        self.state = AutoSaveState()
        self._last_activity = self.clock.now_ms()

    def start(self) -> None:
        if not self.settings.enabled or self.state.is_active:
            return
        now = self.clock.now_ms()
        self.state.is_active = True
        self.state.is_paused = False
        self.state.next_save_time = now + self.settings.initial_delay_ms
        self._last_activity = now
        logger.debug("Auto-save started; first save at %d", self.state.next_save_time)

    def stop(self) -> None:
        self.state.is_active = False
        self.state.is_paused = False

    def pause(self) -> None:
        """Suspend saving, e.g. during combat or cutscenes."""
        if self.state.is_active:
            self.state.is_paused = True

    def resume(self) -> None:
        if not self.state.is_active or not self.state.is_paused:
            return
        self.state.is_paused = False
        self.state.next_save_time = self.clock.now_ms() + self.settings.interval_ms

    def record_activity(self) -> None:
        self._last_activity = self.clock.now_ms()

    def is_user_active(self) -> bool:
        return self.clock.now_ms() - self._last_activity < self.settings.inactivity_threshold_ms

    def _reschedule(self) -> None:
        self.state.next_save_time = self.clock.now_ms() + self.settings.interval_ms

    def _attempt(self) -> bool:
        slot = self.settings.slot
        try:
            self._save(slot)
        except (PersistenceError, OSError) as exc:
            self.state.consecutive_failures += 1
            self.state.last_save_success = False
            logger.warning(
                "Auto-save to slot %s failed (%d in a row): %s", slot, self.state.consecutive_failures, exc
            )
            if self.state.consecutive_failures >= self.settings.max_failures:
                self._disable(f"Too many consecutive failures ({self.state.consecutive_failures})")
            return False
        self.state.last_save_time = self.clock.now_ms()
        self.state.last_save_success = True
        self.state.consecutive_failures = 0
        logger.info("Auto-saved to slot %s", slot)
        return True

    def _disable(self, reason: str) -> None:
        self.settings.enabled = False
        self.state.disabled_reason = reason
        self.stop()
        logger.error("Auto-save disabled: %s", reason)
        if self._on_disabled is not None:
            self._on_disabled(reason)

    def tick(self) -> bool:
        """Save if one is due. Returns True when a save succeeded on this tick."""
        if not self.state.is_active or self.state.is_paused:
            return False
        if self.clock.now_ms() < self.state.next_save_time:
            return False
        if not self.is_user_active():
            logger.debug("Player inactive; skipping auto-save")
            self._reschedule()
            return False
        saved = self._attempt()
        if self.state.is_active:
            self._reschedule()
        return saved

    def force_save(self) -> bool:
        """Save immediately without moving the regular schedule."""
        if not self.state.is_active or self.state.is_paused:
            return False
        return self._attempt()

    def update_settings(self, **changes: Any) -> None:
        was_enabled = self.settings.enabled
        self.settings = dataclasses.replace(self.settings, **changes)
        if not was_enabled and self.settings.enabled:
            self.state.disabled_reason = None
            self.state.consecutive_failures = 0
            self.start()
        elif was_enabled and not self.settings.enabled:
            self.stop()
        elif self.state.is_active and "interval_ms" in changes:
            self._reschedule()

    def time_until_save(self) -> Optional[int]:
        if not self.state.is_active or self.state.is_paused:
            return None
        return max(0, self.state.next_save_time - self.clock.now_ms())
