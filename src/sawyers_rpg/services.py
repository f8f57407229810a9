from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .integrity.equipment import ItemLookup
from .integrity.sanitizer import EPHEMERAL_KEYS
from .persistence.autosave import AutoSaveManager
from .persistence.clock import Clock, SystemClock
from .persistence.manager import SaveSlotManager
from .persistence.session import GameSession
from .persistence.storage import LocalFileSlotStorage, SlotStorage
from .settings import PersistenceSettings
from .sync.coordinator import CloudSyncCoordinator
from .sync.queue import PendingSyncQueue
from .sync.remote import RemoteStore

logger = logging.getLogger(__name__)


@dataclass
class PersistenceServices:
    settings: PersistenceSettings
    session: GameSession
    manager: SaveSlotManager
    autosave: AutoSaveManager
    cloud: Optional[CloudSyncCoordinator] = None


def build_services(
    settings: Optional[PersistenceSettings] = None,
    *,
    initial_state: Optional[Dict[str, Any]] = None,
    storage: Optional[SlotStorage] = None,
    remote: Optional[RemoteStore] = None,
    item_exists: Optional[ItemLookup] = None,
    clock: Optional[Clock] = None,
    data_dir: Optional[Path] = None,
) -> PersistenceServices:
    """Wire the persistence components from settings.

    Cloud sync is only set up when a remote store is given.
    """
    settings = settings or PersistenceSettings.load()
    clock = clock or SystemClock()
    if storage is None:
        storage = LocalFileSlotStorage(
            data_dir or settings.storage.resolved_data_dir(),
            key_prefix=settings.slots.key_prefix,
            quota_bytes=settings.storage.quota_bytes,
        )
    session = GameSession(initial_state)
    manager = SaveSlotManager(
        storage,
        session,
        clock=clock,
        item_exists=item_exists,
        strict_mode=settings.validation.strict_mode,
        deep_validation=settings.validation.deep_validation,
        slot_count=settings.slots.count,
    )
    autosave = AutoSaveManager(manager.save, settings.autosave, clock=clock)

    cloud = None
    if remote is not None:
        cloud = CloudSyncCoordinator(
            manager,
            remote,
            clock=clock,
            queue=PendingSyncQueue(settings.sync.max_pending),
            denylist=EPHEMERAL_KEYS | set(settings.sanitizer.extra_denylist),
            array_cap=settings.sanitizer.array_cap,
        )
    logger.info("Persistence ready: %d slots, cloud sync %s", settings.slots.count, "on" if cloud else "off")
    return PersistenceServices(settings=settings, session=session, manager=manager, autosave=autosave, cloud=cloud)
