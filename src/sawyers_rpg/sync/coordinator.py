from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple

from ..errors import (
    ChecksumMismatch,
    NetworkUnavailableError,
    PersistenceError,
    QuotaExceededError,
    RemoteStoreError,
    SlotEmptyError,
    StructuralError,
)
from ..integrity.checksum import generate_checksum, verify_checksum
from ..integrity.sanitizer import DEFAULT_ARRAY_CAP, EPHEMERAL_KEYS, sanitize_for_cloud
from ..persistence.clock import Clock, SystemClock
from ..persistence.manager import SaveSlotManager
from ..persistence.models import SaveMetadata, SaveRecord
from .queue import PendingSync, PendingSyncQueue
from .remote import RemoteStore

logger = logging.getLogger(__name__)


class SyncStatus(enum.Enum):
    SYNCED = "synced"
    LOCAL_ONLY = "local_only"
    CLOUD_ONLY = "cloud_only"
    LOCAL_NEWER = "local_newer"
    CLOUD_NEWER = "cloud_newer"
    SYNCING = "syncing"
    SYNC_FAILED = "sync_failed"
    CONFLICT = "conflict"


@dataclass
class SyncResult:
    success: bool
    status: SyncStatus
    metadata: Optional[SaveMetadata] = None
    error: Optional[PersistenceError] = None
    queued: bool = False


@dataclass
class RestoreResult:
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[PersistenceError] = None


@dataclass
class SmartSaveResult:
    success: bool
    saved_to: Optional[str]  # "local" | "both" | None
    message: str
    error: Optional[PersistenceError] = None
    fallback_used: bool = False
    queued: bool = False
    details: Dict[str, Any] = field(default_factory=dict)


class CloudSyncCoordinator:
    """Backs local slots up to a remote store and keeps the two in step.

    The cloud copy of a slot is the sanitized form of the stored local
    record, stamped with its upload time. Its metadata keeps the local save
    timestamp and the local
    checksum (``source_checksum``) so both sides can be compared. Conflicts
    are reported, never resolved without an explicit choice.
    """

    NOTICE_SAVED_BOTH = "Game saved locally and to the cloud."
    NOTICE_SAVED_LOCAL = "Game saved locally."
    NOTICE_OFFLINE = "You appear to be offline. Your progress was saved locally and will sync later."
    NOTICE_QUOTA = "Cloud storage is full. Your progress was saved locally."
    NOTICE_CLOUD_FAILED = "Cloud backup failed. Your progress was saved locally."
    NOTICE_LOCAL_FAILED = "Failed to save game."

    def __init__(
        self,
        manager: SaveSlotManager,
        remote: RemoteStore,
        *,
        clock: Optional[Clock] = None,
        queue: Optional[PendingSyncQueue] = None,
        denylist: Iterable[str] = EPHEMERAL_KEYS,
        array_cap: int = DEFAULT_ARRAY_CAP,
    ) -> None:
        self.manager = manager
        self.remote = remote
        self.clock = clock or manager.clock or SystemClock()
        self.queue = queue if queue is not None else PendingSyncQueue()
        self.denylist = frozenset(denylist)
        self.array_cap = array_cap
        self._in_flight: Dict[int, int] = {}
        self._failed: Dict[int, PersistenceError] = {}
        # slot -> (local timestamp, remote timestamp) at the last successful sync
        self._last_sync: Dict[int, Tuple[int, int]] = {}

    def key_for(self, slot_index: int) -> str:
        return self.manager.storage.key_for(slot_index)

    def cloud_record(self, record: SaveRecord) -> SaveRecord:
        """Sanitized copy of a local record, ready to upload."""
        ts = record.metadata.timestamp
        payload = sanitize_for_cloud(
            record.payload if isinstance(record.payload, dict) else {},
            clock=self.clock,
            denylist=self.denylist,
            array_cap=self.array_cap,
        )
        metadata = SaveMetadata(
            timestamp=ts,
            slot_index=record.metadata.slot_index,
            total_play_time=record.metadata.total_play_time,
            equipment_version=record.metadata.equipment_version,
            creature_version=record.metadata.creature_version,
            name=record.metadata.name,
            source_checksum=record.checksum,
        )
        return SaveRecord(payload=payload, checksum=generate_checksum(payload), metadata=metadata)

    def _begin(self, slot_index: int) -> None:
        self._in_flight[slot_index] = self._in_flight.get(slot_index, 0) + 1

    def _end(self, slot_index: int, error: Optional[PersistenceError]) -> None:
        remaining = self._in_flight.get(slot_index, 1) - 1
        if remaining:
            self._in_flight[slot_index] = remaining
        else:
            self._in_flight.pop(slot_index, None)
        if error is None:
            self._failed.pop(slot_index, None)
        else:
            self._failed[slot_index] = error

    # Upload -----------------------------------------------------------------

    async def _upload(self, slot_index: int, cloud: SaveRecord, local_ts: int) -> None:
        self._begin(slot_index)
        error: Optional[PersistenceError] = None
        try:
            await self.remote.put(self.key_for(slot_index), cloud.to_dict())
        except RemoteStoreError as exc:
            error = exc
            raise
        finally:
            self._end(slot_index, error)
        self._last_sync[slot_index] = (local_ts, cloud.metadata.timestamp)
        self.queue.discard_through(slot_index, cloud.metadata.timestamp)
        logger.info("Backed up slot %s to cloud (checksum %s)", slot_index, cloud.checksum[:12])

    async def backup_to_cloud(self, slot_index: int) -> SyncResult:
        """Upload the stored record of a slot.

        The record is read and sanitized before the first await, so later
        saves cannot change what this call uploads.
        """
        try:
            record = self.manager.read_record(slot_index)
        except StructuralError as exc:
            logger.exception("Cannot back up unreadable slot %s", slot_index)
            return SyncResult(False, SyncStatus.SYNC_FAILED, error=exc)
        if record is None:
            return SyncResult(False, SyncStatus.SYNC_FAILED, error=SlotEmptyError(f"Slot {slot_index} is empty"))
        cloud = self.cloud_record(record)

        try:
            await self._upload(slot_index, cloud, record.metadata.timestamp)
        except RemoteStoreError as exc:
            logger.warning("Cloud backup of slot %s failed: %s (%s)", slot_index, exc, exc.code)
            return SyncResult(False, SyncStatus.SYNC_FAILED, metadata=cloud.metadata, error=exc)
        return SyncResult(True, SyncStatus.SYNCED, metadata=cloud.metadata)

    # Download ---------------------------------------------------------------

    async def _fetch(self, slot_index: int) -> Optional[SaveRecord]:
        raw = await self.remote.get(self.key_for(slot_index))
        if raw is None:
            return None
        return SaveRecord.from_dict(raw)

    async def restore_from_cloud(self, slot_index: int) -> RestoreResult:
        """Replace the local slot with the cloud copy after verifying it.

        The game state is not loaded; call ``manager.load`` afterwards.
        """
        self._begin(slot_index)
        error: Optional[PersistenceError] = None
        try:
            record = await self._fetch(slot_index)
            if record is None:
                raise SlotEmptyError(f"No cloud save for slot {slot_index}")
            if not verify_checksum(record.payload, record.checksum):
                raise ChecksumMismatch(f"Cloud save for slot {slot_index} failed its checksum")
            self.manager.write_record(slot_index, record)
        except (RemoteStoreError, StructuralError, ChecksumMismatch, SlotEmptyError, QuotaExceededError) as exc:
            error = exc
            logger.warning("Restore of slot %s from cloud failed: %s (%s)", slot_index, exc, exc.code)
            return RestoreResult(False, error=exc)
        finally:
            self._end(slot_index, error)

        ts = record.metadata.timestamp
        self._last_sync[slot_index] = (ts, ts)
        logger.info("Restored slot %s from cloud", slot_index)
        return RestoreResult(True, data={"game_state": record.payload, "metadata": record.metadata.to_dict()})

    # Status -----------------------------------------------------------------

    def _compare(self, slot_index: int, local: Optional[SaveRecord], cloud: Optional[SaveRecord]) -> SyncStatus:
        if local is None and cloud is None:
            return SyncStatus.SYNCED
        if cloud is None:
            return SyncStatus.LOCAL_ONLY
        if local is None:
            return SyncStatus.CLOUD_ONLY

        local_ts = local.metadata.timestamp
        cloud_ts = cloud.metadata.timestamp
        same_content = local.checksum in (cloud.checksum, cloud.metadata.source_checksum)
        if local_ts == cloud_ts:
            return SyncStatus.SYNCED if same_content else SyncStatus.CONFLICT

        last = self._last_sync.get(slot_index)
        if last is not None and local_ts > last[0] and cloud_ts > last[1]:
            return SyncStatus.CONFLICT
        return SyncStatus.LOCAL_NEWER if local_ts > cloud_ts else SyncStatus.CLOUD_NEWER

    async def sync_status(self, slot_index: int) -> SyncStatus:
        if self._in_flight.get(slot_index):
            return SyncStatus.SYNCING
        try:
            local = self.manager.read_record(slot_index)
            cloud = await self._fetch(slot_index)
        except (RemoteStoreError, StructuralError) as exc:
            logger.warning("Could not determine sync status of slot %s: %s", slot_index, exc)
            self._failed[slot_index] = exc
            return SyncStatus.SYNC_FAILED
        return self._compare(slot_index, local, cloud)

    def last_error(self, slot_index: int) -> Optional[PersistenceError]:
        return self._failed.get(slot_index)

    async def sync_slot(self, slot_index: int) -> SyncResult:
        """Move the newer side across. Conflicts are reported, not resolved."""
        status = await self.sync_status(slot_index)
        if status in (SyncStatus.LOCAL_ONLY, SyncStatus.LOCAL_NEWER):
            return await self.backup_to_cloud(slot_index)
        if status in (SyncStatus.CLOUD_ONLY, SyncStatus.CLOUD_NEWER):
            restored = await self.restore_from_cloud(slot_index)
            if not restored.success:
                return SyncResult(False, SyncStatus.SYNC_FAILED, error=restored.error)
            return SyncResult(True, SyncStatus.SYNCED, metadata=SaveMetadata.from_dict(restored.data["metadata"]))
        if status is SyncStatus.CONFLICT:
            logger.warning("Slot %s has conflicting local and cloud saves", slot_index)
            return SyncResult(False, SyncStatus.CONFLICT)
        return SyncResult(status is SyncStatus.SYNCED, status, error=self._failed.get(slot_index))

    async def resolve_conflict(self, slot_index: int, keep: str) -> SyncResult:
        """Apply the player's choice: ``"local"`` overwrites the cloud, ``"cloud"`` the local slot."""
        if keep == "local":
            result = await self.backup_to_cloud(slot_index)
        elif keep == "cloud":
            restored = await self.restore_from_cloud(slot_index)
            if not restored.success:
                return SyncResult(False, SyncStatus.SYNC_FAILED, error=restored.error)
            result = SyncResult(True, SyncStatus.SYNCED, metadata=SaveMetadata.from_dict(restored.data["metadata"]))
        else:
            raise ValueError(f"keep must be 'local' or 'cloud', not {keep!r}")
        logger.info("Resolved conflict on slot %s keeping %s (success=%s)", slot_index, keep, result.success)
        return result

    # Delete -----------------------------------------------------------------

    async def delete_slot(self, slot_index: int, *, include_cloud: bool = False) -> SyncResult:
        """Delete a local slot and forget its queued upload.

        Without ``include_cloud`` any cloud copy is left alone and the status
        is ``CLOUD_ONLY``. With it the cloud copy is removed too; a failure
        there leaves the local delete in place and is reported in the result.
        """
        self.manager.delete(slot_index)
        pending = self.queue.for_slot(slot_index)
        if pending is not None:
            self.queue.remove(pending.key)
            logger.info("Dropped queued cloud sync for deleted slot %s", slot_index)
        self._last_sync.pop(slot_index, None)
        if not include_cloud:
            return SyncResult(True, SyncStatus.CLOUD_ONLY)

        self._begin(slot_index)
        error: Optional[PersistenceError] = None
        try:
            await self.remote.delete(self.key_for(slot_index))
        except RemoteStoreError as exc:
            error = exc
            logger.warning("Cloud delete of slot %s failed: %s (%s)", slot_index, exc, exc.code)
            return SyncResult(False, SyncStatus.SYNC_FAILED, error=exc)
        finally:
            self._end(slot_index, error)
        logger.info("Deleted slot %s locally and in the cloud", slot_index)
        return SyncResult(True, SyncStatus.SYNCED)

    # Save -------------------------------------------------------------------

    async def smart_save(self, slot_index: int, name: str = "") -> SmartSaveResult:
        """Save locally, then back up to the cloud, degrading to local-only."""
        try:
            saved = self.manager.save(slot_index, name=name)
        except PersistenceError as exc:
            logger.exception("Local save to slot %s failed", slot_index)
            return SmartSaveResult(False, None, self.NOTICE_LOCAL_FAILED, error=exc)

        record = self.manager.read_record(slot_index)
        cloud = self.cloud_record(record)
        details = {"checksum": saved.checksum, "timestamp": saved.metadata.timestamp}
        try:
            await self._upload(slot_index, cloud, record.metadata.timestamp)
        except NetworkUnavailableError as exc:
            self.queue.add(
                PendingSync(
                    slot_index=slot_index,
                    timestamp=cloud.metadata.timestamp,
                    record=cloud.to_dict(),
                    queued_at=self.clock.now_ms(),
                )
            )
            return SmartSaveResult(
                True, "local", self.NOTICE_OFFLINE, error=exc, fallback_used=True, queued=True, details=details
            )
        except RemoteStoreError as exc:
            if exc.code == QuotaExceededError.code:
                return SmartSaveResult(True, "local", self.NOTICE_QUOTA, error=exc, fallback_used=True, details=details)
            return SmartSaveResult(True, "local", self.NOTICE_CLOUD_FAILED, error=exc, fallback_used=True, details=details)

        await self.flush_pending()
        return SmartSaveResult(True, "both", self.NOTICE_SAVED_BOTH, details=details)

    async def flush_pending(self) -> int:
        """Retry queued uploads. Stops at the first retryable failure; returns uploads done."""
        uploaded = 0
        for entry in self.queue.pending():
            cloud = SaveRecord.from_dict(entry.record)
            try:
                await self._upload(entry.slot_index, cloud, entry.timestamp)
            except RemoteStoreError as exc:
                if exc.retryable:
                    logger.info("Cloud still unavailable (%s); %d syncs remain queued", exc.code, len(self.queue))
                    break
                logger.error("Dropping queued sync for slot %s: %s (%s)", entry.slot_index, exc, exc.code)
                self.queue.remove(entry.key)
                continue
            uploaded += 1
        return uploaded
