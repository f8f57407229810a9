"""Exception taxonomy for the save persistence layer.

Every error carries a machine-readable ``code`` (mirrors the remote store's
error codes) and a ``user_message`` suitable for showing to the player.
"""
from __future__ import annotations

from typing import Optional


class PersistenceError(Exception):
    """Base exception for save/load/sync failures."""

    code = "unknown"
    default_user_message = "Something went wrong while handling your save."

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        user_message: Optional[str] = None,
    ) -> None:
        super().__init__(message or self.default_user_message)
        if code is not None:
            self.code = code
        self.user_message = user_message or self.default_user_message


class ConfigError(PersistenceError):
    code = "config/invalid"
    default_user_message = "Save settings are invalid."


class InvalidSlotError(PersistenceError):
    code = "config/invalid"
    default_user_message = "That save slot does not exist."


class StructuralError(PersistenceError):
    """Raised when a record envelope (not the game state itself) is malformed."""

    code = "data/invalid"
    default_user_message = "This save has an unexpected format."


class ChecksumMismatch(PersistenceError):
    code = "data/checksum-mismatch"
    default_user_message = "This save failed its integrity check."


class RecoveryFailure(PersistenceError):
    code = "data/corrupted"
    default_user_message = "This save appears damaged and could not be repaired."


class MigrationError(PersistenceError):
    code = "data/version-conflict"
    default_user_message = "This save was created by an unsupported game version."


class SlotEmptyError(PersistenceError):
    code = "storage/not-found"
    default_user_message = "There is no save in that slot."


class QuotaExceededError(PersistenceError):
    code = "storage/quota-exceeded"
    default_user_message = "Storage is full. Free up space and try again."


class RemoteStoreError(PersistenceError):
    """Raised by remote store adapters. ``code`` is the store's error code."""

    code = "unknown"
    default_user_message = "Cloud storage is currently unavailable."

    @property
    def retryable(self) -> bool:
        return self.code in RETRYABLE_REMOTE_CODES


class NetworkUnavailableError(RemoteStoreError):
    code = "network/unavailable"
    default_user_message = "You appear to be offline. Your progress was saved locally."


NETWORK_CODES = frozenset(
    {"network/unavailable", "network/timeout", "network/connection-failed", "network/offline"}
)

RETRYABLE_REMOTE_CODES = NETWORK_CODES | {"storage/unavailable"}
