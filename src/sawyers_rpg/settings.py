from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import List, Optional

import yaml
from platformdirs import PlatformDirs

from .errors import ConfigError

logger = logging.getLogger(__name__)

APP_NAME = "SawyersRPG"
APP_AUTHOR = "SawyersRPG"


def default_data_dir() -> Path:
    return Path(PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR).user_data_dir)


@dataclass
class SlotSettings:
    count: int = 5
    key_prefix: str = "sawyers_rpg_save_slot_"


@dataclass
class ValidationSettings:
    strict_mode: bool = False
    deep_validation: bool = True


@dataclass
class SanitizerSettings:
    array_cap: int = 1000
    extra_denylist: List[str] = field(default_factory=list)


@dataclass
class AutoSaveSettings:
    enabled: bool = True
    interval_ms: int = 150_000
    initial_delay_ms: int = 60_000
    inactivity_threshold_ms: int = 30_000
    max_failures: int = 3
    slot: int = 0


@dataclass
class StorageSettings:
    data_dir: Optional[str] = None
    quota_bytes: Optional[int] = None

    def resolved_data_dir(self) -> Path:
        return Path(self.data_dir).expanduser() if self.data_dir else default_data_dir()


@dataclass
class SyncSettings:
    max_pending: int = 100


@dataclass
class PersistenceSettings:
    slots: SlotSettings = field(default_factory=SlotSettings)
    validation: ValidationSettings = field(default_factory=ValidationSettings)
    sanitizer: SanitizerSettings = field(default_factory=SanitizerSettings)
    autosave: AutoSaveSettings = field(default_factory=AutoSaveSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)

    def validate(self) -> None:
        if self.slots.count < 1:
            raise ConfigError("slots.count must be at least 1")
        if self.sanitizer.array_cap < 1:
            raise ConfigError("sanitizer.array_cap must be at least 1")
        if not 0 <= self.autosave.slot < self.slots.count:
            raise ConfigError("autosave.slot must be a valid slot index")
        if self.autosave.interval_ms <= 0 or self.autosave.max_failures < 1:
            raise ConfigError("autosave.interval_ms and autosave.max_failures must be positive")
        if self.storage.quota_bytes is not None and self.storage.quota_bytes <= 0:
            raise ConfigError("storage.quota_bytes must be positive when set")
        if self.sync.max_pending < 1:
            raise ConfigError("sync.max_pending must be at least 1")

    @staticmethod
    def _load_yaml(path: Path) -> dict:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Settings file {path} must contain a mapping")
        return data

    @classmethod
    def _deep_merge(cls, base: dict, overlay: dict) -> dict:
        merged = dict(base)
        for k, v in (overlay or {}).items():
            if isinstance(v, dict) and isinstance(base.get(k), dict):
                merged[k] = cls._deep_merge(base[k], v)
            else:
                merged[k] = v
        return merged

    @classmethod
    def _from_dict(cls, data: dict) -> "PersistenceSettings":
        sections = {
            "slots": SlotSettings,
            "validation": ValidationSettings,
            "sanitizer": SanitizerSettings,
            "autosave": AutoSaveSettings,
            "storage": StorageSettings,
            "sync": SyncSettings,
        }
        unknown = set(data) - set(sections)
        if unknown:
            raise ConfigError(f"Unknown settings sections: {sorted(unknown)}")
        kwargs = {}
        for name, section_cls in sections.items():
            try:
                kwargs[name] = section_cls(**(data.get(name) or {}))
            except TypeError as exc:
                raise ConfigError(f"Invalid '{name}' settings: {exc}") from exc
        settings = cls(**kwargs)
        settings.validate()
        return settings

    @classmethod
    def load(cls, user_path: Optional[Path] = None) -> "PersistenceSettings":
        """Load settings from built-in defaults and optional user override file."""
        try:
            with resources.files("sawyers_rpg.config").joinpath("default_persistence.yaml").open(
                "r", encoding="utf-8"
            ) as f:
                default_data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning("Default persistence settings not found; falling back to dataclass defaults.")
            default_data = dataclasses.asdict(PersistenceSettings())

        user_data = {}
        if user_path is not None:
            if user_path.exists():
                user_data = cls._load_yaml(user_path)
                logger.info("Loaded user settings from %s", user_path)
            else:
                logger.warning("User settings file not found: %s", user_path)

        settings = cls._from_dict(cls._deep_merge(default_data, user_data))
        logger.debug("Settings merged: %s", settings)
        return settings

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(dataclasses.asdict(self), f, sort_keys=False)
        logger.info("Saved settings to %s", path)
