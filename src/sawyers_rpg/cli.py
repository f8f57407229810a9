from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import List, Optional

from . import __version__
from .errors import PersistenceError
from .logging_config import configure_logging
from .persistence.manager import SaveSlotManager
from .persistence.session import GameSession
from .persistence.storage import LocalFileSlotStorage
from .settings import PersistenceSettings

logger = logging.getLogger(__name__)


def _manager(args: argparse.Namespace) -> SaveSlotManager:
    settings = PersistenceSettings.load(Path(args.config) if args.config else None)
    data_dir = Path(args.data_dir) if args.data_dir else settings.storage.resolved_data_dir()
    storage = LocalFileSlotStorage(
        data_dir, key_prefix=settings.slots.key_prefix, quota_bytes=settings.storage.quota_bytes
    )
    return SaveSlotManager(
        storage,
        GameSession(),
        strict_mode=settings.validation.strict_mode,
        deep_validation=settings.validation.deep_validation,
        slot_count=settings.slots.count,
    )


def _cmd_list(args: argparse.Namespace) -> int:
    for summary in _manager(args).list_slots():
        if not summary.occupied:
            print(f"[{summary.slot_index}] empty")
            continue
        flag = "  CORRUPTED" if summary.corrupted else ""
        print(
            f"[{summary.slot_index}] {summary.name or '-'} "
            f"saved={summary.timestamp} play_time={summary.total_play_time}{flag}"
        )
    return 0


def _cmd_inspect(args: argparse.Namespace) -> int:
    summary = _manager(args).slot_info(args.slot)
    print(
        json.dumps(
            {
                "slot": summary.slot_index,
                "occupied": summary.occupied,
                "name": summary.name,
                "timestamp": summary.timestamp,
                "totalPlayTime": summary.total_play_time,
                "corrupted": summary.corrupted,
                **summary.details,
            },
            indent=2,
        )
    )
    return 0


def _cmd_verify(args: argparse.Namespace) -> int:
    manager = _manager(args)
    try:
        result = manager.load(args.slot)
    except PersistenceError as e:
        print(f"FAILED: slot {args.slot}: {e.user_message} ({e.code})")
        return 1
    status = "REPAIRABLE" if result.recovered else "OK"
    print(f"{status}: slot {args.slot} checksum_valid={result.checksum_valid}")
    for field in result.repaired_fields:
        print(f"  repaired: {field}")
    for step in result.migrations:
        print(f"  migration: {step}")
    for warning in result.warnings:
        print(f"  warning: {warning}")
    return 0


def _cmd_migrate(args: argparse.Namespace) -> int:
    manager = _manager(args)
    try:
        result = manager.load(args.slot)
        if not result.migrations and not result.recovered:
            print(f"Slot {args.slot} is already current")
            return 0
        record = manager.build_record(
            result.state, args.slot, name=result.metadata.name, timestamp=result.metadata.timestamp
        )
        manager.write_record(args.slot, record)
    except PersistenceError as e:
        print(f"FAILED: slot {args.slot}: {e.user_message} ({e.code})")
        return 1
    print(f"Rewrote slot {args.slot}: {', '.join(result.migrations) or 'repaired'}")
    return 0


def _cmd_delete(args: argparse.Namespace) -> int:
    removed = _manager(args).delete(args.slot)
    print(f"Deleted slot {args.slot}" if removed else f"Slot {args.slot} was already empty")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="srpg-saves", description="Sawyer's RPG save slot tools")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--data-dir", help="Directory holding the saves/ folder", default=None)
    p.add_argument("--config", help="User settings YAML to merge over the defaults", default=None)
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("list", help="Show every save slot").set_defaults(func=_cmd_list)

    for name, func, text in (
        ("inspect", _cmd_inspect, "Print slot metadata and validation details as JSON"),
        ("verify", _cmd_verify, "Run the full load pipeline without touching the game"),
        ("migrate", _cmd_migrate, "Upgrade a slot to the current save format in place"),
        ("delete", _cmd_delete, "Remove a save slot"),
    ):
        s = sub.add_parser(name, help=text)
        s.add_argument("slot", type=int, help="Slot index")
        s.set_defaults(func=func)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    configure_logging(logging.WARNING)
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except PersistenceError as e:
        print(f"ERROR: {e}")
        return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
