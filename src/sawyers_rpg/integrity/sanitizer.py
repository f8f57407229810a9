from __future__ import annotations

import copy
import logging
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from ..persistence.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

DEFAULT_ARRAY_CAP = 1000

# Session-only state that must never reach remote storage
EPHEMERAL_KEYS: FrozenSet[str] = frozenset(
    {
        "temporaryData",
        "sessionData",
        "sessionStartTime",
        "isLoading",
        "currentScreen",
        "error",
        "currentEncounter",
        "showVictoryModal",
        "lastCombatRewards",
        "saveSlots",
        "currentSaveSlot",
    }
)

RECENCY_KEYS = ("acquiredAt", "capturedAt", "obtainedAt", "timestamp")


def _recency(element: Any) -> Optional[float]:
    if not isinstance(element, dict):
        return None
    for key in RECENCY_KEYS:
        value = element.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return None


def cap_recent(values: List[Any], cap: int) -> List[Any]:
    """Keep the ``cap`` most recent elements in their original relative order.

    Elements are ranked by their recency field when every element has one,
    otherwise the tail of the list is kept.
    """
    if len(values) <= cap:
        return values
    stamps = [_recency(v) for v in values]
    if any(s is None for s in stamps):
        return values[-cap:]
    # stable: among equal stamps the later element counts as more recent
    ranked = sorted(range(len(values)), key=lambda i: (stamps[i], i), reverse=True)
    keep = sorted(ranked[:cap])
    return [values[i] for i in keep]


def _clean(value: Any, cap: int) -> Any:
    if isinstance(value, dict):
        return {k: _clean(v, cap) for k, v in value.items() if not callable(v)}
    if isinstance(value, list):
        items = [_clean(v, cap) for v in value if not callable(v)]
        return cap_recent(items, cap)
    return copy.deepcopy(value)


def sanitize_for_cloud(
    state: Dict[str, Any],
    *,
    clock: Optional[Clock] = None,
    denylist: Iterable[str] = EPHEMERAL_KEYS,
    array_cap: int = DEFAULT_ARRAY_CAP,
) -> Dict[str, Any]:
    """Return a copy of ``state`` that is safe to upload.

    Ephemeral top-level keys and callables are dropped, the timestamp is set
    to now and oversized lists are capped. ``state`` is left untouched.
    """
    if not isinstance(state, dict):
        raise TypeError(f"Cannot sanitize {type(state).__name__}; expected a dict")
    if array_cap < 1:
        raise ValueError("array_cap must be positive")
    clock = clock or SystemClock()
    blocked = frozenset(denylist)

    cleaned = {k: _clean(v, array_cap) for k, v in state.items() if k not in blocked and not callable(v)}
    cleaned["timestamp"] = clock.now_ms()
    dropped = sorted(blocked.intersection(state))
    if dropped:
        logger.debug("Sanitizer dropped ephemeral keys: %s", dropped)
    return cleaned
