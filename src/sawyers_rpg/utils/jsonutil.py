from __future__ import annotations

import json
from typing import Any


def canonical_dumps(obj: Any) -> str:
    """Canonical JSON dump used for checksums and on-disk records.

    - No whitespace (compact separators)
    - Keys sorted, so insertion order never changes the digest
    - NaN/Infinity rejected
    """
    return json.dumps(obj, separators=(",", ":"), sort_keys=True, allow_nan=False)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-finite number {name} is not allowed")


def strict_loads(text: str) -> Any:
    """Parse JSON that ``canonical_dumps`` could have written.

    ``json.loads`` accepts ``NaN``/``Infinity``; those are refused here so a
    parsed record can always be re-serialized and checksummed.
    """
    return json.loads(text, parse_constant=_reject_constant)
