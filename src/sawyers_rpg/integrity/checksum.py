from __future__ import annotations

import hashlib
import hmac
from typing import Any

from ..utils.jsonutil import canonical_dumps


def _serialize(data: Any) -> str:
    if isinstance(data, str):
        return data
    return canonical_dumps(data)


def generate_checksum(data: Any) -> str:
    """SHA-256 hex digest of ``data``.

    Strings are hashed as-is; anything else is hashed over its canonical JSON
    form. Raises ``TypeError``/``ValueError`` for values that cannot be
    serialized (cycles, sets, NaN).
    """
    return hashlib.sha256(_serialize(data).encode("utf-8")).hexdigest()


def verify_checksum(data: Any, checksum: Any) -> bool:
    if not isinstance(checksum, str):
        return False
    expected = generate_checksum(data)
    return hmac.compare_digest(expected, checksum.lower())
