from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Protocol, Tuple

from ..errors import NETWORK_CODES, NetworkUnavailableError, RemoteStoreError

logger = logging.getLogger(__name__)


def remote_error(code: str, message: str = "") -> RemoteStoreError:
    """Build the exception type matching a remote store error code."""
    if code in NETWORK_CODES:
        return NetworkUnavailableError(message or code, code=code)
    return RemoteStoreError(message or code, code=code)


class RemoteStore(Protocol):
    """Async key-value store holding one JSON document per key.

    Implementations raise :class:`RemoteStoreError` (with the store's error
    code) for every failure.
    """

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    async def put(self, key: str, value: Dict[str, Any]) -> None:
        ...

    async def delete(self, key: str) -> bool:
        ...


class InMemoryRemoteStore:
    """Test/deterministic remote store.

    Failures are injected with :meth:`fail_next` or by setting ``offline``.
    Values are stored as JSON text so callers never share objects with it.
    """

    def __init__(self, *, quota_bytes: Optional[int] = None) -> None:
        self.quota_bytes = quota_bytes
        self.offline = False
        self.items: Dict[str, str] = {}
        self.calls: List[Tuple[str, str]] = []
        self._failures: List[str] = []

    def fail_next(self, code: str, times: int = 1) -> None:
        self._failures.extend([code] * times)

    async def _enter(self, op: str, key: str) -> None:
        await asyncio.sleep(0)
        self.calls.append((op, key))
        if self.offline:
            raise remote_error("network/unavailable", f"{op} {key}: offline")
        if self._failures:
            code = self._failures.pop(0)
            raise remote_error(code, f"{op} {key}: injected failure")

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        await self._enter("get", key)
        text = self.items.get(key)
        return json.loads(text) if text is not None else None

    async def put(self, key: str, value: Dict[str, Any]) -> None:
        await self._enter("put", key)
        text = json.dumps(value, sort_keys=True)
        if self.quota_bytes is not None:
            used = sum(len(v) for k, v in self.items.items() if k != key)
            if used + len(text) > self.quota_bytes:
                raise remote_error("storage/quota-exceeded", f"put {key}: quota exceeded")
        self.items[key] = text

    async def delete(self, key: str) -> bool:
        await self._enter("delete", key)
        return self.items.pop(key, None) is not None
