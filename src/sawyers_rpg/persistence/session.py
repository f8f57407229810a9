from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class GameSession:
    """Holds the live game state owned by the game's reducer.

    The persistence layer only ever sees deep copies: ``snapshot()`` to save,
    ``replace()`` to commit a fully validated load.
    """

    def __init__(self, state: Optional[Dict[str, Any]] = None) -> None:
        self._state: Dict[str, Any] = copy.deepcopy(state) if state is not None else {}
        self._lock = threading.RLock()
        self.revision = 0

    @property
    def state(self) -> Dict[str, Any]:
        return self._state

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._state)

    def replace(self, state: Dict[str, Any]) -> None:
        with self._lock:
            self._state = copy.deepcopy(state)
            self.revision += 1
        logger.debug("Session state replaced (revision %d)", self.revision)

    def update(self, **changes: Any) -> None:
        with self._lock:
            self._state.update(copy.deepcopy(changes))
            self.revision += 1
