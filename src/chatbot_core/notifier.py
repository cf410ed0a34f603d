from __future__ import annotations

from collections.abc import Callable
from itertools import count

from loguru import logger

ChangeCallback = Callable[[str, dict], None]


class ChangeNotifier:
    """Synchronous observer registry.

    Callbacks run in registration order on the task that performed the
    mutation. A failing callback is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._callbacks: dict[int, ChangeCallback] = {}
        self._tokens = count(1)

    def subscribe(self, callback: ChangeCallback) -> int:
        token = next(self._tokens)
        self._callbacks[token] = callback
        return token

    def unsubscribe(self, token: int) -> None:
        self._callbacks.pop(token, None)

    def notify(self, event_type: str, payload: dict | None = None) -> None:
        data = payload or {}
        for callback in list(self._callbacks.values()):
            try:
                callback(event_type, data)
            except Exception:
                logger.exception(f"Change observer failed on {event_type!r}")
