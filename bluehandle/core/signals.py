"""Observer lists for local change notifications."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

LOGGER = logging.getLogger(__name__)

Callback = Callable[..., Any]


class Signal:
    """Ordered list of callbacks fired with the same arguments.

    Connecting a callback that is already connected is a no-op, so each
    emission reaches an observer once. An observer that raises is logged and
    does not stop delivery to the rest.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._handlers: list[Callback] = []
        self._lock = threading.Lock()

    def connect(self, handler: Callback) -> Callback:
        with self._lock:
            if handler not in self._handlers:
                self._handlers.append(handler)
        return handler

    def disconnect(self, handler: Callback) -> None:
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def emit(self, *args: Any) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                LOGGER.exception("Observer %r of %s failed", handler, self.name or "signal")
