"""SPDX-License-Identifier: GPL-3.0-only

Single-flight execution state.

There is exactly one helper slot. ``try_begin`` and ``end`` are the only
transitions; a launch while busy is rejected, never queued.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List

LOGGER = logging.getLogger("omnicrypt.state")

Listener = Callable[[bool], None]


class ExecutionState:
    """Busy flag guarded by a lock, with change notification."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._busy = False
        self._listeners: List[Listener] = []

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy

    def subscribe(self, listener: Listener) -> None:
        """Call ``listener(busy)`` after every transition (e.g. to grey out a button)."""
        with self._lock:
            self._listeners.append(listener)

    def try_begin(self) -> bool:
        """Idle -> Busy. Returns False (and changes nothing) if already busy."""
        with self._lock:
            if self._busy:
                return False
            self._busy = True
            listeners = list(self._listeners)
        self._notify(listeners, True)
        return True

    def end(self) -> bool:
        """Busy -> Idle. Returns False if the state was already idle."""
        with self._lock:
            if not self._busy:
                return False
            self._busy = False
            listeners = list(self._listeners)
        self._notify(listeners, False)
        return True

    @staticmethod
    def _notify(listeners: List[Listener], busy: bool) -> None:
        for fn in listeners:
            try:
                fn(busy)
            except Exception:  # pragma: no cover - listener bug must not wedge the slot
                LOGGER.exception("Busy listener failed")
