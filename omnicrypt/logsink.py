"""SPDX-License-Identifier: GPL-3.0-only

Append-only output log shared by the stream readers and the supervisor.

Each ``append`` is atomic: the chunk lands in the buffer and reaches every
subscriber before any other writer gets a turn. Ordering between chunks from
different writers is whatever order they acquired the lock in.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List

LOGGER = logging.getLogger("omnicrypt.logsink")

Subscriber = Callable[[str], None]


class LogSink:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._chunks: List[str] = []
        self._subscribers: List[Subscriber] = []

    def append(self, text: str) -> None:
        if not text:
            return
        with self._lock:
            self._chunks.append(text)
            for fn in list(self._subscribers):
                try:
                    fn(text)
                except Exception:
                    LOGGER.exception("Log subscriber %r failed; unsubscribing it", fn)
                    self.unsubscribe(fn)

    def line(self, text: str) -> None:
        """Append ``text`` as one complete line."""
        self.append(text if text.endswith("\n") else text + "\n")

    def subscribe(self, fn: Subscriber) -> None:
        """Register ``fn`` to receive every future chunk, under the sink lock."""
        with self._lock:
            self._subscribers.append(fn)

    def unsubscribe(self, fn: Subscriber) -> None:
        with self._lock:
            try:
                self._subscribers.remove(fn)
            except ValueError:
                pass

    @property
    def text(self) -> str:
        with self._lock:
            return "".join(self._chunks)

    def chunks(self) -> List[str]:
        with self._lock:
            return list(self._chunks)

    def lines(self) -> List[str]:
        return self.text.splitlines()

    def clear(self) -> None:
        with self._lock:
            self._chunks.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(c) for c in self._chunks)
