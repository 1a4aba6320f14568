"""SPDX-License-Identifier: GPL-3.0-only

Stream pump: drains the helper's stdout and stderr into the log sink.

Each stream gets its own daemon thread so a full pipe on one side can never
stall the helper while we sit blocked on the other (the classic two-pipe
deadlock). Readers own their pipe and close it themselves once they hit
EOF, so a descriptor is never closed underneath a blocked ``read``.
"""

from __future__ import annotations

import codecs
import logging
import threading
import time
from typing import BinaryIO, Dict, Optional

from .logsink import LogSink

LOGGER = logging.getLogger("omnicrypt.pump")

CHUNK_SIZE = 64 * 1024
DRAIN_TIMEOUT = 2.0


class StreamPump:
    """Pair (or more) of concurrent readers feeding one ``LogSink``.

    Args:
        sink: Destination for decoded output.
        label: Name prefix for the reader threads.
    """

    def __init__(self, sink: LogSink, label: str = "helper") -> None:
        self.sink = sink
        self.label = label
        self._lock = threading.Lock()
        self._detached = False
        self._glitches = 0
        self._threads: Dict[str, threading.Thread] = {}

    @property
    def glitches(self) -> int:
        """Number of chunks dropped because they were not valid UTF-8."""
        with self._lock:
            return self._glitches

    @property
    def attached(self) -> bool:
        with self._lock:
            return not self._detached

    def attach(self, name: str, pipe: Optional[BinaryIO]) -> None:
        """Start a reader for ``pipe`` (a no-op for None)."""
        if pipe is None:
            return
        t = threading.Thread(
            target=self._read_loop,
            args=(name, pipe),
            name=f"{self.label}-{name}",
            daemon=True,
        )
        self._threads[name] = t
        t.start()

    def attach_process(self, proc) -> None:  # noqa: ANN001
        """Attach to ``proc.stdout`` and ``proc.stderr`` of a Popen object."""
        self.attach("stdout", proc.stdout)
        self.attach("stderr", proc.stderr)

    def detach(self, timeout: float = DRAIN_TIMEOUT) -> bool:
        """Let readers drain to EOF, then stop them from writing to the sink.

        Returns True when every reader finished within ``timeout``. A reader
        that is still blocked keeps its pipe and closes it when its read
        returns; it no longer appends anything either way.
        """
        deadline = time.monotonic() + timeout
        for t in self._threads.values():
            t.join(max(0.0, deadline - time.monotonic()))
        with self._lock:
            self._detached = True
        lingering = [n for n, t in self._threads.items() if t.is_alive()]
        if lingering:
            LOGGER.debug("Reader(s) %s still blocked after detach; pipe held open by another process?", lingering)
        return not lingering

    def _emit(self, text: str) -> None:
        if not text:
            return
        with self._lock:
            if self._detached:
                return
            self.sink.append(text)

    def _glitch(self, name: str, exc: UnicodeDecodeError) -> None:
        with self._lock:
            self._glitches += 1
        LOGGER.debug("Dropped undecodable %s chunk: %s", name, exc)

    def _read_loop(self, name: str, pipe: BinaryIO) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")()
        try:
            while True:
                try:
                    data = pipe.read(CHUNK_SIZE)
                except (OSError, ValueError) as exc:
                    LOGGER.debug("%s read stopped: %s", name, exc)
                    break
                if not data:
                    break
                try:
                    text = decoder.decode(data)
                except UnicodeDecodeError as exc:
                    decoder.reset()
                    self._glitch(name, exc)
                    continue
                self._emit(text)
            try:
                self._emit(decoder.decode(b"", final=True))
            except UnicodeDecodeError as exc:
                self._glitch(name, exc)
        finally:
            try:
                pipe.close()
            except OSError:  # pragma: no cover
                pass
