"""SPDX-License-Identifier: GPL-3.0-only

Secret injector: hands pasted key text to the helper over stdin.

The write runs on its own thread because a helper that is busy producing
output before it reads stdin would otherwise stall whoever started the run.
Write failures are reported, never raised; the helper's exit status decides
whether the run worked.
"""

from __future__ import annotations

import logging
import threading
from typing import BinaryIO, Optional

from .logsink import LogSink

LOGGER = logging.getLogger("omnicrypt.injector")


class SecretInjector:
    def __init__(self, pipe: BinaryIO, secret: str, sink: LogSink, label: str = "helper") -> None:
        self._pipe = pipe
        self._payload = (secret + "\n").encode("utf-8")
        self._sink = sink
        self._thread = threading.Thread(target=self._write, name=f"{label}-stdin", daemon=True)
        self.error: Optional[OSError] = None

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the write to finish; True if it did."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    @property
    def done(self) -> bool:
        return self._thread.ident is not None and not self._thread.is_alive()

    def _write(self) -> None:
        try:
            view = memoryview(self._payload)
            while view:
                written = self._pipe.write(view)
                view = view[written or 0:]
            self._pipe.flush()
            LOGGER.debug("Sent %d byte key to helper stdin", len(self._payload) - 1)
        except OSError as exc:
            self.error = exc
            LOGGER.warning("Writing key to helper stdin failed: %s", exc)
            self._sink.line(f"Failed to send key to helper: {exc}")
        finally:
            self._payload = b""
            try:
                self._pipe.close()
            except OSError as exc:
                # Close flushes nothing (unbuffered) but can still see EPIPE on some platforms.
                if self.error is None:
                    self.error = exc
                    self._sink.line(f"Failed to send key to helper: {exc}")
                LOGGER.debug("Closing helper stdin failed: %s", exc)
