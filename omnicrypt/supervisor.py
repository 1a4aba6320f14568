"""SPDX-License-Identifier: GPL-3.0-only

Process supervisor for the ``omni`` helper.

Owns the helper's lifecycle: single-flight admission, the pre-launch sanity
check, spawning with its own pipes, wiring the stream pump and the secret
injector, and the one termination callback that releases everything.

Once a process exists nothing here raises; the outcome is the log sink plus
``RunHandle.returncode``.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
from typing import Callable, List, Optional

from .errors import BusyError, ConfigurationError, LaunchError
from .injector import SecretInjector
from .invocation import Invocation
from .logsink import LogSink
from .pump import DRAIN_TIMEOUT, StreamPump
from .state import ExecutionState

LOGGER = logging.getLogger("omnicrypt.supervisor")

ExitCallback = Callable[["RunHandle"], None]


def describe_status(returncode: int) -> str:
    """Render an exit status; negative codes (killed by signal) name the signal."""
    if returncode >= 0:
        return str(returncode)
    try:
        name = signal.Signals(-returncode).name
    except ValueError:
        name = f"signal {-returncode}"
    return f"{returncode} ({name})"


class RunHandle:
    """One live helper run.

    Callers may ``wait()`` and read ``returncode``; the process, pipes and
    worker threads stay owned by the supervisor.
    """

    def __init__(
        self,
        invocation: Invocation,
        process: subprocess.Popen,
        pump: StreamPump,
        injector: Optional[SecretInjector] = None,
    ) -> None:
        self.invocation = invocation
        self.process = process
        self.pump = pump
        self.injector = injector
        self.returncode: Optional[int] = None
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._finished = False
        self._callbacks: List[ExitCallback] = []

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Block until the termination callback has run; returns the exit code.

        Returns None if ``timeout`` expired first. The helper is never killed.
        """
        self._done.wait(timeout)
        return self.returncode

    def add_done_callback(self, fn: ExitCallback) -> None:
        """Run ``fn(handle)`` after termination (immediately if already done)."""
        with self._lock:
            if not self._done.is_set():
                self._callbacks.append(fn)
                return
        fn(self)

    def _claim_finish(self) -> bool:
        with self._lock:
            if self._finished:
                return False
            self._finished = True
            return True

    def _complete(self) -> None:
        # Callbacks run before ``done`` is set so ``wait()`` returns after them.
        while True:
            with self._lock:
                callbacks = list(self._callbacks)
                self._callbacks.clear()
                if not callbacks:
                    self._done.set()
                    return
            for fn in callbacks:
                try:
                    fn(self)
                except Exception:  # pragma: no cover
                    LOGGER.exception("Exit callback failed")


class ProcessSupervisor:
    """Launches the helper, at most one run at a time.

    Args:
        sink: Shared output log; created if omitted.
        state: Shared busy flag; created if omitted.
        drain_timeout: Seconds to let readers drain after the helper exits.
    """

    def __init__(
        self,
        sink: Optional[LogSink] = None,
        state: Optional[ExecutionState] = None,
        drain_timeout: float = DRAIN_TIMEOUT,
    ) -> None:
        self.sink = sink if sink is not None else LogSink()
        self.state = state if state is not None else ExecutionState()
        self.drain_timeout = drain_timeout
        self._current: Optional[RunHandle] = None

    @property
    def busy(self) -> bool:
        return self.state.busy

    @property
    def current(self) -> Optional[RunHandle]:
        return self._current

    def launch(
        self,
        invocation: Invocation,
        secret: Optional[str] = None,
        on_exit: Optional[ExitCallback] = None,
    ) -> RunHandle:
        """Spawn the helper for ``invocation``.

        Args:
            invocation: Built helper invocation.
            secret: Pasted key text, required iff ``invocation.needs_stdin_secret``.
            on_exit: Optional callback run once after termination.

        Raises:
            BusyError: Another run is in flight; nothing was spawned.
            ConfigurationError: Helper missing or not executable.
            LaunchError: The OS could not create the process.
        """
        if invocation.needs_stdin_secret and secret is None:
            raise ValueError("Invocation expects a pasted key but none was given")
        if secret is not None and not invocation.needs_stdin_secret:
            raise ValueError("Pasted key given for an invocation that does not read stdin")

        if not self.state.try_begin():
            LOGGER.info("Launch rejected: helper already running (pid=%s)", self._current.pid if self._current else '?')
            raise BusyError("A helper run is already in progress")

        exe = invocation.executable
        exists = os.path.isfile(exe)
        can_exec = exists and os.access(exe, os.X_OK)
        self.sink.line(f"DEBUG: Helper path → {exe}")
        self.sink.line(f"DEBUG: exists={str(exists).lower()} exec={str(can_exec).lower()}")
        if not exists or not can_exec:
            msg = f"Helper not found at {exe}" if not exists else f"Helper at {exe} is not executable"
            self.sink.line(msg)
            LOGGER.error(msg)
            self.state.end()
            raise ConfigurationError(msg)

        self.sink.line(f"DEBUG: Launching → {exe}")
        self.sink.line(f"DEBUG: Args → {' '.join(invocation.args)}")
        creationflags = getattr(subprocess, 'CREATE_NO_WINDOW', 0) if os.name == 'nt' else 0
        try:
            proc = subprocess.Popen(
                invocation.argv,
                stdin=subprocess.PIPE if invocation.needs_stdin_secret else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
                creationflags=creationflags,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as exc:
            reason = getattr(exc, 'strerror', None) or str(exc)
            self.sink.line(f"Failed to launch helper: {reason}")
            LOGGER.error("Failed to launch helper %s: %s", exe, exc)
            self.state.end()
            raise LaunchError(f"Failed to launch helper: {reason}") from exc

        LOGGER.info("Helper started (pid=%s, paste=%s)", proc.pid, invocation.needs_stdin_secret)
        pump = StreamPump(self.sink, label=f"omni-{proc.pid}")
        pump.attach_process(proc)
        injector = None
        if invocation.needs_stdin_secret:
            injector = SecretInjector(proc.stdin, secret or "", self.sink, label=f"omni-{proc.pid}")
            injector.start()

        handle = RunHandle(invocation, proc, pump, injector)
        if on_exit is not None:
            handle.add_done_callback(on_exit)
        self._current = handle
        watcher = threading.Thread(target=self._watch, args=(handle,), name=f"omni-{proc.pid}-wait", daemon=True)
        watcher.start()
        return handle

    def _watch(self, handle: RunHandle) -> None:
        returncode = handle.process.wait()
        self._on_terminated(handle, returncode)

    def _on_terminated(self, handle: RunHandle, returncode: int) -> None:
        if not handle._claim_finish():
            return
        handle.returncode = returncode
        try:
            drained = handle.pump.detach(self.drain_timeout)
            if handle.injector is not None and not handle.injector.join(self.drain_timeout):
                LOGGER.warning("Stdin writer still blocked after helper exit (pid=%s)", handle.pid)
            status = describe_status(returncode)
            self.sink.line(f"DEBUG: Exit status {status}")
            if returncode == 0:
                LOGGER.info("Helper finished (pid=%s, status=%s)", handle.pid, status)
            else:
                LOGGER.warning("Helper failed (pid=%s, status=%s, drained=%s)", handle.pid, status, drained)
        except Exception:
            LOGGER.exception("Termination bookkeeping failed (pid=%s)", handle.pid)
        finally:
            # The slot is released and waiters woken no matter what happened above.
            if self._current is handle:
                self._current = None
            self.state.end()
            handle._complete()


__all__ = ['ProcessSupervisor', 'RunHandle', 'describe_status']
