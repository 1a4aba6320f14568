"""SPDX-License-Identifier: GPL-3.0-only

Runner: the object a front-end talks to.

Composes the invocation builder and the process supervisor around one shared
log sink and one busy flag, mirroring what the form needs: ``can_run`` to
enable the action, ``run`` to start it, ``log``/``busy`` to display.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from .errors import BusyError, ConfigurationError
from .invocation import build_invocation
from .logsink import LogSink
from .request import PastedKey, RunRequest
from .state import ExecutionState
from .supervisor import ExitCallback, ProcessSupervisor, RunHandle

LOGGER = logging.getLogger("omnicrypt.runner")


class Runner:
    """Single-slot helper runner.

    Args:
        helper: Optional explicit helper path; otherwise env / bundled lookup.
        sink: Shared log sink (created if omitted).
        state: Shared busy flag (created if omitted).
    """

    def __init__(
        self,
        helper: Optional[Union[str, Path]] = None,
        sink: Optional[LogSink] = None,
        state: Optional[ExecutionState] = None,
    ) -> None:
        self.helper = helper
        self.log = sink if sink is not None else LogSink()
        self.state = state if state is not None else ExecutionState()
        self.supervisor = ProcessSupervisor(self.log, self.state)

    @property
    def busy(self) -> bool:
        return self.state.busy

    def can_run(self, request: Optional[RunRequest]) -> bool:
        """True when the run action should be enabled for ``request``."""
        return request is not None and not self.busy

    def run(self, request: RunRequest, on_exit: Optional[ExitCallback] = None) -> RunHandle:
        """Build and launch the helper for ``request``.

        Raises:
            ConfigurationError: Helper could not be located or is not executable.
            LaunchError: Already busy, or the OS refused to start the helper.
        """
        if self.busy:
            raise BusyError("A helper run is already in progress")
        try:
            invocation = build_invocation(request, self.helper)
        except ConfigurationError as exc:
            self.log.line(f"Helper not found in bundle: {exc}")
            raise
        secret = request.key.secret if isinstance(request.key, PastedKey) else None
        LOGGER.debug(
            "Run requested: mode=%s source=%s dest=%s key=%s",
            request.mode.value,
            request.source,
            request.dest_dir or '-',
            'paste(%d chars)' % len(request.key) if secret is not None else 'file',
        )
        return self.supervisor.launch(invocation, secret, on_exit=on_exit)


__all__ = ['Runner']
