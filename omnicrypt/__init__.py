"""SPDX-License-Identifier: GPL-3.0-only

OmniCrypt front-end package.

Re-exports the orchestration primitives for external callers.
"""

from .errors import BusyError, ConfigurationError, LaunchError, OmniCryptError  # noqa: F401
from .request import KeyFile, Mode, PastedKey, RunRequest  # noqa: F401
from .invocation import Invocation, build_invocation, resolve_helper  # noqa: F401
from .logsink import LogSink  # noqa: F401
from .state import ExecutionState  # noqa: F401
from .supervisor import ProcessSupervisor, RunHandle  # noqa: F401
from .runner import Runner  # noqa: F401
