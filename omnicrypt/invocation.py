"""SPDX-License-Identifier: GPL-3.0-only

Helper invocation builder.

Turns a ``RunRequest`` into the argument vector of the bundled ``omni``
helper. Pasted key material never goes into the vector; the builder only
flags that the supervisor has to feed it through stdin.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .errors import ConfigurationError
from .request import KeyFile, Mode, RunRequest

LOGGER = logging.getLogger("omnicrypt.invocation")

HELPER_NAME = "omni"
HELPER_ENV = "OMNICRYPT_HELPER"
BUNDLED_HELPER_DIR = Path(__file__).resolve().parent / "bin"

PathLike = Union[str, Path]


@dataclass(frozen=True)
class Invocation:
    """Immutable description of one helper run.

    Attributes:
        executable: Absolute path of the helper.
        args: Arguments passed after the executable.
        needs_stdin_secret: True when the helper expects pasted key text on stdin.
    """

    executable: str
    args: Tuple[str, ...]
    needs_stdin_secret: bool = False

    @property
    def argv(self) -> List[str]:
        return [self.executable, *self.args]


def _bundled_dir() -> Path:
    # Frozen builds ship the helper beside the application binary.
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).resolve().parent
    return BUNDLED_HELPER_DIR


def helper_candidates(helper: Optional[PathLike] = None) -> List[Path]:
    """Return the helper locations to try, most specific first."""
    if helper:
        return [Path(helper).expanduser()]
    env = os.environ.get(HELPER_ENV, '').strip()
    if env:
        return [Path(env).expanduser()]
    base = _bundled_dir() / HELPER_NAME
    candidates = [base]
    if sys.platform == "win32":
        candidates.append(base.with_name(HELPER_NAME + ".exe"))
    return candidates


def resolve_helper(helper: Optional[PathLike] = None) -> Path:
    """Resolve the helper executable to an absolute path.

    Raises:
        ConfigurationError: No candidate location holds a file.
    """
    candidates = helper_candidates(helper)
    for cand in candidates:
        if cand.is_file():
            return cand.resolve()
    tried = ", ".join(str(c) for c in candidates)
    LOGGER.debug("Helper lookup failed; tried %s", tried)
    raise ConfigurationError(f"Helper not found (looked in {tried})")


def build_args(request: RunRequest) -> Tuple[Tuple[str, ...], bool]:
    """Return ``(args, needs_stdin_secret)`` for a request."""
    encrypt = request.mode is Mode.ENCRYPT
    args: List[str] = ["--encrypt" if encrypt else "--decrypt", request.source]
    if request.dest_dir:
        args += ["--dest", request.dest_dir]
    args += ["--quiet", "--delete-source"]

    needs_secret = False
    if isinstance(request.key, KeyFile):
        key_path = os.path.expanduser(request.key.path)
        args += ["--pubkey-file" if encrypt else "--privkey-file", key_path]
    else:
        args.append("--paste-pubkey" if encrypt else "--paste-privkey")
        needs_secret = True
    return tuple(args), needs_secret


def build_invocation(request: RunRequest, helper: Optional[PathLike] = None) -> Invocation:
    """Build the helper invocation for ``request``.

    Args:
        request: Validated run request.
        helper: Optional explicit helper path (overrides env and bundle).

    Returns:
        Invocation: executable plus argument vector.

    Raises:
        ConfigurationError: The helper could not be located.
    """
    exe = resolve_helper(helper)
    args, needs_secret = build_args(request)
    return Invocation(executable=str(exe), args=args, needs_stdin_secret=needs_secret)


__all__ = [
    'Invocation',
    'HELPER_NAME',
    'HELPER_ENV',
    'helper_candidates',
    'resolve_helper',
    'build_args',
    'build_invocation',
]
