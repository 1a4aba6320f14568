"""SPDX-License-Identifier: GPL-3.0-only

Test configuration: add project root to sys.path for package imports and
provide a factory for throwaway ``omni`` helpers.
"""

from __future__ import annotations

import os
import stat
import sys
import textwrap
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep tests away from the real helper override and config directory."""
    monkeypatch.delenv('OMNICRYPT_HELPER', raising=False)
    monkeypatch.setenv('OMNICRYPT_CONFIG_DIR', str(tmp_path / 'config'))
    monkeypatch.setenv('OMNICRYPT_BASE_DIR', str(tmp_path / 'logs'))
    yield


@pytest.fixture
def make_helper(tmp_path):
    """Return a factory writing an executable fake helper.

    The helper is a small shell wrapper that execs the running interpreter on
    ``body`` (dedented Python source), so it behaves like a real child process
    with its own pipes and exit code.
    """
    if os.name == 'nt':  # pragma: no cover
        pytest.skip("fake helpers rely on POSIX shebang scripts")
    counter = {'n': 0}

    def _make(body: str, name: str = 'omni') -> Path:
        counter['n'] += 1
        bindir = tmp_path / f"bin{counter['n']}"
        bindir.mkdir()
        script = bindir / 'helper_impl.py'
        script.write_text(textwrap.dedent(body), encoding='utf-8')
        wrapper = bindir / name
        wrapper.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{script}" "$@"\n', encoding='utf-8')
        wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return wrapper

    return _make
