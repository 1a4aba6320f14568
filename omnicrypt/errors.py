"""SPDX-License-Identifier: GPL-3.0-only

Exceptions raised by the helper orchestration layer.

Only ``ConfigurationError`` and ``LaunchError`` ever leave ``launch``; once a
helper process exists every other problem is reported through the log sink
and the final exit status.
"""

from __future__ import annotations


class OmniCryptError(RuntimeError):
    """Base class for front-end errors."""


class ConfigurationError(OmniCryptError):
    """Helper executable missing or not executable at the expected location."""


class LaunchError(OmniCryptError):
    """The OS refused to create the helper process."""


class BusyError(LaunchError):
    """A helper run is already in flight."""


__all__ = ['OmniCryptError', 'ConfigurationError', 'LaunchError', 'BusyError']
