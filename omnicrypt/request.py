"""SPDX-License-Identifier: GPL-3.0-only

Run request data model.

A request is what the user filled in on the form: the source, an optional
destination directory and where the key comes from. It is validated on
construction and consumed once by the invocation builder.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional, Union

ENCRYPTED_SUFFIX = ".omni"


class Mode(enum.Enum):
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"

    @classmethod
    def for_source(cls, source: str) -> Optional["Mode"]:
        """Guess the mode from a source path.

        ``.omni`` files are decrypted, anything else is encrypted. Returns
        None for an empty path.
        """
        if not source:
            return None
        return cls.DECRYPT if source.lower().endswith(ENCRYPTED_SUFFIX) else cls.ENCRYPT


@dataclass(frozen=True)
class KeyFile:
    """Key material read by the helper from a file."""

    path: str


@dataclass(frozen=True)
class PastedKey:
    """Key material pasted by the user; sent to the helper over stdin only."""

    secret: str = field(repr=False)

    def __len__(self) -> int:
        return len(self.secret)


KeyStrategy = Union[KeyFile, PastedKey]


@dataclass(frozen=True)
class RunRequest:
    """One user action: transform ``source`` with ``key``.

    Attributes:
        mode: Encrypt or decrypt.
        source: File or directory to transform.
        key: Key file path or pasted key text.
        dest_dir: Optional destination directory (blank means the helper's default).
    """

    mode: Mode
    source: str
    key: KeyStrategy
    dest_dir: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.mode, Mode):
            raise ValueError(f"Unknown mode: {self.mode!r}")
        if not self.source:
            raise ValueError("Source path must not be empty")
        if isinstance(self.key, KeyFile):
            if not self.key.path:
                raise ValueError("Key file path must not be empty")
        elif not isinstance(self.key, PastedKey):
            raise ValueError(f"Unsupported key strategy: {type(self.key).__name__}")


__all__ = ['Mode', 'KeyFile', 'PastedKey', 'KeyStrategy', 'RunRequest', 'ENCRYPTED_SUFFIX']
