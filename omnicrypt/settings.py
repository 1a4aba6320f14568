"""SPDX-License-Identifier: GPL-3.0-only

Persisted front-end preferences.

Default key files and whether to use them automatically, one pair per mode.
Stored as JSON in the config directory; a missing or unreadable file simply
yields defaults.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

from .request import Mode

LOGGER = logging.getLogger("omnicrypt.settings")

CONFIG_DIR_ENV = "OMNICRYPT_CONFIG_DIR"
SETTINGS_NAME = "settings.json"


def config_dir() -> Path:
    env = os.environ.get(CONFIG_DIR_ENV, '').strip()
    if env:
        return Path(env).expanduser()
    xdg = os.environ.get('XDG_CONFIG_HOME', '').strip()
    base = Path(xdg) if xdg else Path.home() / '.config'
    return base / 'omnicrypt'


def settings_path() -> Path:
    return config_dir() / SETTINGS_NAME


@dataclass
class Preferences:
    """Key-file preferences.

    Attributes:
        auto_pub: Use ``pub_path`` automatically when encrypting.
        pub_path: Default public key file.
        auto_priv: Use ``priv_path`` automatically when decrypting.
        priv_path: Default private key file.
    """

    auto_pub: bool = True
    pub_path: str = ""
    auto_priv: bool = True
    priv_path: str = ""

    def key_path_for(self, mode: Mode) -> str:
        return self.priv_path if mode is Mode.DECRYPT else self.pub_path

    def auto_for(self, mode: Mode) -> bool:
        return self.auto_priv if mode is Mode.DECRYPT else self.auto_pub

    def default_key_file(self, mode: Mode) -> Optional[str]:
        """Key file to use when the user picked nothing, if any."""
        path = self.key_path_for(mode)
        if self.auto_for(mode) and path:
            return path
        return None


def load_preferences(path: Optional[Path] = None) -> Preferences:
    p = path or settings_path()
    if not p.exists():
        return Preferences()
    try:
        data = json.loads(p.read_text(encoding='utf-8'))
    except Exception as exc:
        LOGGER.warning("Ignoring unreadable settings file %s: %s", p, exc)
        return Preferences()
    if not isinstance(data, dict):
        return Preferences()
    values = {}
    for name in (f.name for f in fields(Preferences)):
        if name not in data:
            continue
        val = data[name]
        if name.startswith('auto_'):
            values[name] = bool(val)
        elif isinstance(val, str):
            values[name] = val
    return Preferences(**values)


def save_preferences(prefs: Preferences, path: Optional[Path] = None) -> Path:
    """Atomically write preferences (temp file then rename)."""
    p = path or settings_path()
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(p.suffix + '.tmp-' + str(os.getpid()))
    tmp.write_text(json.dumps(asdict(prefs), indent=2), encoding='utf-8')
    os.replace(tmp, p)
    LOGGER.debug("Saved settings to %s", p)
    return p


__all__ = ['Preferences', 'load_preferences', 'save_preferences', 'config_dir', 'settings_path', 'CONFIG_DIR_ENV']
