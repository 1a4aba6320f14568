"""Remembered pasted keys, kept in the OS keyring.

Pasted key text is only ever stored through ``keyring``; when no backend is
usable the key is simply not remembered. There is no file fallback for
secrets.
"""
from __future__ import annotations

import logging
from typing import Optional

import keyring

from .request import Mode

LOGGER = logging.getLogger("omnicrypt.keystore")

SERVICE_NAME = "omnicrypt"


def _entry(mode: Mode) -> str:
    return "paste_privkey" if mode is Mode.DECRYPT else "paste_pubkey"


def save_pasted_key(mode: Mode, secret: str) -> bool:
    if not secret:
        return False
    try:
        keyring.set_password(SERVICE_NAME, _entry(mode), secret)
        return True
    except Exception as exc:
        LOGGER.warning("Could not store pasted %s key in keyring: %s", mode.value, exc)
        return False


def load_pasted_key(mode: Mode) -> Optional[str]:
    try:
        val = keyring.get_password(SERVICE_NAME, _entry(mode))
    except Exception as exc:
        LOGGER.warning("Keyring lookup failed: %s", exc)
        return None
    if not val or not isinstance(val, str) or not val.strip():
        return None
    return val


def forget_pasted_key(mode: Mode) -> bool:
    try:
        keyring.delete_password(SERVICE_NAME, _entry(mode))
        return True
    except Exception as exc:
        LOGGER.debug("Nothing removed from keyring for %s: %s", mode.value, exc)
        return False


__all__ = ['save_pasted_key', 'load_pasted_key', 'forget_pasted_key', 'SERVICE_NAME']
