"""SPDX-License-Identifier: GPL-3.0-only

Diagnostic logging for the OmniCrypt front-end.
Provides:
  configure_logging(level:str='INFO', json_mode:bool=False, rotate_mb:int=2, log_path=None)
  set_runtime_level(level:str)
  get_runtime_level() -> str
  default_log_path() -> Path

This is the developer-facing log (``omnicrypt.*`` loggers). Helper output
shown to the user goes to the ``LogSink`` instead; the two never mix, and
key material is never written to either.

Features:
  * Idempotent root logger setup.
  * Size-based rotation with a single .1 rollover (1-64 MiB).
  * Human or JSON line format.
  * TRACE level (5) for very chatty pipe diagnostics.
"""
from __future__ import annotations
import logging, os, json, threading, time
from pathlib import Path
from typing import Optional

from .settings import config_dir

BASE_DIR_ENV = 'OMNICRYPT_BASE_DIR'
LOG_NAME = 'omnicrypt.log'
TRACE = 5

_LOCK = threading.Lock()
_CONFIGURED = False
_CURRENT_LEVEL = 'INFO'
_JSON_MODE = False
_ROTATE_MB = 2
_LOG_PATH: Optional[Path] = None
_HANDLER: Optional[logging.Handler] = None


def _clamp_rotate(rotate_mb: int) -> int:
    if not rotate_mb or rotate_mb <= 0:
        return 2
    return min(rotate_mb, 64)


def default_log_path() -> Path:
    base = os.environ.get(BASE_DIR_ENV, '').strip()
    return (Path(base).expanduser() if base else config_dir()) / LOG_NAME


class _SizedRotatingHandler(logging.Handler):
    def __init__(self, path: Path, rotate_mb: int) -> None:
        super().__init__()
        self.path = path
        self.rotate_bytes = _clamp_rotate(rotate_mb) * 1024 * 1024
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _rollover_if_needed(self, incoming: int) -> None:
        try:
            if not self.path.exists() or self.path.stat().st_size + incoming <= self.rotate_bytes:
                return
        except OSError:  # pragma: no cover
            return
        rolled = self.path.with_suffix(self.path.suffix + '.1')
        try:
            rolled.unlink(missing_ok=True)
            self.path.rename(rolled)
        except OSError:  # pragma: no cover
            pass

    def emit(self, record: logging.LogRecord) -> None:  # noqa: D401
        try:
            data = self.format(record) + '\n'
            self.acquire()
            try:
                self._rollover_if_needed(len(data.encode('utf-8')))
                with self.path.open('a', encoding='utf-8') as fh:
                    fh.write(data)
            finally:
                self.release()
        except Exception:  # pragma: no cover
            self.handleError(record)


class _DualFormatter(logging.Formatter):
    def __init__(self, json_mode: bool):
        super().__init__()
        self.json_mode = json_mode

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        ts = time.strftime('%Y-%m-%dT%H:%M:%S', time.localtime(record.created)) + f".{int(record.msecs):03d}"
        msg = record.getMessage()
        if self.json_mode:
            base = {
                'ts': ts,
                'level': record.levelname,
                'logger': record.name,
                'thread': record.threadName,
                'msg': msg,
            }
            if record.exc_info:
                base['exc'] = self.formatException(record.exc_info)
            return json.dumps(base, ensure_ascii=False)
        line = f"[{ts}] {record.levelname} {record.name} ({record.threadName}): {msg}"
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def _install_trace_level() -> None:
    logging.addLevelName(TRACE, 'TRACE')

    def trace(self, msg, *args, **kwargs):  # pragma: no cover - convenience
        if self.isEnabledFor(TRACE):
            self._log(TRACE, msg, args, **kwargs)

    if not hasattr(logging.Logger, 'trace'):
        logging.Logger.trace = trace  # type: ignore[attr-defined]


def configure_logging(level: str = 'INFO', json_mode: bool = False, rotate_mb: int = 2, log_path: Optional[Path] = None) -> Path:
    """Install the file handler on the root logger (once) and set the level.

    Later calls only adjust the level. Returns the active log file path.
    """
    global _CONFIGURED, _CURRENT_LEVEL, _JSON_MODE, _ROTATE_MB, _LOG_PATH, _HANDLER
    _install_trace_level()
    with _LOCK:
        _CURRENT_LEVEL = (level or 'INFO').upper()
        _JSON_MODE = bool(json_mode)
        _ROTATE_MB = _clamp_rotate(rotate_mb)
        if not _CONFIGURED:
            _LOG_PATH = log_path or default_log_path()
            _HANDLER = _SizedRotatingHandler(_LOG_PATH, _ROTATE_MB)
            _HANDLER.setFormatter(_DualFormatter(_JSON_MODE))
            root = logging.getLogger()
            for h in list(root.handlers):
                root.removeHandler(h)
            root.addHandler(_HANDLER)
            _CONFIGURED = True
        logging.getLogger().setLevel(_CURRENT_LEVEL)
        return _LOG_PATH  # type: ignore[return-value]


def set_runtime_level(level: str) -> None:
    global _CURRENT_LEVEL
    with _LOCK:
        _CURRENT_LEVEL = (level or 'INFO').upper()
        logging.getLogger().setLevel(_CURRENT_LEVEL)


def get_runtime_level() -> str:
    return _CURRENT_LEVEL


__all__ = ['configure_logging', 'set_runtime_level', 'get_runtime_level', 'default_log_path', 'TRACE']
