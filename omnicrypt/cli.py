"""SPDX-License-Identifier: GPL-3.0-only

Command-line front-end: pick a source, a key, and run the helper.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional, TextIO

from .errors import ConfigurationError, LaunchError
from .keystore import forget_pasted_key, load_pasted_key, save_pasted_key
from .logging_config import configure_logging
from .request import KeyFile, Mode, PastedKey, RunRequest
from .runner import Runner
from .settings import Preferences, load_preferences, save_preferences

LOGGER = logging.getLogger("omnicrypt.cli")

EXIT_USAGE = 2
EXIT_CONFIG = 3
EXIT_LAUNCH = 4
EXIT_INTERRUPTED = 130


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="omnicrypt", description="Encrypt or decrypt a file or folder with the omni helper")
    p.add_argument("source", nargs="?", help="File or folder to process (.omni sources are decrypted)")
    p.add_argument("--dest", dest="dest_dir", default="", help="Destination folder (default: next to the source)")
    p.add_argument("--mode", choices=[m.value for m in Mode], help="Override mode detection")
    k = p.add_mutually_exclusive_group()
    k.add_argument("--key-file", help="Public key (encrypt) or private key (decrypt) file")
    k.add_argument("--paste-stdin", action="store_true", help="Read pasted key text from stdin and hand it to the helper")
    k.add_argument("--paste-keyring", action="store_true", help="Use key text saved earlier with --remember-paste")
    p.add_argument("--remember-paste", action="store_true", help="After a successful run, keep pasted key text in the OS keyring")
    p.add_argument("--helper", help="Path to the omni helper (default: $OMNICRYPT_HELPER or bundled)")
    p.add_argument("--log-level", default="INFO", help="Diagnostic log level (default: INFO)")
    p.add_argument("--log-json", action="store_true", help="Write diagnostic log lines as JSON")
    p.add_argument("--log-file", help="Diagnostic log file (default: <config dir>/omnicrypt.log)")
    s = p.add_argument_group("settings")
    s.add_argument("--show-settings", action="store_true", help="Print stored preferences as JSON")
    s.add_argument("--set-pubkey", metavar="PATH", help="Default public key file for encryption")
    s.add_argument("--set-privkey", metavar="PATH", help="Default private key file for decryption")
    s.add_argument("--auto-pub", choices=["on", "off"], help="Use the default public key automatically")
    s.add_argument("--auto-priv", choices=["on", "off"], help="Use the default private key automatically")
    s.add_argument("--forget-paste", choices=[m.value for m in Mode], help="Remove remembered pasted key text")
    return p.parse_args(argv)


def _wants_settings(args: argparse.Namespace) -> bool:
    return bool(
        args.show_settings or args.set_pubkey is not None or args.set_privkey is not None
        or args.auto_pub or args.auto_priv or args.forget_paste
    )


def _settings_command(args: argparse.Namespace, prefs: Preferences) -> int:
    changed = False
    if args.set_pubkey is not None:
        prefs.pub_path = args.set_pubkey
        changed = True
    if args.set_privkey is not None:
        prefs.priv_path = args.set_privkey
        changed = True
    if args.auto_pub:
        prefs.auto_pub = args.auto_pub == "on"
        changed = True
    if args.auto_priv:
        prefs.auto_priv = args.auto_priv == "on"
        changed = True
    if changed:
        save_preferences(prefs)
    if args.forget_paste:
        removed = forget_pasted_key(Mode(args.forget_paste))
        print(json.dumps({'forgot': args.forget_paste, 'removed': removed}))
    if changed or args.show_settings:
        print(json.dumps(asdict(prefs), indent=2))
    return 0


def build_request(args: argparse.Namespace, prefs: Preferences, stdin: Optional[TextIO] = None) -> RunRequest:
    """Turn parsed arguments into a ``RunRequest``.

    Raises:
        ValueError: Missing source or no usable key.
    """
    if not args.source:
        raise ValueError("No source given")
    mode = Mode(args.mode) if args.mode else Mode.for_source(args.source)
    if args.key_file:
        key = KeyFile(args.key_file)
    elif args.paste_stdin:
        text = (stdin or sys.stdin).read().rstrip('\n')
        if not text.strip():
            raise ValueError("No key text received on stdin")
        key = PastedKey(text)
    elif args.paste_keyring:
        saved = load_pasted_key(mode)
        if saved is None:
            raise ValueError(f"No remembered {mode.value} key in keyring")
        key = PastedKey(saved)
    else:
        default = prefs.default_key_file(mode)
        if not default:
            flag = "--set-privkey" if mode is Mode.DECRYPT else "--set-pubkey"
            raise ValueError(f"No key given: use --key-file, --paste-stdin or --paste-keyring, or set a default with {flag}")
        key = KeyFile(default)
    return RunRequest(mode=mode, source=args.source, key=key, dest_dir=args.dest_dir or None)


def exit_code_for(returncode: Optional[int]) -> int:
    if returncode is None:
        return 1
    if returncode < 0:
        return 128 - returncode
    return returncode


def _echo(chunk: str) -> None:
    sys.stdout.write(chunk)
    sys.stdout.flush()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.log_level, json_mode=args.log_json, log_path=Path(args.log_file) if args.log_file else None)
    prefs = load_preferences()
    if _wants_settings(args):
        return _settings_command(args, prefs)

    try:
        request = build_request(args, prefs)
    except ValueError as e:
        print(f"omnicrypt: {e}", file=sys.stderr)
        return EXIT_USAGE

    runner = Runner(helper=args.helper)
    runner.log.subscribe(_echo)
    try:
        handle = runner.run(request)
    except ConfigurationError as e:
        LOGGER.error("Configuration error: %s", e)
        return EXIT_CONFIG
    except LaunchError as e:
        print(f"omnicrypt: {e}", file=sys.stderr)
        return EXIT_LAUNCH

    try:
        returncode = handle.wait()
    except KeyboardInterrupt:  # pragma: no cover
        LOGGER.warning("Interrupted while helper pid=%s was running", handle.pid)
        return EXIT_INTERRUPTED
    finally:
        runner.log.unsubscribe(_echo)

    if args.remember_paste and returncode == 0 and isinstance(request.key, PastedKey):
        if save_pasted_key(request.mode, request.key.secret):
            LOGGER.info("Remembered pasted %s key in keyring", request.mode.value)
    return exit_code_for(returncode)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
