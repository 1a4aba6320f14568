"""SPDX-License-Identifier: GPL-3.0-only

Tests for omnicrypt.supervisor against real (fake) helper processes.
"""

from __future__ import annotations

import os
import stat
import subprocess
import time

import pytest

from omnicrypt.errors import BusyError, ConfigurationError, LaunchError
from omnicrypt.invocation import Invocation
from omnicrypt.pump import StreamPump
from omnicrypt.supervisor import ProcessSupervisor, describe_status

WAIT = 30


def _inv(helper, *args, paste=False):
    return Invocation(executable=str(helper), args=tuple(args), needs_stdin_secret=paste)


@pytest.mark.parametrize("code", [0, 1])
def test_exit_status_recorded(make_helper, code):
    helper = make_helper(f"""
        import sys
        print("working")
        sys.exit({code})
    """)
    sup = ProcessSupervisor()
    handle = sup.launch(_inv(helper, "--encrypt", "/tmp/a"))
    assert handle.wait(WAIT) == code
    assert handle.done
    assert handle.succeeded is (code == 0)
    lines = sup.sink.lines()
    assert lines[-1] == f"DEBUG: Exit status {code}"
    assert "working" in lines
    assert sup.busy is False
    assert sup.current is None


def test_debug_preamble(make_helper):
    helper = make_helper("pass\n")
    sup = ProcessSupervisor()
    sup.launch(_inv(helper, "--decrypt", "/tmp/a.omni", "--quiet")).wait(WAIT)
    lines = sup.sink.lines()
    assert lines[0] == f"DEBUG: Helper path → {helper}"
    assert lines[1] == "DEBUG: exists=true exec=true"
    assert lines[2] == f"DEBUG: Launching → {helper}"
    assert lines[3] == "DEBUG: Args → --decrypt /tmp/a.omni --quiet"


def test_second_launch_rejected_while_busy(make_helper, monkeypatch):
    helper = make_helper("""
        import sys, time
        print("instance-output")
        sys.stdout.flush()
        time.sleep(1.0)
    """)
    real_popen = subprocess.Popen
    spawned = []

    def counting_popen(*a, **k):
        spawned.append(a)
        return real_popen(*a, **k)

    monkeypatch.setattr(subprocess, 'Popen', counting_popen)
    sup = ProcessSupervisor()
    handle = sup.launch(_inv(helper))
    assert sup.busy is True
    with pytest.raises(BusyError):
        sup.launch(_inv(helper))
    assert isinstance(BusyError("x"), LaunchError)
    assert handle.wait(WAIT) == 0
    assert len(spawned) == 1
    text = sup.sink.text
    assert text.count("instance-output") == 1
    assert text.count("DEBUG: Helper path") == 1
    assert sup.busy is False


def test_large_output_on_both_streams_before_reading_stdin(make_helper):
    helper = make_helper("""
        import sys
        sys.stdout.write("o" * 200000)
        sys.stdout.flush()
        sys.stderr.write("e" * 200000)
        sys.stderr.flush()
        key = sys.stdin.readline()
        sys.stdout.write("\\nKEYLEN:%d\\n" % len(key.rstrip("\\n")))
        sys.stdout.write("EOF:%r\\n" % (sys.stdin.read() == ""))
    """)
    sup = ProcessSupervisor()
    handle = sup.launch(_inv(helper, "--paste-pubkey", paste=True), secret="0123456789")
    assert handle.wait(WAIT) == 0, sup.sink.text[-500:]
    assert handle.injector is not None and handle.injector.done
    assert handle.injector.error is None
    text = sup.sink.text
    assert text.count("o") >= 200000
    assert text.count("e") >= 200000
    assert "KEYLEN:10" in text
    assert "EOF:True" in text
    assert sup.sink.lines()[-1] == "DEBUG: Exit status 0"


def test_secret_travels_over_stdin_only(make_helper):
    helper = make_helper("""
        import json, os, sys
        key = sys.stdin.readline().rstrip("\\n")
        print("ARGV:" + json.dumps(sys.argv[1:]))
        print("ENVHIT:%s" % any(key in v for v in os.environ.values()))
        print("GOT:%d" % len(key))
    """)
    secret = "PRIVATE-KEY-TEXT-42"
    sup = ProcessSupervisor()
    handle = sup.launch(_inv(helper, "--decrypt", "/x.omni", "--paste-privkey", paste=True), secret=secret)
    assert handle.wait(WAIT) == 0
    text = sup.sink.text
    argv_line = next(l for l in text.splitlines() if l.startswith("ARGV:"))
    assert secret not in argv_line
    assert "ENVHIT:False" in text
    assert f"GOT:{len(secret)}" in text


def test_missing_helper_is_configuration_error(tmp_path, monkeypatch):
    def no_spawn(*a, **k):
        raise AssertionError("must not spawn")

    monkeypatch.setattr(subprocess, 'Popen', no_spawn)
    sup = ProcessSupervisor()
    with pytest.raises(ConfigurationError):
        sup.launch(_inv(tmp_path / 'missing' / 'omni'))
    assert sup.busy is False
    assert sup.current is None
    assert "DEBUG: exists=false exec=false" in sup.sink.text
    assert "Helper not found at" in sup.sink.text


def test_non_executable_helper_is_configuration_error(tmp_path):
    helper = tmp_path / 'omni'
    helper.write_text('#!/bin/sh\nexit 0\n')
    helper.chmod(stat.S_IRUSR | stat.S_IWUSR)
    sup = ProcessSupervisor()
    with pytest.raises(ConfigurationError, match="not executable"):
        sup.launch(_inv(helper))
    assert "exists=true exec=false" in sup.sink.text
    assert sup.busy is False


def test_spawn_failure_is_launch_error(make_helper, monkeypatch):
    helper = make_helper("pass\n")

    def refuse(*a, **k):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(subprocess, 'Popen', refuse)
    sup = ProcessSupervisor()
    with pytest.raises(LaunchError) as excinfo:
        sup.launch(_inv(helper))
    assert isinstance(excinfo.value.__cause__, PermissionError)
    assert "Failed to launch helper: Permission denied" in sup.sink.text
    assert "Exit status" not in sup.sink.text
    assert sup.busy is False


def test_helper_exiting_without_reading_stdin(make_helper):
    helper = make_helper("""
        import sys
        sys.stderr.write("bad key\\n")
        sys.exit(3)
    """)
    sup = ProcessSupervisor()
    handle = sup.launch(_inv(helper, "--paste-pubkey", paste=True), secret="k" * 10)
    assert handle.wait(WAIT) == 3
    assert "bad key" in sup.sink.text
    assert sup.sink.lines()[-1] == "DEBUG: Exit status 3"
    assert sup.busy is False


def test_killed_by_signal(make_helper):
    helper = make_helper("""
        import os, signal
        os.kill(os.getpid(), signal.SIGTERM)
    """)
    sup = ProcessSupervisor()
    handle = sup.launch(_inv(helper))
    assert handle.wait(WAIT) == -15
    assert sup.sink.lines()[-1] == "DEBUG: Exit status -15 (SIGTERM)"


def test_on_exit_called_once(make_helper):
    helper = make_helper("pass\n")
    calls = []
    sup = ProcessSupervisor()
    handle = sup.launch(_inv(helper), on_exit=calls.append)
    handle.wait(WAIT)
    assert calls == [handle]
    # Late registration fires immediately.
    late = []
    handle.add_done_callback(late.append)
    assert late == [handle]
    sup._on_terminated(handle, 99)
    assert handle.returncode == 0
    assert sup.sink.text.count("Exit status") == 1


def test_secret_mismatch_rejected_before_launch(make_helper):
    helper = make_helper("pass\n")
    sup = ProcessSupervisor()
    with pytest.raises(ValueError):
        sup.launch(_inv(helper, paste=True))
    with pytest.raises(ValueError):
        sup.launch(_inv(helper), secret="x")
    assert sup.busy is False
    assert sup.sink.text == ""


def test_invalid_utf8_output_does_not_break_run(make_helper):
    helper = make_helper("""
        import sys
        sys.stdout.buffer.write(b"\\xff\\xfe\\xfd")
        sys.stdout.buffer.flush()
    """)
    sup = ProcessSupervisor()
    handle = sup.launch(_inv(helper))
    assert handle.wait(WAIT) == 0
    assert handle.pump.glitches >= 1
    assert sup.sink.lines()[-1] == "DEBUG: Exit status 0"


def test_describe_status():
    assert describe_status(0) == "0"
    assert describe_status(2) == "2"
    assert describe_status(-9) == "-9 (SIGKILL)"


def test_raising_subscriber_does_not_wedge_termination(make_helper):
    helper = make_helper("print('hello')\n")
    sup = ProcessSupervisor()

    def closed_stdout(chunk):
        if "Exit status" in chunk:
            raise BrokenPipeError(32, "Broken pipe")

    sup.sink.subscribe(closed_stdout)
    handle = sup.launch(_inv(helper))
    assert handle.wait(WAIT) == 0
    assert handle.done
    assert sup.busy is False
    assert sup.current is None
    assert sup.sink.lines()[-1] == "DEBUG: Exit status 0"
    assert sup.launch(_inv(helper)).wait(WAIT) == 0


def test_launch_does_not_wait_for_helper_to_read_secret(make_helper):
    helper = make_helper("""
        import sys, time
        time.sleep(2.0)
        key = sys.stdin.readline()
        print("KEYLEN:%d" % len(key.rstrip("\\n")))
    """)
    secret = "k" * (1024 * 1024)
    sup = ProcessSupervisor()
    started = time.monotonic()
    handle = sup.launch(_inv(helper, "--paste-pubkey", paste=True), secret=secret)
    elapsed = time.monotonic() - started
    assert elapsed < 1.0
    assert sup.busy is True
    assert handle.wait(WAIT) == 0, sup.sink.text[-500:]
    assert handle.injector is not None and handle.injector.error is None
    assert f"KEYLEN:{len(secret)}" in sup.sink.lines()
    assert sup.sink.lines()[-1] == "DEBUG: Exit status 0"


def _open_fds():
    for where in ('/proc/self/fd', '/dev/fd'):
        if os.path.isdir(where):
            return len(os.listdir(where))
    pytest.skip("no per-process descriptor listing on this platform")


def test_repeated_runs_release_descriptors(make_helper):
    helper = make_helper("""
        import sys
        if "--paste-pubkey" in sys.argv:
            sys.stdin.readline()
        print("out")
        print("err", file=sys.stderr)
    """)
    sup = ProcessSupervisor()
    sup.launch(_inv(helper)).wait(WAIT)
    before = _open_fds()
    for n in range(20):
        if n % 2:
            handle = sup.launch(_inv(helper, "--paste-pubkey", paste=True), secret="KEY")
        else:
            handle = sup.launch(_inv(helper, "--key", "/k/pub.pem"))
        assert handle.wait(WAIT) == 0
        for t in handle.pump._threads.values():
            t.join(WAIT)
    assert _open_fds() <= before


def test_termination_failure_still_releases_slot(make_helper, monkeypatch):
    def exploding_detach(self, timeout=0):
        raise RuntimeError("boom")

    monkeypatch.setattr(StreamPump, 'detach', exploding_detach)
    helper = make_helper("pass\n")
    calls = []
    sup = ProcessSupervisor()
    handle = sup.launch(_inv(helper), on_exit=calls.append)
    assert handle.wait(WAIT) == 0
    assert calls == [handle]
    assert sup.busy is False
    assert sup.current is None
