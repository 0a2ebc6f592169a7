"""
Signal dispositions of a real daemon body across the coordinator stages.

Until Stage 3 begins, TERM must keep its default action: a daemon told to
stop before USR2, or stuck in its shutdown request callback when the
launcher's handoff deadline fires, has to die instead of lingering
unsupervised.
"""

import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import pytest

from seamless import config

from .test_restart_cycle import daemon_env

COORDINATOR_BODY = Path(__file__).parent / "coordinator_body.py"


def start_body(tmp_path: Path, mode: str) -> tuple[subprocess.Popen, Path]:
    events = tmp_path / "events"
    env = daemon_env()
    # A launcher that is not our parent: CHLD is logged as undeliverable
    # instead of reaching the test runner.
    env[config.ENV_MARKER] = "1"
    proc = subprocess.Popen([sys.executable, str(COORDINATOR_BODY), str(tmp_path / "body.pid"), str(events), mode], env=env)
    wait_for_event(proc, events, "ready")
    return proc, events


def wait_for_event(proc: subprocess.Popen, events: Path, event: str, timeout: float = 15.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if events.exists() and event in events.read_text().splitlines():
            return
        if proc.poll() is not None:
            pytest.fail(f"daemon body exited with {proc.returncode} before {event!r}")
        time.sleep(0.05)
    proc.kill()
    pytest.fail(f"daemon body never reported {event!r}")


def wait_exit(proc: subprocess.Popen, timeout: float = 10.0) -> int:
    try:
        return proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()
        pytest.fail("daemon body survived TERM")


@pytest.mark.integration
class TestTermDisposition:
    def test_term_before_usr2_terminates(self, tmp_path):
        proc, _ = start_body(tmp_path, "drain")

        os.kill(proc.pid, signal.SIGTERM)

        assert wait_exit(proc) == -signal.SIGTERM

    def test_term_during_hung_shutdown_request_terminates(self, tmp_path):
        proc, events = start_body(tmp_path, "hang")

        os.kill(proc.pid, signal.SIGUSR2)
        wait_for_event(proc, events, "hanging")
        os.kill(proc.pid, signal.SIGTERM)

        assert wait_exit(proc) == -signal.SIGTERM
        assert "drained" not in events.read_text().splitlines()

    def test_term_in_stage_three_drains(self, tmp_path):
        proc, events = start_body(tmp_path, "drain")

        os.kill(proc.pid, signal.SIGUSR2)
        wait_for_event(proc, events, "Ready, waiting for TERM signal")
        os.kill(proc.pid, signal.SIGTERM)

        assert wait_exit(proc) == 0
        lines = events.read_text().splitlines()
        assert "Could not find parent process" in lines
        assert lines[-3:] == ["Graceful shutdown started", "drained", "Graceful shutdown completed"]
