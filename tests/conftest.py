"""Pytest configuration and fixtures for seamless tests.

Most tests install signal handlers in the test process itself (pytest runs
tests on the main thread), so every test gets its signal dispositions and the
process-wide seamless state restored afterwards.
"""

import signal
import sys
import warnings

import pytest

import seamless
from seamless import config
from seamless.log import set_log_hooks
from seamless.signals import RELAYED_SIGNALS

# Suppress ResourceWarnings from Popen objects left to the reaper in Python 3.13
if sys.version_info >= (3, 13):
    warnings.filterwarnings("ignore", category=ResourceWarning)


class LogRecorder:
    """Captures what goes through the seamless log hooks."""

    def __init__(self):
        self.messages: list[str] = []
        self.errors: list[tuple[str, BaseException | None]] = []

    def message(self, msg: str) -> None:
        self.messages.append(msg)

    def error(self, msg: str, err: BaseException | None) -> None:
        self.errors.append((msg, err))

    def error_messages(self) -> list[str]:
        return [msg for msg, _ in self.errors]


@pytest.fixture(autouse=True)
def _restore_signal_handlers():
    """Put back every handler a test may have replaced."""
    saved = {sig: signal.getsignal(sig) for sig in RELAYED_SIGNALS}
    yield
    for sig, handler in saved.items():
        # None: installed outside Python (faulthandler), nothing to put back
        if handler is not None:
            signal.signal(sig, handler)


@pytest.fixture(autouse=True)
def _reset_seamless_state(monkeypatch):
    """Reset the process-wide coordinator, hooks and environment marker."""
    # setenv first so the marker is removed again at teardown even when a
    # test (or init) sets it directly in os.environ
    monkeypatch.setenv(config.ENV_MARKER, "0")
    monkeypatch.delenv(config.ENV_MARKER)
    seamless._coordinator = None
    seamless._child_daemon_launch_hooks.clear()
    yield
    seamless._coordinator = None
    seamless._child_daemon_launch_hooks.clear()
    set_log_hooks()


@pytest.fixture
def log_recorder() -> LogRecorder:
    """Route seamless diagnostics into a recorder for assertions."""
    recorder = LogRecorder()
    set_log_hooks(message=recorder.message, error=recorder.error)
    return recorder


@pytest.fixture(autouse=True)
def _restore_stdio():  # noqa: PT004
    """Ensure stdout/stderr are always restored after each test."""
    yield

    if sys.stdout.closed:
        sys.stdout = sys.__stdout__
    if sys.stderr.closed:
        sys.stderr = sys.__stderr__
