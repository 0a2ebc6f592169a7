"""
Launcher - circuit breaker between the service supervisor and the daemon.

The first process started by the supervisor never runs the daemon logic.
Instead it spawns a duplicate of itself (same interpreter, same argv, same
standard streams) which becomes the real daemon, and relays every signal it
receives to that child, with two exceptions:

1. TERM is translated into USR2 once: the child prepares for its replacement
   and acknowledges with CHLD. Further TERMs are ignored.
2. CHLD after TERM makes the launcher exit 0 right away, leaving the child
   running, detached from the supervisor. The supervisor sees its process
   exit and restarts the program while the old daemon keeps serving.

If the child does not acknowledge within HANDOFF_TIMEOUT seconds the launcher
sends it TERM and exits. If the child exits on its own the launcher exits 0.

State machine:
    RELAYING -> HANDOFF_REQUESTED -> HANDOFF_COMPLETED | HANDOFF_TIMED_OUT
    any state -> CHILD_EXITED
"""

import _thread
import signal
import subprocess
import sys
import threading
import time
from enum import Enum
from typing import Callable, Optional

from seamless.config import HANDOFF_TIMEOUT
from seamless.errors import LaunchError, SignalDeliveryError
from seamless.log import log_error, log_message
from seamless.signals import RELAYED_SIGNALS, SignalRelay, forward


class LauncherState(Enum):
    """Handoff progress of a launcher."""

    RELAYING = "relaying"
    HANDOFF_REQUESTED = "handoff_requested"
    HANDOFF_COMPLETED = "handoff_completed"
    HANDOFF_TIMED_OUT = "handoff_timed_out"
    CHILD_EXITED = "child_exited"


def duplicate_argv() -> list[str]:
    """Command line re-running the current program with identical arguments.

    Uses sys.orig_argv so interpreter options such as `-m package` survive.

    Raises:
        LaunchError: The interpreter path cannot be determined
    """
    if not sys.executable:
        raise LaunchError("cannot determine executable path")
    orig_argv = getattr(sys, "orig_argv", None) or [sys.executable, *sys.argv]
    return [sys.executable, *orig_argv[1:]]


class Launcher:
    """Spawns the daemon body and mediates its handoff with the supervisor.

    Args:
        argv: Command for the child, defaults to duplicate_argv()
        hooks: Callables run after the child is spawned, before relaying starts
        handoff_timeout: Seconds the child gets to acknowledge USR2 with CHLD
    """

    def __init__(
        self,
        argv: Optional[list[str]] = None,
        hooks: Optional[list[Callable[[], None]]] = None,
        handoff_timeout: float = HANDOFF_TIMEOUT,
    ):
        self.argv = argv
        self.hooks = list(hooks or [])
        self.handoff_timeout = handoff_timeout
        self.state = LauncherState.RELAYING
        self.child: Optional[subprocess.Popen] = None
        self.deadline: Optional[float] = None
        self.relay = SignalRelay()

    def spawn(self) -> subprocess.Popen:
        """Start the daemon body with inherited standard streams.

        Raises:
            LaunchError: The child process cannot be started
        """
        argv = self.argv if self.argv is not None else duplicate_argv()
        try:
            # stdin/stdout/stderr=None: the child shares the launcher's streams
            self.child = subprocess.Popen(argv, stdin=None, stdout=None, stderr=None, close_fds=True)
        except (OSError, ValueError) as e:
            raise LaunchError(f"cannot start {argv[0]}: {e}") from e
        return self.child

    def run_hooks(self) -> None:
        for hook in self.hooks:
            try:
                hook()
            except KeyboardInterrupt:
                _thread.interrupt_main()
                raise
            except Exception as e:
                log_error("Child daemon launch hook failed", e)

    def run(self) -> int:
        """Spawn the child and relay signals until the launcher must exit.

        Returns:
            Exit status for the launcher process
        """
        log_message("Starting child process")
        try:
            self.spawn()
        except LaunchError as e:
            log_error("Could not fork", e)
            return 1
        assert self.child is not None

        self.run_hooks()

        waiter = threading.Thread(target=self._wait_child, name="seamless-child-waiter", daemon=True)
        self.relay.subscribe(*RELAYED_SIGNALS)
        try:
            waiter.start()
            while True:
                timeout = None
                if self.deadline is not None:
                    timeout = max(0.0, self.deadline - time.monotonic())
                sig = self.relay.receive(timeout)
                if self.relay.closed:
                    self.state = LauncherState.CHILD_EXITED
                    log_message(f"Child process exited with status {self.child.returncode}")
                    return 0
                if sig is None:
                    if self.deadline is not None and time.monotonic() >= self.deadline:
                        return self.handle_deadline()
                    continue
                status = self.handle_signal(sig)
                if status is not None:
                    return status
        finally:
            self.relay.stop()

    def handle_signal(self, sig: signal.Signals) -> Optional[int]:
        """Apply one received signal to the state machine.

        Returns:
            An exit status when the launcher must exit, None to keep relaying
        """
        if sig == signal.SIGTERM:
            if self.state != LauncherState.RELAYING:
                return None
            self._send(signal.SIGUSR2, "Could not send USR2 signal")
            self.state = LauncherState.HANDOFF_REQUESTED
            self.deadline = time.monotonic() + self.handoff_timeout
            return None

        if sig == signal.SIGCHLD:
            if self.state == LauncherState.HANDOFF_REQUESTED:
                self.state = LauncherState.HANDOFF_COMPLETED
                log_message("Child acknowledged shutdown request, detaching")
                return 0
            return None

        self._send(sig, f"Error forwarding {sig.name} signal")
        return None

    def handle_deadline(self) -> int:
        """The child never acknowledged USR2: terminate it and exit."""
        self.state = LauncherState.HANDOFF_TIMED_OUT
        log_error("Child timeout, terminating")
        self._send(signal.SIGTERM, "Error sending TERM signal")
        return 0

    def _send(self, sig: signal.Signals, error_message: str) -> None:
        assert self.child is not None
        try:
            forward(self.child.pid, sig)
        except SignalDeliveryError as e:
            log_error(error_message, e)

    def _wait_child(self) -> None:
        assert self.child is not None
        self.child.wait()
        self.relay.close()
