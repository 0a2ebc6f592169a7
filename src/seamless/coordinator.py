"""
Restart coordinator - per-process state machine of a daemon generation.

Stage 1 waits (indefinitely) for USR2 from the launcher, runs the shutdown
request callback and acknowledges with CHLD so the launcher detaches.

Stage 2 is started(): the new generation reads the rendezvous file, sends TERM
to the old generation found there and takes over the slot.

Stage 3 waits for that TERM (at most DRAIN_TIMEOUT seconds, in case no new
generation ever shows up), runs the shutdown callback and releases wait().

Stages 1 and 3 run one after the other on a single background thread. Both
signal handlers are installed by start() on the main thread; until Stage 3
begins TERM keeps its previous action, so a daemon stuck in Stage 1 can still
be terminated by the launcher. Callbacks always run on the background thread.
"""

import _thread
import os
import signal
import threading
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from seamless import config
from seamless.config import DRAIN_TIMEOUT, RELAY_POLL_INTERVAL
from seamless.errors import ProcessNotFoundError, RendezvousError, SignalDeliveryError
from seamless.log import log_error, log_message
from seamless.rendezvous import Rendezvous
from seamless.signals import SignalRelay, forward


class Stage(Enum):
    """Progress of a daemon generation through its restart sequence."""

    IDLE = "idle"
    SHUTDOWN_REQUESTED = "shutdown_requested"
    DRAINING = "draining"
    DONE = "done"


class Coordinator:
    """Coordination state of one daemon process.

    Args:
        pid_file: Rendezvous path; empty disables coordination entirely
        drain_timeout: Seconds Stage 3 waits for TERM before draining anyway

    Attributes:
        shutdown_request_func: Called when a graceful shutdown is requested
        shutdown_func: Called when the graceful shutdown is engaged
        done: Set once the shutdown callback has returned
    """

    def __init__(self, pid_file: str | os.PathLike[str] | None, drain_timeout: float = DRAIN_TIMEOUT):
        self.pid_file = Path(pid_file) if pid_file else None
        self.rendezvous = Rendezvous(self.pid_file) if self.pid_file is not None else None
        self.drain_timeout = drain_timeout
        self.shutdown_request_func: Optional[Callable[[], None]] = None
        self.shutdown_func: Optional[Callable[[], None]] = None
        self.stage = Stage.IDLE
        self.done = threading.Event()
        self._trigger = SignalRelay(on_deliver=self._disarm_trigger)
        self._term = SignalRelay()
        self._thread: Optional[threading.Thread] = None

    @property
    def disabled(self) -> bool:
        return self.rendezvous is None

    def start(self) -> None:
        """Subscribe to the drain trigger and start the background stages.

        Must be called from the main thread.
        """
        if self.disabled:
            return
        self._trigger.subscribe(signal.SIGUSR2)
        # TERM keeps its previous action (default: terminate) until Stage 3
        self._term.subscribe(signal.SIGTERM, paused=True)
        self._thread = threading.Thread(target=self._run, name="seamless-coordinator", daemon=True)
        self._thread.start()

    def _disarm_trigger(self, sig: signal.Signals) -> None:
        # Runs inside the USR2 handler on the main thread: USR2 is one-shot.
        self._trigger.stop()

    def _run(self) -> None:
        self._stage1()
        self._stage3()

    def _stage1(self) -> None:
        while self._trigger.receive() is None:
            pass
        self.stage = Stage.SHUTDOWN_REQUESTED
        log_message("Shutdown requested")
        self._call(self.shutdown_request_func, "Shutdown request callback failed")
        self.notify_parent()

    def notify_parent(self) -> None:
        """Tell the launcher the daemon is ready to be replaced (CHLD)."""
        launcher_pid = config.launcher_pid()
        parent_pid = os.getppid()
        if launcher_pid is not None and parent_pid != launcher_pid:
            # The launcher is gone and we were re-parented; the supervisor may
            # still restart the program on its own.
            log_error("Could not find parent process", ProcessNotFoundError(launcher_pid, signal.SIGCHLD))
            return
        try:
            forward(parent_pid, signal.SIGCHLD)
        except ProcessNotFoundError as e:
            log_error("Could not find parent process", e)
        except SignalDeliveryError as e:
            log_error("Could not send SIGCHLD to parent process", e)

    def _stage3(self) -> None:
        self._term.resume()
        self.stage = Stage.DRAINING
        log_message("Ready, waiting for TERM signal")
        if self._term.receive(timeout=self.drain_timeout) is None:
            log_message(f"No TERM signal received within {self.drain_timeout:g}s, shutting down anyway")
        self._term.stop()

        log_message("Graceful shutdown started")
        try:
            self._call(self.shutdown_func, "Shutdown callback failed")
        finally:
            self.stage = Stage.DONE
            log_message("Graceful shutdown completed")
            self.done.set()

    def _call(self, func: Optional[Callable[[], None]], error_message: str) -> None:
        if func is None:
            return
        try:
            func()
        except KeyboardInterrupt:
            _thread.interrupt_main()
            raise
        except Exception as e:
            log_error(error_message, e)

    def started(self) -> None:
        """Announce this generation as ready and evict the previous one.

        Reads the rendezvous file and, if it names a process, removes the file
        and sends that process TERM. This process's PID is written in every
        case. Call it once: a second call would find this process's own PID
        and send TERM to itself.
        """
        if self.rendezvous is None:
            return
        try:
            self._notify_old_generation(self.rendezvous)
        finally:
            try:
                self.rendezvous.write(os.getpid())
            except RendezvousError as e:
                log_error("Could not create PID file", e)

    def _notify_old_generation(self, rendezvous: Rendezvous) -> None:
        try:
            pid = rendezvous.read()
        except RendezvousError as e:
            log_error("Notification error", e)
            if e.corrupt:
                self._remove_pid_file(rendezvous)
            return
        if pid is None:
            # No PID file: no old process to notify.
            return

        log_message(f"Notifying old process {pid}")
        self._remove_pid_file(rendezvous)
        try:
            forward(pid, signal.SIGTERM)
        except ProcessNotFoundError as e:
            log_error("Could not find old process", e)
        except SignalDeliveryError as e:
            log_error("Could not send SIGTERM to old process", e)

    def _remove_pid_file(self, rendezvous: Rendezvous) -> None:
        try:
            rendezvous.delete()
        except RendezvousError as e:
            log_error("Could not remove old PID file", e)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the restart sequence of this process is completed.

        Returns immediately when coordination is disabled.

        Returns:
            True if completed, False if the timeout expired first
        """
        if self.disabled:
            return True
        if timeout is not None:
            return self.done.wait(timeout)
        # Short waits keep the main thread responsive to signal handlers.
        while not self.done.wait(RELAY_POLL_INTERVAL):
            pass
        return True
