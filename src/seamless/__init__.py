"""
seamless - zero-downtime restarts for daemons under a non-forking supervisor.

Supervisors like systemd (Type=simple), runit or daemontools restart a
process when it exits but know nothing about graceful reloads. seamless
duplicates the daemon at startup so the supervisor watches a thin launcher:

    supervisor -> launcher -> daemon

When the supervisor sends TERM, the launcher asks the daemon (USR2) to get
ready for its replacement. The daemon releases what the next generation
needs (on_shutdown_request), acknowledges with CHLD and the launcher exits,
detaching the daemon. The supervisor restarts the program; once the new
daemon serves traffic it calls started(), which finds the old daemon through
the PID file and sends it TERM. The old daemon then runs on_shutdown and
wait() returns.

Usage:
    import seamless

    seamless.init("/run/mydaemon.pid")  # first thing, from the main thread
    seamless.on_shutdown(server.shutdown)
    start_serving()
    seamless.started()  # once listening
    seamless.wait()

Socket migration (SO_REUSEPORT, unix sockets...) and the actual graceful
shutdown of the server are left to the caller, see examples/.
"""

import threading
from pathlib import Path
from typing import Callable, Optional

from seamless import config
from seamless.coordinator import Coordinator, Stage
from seamless.errors import (
    AlreadyInitializedError,
    LaunchError,
    NotInitializedError,
    ProcessNotFoundError,
    RendezvousError,
    SeamlessError,
    SignalDeliveryError,
)
from seamless.launcher import Launcher, LauncherState
from seamless.log import set_log_hooks, setup_logging
from seamless.rendezvous import Rendezvous

__all__ = [
    "AlreadyInitializedError",
    "Coordinator",
    "LaunchError",
    "Launcher",
    "LauncherState",
    "NotInitializedError",
    "ProcessNotFoundError",
    "Rendezvous",
    "RendezvousError",
    "SeamlessError",
    "SignalDeliveryError",
    "Stage",
    "init",
    "on_child_daemon_launch",
    "on_shutdown",
    "on_shutdown_request",
    "set_log_hooks",
    "setup_logging",
    "started",
    "wait",
]

# Process-wide coordination state, created once by init()
_coordinator: Optional[Coordinator] = None
_child_daemon_launch_hooks: list[Callable[[], None]] = []


def init(pid_file: str | Path | None) -> None:
    """Initialize seamless.

    Must be called once, as early as possible, from the main thread and before
    any other thread is started.

    In the process started by the supervisor this never returns: the process
    becomes the launcher, spawns a copy of the program and exits through
    SystemExit once its job is done. In that copy, init() starts the restart
    state machine in the background and returns.

    Args:
        pid_file: Rendezvous file used between the old and the new generation.
            An empty value disables seamless; the daemon then runs as is.

    Raises:
        AlreadyInitializedError: init() was already called
        SeamlessError: Called from a thread other than the main thread
    """
    global _coordinator
    if _coordinator is not None:
        raise AlreadyInitializedError("seamless.init already called")
    if threading.current_thread() is not threading.main_thread():
        raise SeamlessError("seamless.init must be called from the main thread")

    coordinator = Coordinator(pid_file)
    _coordinator = coordinator
    if coordinator.disabled:
        return

    if not config.is_forked_child():
        config.mark_as_launcher()
        launcher = Launcher(hooks=_child_daemon_launch_hooks)
        raise SystemExit(launcher.run())

    coordinator.start()


def _get_coordinator(caller: str) -> Coordinator:
    if _coordinator is None:
        raise NotInitializedError(f"called seamless.{caller} before seamless.init")
    return _coordinator


def on_child_daemon_launch(func: Callable[[], None]) -> None:
    """Register a callable run by the launcher right after spawning the daemon.

    Runs in the launcher process, before signal relaying starts. Must be
    registered before init().
    """
    _child_daemon_launch_hooks.append(func)


def on_shutdown_request(func: Optional[Callable[[], None]]) -> None:
    """Set func to be called when a graceful shutdown is requested.

    Use it to release resources the new daemon needs to start (an exclusive
    lock, a socket path...). The daemon is still expected to serve requests at
    this point; the actual shutdown belongs in on_shutdown().
    """
    _get_coordinator("on_shutdown_request").shutdown_request_func = func


def on_shutdown(func: Optional[Callable[[], None]]) -> None:
    """Set func to be called when the graceful shutdown is engaged.

    When func returns the shutdown is considered done and wait() unblocks.
    """
    _get_coordinator("on_shutdown").shutdown_func = func


def started() -> None:
    """Signal that the daemon is ready to serve (e.g. after a successful listen).

    If a previous generation left its PID in the PID file, it is sent TERM to
    start its graceful shutdown. Call it once per process.
    """
    _get_coordinator("started").started()


def wait(timeout: Optional[float] = None) -> bool:
    """Block until the graceful shutdown of this process is completed.

    Call it at the end of the main function, after the server returned.

    Returns:
        True if completed, False if the timeout expired first
    """
    return _get_coordinator("wait").wait(timeout)
