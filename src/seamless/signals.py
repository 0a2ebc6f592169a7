"""
Signal relay.

Low-level signal plumbing shared by the launcher and the daemon body:

- SignalRelay turns OS signals into items of a signal-safe queue so that
  background logic never runs inside a signal handler
- forward() delivers a signal verbatim to another process

Python only runs signal handlers on the main thread and only lets the main
thread change signal dispositions, so subscribe() must be called from the
main thread (or from an on_deliver hook, which runs there too).
"""

import os
import queue
import signal
import threading
import time
from typing import Any, Callable, Optional

import psutil

from seamless.config import RELAY_POLL_INTERVAL
from seamless.errors import ProcessNotFoundError, SignalDeliveryError

# Job-control, termination and info signals relayed by the launcher.
RELAYED_SIGNAL_NAMES = (
    "SIGABRT",
    "SIGALRM",
    "SIGBUS",
    "SIGCHLD",
    "SIGCONT",
    "SIGFPE",
    "SIGHUP",
    "SIGILL",
    "SIGINT",
    "SIGIO",
    "SIGIOT",
    "SIGPIPE",
    "SIGPROF",
    "SIGQUIT",
    "SIGSEGV",
    "SIGSYS",
    "SIGTERM",
    "SIGTRAP",
    "SIGTSTP",
    "SIGTTIN",
    "SIGTTOU",
    "SIGURG",
    "SIGUSR1",
    "SIGUSR2",
    "SIGVTALRM",
    "SIGWINCH",
    "SIGXCPU",
    "SIGXFSZ",
)


def available_signals(names: tuple[str, ...]) -> tuple[signal.Signals, ...]:
    """Resolve signal names defined on this platform, dropping aliases (SIGIOT is SIGABRT)."""
    resolved: list[signal.Signals] = []
    for name in names:
        sig = getattr(signal, name, None)
        if sig is None:
            continue
        sig = signal.Signals(sig)
        if sig not in resolved:
            resolved.append(sig)
    return tuple(resolved)


RELAYED_SIGNALS = available_signals(RELAYED_SIGNAL_NAMES)

_CLOSED = object()


class SignalRelay:
    """Queue of received signals for one subscriber.

    The installed handler only enqueues the signal number (SimpleQueue.put is
    reentrant, so it is safe even if the main thread is inside the queue).
    Background threads consume signals with receive().

    Args:
        on_deliver: Optional hook called inside the signal handler, on the main
            thread, after the signal was queued. Restrict it to changing signal
            dispositions.
    """

    def __init__(self, on_deliver: Optional[Callable[[signal.Signals], None]] = None):
        self._queue: queue.SimpleQueue = queue.SimpleQueue()
        self._previous: dict[signal.Signals, Any] = {}
        self._on_deliver = on_deliver
        self._paused = False
        self._stopped = False
        self._closed = False

    @property
    def signals(self) -> tuple[signal.Signals, ...]:
        """Signals currently handled by this relay."""
        return tuple(self._previous)

    @property
    def closed(self) -> bool:
        """True once receive() has consumed the close() marker."""
        return self._closed

    @property
    def paused(self) -> bool:
        return self._paused

    def subscribe(self, *signums: int, paused: bool = False) -> None:
        """Start handling the given signals, remembering their previous handlers.

        Args:
            paused: Install the handlers without queueing anything yet. Signals
                delivered before resume() get their previous disposition, so a
                default TERM still terminates the process.
        """
        for signum in signums:
            sig = signal.Signals(signum)
            if sig in self._previous:
                continue
            self._previous[sig] = signal.signal(sig, self._deliver)
        self._paused = paused
        self._stopped = False

    def resume(self) -> None:
        """Start queueing signals of a paused subscription. Safe from any thread."""
        self._paused = False

    def stop(self) -> None:
        """Stop queueing signals.

        On the main thread previous handlers are restored right away. From any
        other thread the relay is only marked stopped; the next delivery
        restores the previous handler and re-raises the signal under it.
        """
        self._stopped = True
        if threading.current_thread() is threading.main_thread():
            self._restore()

    def close(self) -> None:
        """Wake up receivers without a signal."""
        self._queue.put(_CLOSED)

    def receive(self, timeout: Optional[float] = None) -> Optional[signal.Signals]:
        """Wait for the next signal.

        Args:
            timeout: Seconds to wait, None to wait forever

        Returns:
            The received signal, or None on timeout or when the relay is closed
        """
        if self._closed:
            return None
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            wait = RELAY_POLL_INTERVAL
            if deadline is not None:
                wait = min(wait, deadline - time.monotonic())
                if wait <= 0:
                    return None
            try:
                item = self._queue.get(timeout=wait)
            except queue.Empty:
                continue
            if item is _CLOSED:
                self._closed = True
                return None
            return item

    def _deliver(self, signum: int, frame: object) -> None:
        sig = signal.Signals(signum)
        if self._stopped:
            self._restore()
            os.kill(os.getpid(), signum)
            return
        if self._paused:
            self._pass_through(sig, frame)
            return
        self._queue.put(sig)
        if self._on_deliver is not None:
            self._on_deliver(sig)

    def _pass_through(self, sig: signal.Signals, frame: object) -> None:
        previous = self._previous.get(sig)
        if callable(previous):
            previous(sig, frame)
        elif previous != signal.SIG_IGN:
            # Default action: uninstall and let the signal hit the process again
            self._restore()
            os.kill(os.getpid(), sig)

    def _restore(self) -> None:
        for sig, previous in self._previous.items():
            # None means the previous handler was not installed from Python.
            signal.signal(sig, previous if previous is not None else signal.SIG_DFL)
        self._previous.clear()


def forward(pid: int, signum: int) -> None:
    """Deliver a signal to a process without altering it.

    Raises:
        ProcessNotFoundError: The process does not exist
        SignalDeliveryError: The signal could not be delivered
    """
    try:
        psutil.Process(pid).send_signal(signum)
    except psutil.NoSuchProcess as e:
        raise ProcessNotFoundError(pid, signum) from e
    except psutil.AccessDenied as e:
        raise SignalDeliveryError(pid, signum, "access denied") from e
    except (OSError, ValueError) as e:
        raise SignalDeliveryError(pid, signum, str(e)) from e
