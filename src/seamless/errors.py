"""Exceptions raised by the seamless restart coordination layer."""


class SeamlessError(Exception):
    """Base class for all seamless errors."""

    pass


class AlreadyInitializedError(SeamlessError):
    """Raised when seamless.init is called more than once."""

    pass


class NotInitializedError(SeamlessError):
    """Raised when a coordination API is used before seamless.init."""

    pass


class LaunchError(SeamlessError):
    """Raised when the launcher cannot start the daemon body."""

    pass


class SignalDeliveryError(SeamlessError):
    """Raised when a signal cannot be delivered to a process."""

    def __init__(self, pid: int, signum: int, reason: str):
        self.pid = pid
        self.signum = signum
        super().__init__(f"cannot deliver signal {signum} to PID {pid}: {reason}")


class ProcessNotFoundError(SignalDeliveryError):
    """Raised when the target process does not exist (anymore)."""

    def __init__(self, pid: int, signum: int = 0):
        super().__init__(pid, signum, "no such process")


class RendezvousError(SeamlessError):
    """Raised when the rendezvous PID file cannot be read, written or removed.

    Attributes:
        corrupt: True when the file exists but does not contain a PID
    """

    def __init__(self, message: str, corrupt: bool = False):
        self.corrupt = corrupt
        super().__init__(message)
