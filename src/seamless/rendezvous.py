"""
Handshake rendezvous.

A single PID file through which a new generation finds the old one. The old
generation writes its PID once it serves traffic; the next generation reads
it, removes it, signals the old PID and writes its own.

No file locking is used: at most one old and one new generation ever touch
the file, and the signal ordering of the protocol keeps them from writing at
the same time. A missing file is the normal state for the first generation.
"""

import os
from pathlib import Path

from seamless.errors import RendezvousError


class Rendezvous:
    """PID file slot shared by two consecutive generations."""

    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path)

    def read(self) -> int | None:
        """Read the PID stored in the slot.

        Returns:
            The PID, or None if the file does not exist

        Raises:
            RendezvousError: The file cannot be read or holds no valid PID
        """
        try:
            content = self.path.read_text(encoding="ascii")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise RendezvousError(f"cannot read PID file: {e}") from e

        try:
            pid = int(content.strip())
        except ValueError as e:
            raise RendezvousError(f"invalid PID file content: {content.strip()[:32]!r}", corrupt=True) from e
        if pid <= 0:
            raise RendezvousError(f"invalid PID file content: {pid}", corrupt=True)
        return pid

    def write(self, pid: int) -> None:
        """Store a PID in the slot, replacing any previous content atomically.

        Raises:
            RendezvousError: The file cannot be written
        """
        temp_file = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")
        try:
            with open(temp_file, "w", encoding="ascii") as f:
                f.write(str(pid))
            os.chmod(temp_file, 0o644)
            temp_file.replace(self.path)
        except OSError as e:
            temp_file.unlink(missing_ok=True)
            raise RendezvousError(f"cannot write PID file: {e}") from e

    def delete(self) -> None:
        """Empty the slot. Removing a missing file is not an error.

        Raises:
            RendezvousError: The file exists but cannot be removed
        """
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise RendezvousError(f"cannot remove PID file: {e}") from e

    def __repr__(self) -> str:
        return f"Rendezvous({str(self.path)!r})"
