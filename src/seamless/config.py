"""
Seamless configuration.

Centralized constants and environment lookups shared by the launcher and the
daemon body. The environment marker is the only state carried across the
fork boundary besides argv and the standard streams.

Environment:
- SEAMLESS: PID of the launcher, set by the launcher before spawning the
  daemon body. A process is the daemon body iff this equals its parent PID.
- SEAMLESS_PID_FILE: default rendezvous path used by the bundled examples.
"""

import os
import tempfile
from pathlib import Path

ENV_MARKER = "SEAMLESS"
PID_FILE_ENV = "SEAMLESS_PID_FILE"

HANDOFF_TIMEOUT = 10.0  # Launcher: USR2 sent, waiting for CHLD from the child
DRAIN_TIMEOUT = 10.0  # Stage 3: waiting for TERM from the next generation

# Upper bound for a single blocking wait so pending signal handlers get a
# chance to run on the main thread.
RELAY_POLL_INTERVAL = 0.5


def launcher_pid() -> int | None:
    """Return the launcher PID recorded in the environment marker, if any."""
    value = os.environ.get(ENV_MARKER)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def is_forked_child() -> bool:
    """Check whether this process is the daemon body spawned by a launcher."""
    return os.environ.get(ENV_MARKER) == str(os.getppid())


def mark_as_launcher() -> None:
    """Record this process as the launcher for the child about to be spawned."""
    os.environ[ENV_MARKER] = str(os.getpid())


def default_pid_file(name: str) -> Path:
    """Default rendezvous path for a daemon called `name`.

    SEAMLESS_PID_FILE wins when set, otherwise `<tmpdir>/<name>.pid`.
    """
    override = os.environ.get(PID_FILE_ENV)
    if override:
        return Path(override)
    return Path(tempfile.gettempdir()) / f"{name}.pid"
