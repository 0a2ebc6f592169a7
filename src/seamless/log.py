"""
Diagnostics for seamless.

All messages produced by the restart protocol go through two replaceable
hooks so callers can redirect them:

- message hook: called with a plain message
- error hook: called with a message and the error (which may be None)

The defaults log through the standard `seamless` logger. `setup_logging()` is
a convenience for daemons that do not configure logging themselves.
"""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger("seamless")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s:%(lineno)d] - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

MessageHook = Callable[[str], None]
ErrorHook = Callable[[str, Optional[BaseException]], None]


def default_message_hook(msg: str) -> None:
    # stacklevel: report the protocol call site, not this hook or log_message()
    logger.info(msg, stacklevel=3)


def default_error_hook(msg: str, err: Optional[BaseException]) -> None:
    if err is None:
        logger.error(msg, stacklevel=3)
    else:
        logger.error(f"{msg}: {err}", stacklevel=3)


_message_hook: MessageHook = default_message_hook
_error_hook: ErrorHook = default_error_hook


def set_log_hooks(message: Optional[MessageHook] = None, error: Optional[ErrorHook] = None) -> None:
    """Replace the diagnostic hooks.

    Args:
        message: Called with plain progress messages. None restores the default.
        error: Called with a message and the error. None restores the default.
    """
    global _message_hook, _error_hook
    _message_hook = message if message is not None else default_message_hook
    _error_hook = error if error is not None else default_error_hook


def log_message(msg: str) -> None:
    """Report a protocol message through the current message hook."""
    _message_hook(msg)


def log_error(msg: str, err: Optional[BaseException] = None) -> None:
    """Report a protocol error through the current error hook."""
    _error_hook(msg, err)


def setup_logging(log_file: Optional[Path] = None, foreground: bool = True, level: int = logging.INFO) -> None:
    """Setup logging for a daemon using seamless.

    Args:
        log_file: Optional log file, rotated daily at midnight
        foreground: Also log to stderr
        level: Root logger level
    """
    root = logging.getLogger()
    root.setLevel(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    if foreground:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            str(log_file),
            when="midnight",
            interval=1,
            backupCount=2,  # Keep 2 days of backups (total 3 files)
            utc=False,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
