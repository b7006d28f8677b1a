"""
The common module holds the handful of toys that every other module needs: the version, the error
hierarchy, cancellation, and logging setup.
"""

import logging
import logging.handlers
import os
import sys
import threading
from pathlib import Path
from typing import TypeVar

import appdirs

with (Path(__file__).parent / ".version").open("r") as fp:
    VERSION = fp.read().strip()

APP_NAME = "classical-tagger"

T = TypeVar("T")


class ClassicalTaggerError(Exception):
    pass


class ClassicalTaggerExpectedError(ClassicalTaggerError):
    """These errors are printed without traceback."""

    pass


class CancelledError(ClassicalTaggerExpectedError):
    pass


def check_cancelled(cancel: threading.Event | None) -> None:
    """Raise if the process-wide cancellation event has been set."""
    if cancel is not None and cancel.is_set():
        raise CancelledError("Operation cancelled")


def uniq(xs: list[T]) -> list[T]:
    rv: list[T] = []
    seen: set[T] = set()
    for x in xs:
        if x not in seen:
            rv.append(x)
            seen.add(x)
    return rv


__logging_initialized: set[str | None] = set()


def initialize_logging(logger_name: str | None = None) -> None:
    if logger_name in __logging_initialized:
        return
    __logging_initialized.add(logger_name)

    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.INFO)

    # Logs go to $XDG_STATE_HOME rather than appdirs' default of $XDG_CACHE_HOME, since clearing the
    # HTTP cache should not wipe the logs.
    log_home = Path(appdirs.user_state_dir(APP_NAME))
    if appdirs.system == "darwin":
        log_home = Path(appdirs.user_log_dir(APP_NAME))

    log_despite_testing = os.environ.get("LOG_TEST", False)

    # Pytest captures logging output on its own, so by default we do not attach our own handlers.
    if "pytest" not in sys.modules or log_despite_testing:  # pragma: no cover
        simple_formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)s: %(message)s",
            datefmt="%H:%M:%S",
        )
        verbose_formatter = logging.Formatter(
            "[ts=%(asctime)s.%(msecs)03d] [pid=%(process)d] [src=%(name)s:%(lineno)s] %(levelname)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(simple_formatter if not log_despite_testing else verbose_formatter)
        logger.addHandler(stream_handler)

        log_home.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_home / f"{APP_NAME}.log",
            maxBytes=20 * 1024 * 1024,
            backupCount=10,
        )
        file_handler.setFormatter(verbose_formatter)
        logger.addHandler(file_handler)
