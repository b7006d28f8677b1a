"""
The torrent module creates the .torrent file for an upload by shelling out to `mktorrent`.
"""

from __future__ import annotations

import contextlib
import logging
import subprocess
import threading
from pathlib import Path

from classical_tagger.common import CancelledError, ClassicalTaggerExpectedError

logger = logging.getLogger(__name__)

PIECE_LENGTH_EXPONENT = 18  # 256 KiB pieces.
POLL_INTERVAL_SECONDS = 0.2


class TorrentCreationError(ClassicalTaggerExpectedError):
    pass


def mktorrent_args(
    source_dir: Path,
    output_path: Path,
    announce_url: str,
    executable: str = "mktorrent",
) -> list[str]:
    return [
        executable,
        "-p",
        "-l",
        str(PIECE_LENGTH_EXPONENT),
        "-a",
        announce_url,
        "-o",
        str(output_path),
        str(source_dir),
    ]


def make_torrent(
    source_dir: Path,
    output_path: Path,
    announce_url: str,
    cancel: threading.Event | None = None,
    executable: str = "mktorrent",
) -> Path:
    """
    Create a private torrent of `source_dir` at `output_path`. An existing file at the output path is
    reused as is. A partial output is removed if creation fails or is cancelled.
    """
    if output_path.exists():
        logger.info(f"Using cached torrent file {output_path}")
        return output_path
    if not source_dir.is_dir():
        raise TorrentCreationError(f"Source directory does not exist: {source_dir}")
    output_path.parent.mkdir(parents=True, exist_ok=True)

    args = mktorrent_args(source_dir, output_path, announce_url, executable)
    logger.debug(f"Running {' '.join(args)}")
    try:
        proc = subprocess.Popen(args, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    except OSError as e:
        raise TorrentCreationError(f"Failed to run {executable}: {e}") from e

    while True:
        try:
            stdout, stderr = proc.communicate(timeout=POLL_INTERVAL_SECONDS)
            break
        except subprocess.TimeoutExpired:
            if cancel is not None and cancel.is_set():
                proc.kill()
                proc.communicate()
                _remove_partial(output_path)
                raise CancelledError("Torrent creation cancelled") from None

    if stdout:
        logger.debug(stdout.strip())
    if proc.returncode != 0:
        _remove_partial(output_path)
        raise TorrentCreationError(
            f"{executable} failed with exit code {proc.returncode}: {stderr.strip()}"
        )
    if not output_path.exists():
        raise TorrentCreationError(f"{executable} did not create {output_path}")
    logger.info(f"Created torrent file {output_path}")
    return output_path


def _remove_partial(path: Path) -> None:
    with contextlib.suppress(FileNotFoundError):
        path.unlink()
