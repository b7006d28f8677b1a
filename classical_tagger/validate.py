"""
The validate module runs the rule engine over a release directory on disk.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

from classical_tagger.audiotags import build_local_release
from classical_tagger.common import ClassicalTaggerExpectedError
from classical_tagger.issues import Issue, Level, sort_issues
from classical_tagger.reconcile import TrackerView, reconcile
from classical_tagger.releases import Release, load_release
from classical_tagger.rules import validate_release

logger = logging.getLogger(__name__)


class ValidationFailedError(ClassicalTaggerExpectedError):
    def __init__(self, issues: list[Issue], summary: str = "Validation failed") -> None:
        self.issues = issues
        errors = [i for i in issues if i.level == Level.ERROR]
        lines = [f"{summary} with {len(errors)} error(s):"]
        lines.extend(f"  {i}" for i in errors)
        super().__init__("\n".join(lines))


def read_release(directory: Path, metadata: Path | None = None) -> Release:
    """
    Load the release for a directory: from a metadata JSON file when given, otherwise from the audio
    tags. A release read from tags is passed through reconciliation to infer what roles it can.
    """
    if metadata is not None:
        release = load_release(metadata)
        # The JSON describes the files in this directory, wherever it was extracted.
        return replace(release, root_path=str(directory))
    local = build_local_release(directory)
    result = reconcile(None, local, root_path=str(directory), strict=False)
    assert result.release is not None
    return result.release


def validate_directory(
    directory: Path,
    metadata: Path | None = None,
    tracker: TrackerView | None = None,
    reference: Path | None = None,
) -> tuple[Release, list[Issue]]:
    """
    Validate the release in a directory, optionally comparing it with a reference release JSON
    such as the Discogs extract the directory should agree with.
    """
    release = read_release(directory, metadata)
    ref = load_release(reference) if reference is not None else None
    issues = sort_issues(validate_release(release, tracker, ref))
    logger.debug(f"Validated {directory}: {len(issues)} issues")
    return release, issues
