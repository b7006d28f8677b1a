"""
The tagger module applies a release's metadata to the files of a release directory: it writes the
tags, renames the files to their compliant names, and optionally renames the directory.

Tagging is planned in full before anything is written. Every file is matched and compared up front,
so a data-loss refusal or an unmatched track aborts the run before the first file is touched.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

from classical_tagger.audiotags import (
    DataLossError,
    NoAudioFilesError,
    TagChange,
    TagStatus,
    compare_tags,
    find_audio_files,
    plan_tags,
    read_tags,
    write_tags,
)
from classical_tagger.common import ClassicalTaggerExpectedError, check_cancelled
from classical_tagger.issues import Issue, has_errors, sort_issues
from classical_tagger.naming import release_dirname, track_filename
from classical_tagger.releases import Release, Track, load_release
from classical_tagger.rules import validate_release
from classical_tagger.validate import ValidationFailedError

logger = logging.getLogger(__name__)


class UnmatchedTrackError(ClassicalTaggerExpectedError):
    pass


class RenameConflictError(ClassicalTaggerExpectedError):
    pass


@dataclass
class TrackPlan:
    track: Track
    source: Path
    target: Path
    changes: list[TagChange]

    @property
    def renames(self) -> bool:
        return self.source != self.target

    @property
    def writes(self) -> list[TagChange]:
        return [c for c in self.changes if c.writes]


@dataclass
class TagPlan:
    release: Release
    directory: Path
    dirname: str
    tracks: list[TrackPlan] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)

    def describe(self) -> str:
        lines = []
        for tp in self.tracks:
            header = tp.source.name
            if tp.renames:
                header += f" -> {tp.target.name}"
            lines.append(header)
            lines.extend(f"  {c}" for c in tp.changes if c.status != TagStatus.UNCHANGED)
        lines.append(f"Directory: {self.directory.name}")
        if self.directory.name != self.dirname:
            lines.append(f"Compliant directory name: {self.dirname}")
        return "\n".join(lines)


def match_tracks(release: Release, directory: Path) -> list[tuple[Track, Path]]:
    """
    Pair each track of the release with a file in the directory. Files are matched by their
    (disc, track) tags first, then by file name.
    """
    files = find_audio_files(directory)
    if not files:
        raise NoAudioFilesError(f"No FLAC files found in {directory}")
    by_position: dict[tuple[int, int], Path] = {}
    for p in files:
        tags = read_tags(p)
        if tags.tracknumber:
            by_position.setdefault((tags.discnumber or 1, tags.tracknumber), p)
    by_relpath = {p.relative_to(directory).as_posix(): p for p in files}
    by_name = {p.name: p for p in files}

    rv: list[tuple[Track, Path]] = []
    used: set[Path] = set()
    for t in release.tracks():
        p = by_position.get((t.disc, t.track))
        if p is None or p in used:
            p = by_relpath.get(t.path) or by_name.get(Path(t.path).name)
        if p is None or p in used:
            raise UnmatchedTrackError(
                f"No file in {directory} matches disc {t.disc} track {t.track} ({t.title})"
            )
        used.add(p)
        rv.append((t, p))
    for p in files:
        if p not in used:
            logger.warning(f"File {p.name} has no track in the release metadata and is left alone")
    return rv


def plan_tagging(
    release: Release,
    directory: Path,
    *,
    rename: bool = True,
    refuse_data_loss: bool = True,
) -> TagPlan:
    """Compare every file's tags with the release. Raises DataLossError if any write would lose data."""
    plan = TagPlan(release=release, directory=directory, dirname=release_dirname(release))
    total = release.total_tracks()
    lossy: list[str] = []
    for track, path in match_tracks(release, directory):
        changes = compare_tags(read_tags(path).raw, plan_tags(track, release))
        for c in changes:
            if c.status == TagStatus.WOULD_LOSE_DATA:
                lossy.append(f"{path.name}: {c.field} ({c.old!r} -> {c.new!r})")
        target = path.with_name(track_filename(track, total)) if rename else path
        plan.tracks.append(TrackPlan(track=track, source=path, target=target, changes=changes))
    if lossy and refuse_data_loss:
        raise DataLossError("Refusing to tag: would lose data in\n  " + "\n  ".join(lossy))

    targets: dict[Path, Path] = {}
    sources = {tp.source for tp in plan.tracks}
    for tp in plan.tracks:
        if tp.target in targets:
            raise RenameConflictError(
                f"{tp.source.name} and {targets[tp.target].name} would both be renamed to "
                f"{tp.target.name}"
            )
        targets[tp.target] = tp.source
        if tp.renames and tp.target.exists() and tp.target not in sources:
            raise RenameConflictError(f"Refusing to overwrite existing file {tp.target}")
    return plan


def apply_tagging(
    plan: TagPlan,
    *,
    rename_dir: bool = False,
    cancel: threading.Event | None = None,
) -> Path:
    """Write the tags, rename the files, and return the final directory of the release."""
    for tp in plan.tracks:
        check_cancelled(cancel)
        write_tags(tp.source, tp.track, plan.release)

    # Rename through temporary names so that files swapping names do not clobber each other.
    renames = [tp for tp in plan.tracks if tp.renames]
    staged: list[tuple[TrackPlan, Path]] = []
    done: list[TrackPlan] = []
    try:
        for i, tp in enumerate(renames):
            check_cancelled(cancel)
            tmp = tp.source.with_name(f".classical-tagger-{i}{tp.source.suffix}")
            tp.source.rename(tmp)
            staged.append((tp, tmp))
        for tp, tmp in staged:
            tmp.rename(tp.target)
            done.append(tp)
            logger.info(f"Renamed {tp.target.name}")
    except BaseException:
        _rollback_renames(staged, done)
        raise
    for tp in plan.tracks:
        tp.track.path = tp.target.relative_to(plan.directory).as_posix()

    directory = plan.directory
    if rename_dir and directory.name != plan.dirname:
        target_dir = directory.with_name(plan.dirname)
        if target_dir.exists():
            raise RenameConflictError(f"Refusing to overwrite existing directory {target_dir}")
        directory.rename(target_dir)
        logger.info(f"Renamed directory {directory.name} to {target_dir.name}")
        directory = target_dir
    plan.release.root_path = str(directory)
    return directory


def _rollback_renames(staged: list[tuple[TrackPlan, Path]], done: list[TrackPlan]) -> None:
    """Undo a partial rename in reverse order. Files that cannot be restored are logged."""
    tmps = {id(tp): tmp for tp, tmp in staged}
    moves = [(tp.target, tmps[id(tp)]) for tp in reversed(done)]
    moves += [(tmp, tp.source) for tp, tmp in reversed(staged)]
    for src, dst in moves:
        try:
            src.rename(dst)
        except OSError as e:
            logger.error(f"Failed to move {src.name} back to {dst.name}: {e}")


def tag_release(
    metadata: Path,
    directory: Path,
    *,
    dry_run: bool = False,
    force: bool = False,
    rename: bool = True,
    rename_dir: bool = False,
    cancel: threading.Event | None = None,
) -> tuple[TagPlan, Path]:
    """
    Tag a release directory from its metadata JSON. The metadata must validate cleanly unless
    `force` is set. In dry-run mode nothing is written, validation errors do not abort, and the plan
    is returned for display.
    """
    release = load_release(metadata)
    issues = sort_issues(validate_release(release))
    if has_errors(issues) and not force and not dry_run:
        raise ValidationFailedError(issues, "Release metadata failed validation")
    plan = plan_tagging(release, directory, rename=rename, refuse_data_loss=not dry_run)
    plan.issues = issues
    if dry_run:
        return plan, directory
    return plan, apply_tagging(plan, rename_dir=rename_dir, cancel=cancel)
