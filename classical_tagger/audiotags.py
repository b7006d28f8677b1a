"""
The audiotags module reads and writes the Vorbis comment block of FLAC files, and builds the local
view of a release from the files in a directory.

Writing is conservative. Before touching a file, the writer compares every tag it intends to set
against what is already there and refuses to write if any change would throw information away.
Tags it does not manage are left as they are. Each file is rewritten through a temporary copy that
is renamed over the original, so a failed write never leaves a half-written file behind.
"""

from __future__ import annotations

import contextlib
import enum
import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import mutagen
import mutagen.flac

from classical_tagger.artists import (
    Artist,
    format_artists,
    parse_artist_field,
    split_artist_field,
)
from classical_tagger.common import (
    ClassicalTaggerError,
    ClassicalTaggerExpectedError,
    uniq,
)
from classical_tagger.releases import (
    Edition,
    File,
    Release,
    ReleaseFile,
    Track,
    derive_album_artists,
)
from classical_tagger.roles import Role

logger = logging.getLogger(__name__)

SUPPORTED_AUDIO_EXTENSIONS = [".flac"]

YEAR_REGEX = re.compile(r"(\d{4})")
LEADING_INT_REGEX = re.compile(r"\s*(\d+)")
WHITESPACE_REGEX = re.compile(r"\s+")

# The tags the writer manages, in the order they are reported.
MANAGED_TAGS = [
    "TITLE",
    "COMPOSER",
    "ARTIST",
    "ALBUM",
    "ALBUMARTIST",
    "DATE",
    "ORIGINALDATE",
    "TRACKNUMBER",
    "DISCNUMBER",
    "LABEL",
    "CATALOGNUMBER",
]
NUMERIC_TAGS = frozenset(["TRACKNUMBER", "DISCNUMBER"])
DATE_TAGS = frozenset(["DATE", "ORIGINALDATE"])
ARTIST_LIST_TAGS = frozenset(["ARTIST", "ALBUMARTIST", "COMPOSER"])


class UnsupportedFiletypeError(ClassicalTaggerExpectedError):
    pass


class NoAudioFilesError(ClassicalTaggerExpectedError):
    pass


class DataLossError(ClassicalTaggerExpectedError):
    pass


class TagWriteError(ClassicalTaggerError):
    pass


@dataclass
class TrackTags:
    path: Path
    title: str | None
    album: str | None
    artist: str | None
    albumartist: str | None
    composer: str | None
    conductor: str | None
    year: int | None
    originalyear: int | None
    tracknumber: int | None
    discnumber: int | None
    label: str | None
    catalognumber: str | None
    # Every tag in the file, with uppercased keys and multiple values joined.
    raw: dict[str, str] = field(default_factory=dict)

    def artists(self) -> list[Artist]:
        """The credits of this file, with roles where the tag they came from implies one."""
        rv = parse_artist_field(self.composer, Role.COMPOSER)
        conductors = parse_artist_field(self.conductor, Role.CONDUCTOR)
        conductor_names = {a.name for a in conductors}
        rv.extend(a for a in parse_artist_field(self.artist) if a.name not in conductor_names)
        rv.extend(conductors)
        return rv


def read_tags(p: Path) -> TrackTags:
    """Read the tags of an audio file on disk."""
    if p.suffix.lower() not in SUPPORTED_AUDIO_EXTENSIONS:
        raise UnsupportedFiletypeError(f"{p.suffix} not a supported filetype")
    try:
        m = mutagen.File(p)  # type: ignore
    except mutagen.MutagenError as e:  # type: ignore
        raise UnsupportedFiletypeError(f"Failed to open file: {e}") from e
    if not isinstance(m, mutagen.flac.FLAC):
        raise UnsupportedFiletypeError(f"{p} is not a FLAC file")
    raw = _flatten_tags(m.tags)
    return TrackTags(
        path=p,
        title=raw.get("TITLE"),
        album=raw.get("ALBUM"),
        artist=raw.get("ARTIST"),
        albumartist=raw.get("ALBUMARTIST"),
        composer=raw.get("COMPOSER"),
        conductor=raw.get("CONDUCTOR"),
        year=_parse_year(raw.get("DATE") or raw.get("YEAR")),
        originalyear=_parse_year(raw.get("ORIGINALDATE") or raw.get("ORIGINALYEAR")),
        tracknumber=_parse_leading_int(raw.get("TRACKNUMBER")),
        discnumber=_parse_leading_int(raw.get("DISCNUMBER")),
        label=raw.get("LABEL") or raw.get("ORGANIZATION"),
        catalognumber=raw.get("CATALOGNUMBER"),
        raw=raw,
    )


def _flatten_tags(tags: Any) -> dict[str, str]:
    rv: dict[str, list[str]] = {}
    if not tags:
        return {}
    for key, value in tags:
        rv.setdefault(key.upper(), []).append(value)
    return {k: "; ".join(v) for k, v in rv.items()}


def _parse_leading_int(x: str | None) -> int | None:
    if not x:
        return None
    m = LEADING_INT_REGEX.match(x)
    return int(m[1]) if m else None


def _parse_year(value: str | None) -> int | None:
    if not value:
        return None
    m = YEAR_REGEX.match(value.strip())
    return int(m[1]) if m else None


def find_audio_files(root: Path) -> list[Path]:
    return sorted(
        p
        for p in root.rglob("*")
        if p.is_file() and p.suffix.lower() in SUPPORTED_AUDIO_EXTENSIONS
    )


def build_local_release(root: Path) -> Release:
    """
    Build the local view of a release from the directory on disk. Audio files become tracks from
    their tags; every other file is recorded as a plain file. Album-level fields come from the first
    track.
    """
    if not root.is_dir():
        raise NoAudioFilesError(f"Not a directory: {root}")
    files: list[ReleaseFile] = []
    first: TrackTags | None = None
    for p in sorted(x for x in root.rglob("*") if x.is_file()):
        relpath = p.relative_to(root).as_posix()
        size = p.stat().st_size
        if p.suffix.lower() not in SUPPORTED_AUDIO_EXTENSIONS:
            files.append(File(path=relpath, size=size))
            continue
        tags = read_tags(p)
        first = first or tags
        if tags.tracknumber is None:
            logger.warning(f"No track number in {relpath}")
        files.append(
            Track(
                path=relpath,
                size=size,
                disc=tags.discnumber or 1,
                track=tags.tracknumber or 0,
                title=tags.title or "",
                artists=tags.artists(),
            )
        )
    if first is None:
        raise NoAudioFilesError(f"No FLAC files found in {root}")

    original_year = first.originalyear or first.year or 0
    edition_year = first.year if first.originalyear and first.year != first.originalyear else None
    release = Release(
        root_path=str(root),
        title=first.album or "",
        original_year=original_year,
        edition=Edition.build(first.label, first.catalognumber, edition_year),
        files=files,
    )
    album_artist = parse_artist_field(first.albumartist)
    # Roles on the track credits are better informed than the flat album artist tag.
    by_name = {a.name: a for a in derive_album_artists(release.tracks())}
    release.album_artist = [by_name.get(a.name, a) for a in album_artist] or list(by_name.values())
    logger.debug(
        f"Read {release.total_tracks()} tracks and {len(release.plain_files())} other files "
        f"from {root}"
    )
    return release


def plan_tags(track: Track, release: Release) -> dict[str, str]:
    """The tags a track should carry. Empty values mean the writer has nothing to say."""
    composers = uniq([a.name for a in track.composers()])
    edition = release.edition
    year = (edition.year if edition and edition.year else 0) or release.original_year
    return {
        "TITLE": track.title,
        "COMPOSER": ", ".join(composers),
        "ARTIST": format_artists(track.artists),
        "ALBUM": release.title,
        "ALBUMARTIST": format_artists(release.album_artist),
        "DATE": str(year) if year else "",
        "ORIGINALDATE": str(release.original_year) if release.original_year else "",
        "TRACKNUMBER": str(track.track) if track.track else "",
        "DISCNUMBER": str(track.disc) if track.disc else "",
        "LABEL": edition.label if edition else "",
        "CATALOGNUMBER": edition.catalog_number if edition else "",
    }


class TagStatus(enum.Enum):
    UNCHANGED = "unchanged"
    UPDATED = "updated"
    ADDED = "added"
    PRESERVED = "preserved"
    WOULD_LOSE_DATA = "would-lose-data"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TagChange:
    field: str
    old: str
    new: str
    status: TagStatus

    @property
    def writes(self) -> bool:
        return self.status in (TagStatus.ADDED, TagStatus.UPDATED)

    def __str__(self) -> str:
        if self.status == TagStatus.UNCHANGED:
            return f"{self.field}: {self.old!r} (unchanged)"
        if self.status == TagStatus.PRESERVED:
            return f"{self.field}: {self.old!r} (preserved)"
        if self.status == TagStatus.ADDED:
            return f"{self.field}: {self.new!r} (added)"
        return f"{self.field}: {self.old!r} -> {self.new!r} ({self.status})"


def _normalize(value: str) -> str:
    return WHITESPACE_REGEX.sub(" ", value).strip().casefold()


def loses_data(tag: str, old: str, new: str) -> bool:
    """
    Whether replacing `old` with `new` throws information away. For artist lists every old name must
    survive; for everything else the new value must contain the old one.
    """
    if tag in ARTIST_LIST_TAGS:
        old_names = {n.casefold() for n in split_artist_field(old)}
        new_names = {n.casefold() for n in split_artist_field(new)}
        return not old_names <= new_names
    return _normalize(old) not in _normalize(new)


def compare_tag(tag: str, old: str, new: str) -> TagChange | None:
    if not old and not new:
        return None
    if not new:
        return TagChange(tag, old, new, TagStatus.PRESERVED)
    if not old:
        return TagChange(tag, old, new, TagStatus.ADDED)
    if old == new:
        return TagChange(tag, old, new, TagStatus.UNCHANGED)
    if tag in NUMERIC_TAGS:
        # Renumbering is the point of retagging. "01" and "1/12" both mean track 1.
        if _parse_leading_int(old) == _parse_leading_int(new):
            return TagChange(tag, old, new, TagStatus.PRESERVED)
        return TagChange(tag, old, new, TagStatus.UPDATED)
    if tag in DATE_TAGS and _normalize(old).startswith(_normalize(new)):
        # A full date already carries the year.
        return TagChange(tag, old, new, TagStatus.PRESERVED)
    if loses_data(tag, old, new):
        return TagChange(tag, old, new, TagStatus.WOULD_LOSE_DATA)
    return TagChange(tag, old, new, TagStatus.UPDATED)


def compare_tags(existing: dict[str, str], proposed: dict[str, str]) -> list[TagChange]:
    rv: list[TagChange] = []
    for tag, new in proposed.items():
        change = compare_tag(tag, existing.get(tag, ""), new)
        if change is not None:
            rv.append(change)
    return rv


def write_tags(path: Path, track: Track, release: Release, *, dry_run: bool = False) -> list[TagChange]:
    """
    Write the planned tags of a track into its file and return the per-tag report. Raises
    DataLossError, without touching the file, if any change would lose data.
    """
    existing = read_tags(path).raw
    changes = compare_tags(existing, plan_tags(track, release))
    lossy = [c for c in changes if c.status == TagStatus.WOULD_LOSE_DATA]
    if lossy:
        raise DataLossError(
            f"Refusing to write {path.name}: would lose data in "
            + "; ".join(f"{c.field} ({c.old!r} -> {c.new!r})" for c in lossy)
        )
    writes = [c for c in changes if c.writes]
    if dry_run or not writes:
        return changes

    fd, tmpname = tempfile.mkstemp(prefix=".", suffix=path.suffix, dir=path.parent)
    os.close(fd)
    tmppath = Path(tmpname)
    try:
        shutil.copy2(path, tmppath)
        m = mutagen.flac.FLAC(tmppath)
        if m.tags is None:
            m.add_tags()
        for c in writes:
            m.tags[c.field] = c.new  # type: ignore
        m.save()
        os.replace(tmppath, path)
    except (OSError, mutagen.MutagenError) as e:  # type: ignore
        with contextlib.suppress(FileNotFoundError):
            tmppath.unlink()
        raise TagWriteError(f"Failed to write tags to {path}: {e}") from e
    logger.info(f"Wrote {len(writes)} tags to {path.name}")
    return changes
