"""
The naming module derives compliant file and directory names from a release.

The directory name is built by adding components in a fixed order, each only if the result still
fits in the length limit: title, then the format marker, then the year, then the composer prefix,
and finally the performers. The order is part of the output contract; reordering it changes the names of
already-tagged releases.
"""

import re
from collections import Counter
from pathlib import PurePosixPath

from classical_tagger.artists import last_name
from classical_tagger.releases import Release, Track
from classical_tagger.roles import Role

MAX_DIRNAME_LENGTH = 180
MAX_FILENAME_STEM_LENGTH = 170
MAX_PERFORMERS_LENGTH = 50
MAX_PERFORMERS = 3
FORMAT_MARKER = " [FLAC]"
DEFAULT_EXTENSION = ".flac"

ILLEGAL_FS_CHARS_REGEX = re.compile(r'[<>:"/\\|?*]')
WHITESPACE_REGEX = re.compile(r"\s+")

RESERVED_NAMES = frozenset(
    ["CON", "PRN", "AUX", "NUL"]
    + [f"COM{i}" for i in range(1, 10)]
    + [f"LPT{i}" for i in range(1, 10)]
)


def _sanitize(name: str) -> str:
    name = ILLEGAL_FS_CHARS_REGEX.sub("", name)
    # Collapse first so that a leading NBSP or tab is stripped along with plain spaces.
    name = WHITESPACE_REGEX.sub(" ", name)
    name = name.strip(" .")
    if name.upper() in RESERVED_NAMES:
        name = "_" + name
    return name


def sanitize_dirname(name: str) -> str:
    return _sanitize(name)


def sanitize_filename(name: str) -> str:
    """Same as sanitize_dirname, but also capped in length. Takes the stem only, no extension."""
    name = _sanitize(name)
    if len(name) > MAX_FILENAME_STEM_LENGTH:
        name = name[:MAX_FILENAME_STEM_LENGTH].rstrip(" .")
    return name


def track_filename(track: Track, total_tracks: int) -> str:
    """`NN - Title.ext`, zero-padded when the release has more than nine tracks."""
    number = f"{track.track:02d}" if total_tracks > 9 else str(track.track)
    title = sanitize_filename(track.title) or "Untitled"
    ext = PurePosixPath(track.path).suffix.lower() or DEFAULT_EXTENSION
    return f"{number} - {title}{ext}"


def primary_composers(tracks: list[Track]) -> list[str]:
    """
    A composer credited on more than half the tracks is the only one named. Otherwise every composer
    is named, in order of first appearance.
    """
    counts: Counter[str] = Counter()
    for t in tracks:
        for name in dict.fromkeys(a.name for a in t.artists if a.role == Role.COMPOSER and a.name):
            counts[name] += 1
    if not counts:
        return []
    # most_common keeps first-insertion order on ties.
    name, count = counts.most_common(1)[0]
    if count * 2 > len(tracks):
        return [name]
    return list(counts)


def primary_performers(tracks: list[Track]) -> list[str]:
    """Performers credited on at least half the tracks (rounded up), first three by appearance."""
    counts: Counter[str] = Counter()
    for t in tracks:
        for name in dict.fromkeys(a.name for a in t.artists if a.role != Role.COMPOSER and a.name):
            counts[name] += 1
    threshold = max(1, (len(tracks) + 1) // 2)
    return [name for name, count in counts.items() if count >= threshold][:MAX_PERFORMERS]


def _short_name(name: str) -> str:
    return sanitize_dirname(last_name(name) or name)


def format_composers(composers: list[str]) -> str:
    return ", ".join(_short_name(c) for c in composers)


def format_performers(performers: list[str]) -> str:
    rv = ", ".join(_short_name(p) for p in performers)
    if len(rv) > MAX_PERFORMERS_LENGTH:
        rv = rv[: MAX_PERFORMERS_LENGTH - 3] + "..."
    return rv


def release_dirname(release: Release) -> str:
    """`Composer - Title (Performers) - Year [FLAC]`, dropping trailing components to fit."""
    tracks = release.tracks()
    title = sanitize_dirname(release.title) or "Untitled Album"
    if len(title) > MAX_DIRNAME_LENGTH:
        title = title[:MAX_DIRNAME_LENGTH].rstrip(" .")

    length = len(title)
    if length + len(FORMAT_MARKER) > MAX_DIRNAME_LENGTH:
        return title
    length += len(FORMAT_MARKER)

    year = f" - {release.original_year}" if release.original_year > 0 else ""
    if length + len(year) > MAX_DIRNAME_LENGTH:
        return title + FORMAT_MARKER
    length += len(year)

    composers = primary_composers(tracks)
    prefix = format_composers(composers) + " - " if composers else ""
    if length + len(prefix) > MAX_DIRNAME_LENGTH:
        return title + year + FORMAT_MARKER
    length += len(prefix)

    performers = primary_performers(tracks)
    infix = f" ({format_performers(performers)})" if performers else ""
    if length + len(infix) > MAX_DIRNAME_LENGTH:
        return prefix + title + year + FORMAT_MARKER
    return prefix + title + infix + year + FORMAT_MARKER
