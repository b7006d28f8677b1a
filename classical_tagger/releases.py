"""
The releases module contains the canonical release model: the Release aggregate, its heterogeneous
file list of plain Files and Tracks, the optional Edition and tracker SiteMetadata, and the JSON
format that releases are persisted in between pipeline commands.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any

from classical_tagger.artists import Artist
from classical_tagger.common import ClassicalTaggerExpectedError
from classical_tagger.roles import Role

logger = logging.getLogger(__name__)


class InvalidReleaseError(ClassicalTaggerExpectedError):
    pass


@dataclass
class Edition:
    label: str = ""
    catalog_number: str = ""
    year: int = 0

    @classmethod
    def build(cls, label: str | None, catalog_number: str | None, year: int | None) -> Edition | None:
        """An edition only exists if at least one of its fields is set."""
        label = (label or "").strip()
        catalog_number = (catalog_number or "").strip()
        year = year or 0
        if not label and not catalog_number and not year:
            return None
        return cls(label=label, catalog_number=catalog_number, year=year)

    def dump(self) -> dict[str, Any]:
        rv: dict[str, Any] = {}
        if self.label:
            rv["label"] = self.label
        if self.catalog_number:
            rv["catalog_number"] = self.catalog_number
        if self.year:
            rv["year"] = self.year
        return rv

    @classmethod
    def parse(cls, data: dict[str, Any] | None) -> Edition | None:
        if not data:
            return None
        return cls.build(data.get("label"), data.get("catalog_number"), _parse_int(data.get("year")))


@dataclass
class File:
    """A non-audio file in a release: a log, a cue sheet, cover art."""

    path: str
    size: int = 0

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    def dump(self) -> dict[str, Any]:
        rv: dict[str, Any] = {"path": self.path}
        if self.size:
            rv["size"] = self.size
        return rv


@dataclass
class Track:
    path: str
    size: int = 0
    disc: int = 1
    track: int = 0
    title: str = ""
    artists: list[Artist] = field(default_factory=list)

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    def composers(self) -> list[Artist]:
        return [a for a in self.artists if a.role == Role.COMPOSER]

    def performers(self) -> list[Artist]:
        return [a for a in self.artists if a.role != Role.COMPOSER]

    def dump(self) -> dict[str, Any]:
        rv: dict[str, Any] = {"path": self.path}
        if self.size:
            rv["size"] = self.size
        rv["disc"] = self.disc
        rv["track"] = self.track
        rv["title"] = self.title
        rv["artists"] = [a.dump() for a in self.artists]
        return rv


# Every entry in a release's file list is one of these. Both expose `path`, `size`, and `name`.
ReleaseFile = File | Track


def parse_release_file(data: Any) -> ReleaseFile:
    """
    Discriminate a file-list element: any element carrying a disc, track, title, or artists is a
    track; otherwise it is a plain file.
    """
    if not isinstance(data, dict):
        raise InvalidReleaseError(f"File entry must be an object: got {type(data).__name__}")
    path = data.get("path")
    if not isinstance(path, str):
        raise InvalidReleaseError(f"File entry is missing a path: {data!r}")
    size = _parse_int(data.get("size"))
    disc = _parse_int(data.get("disc"))
    track = _parse_int(data.get("track"))
    title = data.get("title") or ""
    raw_artists = data.get("artists") or []
    if not disc and not track and not title and not raw_artists:
        return File(path=path, size=size)
    if not isinstance(raw_artists, list):
        raise InvalidReleaseError(f"Track artists must be a list: {path}")
    try:
        artists = [Artist.parse(a) for a in raw_artists]
    except (KeyError, TypeError, AttributeError) as e:
        raise InvalidReleaseError(f"Invalid artist in track {path}: {e}") from e
    return Track(
        path=path,
        size=size,
        disc=disc or 1,
        track=track,
        title=str(title),
        artists=artists,
    )


@dataclass
class SiteMetadata:
    torrent_id: int = 0
    group_id: int = 0
    tags: list[str] = field(default_factory=list)
    description: str = ""
    cover_art_url: str = ""
    media: str = ""
    format: str = ""
    encoding: str = ""
    scene: bool = False
    has_log: bool = False
    has_cue: bool = False
    log_score: int = 0
    release_type: str = ""
    announce_url: str = ""

    def dump(self) -> dict[str, Any]:
        return {
            "torrent_id": self.torrent_id,
            "group_id": self.group_id,
            "tags": list(self.tags),
            "description": self.description,
            "cover_art_url": self.cover_art_url,
            "media": self.media,
            "format": self.format,
            "encoding": self.encoding,
            "scene": self.scene,
            "has_log": self.has_log,
            "has_cue": self.has_cue,
            "log_score": self.log_score,
            "release_type": self.release_type,
            "announce_url": self.announce_url,
        }

    @classmethod
    def parse(cls, data: dict[str, Any] | None) -> SiteMetadata | None:
        if not data:
            return None
        return cls(
            torrent_id=_parse_int(data.get("torrent_id")),
            group_id=_parse_int(data.get("group_id")),
            tags=[str(t) for t in data.get("tags") or []],
            description=data.get("description") or "",
            cover_art_url=data.get("cover_art_url") or "",
            media=data.get("media") or "",
            format=data.get("format") or "",
            encoding=data.get("encoding") or "",
            scene=bool(data.get("scene")),
            has_log=bool(data.get("has_log")),
            has_cue=bool(data.get("has_cue")),
            log_score=_parse_int(data.get("log_score")),
            release_type=data.get("release_type") or "",
            announce_url=data.get("announce_url") or "",
        )


@dataclass
class Release:
    root_path: str
    title: str = ""
    original_year: int = 0
    edition: Edition | None = None
    album_artist: list[Artist] = field(default_factory=list)
    files: list[ReleaseFile] = field(default_factory=list)
    site_metadata: SiteMetadata | None = None

    @property
    def folder_name(self) -> str:
        return PurePosixPath(self.root_path.replace("\\", "/")).name

    def tracks(self) -> list[Track]:
        return [f for f in self.files if isinstance(f, Track)]

    def plain_files(self) -> list[File]:
        return [f for f in self.files if isinstance(f, File)]

    def total_tracks(self) -> int:
        return len(self.tracks())

    def is_multi_disc(self) -> bool:
        return len({t.disc for t in self.tracks()}) > 1

    def album_artists(self) -> list[Artist]:
        return derive_album_artists(self.tracks())

    def composers(self) -> list[Artist]:
        """Distinct composers across all tracks, by first appearance."""
        seen: set[str] = set()
        rv: list[Artist] = []
        for t in self.tracks():
            for a in t.composers():
                if a.name not in seen:
                    seen.add(a.name)
                    rv.append(a)
        return rv

    def dump(self) -> dict[str, Any]:
        rv: dict[str, Any] = {
            "root_path": self.root_path,
            "title": self.title,
            "original_year": self.original_year,
        }
        if self.edition is not None:
            rv["edition"] = self.edition.dump()
        if self.album_artist:
            rv["album_artist"] = [a.dump() for a in self.album_artist]
        rv["files"] = [f.dump() for f in self.files]
        if self.site_metadata is not None:
            rv["site_metadata"] = self.site_metadata.dump()
        return rv

    @classmethod
    def parse(cls, data: Any) -> Release:
        if not isinstance(data, dict):
            raise InvalidReleaseError(f"Release must be a JSON object: got {type(data).__name__}")
        raw_files = data.get("files") or []
        if not isinstance(raw_files, list):
            raise InvalidReleaseError("Release files must be a list")
        try:
            album_artist = [Artist.parse(a) for a in data.get("album_artist") or []]
        except (KeyError, TypeError, AttributeError) as e:
            raise InvalidReleaseError(f"Invalid album artist: {e}") from e
        return cls(
            root_path=data.get("root_path") or "",
            title=data.get("title") or "",
            original_year=_parse_int(data.get("original_year")),
            edition=Edition.parse(data.get("edition")),
            album_artist=album_artist,
            files=[parse_release_file(f) for f in raw_files],
            site_metadata=SiteMetadata.parse(data.get("site_metadata")),
        )

    def to_json(self) -> str:
        return json.dumps(self.dump(), indent=2, ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> Release:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidReleaseError(f"Failed to decode release JSON: {e}") from e
        return cls.parse(data)


def derive_album_artists(tracks: list[Track]) -> list[Artist]:
    """
    The album artists are the performer-like artists credited on every track, in order of first
    appearance. A name counts once per track no matter how many roles it is credited with.
    """
    if not tracks:
        return []
    candidates: dict[str, Artist] = {}
    for t in tracks:
        for a in t.artists:
            if a.role.is_performer_like() and a.name not in candidates:
                candidates[a.name] = a
    per_track_names = [{a.name for a in t.artists if a.role.is_performer_like()} for t in tracks]
    return [a for name, a in candidates.items() if all(name in names for names in per_track_names)]


def load_release(path: Path) -> Release:
    try:
        with path.open("r", encoding="utf-8") as fp:
            text = fp.read()
    except FileNotFoundError as e:
        raise InvalidReleaseError(f"Release metadata file not found ({path})") from e
    release = Release.from_json(text)
    logger.debug(f"Loaded release {release.title!r} with {release.total_tracks()} tracks from {path}")
    return release


def save_release(release: Release, path: Path) -> None:
    with path.open("w", encoding="utf-8") as fp:
        fp.write(release.to_json())
        fp.write("\n")
    logger.info(f"Saved release metadata to {path}")


def _parse_int(x: Any) -> int:
    if x is None or x == "":
        return 0
    try:
        return int(x)
    except (TypeError, ValueError) as e:
        raise InvalidReleaseError(f"Expected an integer: got {x!r}") from e
