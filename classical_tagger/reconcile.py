"""
The reconcile module merges the views of a release into one canonical Release.

Three views exist:

1. The scrape view: a release object from the discography API. It has the best tracklist and
   credits, but positions are free-form strings, works are nested as parent entries with movement
   sub-tracks, and roles are often missing.
2. The local view: a Release read from the audio tags of the files on disk. It knows the actual
   files, but its roles are mostly lost, since tags store performers as a flat string.
3. The tracker view: the tracker's existing record of the torrent being replaced. Its artists must
   all survive into the replacement.

Reconciliation never guesses. Roles come from explicit credits first, then cross-references between
the views, then name inference; an album-level artist whose role is still unknown fails the merge.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from classical_tagger.artists import Artist, ArtistMap, dedupe_artists
from classical_tagger.common import ClassicalTaggerExpectedError
from classical_tagger.issues import ALBUM, Issue, error, has_errors, info, warning
from classical_tagger.naming import track_filename
from classical_tagger.positions import parse_position
from classical_tagger.releases import (
    Edition,
    File,
    Release,
    ReleaseFile,
    SiteMetadata,
    Track,
    derive_album_artists,
)
from classical_tagger.roles import Role, infer_role, parse_role, parse_tracker_role

logger = logging.getLogger(__name__)

DEFAULT_TRUMP_REASON = "Corrected tags and filenames according to classical music guidelines"


class ReconciliationError(ClassicalTaggerExpectedError):
    pass


@dataclass
class ScrapedArtist:
    name: str
    # The raw credit string. Empty when the source gave none.
    role: str = ""
    # For release-level credits, which tracks the credit applies to. Empty means all of them.
    tracks: str = ""


@dataclass
class ScrapedTrack:
    position: str
    title: str
    artists: list[ScrapedArtist] = field(default_factory=list)
    sub_tracks: list[ScrapedTrack] = field(default_factory=list)
    duration: str = ""


@dataclass
class ScrapedRelease:
    id: int = 0
    title: str = ""
    year: int = 0
    label: str = ""
    catalog_number: str = ""
    artists: list[ScrapedArtist] = field(default_factory=list)
    extra_artists: list[ScrapedArtist] = field(default_factory=list)
    tracklist: list[ScrapedTrack] = field(default_factory=list)


@dataclass
class FlatTrack:
    """A tracklist entry after position and hierarchy resolution, before role resolution."""

    disc: int
    track: int
    title: str
    mentions: list[ScrapedArtist]


def flatten_tracklist(tracklist: list[ScrapedTrack]) -> list[FlatTrack]:
    """
    Resolve positions and work hierarchy. A parent entry with sub-tracks is not itself a track: each
    sub-track becomes a track titled `<parent>: <sub>` that inherits the parent's credits. Entries
    whose position does not parse (video bonuses, headings) are dropped.
    """
    rv: list[FlatTrack] = []
    for entry in tracklist:
        if entry.sub_tracks:
            for sub in entry.sub_tracks:
                disc, track = parse_position(sub.position)
                if track == 0:
                    logger.debug(f"Skipping sub-track with unparseable position {sub.position!r}")
                    continue
                title = f"{entry.title}: {sub.title}" if entry.title else sub.title
                rv.append(FlatTrack(disc, track, title, list(entry.artists) + list(sub.artists)))
            continue
        disc, track = parse_position(entry.position)
        if track == 0:
            logger.debug(f"Skipping tracklist entry {entry.title!r} at position {entry.position!r}")
            continue
        rv.append(FlatTrack(disc, track, entry.title, list(entry.artists)))
    return rv


class RoleResolver:
    """
    Resolves the role of an artist mention, in order of precedence: the mention's own credit, a
    credit for the same name among the scrape view's extra artists, a credit for the same name in the
    local view (album artists before track artists), inference from the name, and finally Unknown.
    Name matching is case-insensitive.
    """

    def __init__(self, scrape: ScrapedRelease | None, local: Release | None) -> None:
        self._extra: dict[str, list[Role]] = {}
        self._local_album: dict[str, list[Role]] = {}
        self._local_track: dict[str, list[Role]] = {}
        if scrape is not None:
            for a in scrape.extra_artists:
                _index(self._extra, a.name, parse_role(a.role))
        if local is not None:
            for a in local.album_artist:
                _index(self._local_album, a.name, a.role)
            for t in local.tracks():
                for a in t.artists:
                    _index(self._local_track, a.name, a.role)

    def resolve(self, name: str, credit: str = "") -> list[Role]:
        if (role := parse_role(credit)) != Role.UNKNOWN:
            return [role]
        key = name.casefold()
        if key in self._extra:
            return self._extra[key]
        if key in self._local_album:
            return self._local_album[key]
        if key in self._local_track:
            return self._local_track[key]
        return [infer_role(name)]


def _index(index: dict[str, list[Role]], name: str, role: Role) -> None:
    if role == Role.UNKNOWN:
        return
    roles = index.setdefault(name.casefold(), [])
    if role not in roles:
        roles.append(role)


@dataclass
class ReconcileResult:
    release: Release | None
    issues: list[Issue]

    @property
    def ok(self) -> bool:
        return self.release is not None


def reconcile(
    scrape: ScrapedRelease | None,
    local: Release | None,
    *,
    root_path: str = "",
    strict: bool = True,
) -> ReconcileResult:
    """
    Merge the scrape view and the local view into one release. Either may be absent, but not both.

    In strict mode an album-level artist with an unknown role is an Error and no release is
    returned. Scrape-only callers pass strict=False to keep the Unknown and get a Warning instead.
    """
    if scrape is None and local is None:
        return ReconcileResult(None, [error(ALBUM, "reconcile", "no metadata source to reconcile")])

    issues: list[Issue] = []
    resolver = RoleResolver(scrape, local)
    if scrape is not None:
        release = _release_from_scrape(scrape, local, resolver, root_path, issues)
    else:
        assert local is not None
        release = _release_from_local(local, resolver)

    for t in release.tracks():
        t.artists = dedupe_artists(t.artists)
        for a in t.artists:
            if a.role == Role.UNKNOWN:
                issues.append(
                    info(t.track, "reconcile", f"could not determine the role of {a.name}")
                )

    album_artist = dedupe_artists(derive_album_artists(release.tracks()))
    unresolved = _universal_unknowns(release.tracks())
    for name in unresolved:
        if strict:
            issues.append(
                error(ALBUM, "reconcile", f"could not determine the role of album artist {name}")
            )
        else:
            issues.append(
                warning(ALBUM, "reconcile", f"could not determine the role of album artist {name}")
            )
            album_artist.append(Artist(name, Role.UNKNOWN))
    release.album_artist = album_artist

    if strict and unresolved:
        return ReconcileResult(None, issues)
    return ReconcileResult(release, issues)


def _universal_unknowns(tracks: list[Track]) -> list[str]:
    """Names credited on every track whose only role is Unknown."""
    if not tracks:
        return []
    per_track = [ArtistMap(t.artists) for t in tracks]
    first = per_track[0]
    return [
        name
        for name in first
        if all(name in m and m.roles(name) == {Role.UNKNOWN} for m in per_track)
    ]


def _release_from_scrape(
    scrape: ScrapedRelease,
    local: Release | None,
    resolver: RoleResolver,
    root_path: str,
    issues: list[Issue],
) -> Release:
    flat = flatten_tracklist(scrape.tracklist)
    # Release-level credits that apply to every track.
    shared = list(scrape.artists) + [a for a in scrape.extra_artists if not a.tracks.strip()]

    local_tracks = {(t.disc, t.track): t for t in local.tracks()} if local is not None else {}
    tracks: list[Track] = []
    for ft in flat:
        artists: list[Artist] = []
        own = {m.name.casefold() for m in ft.mentions}
        mentions = ft.mentions + [a for a in shared if a.name.casefold() not in own]
        for m in mentions:
            for role in resolver.resolve(m.name, m.role):
                artists.append(Artist(m.name, role))
        track = Track(path="", disc=ft.disc, track=ft.track, title=ft.title, artists=artists)
        if (lt := local_tracks.pop((ft.disc, ft.track), None)) is not None:
            track.path = lt.path
            track.size = lt.size
        tracks.append(track)

    for t in tracks:
        if not t.path:
            t.path = track_filename(t, len(tracks))
    for (disc, number), lt in local_tracks.items():
        issues.append(
            warning(
                number,
                "reconcile",
                f"local file {lt.path} (disc {disc}) has no counterpart in the reference tracklist",
            )
        )

    edition_year = local.edition.year if local is not None and local.edition else 0
    files: list[ReleaseFile] = list(tracks)
    if local is not None:
        files.extend(local.plain_files())
    return Release(
        root_path=root_path or (local.root_path if local is not None else ""),
        title=scrape.title or (local.title if local is not None else ""),
        original_year=scrape.year or (local.original_year if local is not None else 0),
        edition=Edition.build(scrape.label, scrape.catalog_number, edition_year)
        or (local.edition if local is not None else None),
        files=files,
        site_metadata=local.site_metadata if local is not None else None,
    )


def _release_from_local(local: Release, resolver: RoleResolver) -> Release:
    files: list[ReleaseFile] = []
    for f in local.files:
        if isinstance(f, File):
            files.append(replace(f))
            continue
        artists: list[Artist] = []
        for a in f.artists:
            if a.role != Role.UNKNOWN:
                artists.append(a)
                continue
            for role in resolver.resolve(a.name):
                artists.append(Artist(a.name, role))
        files.append(replace(f, artists=artists))
    return replace(local, files=files, album_artist=[])


@dataclass
class TrackerArtist:
    name: str
    # The tracker's category for the credit: "artists", "composers", "conductor", "with", ...
    category: str

    @property
    def role(self) -> Role:
        return parse_tracker_role(self.category)


@dataclass
class TrackerView:
    title: str = ""
    year: int = 0
    artists: list[TrackerArtist] = field(default_factory=list)
    site_metadata: SiteMetadata = field(default_factory=SiteMetadata)
    remastered: bool = False
    remaster_year: int = 0
    remaster_title: str = ""
    remaster_record_label: str = ""
    remaster_catalogue_number: str = ""


# Tracker role -> local roles that satisfy it, beyond an exact match.
_COMPATIBLE_ROLES = {
    Role.PERFORMER: frozenset([Role.SOLOIST, Role.ENSEMBLE, Role.PERFORMER, Role.GUEST]),
}


def is_compatible_role(tracker_role: Role, local_role: Role) -> bool:
    return tracker_role == local_role or local_role in _COMPATIBLE_ROLES.get(tracker_role, ())


def all_release_artists(release: Release) -> list[Artist]:
    """Every credit on the release, album-level first, deduplicated by (name, role)."""
    return ArtistMap(
        list(release.album_artist) + [a for t in release.tracks() for a in t.artists]
    ).artists()


def check_tracker_artists(tracker: TrackerView, release: Release) -> list[Issue]:
    """
    Every tracker artist must survive into the local release under a compatible role. Local artists
    missing from the tracker are fine; the replacement may credit more people than the original.
    """
    local: dict[str, list[Role]] = {}
    for a in all_release_artists(release):
        local.setdefault(a.name.casefold(), []).append(a.role)

    issues: list[Issue] = []
    for ta in tracker.artists:
        roles = local.get(ta.name.casefold())
        if not roles:
            issues.append(
                error(
                    ALBUM,
                    "tracker.artists",
                    f"tracker artist {ta.name} ({ta.category}) is missing from the local metadata",
                )
            )
            continue
        if not any(is_compatible_role(ta.role, r) for r in roles):
            issues.append(
                error(
                    ALBUM,
                    "tracker.artists",
                    f"tracker artist {ta.name} is credited as {ta.category} ({ta.role}) on the "
                    f"tracker but as {', '.join(str(r) for r in roles)} locally",
                )
            )
    return issues


def trump_description(description: str, reason: str) -> str:
    return f"{description}\n\n[Trump Upload] Fixed: {reason}"


def merge_site_metadata(tracker: TrackerView, reason: str | None = None) -> SiteMetadata:
    """The tracker's site metadata, verbatim apart from the trump reason on the description."""
    return replace(
        tracker.site_metadata,
        tags=list(tracker.site_metadata.tags),
        description=trump_description(
            tracker.site_metadata.description, reason or DEFAULT_TRUMP_REASON
        ),
    )


def reconcile_tracker(
    release: Release,
    tracker: TrackerView,
    reason: str | None = None,
) -> ReconcileResult:
    """
    Check the release against the tracker's record and carry the tracker's site metadata over
    verbatim, with the trump reason appended to the description.
    """
    issues = check_tracker_artists(tracker, release)
    if has_errors(issues):
        return ReconcileResult(None, issues)
    site = merge_site_metadata(tracker, reason)
    return ReconcileResult(replace(release, site_metadata=site), issues)
