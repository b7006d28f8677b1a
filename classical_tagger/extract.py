"""
The extract module gathers reference metadata for a release. It fetches the release from Discogs,
reads the local files, or both, and reconciles them into one release ready to be saved as JSON.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path

import httpx

from classical_tagger.audiotags import build_local_release
from classical_tagger.common import ClassicalTaggerExpectedError
from classical_tagger.config import Config
from classical_tagger.discogs import DiscogsClient, ReleaseNotFoundError
from classical_tagger.issues import Issue, has_errors, sort_issues
from classical_tagger.reconcile import ScrapedRelease, reconcile
from classical_tagger.releases import Release
from classical_tagger.rules import validate_release

logger = logging.getLogger(__name__)


class NoMetadataSourceError(ClassicalTaggerExpectedError):
    pass


@dataclass
class ExtractResult:
    release: Release | None
    issues: list[Issue]

    @property
    def ok(self) -> bool:
        return self.release is not None and not has_errors(self.issues)


def fetch_scrape(
    client: DiscogsClient,
    *,
    release_id: int | None = None,
    artist: str | None = None,
    album: str | None = None,
) -> ScrapedRelease:
    """Fetch a release by id, or search by artist and album and take the best match."""
    if release_id is not None:
        return client.get_release(release_id)
    if not artist or not album:
        raise NoMetadataSourceError("Searching Discogs requires both an artist and an album")
    results = client.search(artist, album)
    if not results:
        logger.info("No CD releases matched; retrying with a free-text search")
        results = client.search_simple(f"{artist} {album}")
    if not results:
        raise ReleaseNotFoundError(f"No Discogs release found for {artist} - {album}")
    for r in results[1:5]:
        logger.info(f"Other candidate: {r}")
    logger.info(f"Using Discogs release {results[0]}")
    return client.get_release(results[0].id)


def extract_release(
    config: Config,
    *,
    release_id: int | None = None,
    artist: str | None = None,
    album: str | None = None,
    directory: Path | None = None,
    force: bool = False,
    cancel: threading.Event | None = None,
    transport: httpx.BaseTransport | None = None,
) -> ExtractResult:
    """
    Build the release from whichever sources were given. Unknown album-level roles fail the
    extraction unless `force` is set, in which case they are kept and reported as Warnings.
    """
    wants_scrape = release_id is not None or bool(artist or album)
    if not wants_scrape and directory is None:
        raise NoMetadataSourceError(
            "Nothing to extract from: pass a Discogs release id, an artist and album, or a directory"
        )

    local = build_local_release(directory) if directory is not None else None
    scrape = None
    if wants_scrape:
        with DiscogsClient(
            config.require_discogs_token(),
            config.cache(),
            cancel=cancel,
            transport=transport,
        ) as client:
            scrape = fetch_scrape(client, release_id=release_id, artist=artist, album=album)

    result = reconcile(
        scrape,
        local,
        root_path=str(directory) if directory is not None else "",
        strict=not force,
    )
    if result.release is None:
        return ExtractResult(None, sort_issues(result.issues))
    issues = result.issues + validate_release(result.release)
    return ExtractResult(result.release, sort_issues(issues))
