"""
The tracker module is the client for the tracker's JSON API: fetching the torrent being replaced and
its group, and submitting the trump upload.

Reads go through `/ajax.php` and are cached under the `redacted` namespace. Uploads are never cached.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from classical_tagger.artists import Artist
from classical_tagger.cache import Cache
from classical_tagger.common import (
    ClassicalTaggerError,
    ClassicalTaggerExpectedError,
    check_cancelled,
)
from classical_tagger.ratelimit import RateLimiter
from classical_tagger.reconcile import TrackerArtist, TrackerView, all_release_artists
from classical_tagger.releases import Release, SiteMetadata

logger = logging.getLogger(__name__)

BASE_URL = "https://redacted.sh"
USER_AGENT = "ClassicalTagger/1.0"
TIMEOUT_SECONDS = 30.0
CACHE_NAMESPACE = "redacted"

# The categories of the group's musicInfo block, in the order they are flattened.
ARTIST_CATEGORIES = [
    "artists",
    "composers",
    "conductor",
    "with",
    "remixedBy",
    "producer",
    "dj",
    "arranger",
]


class TrackerError(ClassicalTaggerError):
    pass


class RateLimitedError(TrackerError):
    pass


class MissingUploadFieldsError(ClassicalTaggerExpectedError):
    pass


def _parse_int(x: Any) -> int:
    try:
        return int(x)
    except (TypeError, ValueError):
        return 0


@dataclass
class TrackerTorrent:
    torrent_id: int
    group_id: int
    group_name: str = ""
    group_year: int = 0
    tags: list[str] = field(default_factory=list)
    format: str = ""
    encoding: str = ""
    media: str = ""
    remastered: bool = False
    remaster_year: int = 0
    remaster_title: str = ""
    remaster_record_label: str = ""
    remaster_catalogue_number: str = ""
    description: str = ""
    file_list: str = ""
    size: int = 0
    has_log: bool = False
    has_cue: bool = False
    log_score: int = 0
    scene: bool = False

    @classmethod
    def parse(cls, response: dict[str, Any]) -> TrackerTorrent:
        group = response.get("group") or {}
        torrent = response.get("torrent") or {}
        return cls(
            torrent_id=_parse_int(torrent.get("id")),
            group_id=_parse_int(group.get("id") or group.get("groupId")),
            group_name=group.get("name") or group.get("groupName") or "",
            group_year=_parse_int(group.get("year") or group.get("groupYear")),
            tags=list(group.get("tags") or []),
            format=torrent.get("format") or "",
            encoding=torrent.get("encoding") or "",
            media=torrent.get("media") or "",
            remastered=bool(torrent.get("remastered")),
            remaster_year=_parse_int(torrent.get("remasterYear")),
            remaster_title=torrent.get("remasterTitle") or "",
            remaster_record_label=torrent.get("remasterRecordLabel") or "",
            remaster_catalogue_number=torrent.get("remasterCatalogueNumber") or "",
            description=torrent.get("description") or "",
            file_list=torrent.get("fileList") or "",
            size=_parse_int(torrent.get("size")),
            has_log=bool(torrent.get("hasLog")),
            has_cue=bool(torrent.get("hasCue")),
            log_score=_parse_int(torrent.get("logScore")),
            scene=bool(torrent.get("scene")),
        )


@dataclass
class TrackerGroup:
    id: int
    name: str = ""
    year: int = 0
    tags: list[str] = field(default_factory=list)
    wiki_body: str = ""
    wiki_image: str = ""
    musicbrainz_id: str = ""
    vanity_house: bool = False
    release_type: str = ""
    artists: list[TrackerArtist] = field(default_factory=list)

    @classmethod
    def parse(cls, response: dict[str, Any]) -> TrackerGroup:
        group = response.get("group") or {}
        music_info = group.get("musicInfo") or {}
        artists = [
            TrackerArtist(name=a["name"].strip(), category=category)
            for category in ARTIST_CATEGORIES
            for a in music_info.get(category) or []
            if (a.get("name") or "").strip()
        ]
        return cls(
            id=_parse_int(group.get("id")),
            name=group.get("name") or "",
            year=_parse_int(group.get("year")),
            tags=list(group.get("tags") or []),
            wiki_body=group.get("wikiBody") or "",
            wiki_image=group.get("wikiImage") or "",
            musicbrainz_id=group.get("musicBrainzId") or "",
            vanity_house=bool(group.get("vanityHouse")),
            release_type=str(group.get("releaseType") or ""),
            artists=artists,
        )


def to_view(torrent: TrackerTorrent, group: TrackerGroup) -> TrackerView:
    """Combine the torrent and its group into the view the reconciliation engine checks against."""
    return TrackerView(
        title=group.name or torrent.group_name,
        year=group.year or torrent.group_year,
        artists=list(group.artists),
        site_metadata=SiteMetadata(
            torrent_id=torrent.torrent_id,
            group_id=torrent.group_id or group.id,
            tags=list(torrent.tags or group.tags),
            description=torrent.description,
            cover_art_url=group.wiki_image,
            media=torrent.media,
            format=torrent.format,
            encoding=torrent.encoding,
            scene=torrent.scene,
            has_log=torrent.has_log,
            has_cue=torrent.has_cue,
            log_score=torrent.log_score,
            release_type=group.release_type,
        ),
        remastered=torrent.remastered,
        remaster_year=torrent.remaster_year,
        remaster_title=torrent.remaster_title,
        remaster_record_label=torrent.remaster_record_label,
        remaster_catalogue_number=torrent.remaster_catalogue_number,
    )


@dataclass
class UploadRequest:
    group_id: int
    title: str
    year: int
    format: str
    encoding: str
    media: str
    description: str
    tags: list[str]
    artists: list[Artist]
    label: str = ""
    catalog_number: str = ""
    remastered: bool = False
    remaster_year: int = 0
    remaster_title: str = ""
    remaster_record_label: str = ""
    remaster_catalogue_number: str = ""
    trump_torrent: int = 0
    trump_reason: str = ""

    def missing_fields(self) -> list[str]:
        missing = []
        for name in ["title", "year", "format", "encoding", "media", "tags"]:
            if not getattr(self, name):
                missing.append(name)
        if not self.artists:
            missing.append("artists or composers")
        return missing

    def form(self) -> dict[str, str]:
        """The multipart form fields of the upload, without the torrent file."""
        fields = {
            "type": "Music",
            "groupid": str(self.group_id),
            "title": self.title,
            "year": str(self.year),
            "format": self.format,
            "bitrate": self.encoding,
            "media": self.media,
            "release_desc": self.description,
            "tags": ",".join(self.tags),
        }
        if self.label:
            fields["releasename"] = self.label
        if self.catalog_number:
            fields["cataloguenumber"] = self.catalog_number
        if self.remastered:
            fields["remaster"] = "on"
            if self.remaster_year:
                fields["remaster_year"] = str(self.remaster_year)
            if self.remaster_title:
                fields["remaster_title"] = self.remaster_title
            if self.remaster_record_label:
                fields["remaster_record_label"] = self.remaster_record_label
            if self.remaster_catalogue_number:
                fields["remaster_catalogue_number"] = self.remaster_catalogue_number
        if self.trump_torrent:
            fields["trump_torrent"] = str(self.trump_torrent)
            fields["trump_reason"] = self.trump_reason
        for i, a in enumerate(self.artists):
            fields[f"artists[{i}]"] = a.name
            fields[f"importance[{i}]"] = str(a.role.importance)
        return fields


def build_upload_request(release: Release, view: TrackerView, reason: str) -> UploadRequest:
    """
    Build the upload from a reconciled release. Format information and the description come from the
    release's site metadata, which reconciliation copied over from the tracker.
    """
    site = release.site_metadata or view.site_metadata
    edition = release.edition
    return UploadRequest(
        group_id=site.group_id,
        title=release.title,
        year=release.original_year,
        format=site.format,
        encoding=site.encoding,
        media=site.media,
        description=site.description,
        tags=list(site.tags),
        artists=all_release_artists(release),
        label=edition.label if edition else "",
        catalog_number=edition.catalog_number if edition else "",
        remastered=view.remastered,
        remaster_year=view.remaster_year,
        remaster_title=view.remaster_title,
        remaster_record_label=view.remaster_record_label,
        remaster_catalogue_number=view.remaster_catalogue_number,
        trump_torrent=site.torrent_id,
        trump_reason=reason,
    )


class TrackerClient:
    def __init__(
        self,
        api_key: str,
        cache: Cache,
        *,
        limiter: RateLimiter | None = None,
        cancel: threading.Event | None = None,
        base_url: str = BASE_URL,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.cache = cache
        self.limiter = limiter or RateLimiter(10, 10)
        self.cancel = cancel
        self.client = httpx.Client(
            base_url=base_url,
            headers={"Authorization": api_key, "User-Agent": USER_AGENT},
            timeout=TIMEOUT_SECONDS,
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> TrackerClient:
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        self.limiter.wait(self.cancel)
        try:
            resp = self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise TrackerError(f"Tracker request failed: {e}") from e
        finally:
            self.limiter.on_response()
        check_cancelled(self.cancel)
        logger.debug(f"{method} {resp.request.url} -> {resp.status_code}")
        if resp.status_code == 429:
            retry_after = resp.headers.get("Retry-After", "?")
            raise RateLimitedError(f"Rate limited, retry after {retry_after} seconds")
        if resp.status_code != 200:
            raise TrackerError(f"API error {resp.status_code}: {resp.text}")
        return resp

    def _ajax(self, action: str, id: int, key: str) -> dict[str, Any]:
        cached = self.cache.load(key, CACHE_NAMESPACE)
        if cached is not None:
            return cached
        resp = self._send("GET", "/ajax.php", params={"action": action, "id": str(id)})
        try:
            data = resp.json()
        except ValueError as e:
            raise TrackerError(f"Failed to decode tracker response: {e}") from e
        if not isinstance(data, dict):
            raise TrackerError("Failed to decode tracker response: not an object")
        if data.get("status") != "success":
            raise TrackerError(f"API error: {data.get('error') or 'unknown error'}")
        response = data.get("response") or {}
        self.cache.save(key, response, CACHE_NAMESPACE)
        return response

    def get_torrent(self, torrent_id: int) -> TrackerTorrent:
        return TrackerTorrent.parse(self._ajax("torrent", torrent_id, f"torrent_{torrent_id}"))

    def get_group(self, group_id: int) -> TrackerGroup:
        return TrackerGroup.parse(self._ajax("torrentgroup", group_id, f"group_{group_id}"))

    def upload(self, request: UploadRequest, torrent_path: Path) -> dict[str, Any]:
        missing = request.missing_fields()
        if missing:
            raise MissingUploadFieldsError(f"Missing required fields: {', '.join(missing)}")
        with torrent_path.open("rb") as fp:
            torrent_data = fp.read()
        resp = self._send(
            "POST",
            "/upload.php",
            data=request.form(),
            files={"file_input": ("upload.torrent", torrent_data, "application/x-bittorrent")},
        )
        logger.info(f"Uploaded trump of torrent {request.trump_torrent} to group {request.group_id}")
        try:
            data = resp.json()
        except ValueError:
            return {}
        if not isinstance(data, dict):
            return {}
        if data.get("status") not in (None, "success"):
            raise TrackerError(f"Upload failed: {data.get('error') or 'unknown error'}")
        return data.get("response") or {}
