"""
The discogs module is a small client for the Discogs database API. It searches releases and fetches
full release records, converting them into the scraped form the reconciliation engine consumes.

Every request is rate limited and every successful response is cached under the `discogs` namespace,
so re-running an extraction does not touch the network.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote_plus

import httpx

from classical_tagger.cache import Cache
from classical_tagger.common import (
    ClassicalTaggerError,
    ClassicalTaggerExpectedError,
    check_cancelled,
)
from classical_tagger.ratelimit import RateLimiter
from classical_tagger.reconcile import ScrapedArtist, ScrapedRelease, ScrapedTrack

logger = logging.getLogger(__name__)

BASE_URL = "https://api.discogs.com"
USER_AGENT = "ClassicalTagger/1.0"
TIMEOUT_SECONDS = 30.0
REQUESTS_PER_MINUTE = 60
CACHE_NAMESPACE = "discogs"

# Discogs disambiguates artists that share a name with a numeric suffix: "John Smith (2)".
DISAMBIGUATION_SUFFIX_REGEX = re.compile(r"\s+\(\d+\)$")


class DiscogsError(ClassicalTaggerError):
    pass


class ReleaseNotFoundError(ClassicalTaggerExpectedError):
    pass


@dataclass(frozen=True)
class SearchResult:
    id: int
    title: str
    year: int
    label: str
    catalog_number: str
    country: str
    formats: list[str]

    @classmethod
    def parse(cls, data: dict[str, Any]) -> SearchResult:
        labels = data.get("label") or []
        return cls(
            id=_parse_int(data.get("id")),
            title=data.get("title") or "",
            year=_parse_int(data.get("year")),
            label=labels[0] if labels else "",
            catalog_number=data.get("catno") or "",
            country=data.get("country") or "",
            formats=list(data.get("format") or []),
        )

    def __str__(self) -> str:
        extra = ", ".join(x for x in [str(self.year or ""), self.label, self.catalog_number] if x)
        return f"{self.id}: {self.title} ({extra})" if extra else f"{self.id}: {self.title}"


def _parse_int(x: Any) -> int:
    try:
        return int(x)
    except (TypeError, ValueError):
        return 0


def clean_artist_name(name: str) -> str:
    return DISAMBIGUATION_SUFFIX_REGEX.sub("", (name or "").strip())


def _parse_artists(data: list[dict[str, Any]] | None) -> list[ScrapedArtist]:
    return [
        ScrapedArtist(
            name=clean_artist_name(a.get("name") or ""),
            role=(a.get("role") or "").strip(),
            tracks=(a.get("tracks") or "").strip(),
        )
        for a in data or []
        if (a.get("name") or "").strip()
    ]


def _parse_track(data: dict[str, Any]) -> ScrapedTrack:
    return ScrapedTrack(
        position=(data.get("position") or "").strip(),
        title=(data.get("title") or "").strip(),
        # Track-level credits come in both fields depending on how the release was entered.
        artists=_parse_artists(data.get("artists")) + _parse_artists(data.get("extraartists")),
        sub_tracks=[_parse_track(x) for x in data.get("sub_tracks") or []],
        duration=data.get("duration") or "",
    )


def parse_release_json(data: dict[str, Any]) -> ScrapedRelease:
    """Convert the JSON of a `/releases/{id}` response into a scraped release."""
    labels = data.get("labels") or []
    return ScrapedRelease(
        id=_parse_int(data.get("id")),
        title=(data.get("title") or "").strip(),
        year=_parse_int(data.get("year")),
        label=(labels[0].get("name") or "").strip() if labels else "",
        catalog_number=(labels[0].get("catno") or "").strip() if labels else "",
        artists=_parse_artists(data.get("artists")),
        extra_artists=_parse_artists(data.get("extraartists")),
        tracklist=[_parse_track(t) for t in data.get("tracklist") or []],
    )


class DiscogsClient:
    def __init__(
        self,
        token: str,
        cache: Cache,
        *,
        limiter: RateLimiter | None = None,
        cancel: threading.Event | None = None,
        base_url: str = BASE_URL,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.cache = cache
        self.limiter = limiter or RateLimiter(REQUESTS_PER_MINUTE, 60)
        self.cancel = cancel
        self.client = httpx.Client(
            base_url=base_url,
            headers={"Authorization": f"Discogs token={token}", "User-Agent": USER_AGENT},
            timeout=TIMEOUT_SECONDS,
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> DiscogsClient:
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()

    def _get(self, path: str, params: dict[str, str] | None = None) -> httpx.Response:
        self.limiter.wait(self.cancel)
        try:
            resp = self.client.get(path, params=params)
        except httpx.HTTPError as e:
            raise DiscogsError(f"Discogs request failed: {e}") from e
        finally:
            self.limiter.on_response()
        check_cancelled(self.cancel)
        logger.debug(f"GET {resp.request.url} -> {resp.status_code}")
        return resp

    def _search(self, key: str, params: dict[str, str]) -> list[SearchResult]:
        cached = self.cache.load(key, CACHE_NAMESPACE)
        if cached is None:
            resp = self._get("/database/search", params)
            if resp.status_code != 200:
                raise DiscogsError(f"Discogs API error: {resp.status_code} - {resp.text}")
            cached = resp.json().get("results") or []
            self.cache.save(key, cached, CACHE_NAMESPACE)
        return [SearchResult.parse(x) for x in cached]

    def search(self, artist: str, album: str, media_format: str = "CD") -> list[SearchResult]:
        """Search releases by artist and release title, restricted to one media format."""
        params = {"artist": artist, "release_title": album, "type": "release"}
        if media_format:
            params["format"] = media_format
        return self._search(f"search_{quote_plus(artist)}_{quote_plus(album)}", params)

    def search_simple(self, query: str) -> list[SearchResult]:
        """A free-text search without a format restriction, for when `search` comes up empty."""
        return self._search(
            f"search_simple_{quote_plus(query)}", {"query": query, "type": "release"}
        )

    def get_release(self, release_id: int) -> ScrapedRelease:
        key = f"release_{release_id}"
        data = self.cache.load(key, CACHE_NAMESPACE)
        if data is None:
            resp = self._get(f"/releases/{release_id}")
            if resp.status_code == 404:
                raise ReleaseNotFoundError(f"Discogs release {release_id} not found")
            if resp.status_code != 200:
                raise DiscogsError(f"Discogs API error: {resp.status_code} - {resp.text}")
            data = resp.json()
            self.cache.save(key, data, CACHE_NAMESPACE)
        return parse_release_json(data)
