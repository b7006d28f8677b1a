import datetime
import logging
import struct
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import httpx
import mutagen.flac
import pytest
from click.testing import CliRunner

from classical_tagger.artists import Artist
from classical_tagger.config import Config
from classical_tagger.releases import Edition, File, Release, Track, save_release
from classical_tagger.roles import Role

logger = logging.getLogger(__name__)

# Opaque bytes standing in for the audio frames. The tagger must carry them over untouched.
FAKE_AUDIO_PAYLOAD = b"\xff\xf8" + bytes(range(256)) * 4


@pytest.fixture(autouse=True)
def debug_logging() -> None:
    logging.getLogger().setLevel(logging.DEBUG)


@pytest.fixture()
def isolated_dir() -> Iterator[Path]:
    with CliRunner().isolated_filesystem():
        yield Path.cwd()


@pytest.fixture()
def config(isolated_dir: Path) -> Config:
    cache_dir = isolated_dir / "cache"
    cache_dir.mkdir()
    return Config(
        discogs_token="discogs-token",
        tracker_api_key="tracker-key",
        announce_url="https://tracker.example/announce",
        cache_dir=cache_dir,
        cache_ttl=datetime.timedelta(hours=24),
        path=isolated_dir / "config.yaml",
    )


def _streaminfo(total_samples: int = 44100) -> bytes:
    packed = (44100 << 44) | ((2 - 1) << 41) | ((16 - 1) << 36) | total_samples
    return (
        struct.pack(">HH", 4096, 4096)
        + b"\x00\x00\x00"
        + b"\x00\x00\x00"
        + struct.pack(">Q", packed)
        + b"\x00" * 16
    )


def write_flac(path: Path, tags: dict[str, str] | None = None) -> Path:
    """Write a minimal FLAC stream (marker, STREAMINFO, opaque payload) and tag it."""
    body = _streaminfo()
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as fp:
        fp.write(b"fLaC")
        # Last-metadata-block flag set, block type 0 (STREAMINFO).
        fp.write(bytes([0x80]) + len(body).to_bytes(3, "big"))
        fp.write(body)
        fp.write(FAKE_AUDIO_PAYLOAD)
    if tags:
        m = mutagen.flac.FLAC(path)
        m.add_tags()
        for k, v in tags.items():
            m.tags[k] = v  # type: ignore
        m.save()
    return path


@pytest.fixture()
def flac_factory(isolated_dir: Path) -> Callable[..., Path]:
    def factory(relpath: str, **tags: str) -> Path:
        return write_flac(isolated_dir / relpath, {k.upper(): v for k, v in tags.items()})

    return factory


def make_track(
    number: int,
    title: str,
    artists: list[Artist],
    *,
    disc: int = 1,
    path: str | None = None,
) -> Track:
    return Track(
        path=path or f"{number:02d}.flac",
        disc=disc,
        track=number,
        title=title,
        artists=artists,
    )


@pytest.fixture()
def goldberg_release() -> Release:
    bach = Artist("Johann Sebastian Bach", Role.COMPOSER)
    gould = Artist("Glenn Gould", Role.SOLOIST)
    titles = ["Goldberg Variations, BWV 988: Aria", "Goldberg Variations, BWV 988: Variatio 1"]
    tracks = [make_track(i, t, [bach, gould]) for i, t in enumerate(titles, start=1)]
    return Release(
        root_path="Bach - Goldberg Variations (Gould) - 1982 [FLAC]",
        title="Goldberg Variations",
        original_year=1982,
        edition=Edition(label="CBS Masterworks", catalog_number="MK 37779", year=1982),
        album_artist=[gould],
        files=[*tracks, File(path="folder.jpg", size=1024)],
    )


DISCOGS_RELEASE: dict[str, Any] = {
    "id": 37779,
    "title": "Goldberg Variations",
    "year": 1982,
    "labels": [{"name": "CBS Masterworks", "catno": "MK 37779"}],
    "artists": [{"name": "Glenn Gould (2)", "role": ""}],
    "extraartists": [{"name": "Glenn Gould (2)", "role": "Soloist", "tracks": ""}],
    "tracklist": [
        {
            "position": "",
            "title": "Goldberg Variations, BWV 988",
            "extraartists": [{"name": "Johann Sebastian Bach", "role": "Composed By"}],
            "sub_tracks": [
                {"position": "1", "title": "Aria"},
                {"position": "2", "title": "Variatio 1"},
            ],
        },
        {"position": "Video 1", "title": "Interview"},
    ],
}

DISCOGS_SEARCH: dict[str, Any] = {
    "results": [
        {
            "id": 37779,
            "title": "Glenn Gould - Goldberg Variations",
            "year": "1982",
            "label": ["CBS Masterworks"],
            "catno": "MK 37779",
            "country": "US",
            "format": ["CD", "Album"],
        }
    ]
}

TRACKER_TORRENT: dict[str, Any] = {
    "group": {"id": 200, "name": "Goldberg Variations", "year": 1982, "tags": ["classical", "baroque"]},  # fmt: skip
    "torrent": {
        "id": 1000,
        "media": "CD",
        "format": "FLAC",
        "encoding": "Lossless",
        "remastered": True,
        "remasterYear": 1992,
        "remasterRecordLabel": "CBS Masterworks",
        "remasterCatalogueNumber": "MK 37779",
        "description": "Ripped with EAC.",
        "hasLog": True,
        "hasCue": True,
        "logScore": 100,
        "scene": False,
    },
}

TRACKER_GROUP: dict[str, Any] = {
    "group": {
        "id": 200,
        "name": "Goldberg Variations",
        "year": 1982,
        "tags": ["classical", "baroque"],
        "wikiImage": "https://img.example/goldberg.jpg",
        "releaseType": 1,
        "musicInfo": {
            "artists": [{"id": 1, "name": "Glenn Gould"}],
            "composers": [{"id": 2, "name": "Johann Sebastian Bach"}],
            "conductor": [],
            "with": [],
        },
    },
    "torrents": [],
}


def mock_transport(
    routes: dict[str, Any],
    requests: list[httpx.Request] | None = None,
) -> httpx.MockTransport:
    """
    Serve canned responses by URL path. A route is either a JSON body or a handler function.
    Unrouted paths 404. Every request is appended to `requests` when given.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"message": "Not found."})
        if callable(route):
            return route(request)
        return httpx.Response(200, json=route)

    return httpx.MockTransport(handler)


def tracker_ajax(request: httpx.Request) -> httpx.Response:
    action = request.url.params.get("action")
    if action == "torrent" and request.url.params.get("id") == "1000":
        return httpx.Response(200, json={"status": "success", "response": TRACKER_TORRENT})
    if action == "torrentgroup" and request.url.params.get("id") == "200":
        return httpx.Response(200, json={"status": "success", "response": TRACKER_GROUP})
    return httpx.Response(200, json={"status": "failure", "error": "bad id parameter"})


@pytest.fixture()
def goldberg_dir(isolated_dir: Path) -> Path:
    """A release directory as ripped: partial tags and a non-compliant directory name."""
    d = isolated_dir / "Goldberg"
    for n, title in [(1, "Aria"), (2, "Variatio 1")]:
        write_flac(
            d / f"0{n} {title}.flac",
            {
                "TITLE": title,
                "ARTIST": "Glenn Gould",
                "ALBUM": "Goldberg Variations",
                "TRACKNUMBER": str(n),
            },
        )
    (d / "folder.jpg").write_bytes(b"\xff\xd8" * 512)
    return d


@pytest.fixture()
def goldberg_metadata(isolated_dir: Path, goldberg_release: Release) -> Path:
    path = isolated_dir / "goldberg.json"
    save_release(goldberg_release, path)
    return path


FAKE_MKTORRENT = """\
#!/bin/sh
while [ $# -gt 1 ]; do
  if [ "$1" = "-o" ]; then out="$2"; fi
  shift
done
printf 'd8:announce0:e' > "$out"
"""


@pytest.fixture()
def mktorrent(isolated_dir: Path) -> str:
    """A stand-in for the mktorrent executable that writes a fixed torrent to the -o path."""
    path = isolated_dir / "bin" / "mktorrent"
    path.parent.mkdir()
    path.write_text(FAKE_MKTORRENT)
    path.chmod(0o755)
    return str(path)
