import copy
import dataclasses
from pathlib import Path
from typing import Any

import httpx
import pytest

from classical_tagger.artists import Artist
from classical_tagger.config import Config, MissingConfigKeyError
from classical_tagger.discogs import ReleaseNotFoundError
from classical_tagger.extract import NoMetadataSourceError, extract_release
from classical_tagger.issues import Level
from classical_tagger.roles import Role
from conftest import DISCOGS_RELEASE, DISCOGS_SEARCH, mock_transport


def test_extract_by_release_id(config: Config) -> None:
    transport = mock_transport({"/releases/37779": DISCOGS_RELEASE})
    result = extract_release(config, release_id=37779, transport=transport)
    assert result.ok
    assert result.issues == []
    release = result.release
    assert release is not None
    assert release.title == "Goldberg Variations"
    assert release.original_year == 1982
    assert release.album_artist == [Artist("Glenn Gould", Role.SOLOIST)]
    assert [(t.track, t.title, t.path) for t in release.tracks()] == [
        (1, "Goldberg Variations, BWV 988: Aria", "1 - Goldberg Variations, BWV 988 Aria.flac"),
        (2, "Goldberg Variations, BWV 988: Variatio 1", "2 - Goldberg Variations, BWV 988 Variatio 1.flac"),  # fmt: skip
    ]


def test_extract_with_directory(config: Config, goldberg_dir: Path) -> None:
    transport = mock_transport({"/releases/37779": DISCOGS_RELEASE})
    result = extract_release(config, release_id=37779, directory=goldberg_dir, transport=transport)
    release = result.release
    assert release is not None
    assert release.root_path == str(goldberg_dir)
    assert [t.path for t in release.tracks()] == ["01 Aria.flac", "02 Variatio 1.flac"]
    assert [f.path for f in release.plain_files()] == ["folder.jpg"]
    # The directory is named "Goldberg", which only draws warnings.
    assert result.ok
    assert {i.rule for i in result.issues} == {"2.3.2", "cls.folder"}


def test_extract_from_directory_only(config: Config, goldberg_dir: Path) -> None:
    # Glenn Gould has no role anywhere, so the lenient merge is required.
    result = extract_release(config, directory=goldberg_dir)
    assert result.release is None
    assert any(i.level == Level.ERROR and "Glenn Gould" in i.message for i in result.issues)

    result = extract_release(config, directory=goldberg_dir, force=True)
    assert result.release is not None
    assert result.release.album_artist == [Artist("Glenn Gould", Role.UNKNOWN)]


def test_extract_unknown_role_requires_force(config: Config) -> None:
    data: dict[str, Any] = copy.deepcopy(DISCOGS_RELEASE)
    data["extraartists"][0]["role"] = "Piano"
    transport = mock_transport({"/releases/37779": data})
    result = extract_release(config, release_id=37779, transport=transport)
    assert result.release is None
    assert not result.ok

    result = extract_release(config, release_id=37779, force=True, transport=transport)
    assert result.release is not None
    assert any(i.level == Level.WARNING and "Glenn Gould" in i.message for i in result.issues)


def test_extract_by_search(config: Config) -> None:
    requests: list[httpx.Request] = []
    transport = mock_transport(
        {"/database/search": DISCOGS_SEARCH, "/releases/37779": DISCOGS_RELEASE},
        requests,
    )
    result = extract_release(
        config,
        artist="Glenn Gould",
        album="Goldberg Variations",
        transport=transport,
    )
    assert result.ok
    assert [r.url.path for r in requests] == ["/database/search", "/releases/37779"]


def test_extract_search_falls_back_to_free_text(config: Config) -> None:
    def search(request: httpx.Request) -> httpx.Response:
        if "format" in request.url.params:
            return httpx.Response(200, json={"results": []})
        return httpx.Response(200, json=DISCOGS_SEARCH)

    requests: list[httpx.Request] = []
    transport = mock_transport(
        {"/database/search": search, "/releases/37779": DISCOGS_RELEASE},
        requests,
    )
    result = extract_release(config, artist="Gould", album="Goldberg", transport=transport)
    assert result.release is not None
    assert requests[1].url.params["query"] == "Gould Goldberg"


def test_extract_search_no_results(config: Config) -> None:
    transport = mock_transport({"/database/search": {"results": []}})
    with pytest.raises(ReleaseNotFoundError):
        extract_release(config, artist="Nobody", album="Nothing", transport=transport)


def test_extract_requires_a_source(config: Config) -> None:
    with pytest.raises(NoMetadataSourceError):
        extract_release(config)
    with pytest.raises(NoMetadataSourceError):
        extract_release(config, artist="Glenn Gould")


def test_extract_requires_token(config: Config) -> None:
    config = dataclasses.replace(config, discogs_token=None)
    with pytest.raises(MissingConfigKeyError):
        extract_release(config, release_id=1, transport=mock_transport({}))
