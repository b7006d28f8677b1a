import pytest

from classical_tagger.artists import Artist
from classical_tagger.naming import (
    format_performers,
    primary_composers,
    primary_performers,
    release_dirname,
    sanitize_dirname,
    sanitize_filename,
    track_filename,
)
from classical_tagger.releases import Release, Track
from classical_tagger.roles import Role
from conftest import make_track

BACH = Artist("Johann Sebastian Bach", Role.COMPOSER)
HANDEL = Artist("George Frideric Handel", Role.COMPOSER)
GOULD = Artist("Glenn Gould", Role.SOLOIST)


def test_track_filename() -> None:
    t = Track(path="whatever.FLAC", track=3, title="Aria: Da capo")
    assert track_filename(t, 5) == "3 - Aria Da capo.flac"
    assert track_filename(t, 12) == "03 - Aria Da capo.flac"


def test_track_filename_untitled() -> None:
    assert track_filename(Track(path="", track=1), 1) == "1 - Untitled.flac"


def test_sanitize() -> None:
    assert sanitize_dirname('What? "Now" <a/b>') == "What Now ab"
    assert sanitize_dirname("  trailing dots... ") == "trailing dots"
    assert sanitize_dirname("con") == "_con"
    assert len(sanitize_filename("x" * 300)) == 170


def test_release_dirname(goldberg_release: Release) -> None:
    assert release_dirname(goldberg_release) == "Bach - Goldberg Variations (Gould) - 1982 [FLAC]"


@pytest.mark.parametrize(
    "title",
    ["\u00a0Aria", "\tAria\n", ". Aria .", " \u00a0. Aria"],
)
def test_track_filename_strips_surrounding_whitespace(title: str) -> None:
    assert track_filename(Track(path="", track=1, title=title), 1) == "1 - Aria.flac"


def test_track_filename_collapses_inner_whitespace() -> None:
    t = Track(path="", track=1, title="Aria\u00a0\u00a0da\tcapo")
    assert track_filename(t, 1) == "1 - Aria da capo.flac"


def test_release_dirname_strips_surrounding_whitespace(goldberg_release: Release) -> None:
    goldberg_release.title = "\u00a0Goldberg Variations\n"
    assert release_dirname(goldberg_release) == "Bach - Goldberg Variations (Gould) - 1982 [FLAC]"


def test_release_dirname_without_year_or_performers() -> None:
    release = Release(root_path="", title="Cantatas", files=[make_track(1, "BWV 1", [BACH])])
    assert release_dirname(release) == "Bach - Cantatas [FLAC]"


def test_release_dirname_drops_components_to_fit() -> None:
    tracks = [make_track(1, "A", [BACH, GOULD])]
    # 170 + " [FLAC]" fits, the year does not.
    release = Release(root_path="", title="T" * 170, original_year=1982, files=tracks)
    assert release_dirname(release) == "T" * 170 + " [FLAC]"
    # Nothing but the title fits.
    release.title = "T" * 175
    assert release_dirname(release) == "T" * 175
    # The composer fits, the performers do not.
    release.title = "T" * 155
    assert release_dirname(release) == "Bach - " + "T" * 155 + " - 1982 [FLAC]"


def test_primary_composers_majority() -> None:
    tracks = [
        make_track(1, "A", [BACH]),
        make_track(2, "B", [BACH]),
        make_track(3, "C", [HANDEL]),
    ]
    assert primary_composers(tracks) == ["Johann Sebastian Bach"]


def test_primary_composers_no_majority() -> None:
    tracks = [make_track(1, "A", [BACH]), make_track(2, "B", [HANDEL])]
    assert primary_composers(tracks) == ["Johann Sebastian Bach", "George Frideric Handel"]
    assert primary_composers([make_track(1, "A", [GOULD])]) == []


def test_primary_performers() -> None:
    a = Artist("A Player", Role.SOLOIST)
    b = Artist("B Player", Role.SOLOIST)
    c = Artist("C Player", Role.SOLOIST)
    d = Artist("D Player", Role.SOLOIST)
    e = Artist("E Player", Role.SOLOIST)
    tracks = [
        make_track(1, "1", [a, b, c, d, e]),
        make_track(2, "2", [a, b, c, d]),
        make_track(3, "3", [e]),
    ]
    # Threshold is 2 of 3 tracks; only the first three qualifying names are kept.
    assert primary_performers(tracks) == ["A Player", "B Player", "C Player"]


def test_format_performers_truncates() -> None:
    names = ["Aaaaaaaaaaaaaaaaaaaa", "Bbbbbbbbbbbbbbbbbbbb", "Cccccccccccccccccccc"]
    rv = format_performers(names)
    assert len(rv) == 50
    assert rv.endswith("...")


@pytest.mark.parametrize("title_length", [1, 40, 120, 150, 170, 173, 175, 180, 181, 400])
@pytest.mark.parametrize("composer_length", [1, 30, 200])
@pytest.mark.parametrize("performer_length", [1, 20, 200])
def test_release_dirname_bounds(title_length: int, composer_length: int, performer_length: int) -> None:
    composer = Artist("Johann " + "B" * composer_length, Role.COMPOSER)
    performers = [Artist(f"Player{i} " + "P" * performer_length, Role.SOLOIST) for i in range(3)]
    tracks = [make_track(1, "A", [composer, *performers]), make_track(2, "B", [composer])]
    release = Release(root_path="", title="T" * title_length, original_year=1982, files=tracks)
    name = release_dirname(release)
    assert 0 < len(name) <= 180
    assert name.strip() == name


@pytest.mark.parametrize("title", ["", "   ", " ", "..."])
def test_release_dirname_never_empty(title: str) -> None:
    release = Release(root_path="", title=title, files=[make_track(1, "A", [BACH])])
    assert release_dirname(release) == "Bach - Untitled Album [FLAC]"
