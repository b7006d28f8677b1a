import pytest

from classical_tagger.roles import Role, infer_role, parse_role, parse_tracker_role


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("Composer", Role.COMPOSER),
        ("composed by", Role.COMPOSER),
        ("Conducted By", Role.CONDUCTOR),
        ("Chorus Master", Role.CONDUCTOR),
        ("Orchestra", Role.ENSEMBLE),
        ("soloist", Role.SOLOIST),
        ("Solo", Role.SOLOIST),
        ("  guest ", Role.GUEST),
        ("Arranged By", Role.ARRANGER),
        ("Liner Notes", Role.UNKNOWN),
        ("", Role.UNKNOWN),
        (None, Role.UNKNOWN),
    ],
)
def test_parse_role(value: str | None, expected: Role) -> None:
    assert parse_role(value) == expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("artists", Role.PERFORMER),
        ("composers", Role.COMPOSER),
        ("conductor", Role.CONDUCTOR),
        ("with", Role.GUEST),
        ("remixedBy", Role.REMIXER),
        ("dj", Role.DJ),
        ("producer", Role.PRODUCER),
        ("arranger", Role.ARRANGER),
        ("bogus", Role.UNKNOWN),
    ],
)
def test_parse_tracker_role(value: str, expected: Role) -> None:
    assert parse_tracker_role(value) == expected


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Berliner Philharmoniker", Role.UNKNOWN),
        ("Berlin Philharmonic Orchestra", Role.ENSEMBLE),
        ("RIAS-Kammerchor", Role.ENSEMBLE),
        ("RIAS Kammerchor", Role.ENSEMBLE),
        ("Emerson String Quartet", Role.ENSEMBLE),
        ("Academy of St Martin in the Fields", Role.ENSEMBLE),
        ("Glenn Gould", Role.UNKNOWN),
        ("Trionfo", Role.UNKNOWN),
    ],
)
def test_infer_role(name: str, expected: Role) -> None:
    assert infer_role(name) == expected


def test_performer_like_roles() -> None:
    assert Role.SOLOIST.is_performer_like()
    assert Role.ENSEMBLE.is_performer_like()
    assert Role.CONDUCTOR.is_performer_like()
    assert Role.GUEST.is_performer_like()
    assert Role.PERFORMER.is_performer_like()
    assert not Role.COMPOSER.is_performer_like()
    assert not Role.UNKNOWN.is_performer_like()
    assert not Role.PRODUCER.is_performer_like()


def test_role_importance() -> None:
    assert Role.PERFORMER.importance == 1
    assert Role.COMPOSER.importance == 4
    assert Role.CONDUCTOR.importance == 5
    assert Role.GUEST.importance == 2


def test_role_display_order() -> None:
    assert Role.COMPOSER.display_order < Role.CONDUCTOR.display_order < Role.SOLOIST.display_order
