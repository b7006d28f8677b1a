"""
The roles module defines the artist role taxonomy and the string tables that map each source's role
vocabulary (discography credits, tracker categories) onto it.
"""

from __future__ import annotations

import enum
import re


class Role(enum.Enum):
    # Declaration order is display order.
    UNKNOWN = "unknown"
    COMPOSER = "composer"
    CONDUCTOR = "conductor"
    ENSEMBLE = "ensemble"
    SOLOIST = "soloist"
    PERFORMER = "performer"
    GUEST = "guest"
    DJ = "dj"
    PRODUCER = "producer"
    ARRANGER = "arranger"
    REMIXER = "remixer"

    def __str__(self) -> str:
        return self.value

    def is_performer_like(self) -> bool:
        return self in PERFORMER_LIKE_ROLES

    @property
    def display_order(self) -> int:
        return _DISPLAY_ORDER[self]

    @property
    def importance(self) -> int:
        """The importance code the tracker's upload form uses for this role."""
        return _TRACKER_IMPORTANCE[self]


PERFORMER_LIKE_ROLES = frozenset(
    [Role.SOLOIST, Role.ENSEMBLE, Role.PERFORMER, Role.GUEST, Role.CONDUCTOR]
)

_DISPLAY_ORDER = {r: i for i, r in enumerate(Role)}

_TRACKER_IMPORTANCE = {
    Role.UNKNOWN: 1,
    Role.COMPOSER: 4,
    Role.CONDUCTOR: 5,
    Role.ENSEMBLE: 1,
    Role.SOLOIST: 1,
    Role.PERFORMER: 1,
    Role.GUEST: 2,
    Role.DJ: 6,
    Role.PRODUCER: 7,
    Role.ARRANGER: 8,
    Role.REMIXER: 3,
}

_ROLE_SYNONYMS = {
    "composed by": Role.COMPOSER,
    "conducted by": Role.CONDUCTOR,
    "chorus master": Role.CONDUCTOR,
    "choir": Role.ENSEMBLE,
    "chorus": Role.ENSEMBLE,
    "orchestra": Role.ENSEMBLE,
    "orchestre": Role.ENSEMBLE,
    "orchester": Role.ENSEMBLE,
    "solo": Role.SOLOIST,
    "arranged by": Role.ARRANGER,
}

_TRACKER_ROLES = {
    "composer": Role.COMPOSER,
    "composers": Role.COMPOSER,
    "conductor": Role.CONDUCTOR,
    "conductors": Role.CONDUCTOR,
    "artists": Role.PERFORMER,
    "artist": Role.PERFORMER,
    "with": Role.GUEST,
    "guest": Role.GUEST,
    "producer": Role.PRODUCER,
    "dj": Role.DJ,
    "remixer": Role.REMIXER,
    "remixedby": Role.REMIXER,
    "arranger": Role.ARRANGER,
    "arrangers": Role.ARRANGER,
}

ENSEMBLE_KEYWORDS = frozenset(
    [
        "orchestra",
        "orchestre",
        "orchester",
        "philharmonic",
        "symphony",
        "choir",
        "chorus",
        "kammerchor",
        "ensemble",
        "quartet",
        "trio",
        "quintet",
        "sextet",
        "consort",
        "academy",
        "chamber",
    ]
)

# Letters only. Digits, punctuation, and hyphens all separate words.
_WORD_REGEX = re.compile(r"[^\W\d_]+")


def parse_role(value: str | None) -> Role:
    """
    Parse a role credit case-insensitively. Accepts the canonical name of each role and the
    discography source's common credit phrases; anything else is Unknown.
    """
    if not value:
        return Role.UNKNOWN
    key = value.strip().lower()
    if key in _ROLE_SYNONYMS:
        return _ROLE_SYNONYMS[key]
    try:
        return Role(key)
    except ValueError:
        return Role.UNKNOWN


def parse_tracker_role(value: str | None) -> Role:
    """Map one of the tracker's artist category names onto a role."""
    if not value:
        return Role.UNKNOWN
    return _TRACKER_ROLES.get(value.strip().lower(), Role.UNKNOWN)


def infer_role(name: str) -> Role:
    """Guess a role from an artist name. Only ensembles are recognizable by name alone."""
    for word in _WORD_REGEX.findall(name):
        if word.lower() in ENSEMBLE_KEYWORDS:
            return Role.ENSEMBLE
    return Role.UNKNOWN
