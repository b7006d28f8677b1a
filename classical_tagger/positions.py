"""
The positions module parses the discography source's tracklist positions into (disc, track) pairs.

Only two grammars are recognized: a bare track number ("7") and a disc-track pair whose sides may
carry a media prefix ("2-10", "CD3-2", "DVD9-88"). Vinyl sides ("A1"), dotted sub-positions ("3.1"),
and labelled positions ("Video 1") yield track 0, which callers treat as "not a track".
"""

import re

_NON_DIGITS_REGEX = re.compile(r"\D+")
_DIGITS_REGEX = re.compile(r"\d+")


def _digits(value: str) -> int:
    stripped = _NON_DIGITS_REGEX.sub("", value)
    return int(stripped) if stripped else 0


def parse_position(position: str | None) -> tuple[int, int]:
    """Return (disc, track). A track of 0 means the position could not be parsed."""
    position = (position or "").strip()
    if not position:
        return 1, 0
    if "-" not in position:
        if not _DIGITS_REGEX.fullmatch(position):
            return 1, 0
        return 1, int(position)
    left, right = position.split("-", 1)
    disc, track = _digits(left), _digits(right)
    if disc == 0 or track == 0:
        return 1, 0
    return disc, track


def is_track_position(position: str | None) -> bool:
    return parse_position(position)[1] > 0
