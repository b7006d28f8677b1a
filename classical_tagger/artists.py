"""
The artists module contains the Artist value type, the ArtistMap used to deduplicate credits, and
the conversions between artist lists and the flat strings stored in audio tags.
"""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Iterable, Iterator
from typing import Any

from classical_tagger.common import uniq
from classical_tagger.roles import Role, infer_role, parse_role

ARTIST_FIELD_SPLITTER_REGEX = re.compile(r"[,;]")


@dataclasses.dataclass(frozen=True)
class Artist:
    name: str
    role: Role = Role.UNKNOWN

    def __str__(self) -> str:
        return f"{self.name} ({self.role})"

    @property
    def last_name(self) -> str:
        return last_name(self.name)

    def dump(self) -> dict[str, Any]:
        return {"name": self.name, "role": self.role.value}

    @classmethod
    def parse(cls, data: dict[str, Any]) -> Artist:
        return cls(name=str(data["name"]).strip(), role=parse_role(data.get("role")))


class ArtistMap:
    """
    A mapping from artist name to the set of roles credited to that name. Names iterate in insertion
    order; the roles of a single name have no meaningful order.
    """

    def __init__(self, artists: Iterable[Artist] = ()) -> None:
        self._roles: dict[str, dict[Role, None]] = {}
        for a in artists:
            self.add(a.name, a.role)

    def add(self, name: str, role: Role) -> None:
        self._roles.setdefault(name, {})[role] = None

    def copy(self) -> ArtistMap:
        rv = ArtistMap()
        for name, roles in self._roles.items():
            rv._roles[name] = dict(roles)
        return rv

    def remove_unknown_roles(self) -> None:
        """Drop Unknown from every name that also carries a known role."""
        for roles in self._roles.values():
            if Role.UNKNOWN in roles and len(roles) > 1:
                del roles[Role.UNKNOWN]

    def roles(self, name: str) -> set[Role]:
        return set(self._roles.get(name, {}))

    def artists(self) -> list[Artist]:
        return [Artist(name, role) for name, roles in self._roles.items() for role in roles]

    def __contains__(self, name: object) -> bool:
        return name in self._roles

    def __iter__(self) -> Iterator[str]:
        return iter(self._roles)

    def __len__(self) -> int:
        return len(self._roles)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ArtistMap):
            return NotImplemented
        return {k: set(v) for k, v in self._roles.items()} == {
            k: set(v) for k, v in other._roles.items()
        }

    def __repr__(self) -> str:
        return f"ArtistMap({self.artists()!r})"


def dedupe_artists(artists: Iterable[Artist]) -> list[Artist]:
    m = ArtistMap(artists)
    m.remove_unknown_roles()
    return m.artists()


def last_name(name: str) -> str:
    parts = name.split()
    return parts[-1] if parts else ""


def format_artists(artists: Iterable[Artist]) -> str:
    """
    Render the performers of a track for the ARTIST tag: soloists, then ensembles, then conductors,
    then every other role in declaration order, with Unknown last. Composers have their own tag and
    are excluded.
    """
    soloists: list[str] = []
    ensembles: list[str] = []
    conductors: list[str] = []
    others: list[Artist] = []
    for a in artists:
        if a.role == Role.COMPOSER:
            continue
        if a.role == Role.SOLOIST:
            soloists.append(a.name)
        elif a.role == Role.ENSEMBLE:
            ensembles.append(a.name)
        elif a.role == Role.CONDUCTOR:
            conductors.append(a.name)
        else:
            others.append(a)
    others.sort(key=lambda a: (a.role == Role.UNKNOWN, a.role.display_order))
    return ", ".join(uniq(soloists + ensembles + conductors + [a.name for a in others]))


def split_artist_field(value: str | None) -> list[str]:
    if not value:
        return []
    return [x.strip() for x in ARTIST_FIELD_SPLITTER_REGEX.split(value) if x.strip()]


def parse_artist_field(value: str | None, role: Role | None = None) -> list[Artist]:
    """
    Parse a flat artist tag. With an explicit role, every name gets it. Otherwise the role is
    inferred from the name, which only recognizes ensembles; the rest remain Unknown.
    """
    return [Artist(name, role or infer_role(name)) for name in uniq(split_artist_field(value))]
