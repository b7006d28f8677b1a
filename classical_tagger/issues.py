from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

ALBUM = 0
DIRECTORY = -1


class Level(enum.Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"

    def __str__(self) -> str:
        return self.value


_LEVEL_SEVERITY = {Level.ERROR: 0, Level.WARNING: 1, Level.INFO: 2}


@dataclass(frozen=True)
class Issue:
    level: Level
    # 0 for the album, -1 for the directory, otherwise a track number.
    track: int
    rule: str
    message: str

    @property
    def location(self) -> str:
        if self.track == ALBUM:
            return "Album"
        if self.track == DIRECTORY:
            return "Directory"
        return f"Track {self.track}"

    def __str__(self) -> str:
        return f"[{self.level}] {self.location}: {self.rule} - {self.message}"

    def dump(self) -> dict[str, Any]:
        return {
            "level": self.level.value,
            "track": self.track,
            "rule": self.rule,
            "message": self.message,
        }


def error(track: int, rule: str, message: str) -> Issue:
    return Issue(Level.ERROR, track, rule, message)


def warning(track: int, rule: str, message: str) -> Issue:
    return Issue(Level.WARNING, track, rule, message)


def info(track: int, rule: str, message: str) -> Issue:
    return Issue(Level.INFO, track, rule, message)


def has_errors(issues: list[Issue]) -> bool:
    return any(i.level == Level.ERROR for i in issues)


def count_by_level(issues: list[Issue]) -> dict[Level, int]:
    rv = {lvl: 0 for lvl in Level}
    for i in issues:
        rv[i.level] += 1
    return rv


def sort_issues(issues: list[Issue]) -> list[Issue]:
    """Order by severity, then location (directory, album, tracks). The sort is stable."""
    return sorted(issues, key=lambda i: (_LEVEL_SEVERITY[i.level], i.track))
