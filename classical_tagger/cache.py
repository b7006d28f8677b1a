"""
The cache module is an on-disk JSON blob store for API responses and generated torrent files.

Each entry is a file `<base>/<namespace>/<key>.json` wrapping the data with the time it was written
and the unsanitized key. Entries older than the TTL are treated as absent. A TTL of zero disables
expiry. Concurrent writers to the same key race, and the last write wins.
"""

from __future__ import annotations

import contextlib
import datetime
import hashlib
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

UNSAFE_KEY_CHARS = frozenset('/\\:*?"<>|\n\r')
MAX_KEY_LENGTH = 200
CACHE_SUFFIXES = (".json", ".torrent")


def sanitize_key(key: str) -> str:
    """Keys that are too long or not filesystem-safe are replaced by their md5 hex digest."""
    if len(key) < MAX_KEY_LENGTH and not any(c in UNSAFE_KEY_CHARS for c in key):
        return key
    return hashlib.md5(key.encode()).hexdigest()


class Cache:
    def __init__(self, base_dir: Path, ttl: datetime.timedelta) -> None:
        self.base_dir = base_dir
        self.ttl = ttl

    @property
    def expires(self) -> bool:
        return self.ttl > datetime.timedelta(0)

    def dir(self, namespace: str = "") -> Path:
        d = self.base_dir / namespace if namespace else self.base_dir
        d.mkdir(parents=True, exist_ok=True)
        return d

    def path(self, key: str, namespace: str = "", suffix: str = ".json") -> Path:
        return self.dir(namespace) / f"{sanitize_key(key)}{suffix}"

    def save(self, key: str, data: Any, namespace: str = "") -> None:
        wrapper = {
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "data": data,
            "original_key": key,
        }
        path = self.path(key, namespace)
        # Readers never see a half-written entry: write beside the target, then swap it in.
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", prefix=".", suffix=".tmp", dir=path.parent, delete=False
        ) as fp:
            tmpname = fp.name
            try:
                json.dump(wrapper, fp, indent=2, ensure_ascii=False)
            except BaseException:
                fp.close()
                os.unlink(tmpname)
                raise
        os.replace(tmpname, path)
        logger.debug(f"Cached {namespace or '.'}/{key} at {path}")

    def load(self, key: str, namespace: str = "") -> Any | None:
        """
        Return the cached data, or None if the entry is missing, expired, or undecodable. Both the
        file's mtime and the stored timestamp must be within the TTL.
        """
        path = self.path(key, namespace)
        try:
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            return None
        if self.expires and time.time() - mtime > self.ttl.total_seconds():
            return None
        try:
            with path.open("r", encoding="utf-8") as fp:
                wrapper = json.load(fp)
            written = datetime.datetime.fromisoformat(wrapper["timestamp"])
            data = wrapper["data"]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.debug(f"Ignoring undecodable cache entry {path}: {e}")
            return None
        if written.tzinfo is None:
            written = written.replace(tzinfo=datetime.timezone.utc)
        if self.expires and datetime.datetime.now(datetime.timezone.utc) - written > self.ttl:
            return None
        logger.debug(f"Cache hit for {namespace or '.'}/{key}")
        return data

    def is_expired(self, key: str, namespace: str = "") -> bool:
        """Check the entry's mtime against the TTL without reading it. Missing entries are expired."""
        age = self.get_age(key, namespace)
        if age is None:
            return True
        return self.expires and age > self.ttl

    def get_age(self, key: str, namespace: str = "") -> datetime.timedelta | None:
        try:
            mtime = self.path(key, namespace).stat().st_mtime
        except FileNotFoundError:
            return None
        return datetime.timedelta(seconds=time.time() - mtime)

    def clear(self, namespace: str = "") -> int:
        """Delete every cached blob and torrent file in the namespace. Returns the count removed."""
        removed = 0
        for p in self.dir(namespace).rglob("*"):
            if p.is_file() and p.suffix in CACHE_SUFFIXES:
                p.unlink()
                removed += 1
        logger.info(f"Cleared {removed} cache entries from {self.dir(namespace)}")
        return removed

    def clear_key(self, key: str, namespace: str = "") -> None:
        for suffix in CACHE_SUFFIXES:
            with contextlib.suppress(FileNotFoundError):
                self.path(key, namespace, suffix).unlink()
