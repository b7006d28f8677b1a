"""
The config module provides the configuration schema and its parsing logic.

The configuration file is YAML and entirely optional: the only things it must hold are credentials,
and those are only demanded by the commands that talk to the remote APIs. Each credential can also be
supplied through an environment variable, which takes precedence over the file.
"""

from __future__ import annotations

import datetime
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import appdirs
import yaml

from classical_tagger.cache import Cache
from classical_tagger.common import APP_NAME, ClassicalTaggerExpectedError

XDG_CONFIG_DIR = Path(appdirs.user_config_dir(APP_NAME))
CONFIG_PATH = XDG_CONFIG_DIR / "config.yaml"
XDG_CACHE_DIR = Path(appdirs.user_cache_dir(APP_NAME))

DEFAULT_ANNOUNCE_URL = "https://flacsfor.me/announce"
DEFAULT_CACHE_TTL_HOURS = 24.0

ENV_DISCOGS_TOKEN = "DISCOGS_TOKEN"
ENV_REDACTED_API_KEY = "REDACTED_API_KEY"
ENV_CACHE_TTL_HOURS = "CLASSICAL_TAGGER_CACHE_TTL_HOURS"

SAMPLE_CONFIG = """\
# classical-tagger configuration.

discogs:
  # Personal access token from https://www.discogs.com/settings/developers
  token: ""

redacted:
  # API key from your tracker user settings. Needs the torrents scope to upload.
  api_key: ""
  # announce_url: https://flacsfor.me/announce

cache:
  # How long API responses are reused. 0 disables expiry.
  ttl_hours: 24
  # dir: ~/.cache/classical-tagger
"""

logger = logging.getLogger(__name__)


class ConfigNotFoundError(ClassicalTaggerExpectedError):
    pass


class ConfigDecodeError(ClassicalTaggerExpectedError):
    pass


class MissingConfigKeyError(ClassicalTaggerExpectedError):
    pass


class InvalidConfigValueError(ClassicalTaggerExpectedError, ValueError):
    pass


@dataclass(frozen=True)
class Config:
    discogs_token: str | None
    tracker_api_key: str | None
    announce_url: str
    cache_dir: Path
    cache_ttl: datetime.timedelta
    path: Path | None = None

    @classmethod
    def parse(cls, config_path_override: Path | None = None) -> Config:
        # As we parse, delete consumed values from the data dictionary. If any are left over at the
        # end of the config, warn that unknown config keys were found.
        cfgpath = config_path_override or CONFIG_PATH
        data: dict[str, Any] = {}
        try:
            with cfgpath.open("r") as fp:
                data = yaml.safe_load(fp) or {}
        except FileNotFoundError as e:
            if config_path_override is not None:
                raise ConfigNotFoundError(f"Configuration file not found ({cfgpath})") from e
            logger.debug(f"No configuration file at {cfgpath}: using defaults")
        except yaml.YAMLError as e:
            raise ConfigDecodeError(f"Failed to decode configuration file: invalid YAML: {e}") from e
        if not isinstance(data, dict):
            raise ConfigDecodeError(
                f"Failed to decode configuration file ({cfgpath}): top level must be a mapping"
            )

        discogs = _pop_section(data, "discogs", cfgpath)
        redacted = _pop_section(data, "redacted", cfgpath)
        cache = _pop_section(data, "cache", cfgpath)

        discogs_token = _pop_str(discogs, "token", "discogs.token", cfgpath)
        tracker_api_key = _pop_str(redacted, "api_key", "redacted.api_key", cfgpath)
        announce_url = (
            _pop_str(redacted, "announce_url", "redacted.announce_url", cfgpath)
            or DEFAULT_ANNOUNCE_URL
        )

        try:
            cache_dir = Path(cache["dir"]).expanduser()
            del cache["dir"]
        except KeyError:
            cache_dir = XDG_CACHE_DIR
        except TypeError as e:
            raise InvalidConfigValueError(
                f"Invalid value for cache.dir in configuration file ({cfgpath}): must be a path"
            ) from e

        try:
            ttl_hours = float(cache["ttl_hours"])
            del cache["ttl_hours"]
            if ttl_hours < 0:
                raise ValueError(f"must be a non-negative number: got {ttl_hours}")
        except KeyError:
            ttl_hours = DEFAULT_CACHE_TTL_HOURS
        except (TypeError, ValueError) as e:
            raise InvalidConfigValueError(
                f"Invalid value for cache.ttl_hours in configuration file ({cfgpath}): "
                "must be a non-negative number"
            ) from e

        # Environment overrides.
        discogs_token = os.environ.get(ENV_DISCOGS_TOKEN) or discogs_token
        tracker_api_key = os.environ.get(ENV_REDACTED_API_KEY) or tracker_api_key
        if env_ttl := os.environ.get(ENV_CACHE_TTL_HOURS):
            try:
                ttl_hours = float(env_ttl)
                if ttl_hours < 0:
                    raise ValueError(f"must be a non-negative number: got {ttl_hours}")
            except ValueError as e:
                raise InvalidConfigValueError(
                    f"Invalid value for {ENV_CACHE_TTL_HOURS}: must be a non-negative number"
                ) from e

        unrecognized = [
            *data,
            *(f"discogs.{k}" for k in discogs),
            *(f"redacted.{k}" for k in redacted),
            *(f"cache.{k}" for k in cache),
        ]
        if unrecognized:
            logger.warning(
                f"Unrecognized options found in configuration file: {', '.join(unrecognized)}"
            )

        return Config(
            discogs_token=discogs_token or None,
            tracker_api_key=tracker_api_key or None,
            announce_url=announce_url,
            cache_dir=cache_dir,
            cache_ttl=datetime.timedelta(hours=ttl_hours),
            path=cfgpath,
        )

    def require_discogs_token(self) -> str:
        if not self.discogs_token:
            raise MissingConfigKeyError(
                f"Missing Discogs token: set discogs.token in {self.path or CONFIG_PATH} "
                f"or the {ENV_DISCOGS_TOKEN} environment variable"
            )
        return self.discogs_token

    def require_tracker_api_key(self) -> str:
        if not self.tracker_api_key:
            raise MissingConfigKeyError(
                f"Missing tracker API key: set redacted.api_key in {self.path or CONFIG_PATH} "
                f"or the {ENV_REDACTED_API_KEY} environment variable"
            )
        return self.tracker_api_key

    def cache(self) -> Cache:
        return Cache(self.cache_dir, self.cache_ttl)

    def dump(self) -> dict[str, Any]:
        """The effective configuration with credentials masked."""
        return {
            "discogs": {"token": _mask(self.discogs_token)},
            "redacted": {
                "api_key": _mask(self.tracker_api_key),
                "announce_url": self.announce_url,
            },
            "cache": {
                "dir": str(self.cache_dir),
                "ttl_hours": self.cache_ttl.total_seconds() / 3600,
            },
        }


def _pop_section(data: dict[str, Any], key: str, cfgpath: Path) -> dict[str, Any]:
    section = data.pop(key, None)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise InvalidConfigValueError(
            f"Invalid value for {key} in configuration file ({cfgpath}): must be a mapping"
        )
    return section


def _pop_str(section: dict[str, Any], key: str, fullkey: str, cfgpath: Path) -> str | None:
    value = section.pop(key, None)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidConfigValueError(
            f"Invalid value for {fullkey} in configuration file ({cfgpath}): must be a string"
        )
    return value.strip() or None


def _mask(secret: str | None) -> str | None:
    if not secret:
        return None
    return secret[:4] + "*" * max(0, len(secret) - 4)


def write_sample_config(path: Path | None = None) -> Path:
    path = path or CONFIG_PATH
    if path.exists():
        raise ClassicalTaggerExpectedError(f"Refusing to overwrite existing configuration ({path})")
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as fp:
        fp.write(SAMPLE_CONFIG)
    logger.info(f"Wrote sample configuration to {path}")
    return path
