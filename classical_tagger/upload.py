"""
The upload module replaces an existing torrent on the tracker with a corrected one (a trump).

The workflow fetches the torrent being replaced and its group and loads the local release. It then
checks that every tracker artist survives locally and carries the tracker's site metadata over. Finally
it creates the .torrent file and submits it. A dry run stops before creating anything and returns the
request that would have been sent.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from pathlib import Path

import httpx

from classical_tagger.config import Config
from classical_tagger.issues import ALBUM, Issue, error, sort_issues
from classical_tagger.reconcile import (
    DEFAULT_TRUMP_REASON,
    TrackerView,
    merge_site_metadata,
    reconcile_tracker,
)
from classical_tagger.releases import Release
from classical_tagger.torrent import make_torrent
from classical_tagger.tracker import (
    CACHE_NAMESPACE,
    MissingUploadFieldsError,
    TrackerClient,
    UploadRequest,
    build_upload_request,
    to_view,
)
from classical_tagger.validate import ValidationFailedError, read_release

logger = logging.getLogger(__name__)

METADATA_FILENAME = "metadata.json"


@dataclass
class UploadResult:
    request: UploadRequest
    view: TrackerView
    issues: list[Issue]
    torrent_path: Path | None = None
    uploaded: bool = False


def load_local_release(directory: Path, metadata: Path | None = None) -> Release:
    """Prefer an explicit metadata file, then a metadata.json inside the directory, then the tags."""
    if metadata is None and (directory / METADATA_FILENAME).is_file():
        metadata = directory / METADATA_FILENAME
    if metadata is not None:
        logger.info(f"Loading local release from {metadata}")
    else:
        logger.info(f"Reading local release from the tags in {directory}")
    return read_release(directory, metadata)


def describe_request(request: UploadRequest) -> str:
    lines = [
        "=== Upload Metadata ===",
        f"Title: {request.title}",
        f"Year: {request.year}",
        f"Format: {request.format} / {request.encoding} / {request.media}",
    ]
    if request.label or request.catalog_number:
        lines.append(f"Label: {request.label} - {request.catalog_number}")
    if request.remastered:
        lines.append(f"Remaster: {request.remaster_year} - {request.remaster_title}")
    lines.append("Artists:")
    lines.extend(f"  - {a.name} ({a.role}, importance {a.role.importance})" for a in request.artists)
    lines.append(f"Tags: {', '.join(request.tags)}")
    lines.append(f"Group: {request.group_id}")
    lines.append(f"Trumps torrent: {request.trump_torrent}")
    lines.append(f"Trump reason: {request.trump_reason}")
    lines.append("Description:")
    lines.append(request.description)
    return "\n".join(lines)


def upload_release(
    config: Config,
    directory: Path,
    torrent_id: int,
    *,
    metadata: Path | None = None,
    reason: str | None = None,
    dry_run: bool = False,
    clear_cache: bool = False,
    cancel: threading.Event | None = None,
    transport: httpx.BaseTransport | None = None,
    mktorrent: str = "mktorrent",
) -> UploadResult:
    cache = config.cache()
    if clear_cache:
        cache.clear(CACHE_NAMESPACE)
    reason = reason or DEFAULT_TRUMP_REASON

    with TrackerClient(
        config.require_tracker_api_key(),
        cache,
        cancel=cancel,
        transport=transport,
    ) as client:
        torrent = client.get_torrent(torrent_id)
        group = client.get_group(torrent.group_id)
        view = to_view(torrent, group)
        logger.info(f"Replacing torrent {torrent_id} in group {group.id} ({group.name})")

        release = load_local_release(directory, metadata)
        result = reconcile_tracker(release, view, reason)
        if result.release is None and not dry_run:
            raise ValidationFailedError(result.issues, "Local release does not match the tracker")
        # A dry run shows the payload even when the artist check failed.
        merged = result.release or replace(release, site_metadata=merge_site_metadata(view, reason))

        request = build_upload_request(merged, view, reason)
        rv = UploadResult(request=request, view=view, issues=sort_issues(result.issues))
        missing = request.missing_fields()
        if dry_run:
            rv.issues.extend(
                error(ALBUM, "upload.fields", f"missing required field: {m}") for m in missing
            )
            return rv
        if missing:
            raise MissingUploadFieldsError(f"Missing required fields: {', '.join(missing)}")

        rv.torrent_path = make_torrent(
            directory,
            cache.path(f"torrent_{torrent_id}", CACHE_NAMESPACE, ".torrent"),
            config.announce_url,
            cancel,
            executable=mktorrent,
        )
        client.upload(request, rv.torrent_path)
        rv.uploaded = True
        return rv
