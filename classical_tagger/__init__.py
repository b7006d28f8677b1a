from classical_tagger.artists import (
    Artist,
    ArtistMap,
    dedupe_artists,
    format_artists,
    parse_artist_field,
)
from classical_tagger.audiotags import (
    DataLossError,
    NoAudioFilesError,
    TagChange,
    TagStatus,
    TagWriteError,
    TrackTags,
    UnsupportedFiletypeError,
    build_local_release,
    compare_tags,
    plan_tags,
    read_tags,
    write_tags,
)
from classical_tagger.cache import Cache
from classical_tagger.common import (
    VERSION,
    CancelledError,
    ClassicalTaggerError,
    ClassicalTaggerExpectedError,
    initialize_logging,
)
from classical_tagger.config import (
    Config,
    ConfigDecodeError,
    ConfigNotFoundError,
    InvalidConfigValueError,
    MissingConfigKeyError,
)
from classical_tagger.discogs import DiscogsClient, DiscogsError, ReleaseNotFoundError
from classical_tagger.extract import ExtractResult, extract_release
from classical_tagger.issues import Issue, Level, has_errors
from classical_tagger.naming import release_dirname, track_filename
from classical_tagger.positions import parse_position
from classical_tagger.ratelimit import RateLimiter
from classical_tagger.reconcile import (
    ReconciliationError,
    ReconcileResult,
    TrackerArtist,
    TrackerView,
    check_tracker_artists,
    reconcile,
    reconcile_tracker,
)
from classical_tagger.releases import (
    Edition,
    File,
    InvalidReleaseError,
    Release,
    SiteMetadata,
    Track,
    load_release,
    save_release,
)
from classical_tagger.roles import Role, parse_role
from classical_tagger.rules import RULES, Rule, RuleContext, has_encoding_issues, validate_release
from classical_tagger.tagger import tag_release
from classical_tagger.torrent import TorrentCreationError, make_torrent
from classical_tagger.tracker import RateLimitedError, TrackerClient, TrackerError
from classical_tagger.upload import upload_release
from classical_tagger.validate import ValidationFailedError, validate_directory

__all__ = [
    # Plumbing
    "initialize_logging",
    "VERSION",
    "Config",
    "Cache",
    "RateLimiter",
    # Errors
    "ClassicalTaggerError",
    "ClassicalTaggerExpectedError",
    "CancelledError",
    "ConfigDecodeError",
    "ConfigNotFoundError",
    "InvalidConfigValueError",
    "MissingConfigKeyError",
    "InvalidReleaseError",
    "UnsupportedFiletypeError",
    "NoAudioFilesError",
    "DataLossError",
    "TagWriteError",
    "DiscogsError",
    "ReleaseNotFoundError",
    "TrackerError",
    "RateLimitedError",
    "TorrentCreationError",
    "ReconciliationError",
    "ValidationFailedError",
    # Domain
    "Role",
    "parse_role",
    "Artist",
    "ArtistMap",
    "dedupe_artists",
    "format_artists",
    "parse_artist_field",
    "parse_position",
    "Edition",
    "File",
    "Track",
    "Release",
    "SiteMetadata",
    "load_release",
    "save_release",
    "release_dirname",
    "track_filename",
    # Rules
    "Issue",
    "Level",
    "Rule",
    "RULES",
    "RuleContext",
    "has_errors",
    "has_encoding_issues",
    "validate_release",
    # Reconciliation
    "ReconcileResult",
    "TrackerArtist",
    "TrackerView",
    "check_tracker_artists",
    "reconcile",
    "reconcile_tracker",
    # Audio tags
    "TrackTags",
    "TagChange",
    "TagStatus",
    "read_tags",
    "build_local_release",
    "plan_tags",
    "compare_tags",
    "write_tags",
    # Collaborators
    "DiscogsClient",
    "TrackerClient",
    "make_torrent",
    # Pipeline
    "ExtractResult",
    "extract_release",
    "validate_directory",
    "tag_release",
    "upload_release",
]

initialize_logging(__name__)
