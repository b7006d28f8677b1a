"""
The rules module evaluates a release against the classical music style guide.

Each rule is a pure function from a release and a RuleContext to a list of issues. The context
carries the optional comparison sources: the tracker's view of the release, and a reference release
(say, the metadata JSON a directory was tagged from). Rules that need a source they were not given
pass. Rule ids mirror the style guide's section numbers and are otherwise opaque. Rules never raise:
a release that cannot be meaningfully checked produces an issue saying so.
"""

from __future__ import annotations

import datetime
import re
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import PurePosixPath

from classical_tagger.artists import last_name
from classical_tagger.issues import ALBUM, DIRECTORY, Issue, error, info, warning
from classical_tagger.naming import MAX_DIRNAME_LENGTH, primary_composers, sanitize_dirname
from classical_tagger.reconcile import TrackerView, check_tracker_artists
from classical_tagger.releases import Release, Track
from classical_tagger.roles import Role

ARCHIVE_EXTENSIONS = frozenset(
    [
        ".zip",
        ".rar",
        ".7z",
        ".tar",
        ".gz",
        ".bz2",
        ".xz",
        ".tgz",
        ".cab",
        ".ace",
        ".arj",
        ".lzh",
        ".sit",
        ".sitx",
    ]
)

DISC_FOLDER_REGEX = re.compile(r"^(cd|disc|disk|dvd)(?![a-z])\s*\d*", re.IGNORECASE)
TRACK_FILENAME_REGEX = re.compile(r"^\d{1,3}[\s\-._]?.*\.\w+$")
LEADING_DIGITS_REGEX = re.compile(r"^\d+")
DISC_IN_TITLE_REGEX = re.compile(r"(disc|cd|disk|volume|vol\.?)\s*\d+", re.IGNORECASE)
VOLUME_TITLE_REGEX = re.compile(r"\b(volume|vol\.?)\s*\d+", re.IGNORECASE)
REQUEST_TAG_REGEX = re.compile(r"\[REQ\]", re.IGNORECASE)
REQUEST_VARIANT_REGEX = re.compile(r"\[REQUEST(ED)?\]|\(REQ(UEST)?\)", re.IGNORECASE)

MOJIBAKE_SEQUENCES = ["Ã©", "Ã¨", "Ã ", "Ã¤", "Ã¶", "Ã¼", "Ã±", "Ã¡", "â€™", "â€œ"]

EARLIEST_RECORDING_YEAR = 1900
FILENAME_TITLE_REGEX = re.compile(r"^\d+[\s\-_.]+(.+?)\.\w+$")
TITLE_PUNCTUATION_REGEX = re.compile(r"[:,.'\"!?()\[\]]")
TITLE_SEGMENT_REGEX = re.compile(r"[:–—-]")
WORD_PUNCTUATION = "\"'()[]{},;!?¿¡“”‘’"
ROMAN_NUMERAL_REGEX = re.compile(r"^[IVXLCDM]+$")
MUSICAL_KEY_REGEX = re.compile(r"^[A-G][#b♯♭]?$")
DOTTED_ACRONYM_REGEX = re.compile(r"^([A-Z]\.)+[A-Z]?$")
ELISION_REGEX = re.compile(r"^[a-z]'")
TRACK_NUMBER_IN_TITLE_REGEX = re.compile(r"^\s*(track\s*\d{1,3}\b|\d{1,3}\s*[-._:])", re.IGNORECASE)
COMBINED_TAG_SEPARATORS = [" / ", "; "]
OPUS_REGEX = re.compile(
    r"\b(Op\.?|BWV|KV|K\.?|Hob\.?|HWV|TWV|D\.?|RV|Wq\.?|S\.?)\s*([IVXLCDM]+:)?\s*\d+",
    re.IGNORECASE,
)
DISC_FOLDER_NUMBER_REGEX = re.compile(r"(cd|disc|disk)\s*(\d+)", re.IGNORECASE)
ARRANGEMENT_MARKERS = ["arr.", "arranged", "transcription", "transcribed"]
GUEST_MARKER_REGEX = re.compile(r"\b(feat\.|featuring\b|with\b|guest\b)", re.IGNORECASE)

SMALL_WORDS = frozenset(
    [
        "a", "an", "the", "and", "but", "or", "nor", "as", "at", "by", "for", "so", "yet", "in",
        "of", "on", "per", "to", "up", "via", "vs", "vs.", "von", "van", "und", "de", "di", "da",
        "del", "der", "la", "le", "les", "du", "des", "el", "y", "con", "non", "troppo", "ma",
        "e", "et", "molto", "poco", "più", "assai", "quasi",
    ]
)  # fmt: skip
# Particles after which an Italian or Spanish tempo marking stays lowercase: "Allegro con brio".
LOWERCASE_AFTER = frozenset(["con", "per", "da", "di", "del", "de", "der", "von", "van", "y"])
LOWERCASE_ANYWHERE = frozenset(["major", "minor", "flat", "sharp"])
ACRONYMS = frozenset(["LSO", "BBC", "CD", "SACD", "LP", "EP", "DVD", "BD", "UHD", "WEB", "USA"])
CATALOG_TOKENS = frozenset(
    ["Op.", "No.", "Hob.", "Wq.", "K.", "D.", "S.", "L.", "P.", "BWV", "KV", "RV", "HWV", "TWV"]
)
# Composers whose works are conventionally cited with a catalog number.
CATALOGUED_COMPOSERS = [
    "beethoven", "mozart", "bach", "schubert", "haydn", "vivaldi", "handel", "telemann", "brahms",
    "chopin", "liszt", "schumann", "mendelssohn", "dvorak", "dvořák",
]  # fmt: skip


def has_encoding_issues(text: str) -> bool:
    """
    Detect text that was decoded with the wrong charset: replacement characters, stray control
    characters, and the two-character sequences that UTF-8 accented letters become when read as
    Latin-1. A lone Ã or Â is legitimate text and passes.
    """
    if "\ufffd" in text:
        return True
    if any(ord(c) < 0x20 and c not in "\t\n\r" for c in text):
        return True
    return any(seq in text for seq in MOJIBAKE_SEQUENCES)


def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        cur = [i]
        for j, cb in enumerate(b, start=1):
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + (ca != cb)))
        prev = cur
    return prev[-1]


def normalize_title(title: str) -> str:
    """Lowercase, drop punctuation, and collapse whitespace, for comparing titles loosely."""
    return " ".join(TITLE_PUNCTUATION_REGEX.sub("", title.lower()).split())


def titles_match(a: str, b: str) -> bool:
    """
    Two titles match when their normalized forms are equal, one contains the other (filenames are
    often shortened), or they are within a few typos of each other.
    """
    a, b = normalize_title(a), normalize_title(b)
    return a == b or a in b or b in a or levenshtein(a, b) <= 3


def _is_special_token(word: str) -> bool:
    bare = word.rstrip(".")
    if word in CATALOG_TOKENS or word in ACRONYMS or bare in ACRONYMS:
        return True
    if ROMAN_NUMERAL_REGEX.match(bare) or MUSICAL_KEY_REGEX.match(word):
        return True
    if DOTTED_ACRONYM_REGEX.match(word):
        return True
    return "&" in word and word.upper() == word


def _is_title_case_word(word: str, first: bool, prev: str) -> bool:
    if not any(c.isalpha() for c in word) or word[0].isdigit() or _is_special_token(word):
        return True
    if word[0].isupper():
        # Shouting: multi-letter words in capitals that are not acronyms or numerals.
        letters = [c for c in word if c.isalpha()]
        return not (len(letters) > 1 and all(c.isupper() for c in letters))
    lowered = word.lower()
    if lowered in LOWERCASE_ANYWHERE or ELISION_REGEX.match(word):
        return True
    return not first and (lowered in SMALL_WORDS or prev.lower() in LOWERCASE_AFTER)


def is_title_case(text: str) -> bool:
    """
    Whether text is in Title Case or casual title case. Words are capitalized except small words
    (articles, conjunctions, short prepositions) after the start of a segment; segments are split
    on colons and dashes. Catalog tokens (BWV, Op.), acronyms, roman numerals, and key names
    pass as written, as do "major" and "minor".
    """
    for segment in TITLE_SEGMENT_REGEX.split(text):
        prev = ""
        first = True
        for raw in segment.split():
            word = raw.strip(WORD_PUNCTUATION)
            if not word:
                continue
            if not _is_title_case_word(word, first, prev):
                return False
            prev = word
            first = False
    return True


def name_case_problem(name: str) -> str | None:
    """Names keep their own spelling, so only an all-lowercase or shouted name is flagged."""
    words = [w for w in name.split() if any(c.isalpha() for c in w)]
    if not words:
        return None
    if name == name.lower():
        return "is all lowercase"
    if len(words) > 1 and name == name.upper():
        return "is all uppercase"
    return None


def filename_title(name: str) -> str | None:
    """The title part of a "NN - Title.flac" style filename, if it has one."""
    m = FILENAME_TITLE_REGEX.match(name)
    return m[1] if m else None


def extract_opus(title: str) -> str:
    m = OPUS_REGEX.search(title)
    return m[0].strip() if m else ""


def _same_opus(a: str, b: str) -> bool:
    return a.replace(" ", "").lower() == b.replace(" ", "").lower()


@dataclass(frozen=True)
class RuleContext:
    tracker: TrackerView | None = None
    reference: Release | None = None

    def reference_track(self, track: Track) -> Track | None:
        if self.reference is None:
            return None
        for t in self.reference.tracks():
            if (t.disc, t.track) == (track.disc, track.track):
                return t
        return None


@dataclass(frozen=True)
class Rule:
    id: str
    description: str
    check: Callable[[Release, RuleContext], list[Issue]]


def _path_components(release: Release) -> list[list[str]]:
    return [list(PurePosixPath(f.path).parts) for f in release.files]


def _performer_names(track: Track) -> list[str]:
    return [a.name for a in track.artists if a.role not in (Role.COMPOSER, Role.ARRANGER)]


def check_empty(release: Release, _: RuleContext) -> list[Issue]:
    if not release.tracks():
        return [error(ALBUM, "empty", "empty album")]
    return []


def check_no_archives(release: Release, _: RuleContext) -> list[Issue]:
    return [
        error(DIRECTORY, "2.3.1", f"archive files are not allowed: {f.path}")
        for f in release.files
        if PurePosixPath(f.path).suffix.lower() in ARCHIVE_EXTENSIONS
    ]


def check_folder_name(release: Release, _: RuleContext) -> list[Issue]:
    folder = release.folder_name
    if not folder or not release.title:
        return []
    haystack = folder.lower()
    if release.title.lower() in haystack or sanitize_dirname(release.title).lower() in haystack:
        return []
    return [
        warning(
            DIRECTORY,
            "2.3.2",
            f"folder name {folder!r} does not contain the album title {release.title!r}",
        )
    ]


def check_nesting(release: Release, _: RuleContext) -> list[Issue]:
    issues: list[Issue] = []
    subdirs: list[str] = []
    for parts in _path_components(release):
        if len(parts) > 2:
            dirpath = "/".join(parts[:-1])
            msg = f"folder nested more than one level deep: {dirpath}"
            if not any(i.message == msg for i in issues):
                issues.append(error(DIRECTORY, "2.3.3", msg))
        if len(parts) > 1 and parts[0] not in subdirs:
            subdirs.append(parts[0])
    if subdirs and not any(DISC_FOLDER_REGEX.match(d) for d in subdirs):
        issues.append(
            warning(
                DIRECTORY,
                "2.3.3",
                f"subfolders present but none are disc folders: {', '.join(subdirs)}",
            )
        )
    return issues


def check_edition_year(release: Release, _: RuleContext) -> list[Issue]:
    edition_year = release.edition.year if release.edition else None
    rv: list[Issue] = []
    for label, year in [("original", release.original_year), ("edition", edition_year)]:
        if year and year < EARLIEST_RECORDING_YEAR:
            rv.append(warning(ALBUM, "2.3.4", f"{label} year {year} seems too early for a recording"))  # fmt: skip
        elif year and year > datetime.date.today().year + 1:
            rv.append(error(ALBUM, "2.3.4", f"{label} year {year} is in the future"))
    if rv or not edition_year or not release.original_year:
        return rv
    gap = edition_year - release.original_year
    if gap < 0:
        msg = f"edition year {edition_year} predates the original year {release.original_year}"
        return [info(ALBUM, "2.3.4", msg)]
    if gap > 2:
        msg = (
            f"edition year {edition_year} is {gap} years after the original release year "
            f"{release.original_year}; the year tag should carry the original year"
        )
        return [info(ALBUM, "2.3.4", msg)]
    return []


def check_request_tag(release: Release, _: RuleContext) -> list[Issue]:
    if REQUEST_TAG_REGEX.search(release.title):
        return [error(ALBUM, "2.3.5", "album title contains the [REQ] tag")]
    if m := REQUEST_VARIANT_REGEX.search(release.title):
        return [warning(ALBUM, "2.3.5", f"album title contains a request tag: {m[0]}")]
    return []


def check_album_title_accuracy(release: Release, ctx: RuleContext) -> list[Issue]:
    ref = ctx.reference
    if ref is None or not release.title or not ref.title or titles_match(release.title, ref.title):
        return []
    distance = levenshtein(normalize_title(release.title), normalize_title(ref.title))
    msg = f"album title {release.title!r} does not match the reference {ref.title!r}"
    if distance > 10:
        return [error(ALBUM, "2.3.6", msg)]
    return [warning(ALBUM, "2.3.6", msg)]


def check_artist_field(release: Release, ctx: RuleContext) -> list[Issue]:
    issues: list[Issue] = []
    for t in release.tracks():
        if not t.artists:
            continue
        performers = _performer_names(t)
        composers = t.composers()
        if not performers and composers:
            msg = f"artist field lists only the composer {composers[0].name}, not the performers"
            issues.append(warning(t.track, "2.3.7", msg))
        ref = ctx.reference_track(t)
        if ref is not None and len(performers) != len(_performer_names(ref)):
            msg = (
                f"track credits {len(performers)} performer(s), the reference "
                f"{len(_performer_names(ref))}"
            )
            issues.append(info(t.track, "2.3.7", msg))
    return issues


def check_composer_in_title(release: Release, _: RuleContext) -> list[Issue]:
    issues: list[Issue] = []
    for t in release.tracks():
        title = t.title.lower()
        seen: set[str] = set()
        for c in t.composers():
            surname = last_name(c.name)
            if not surname or c.name in seen:
                continue
            seen.add(c.name)
            if surname.lower() in title:
                issues.append(
                    error(t.track, "2.3.8", f"composer {c.name} appears in track title {t.title!r}")
                )
    return issues


def check_album_artist(release: Release, _: RuleContext) -> list[Issue]:
    tracks = release.tracks()
    if len(tracks) < 2:
        return []
    issues: list[Issue] = []
    composers = {c.name for t in tracks for c in t.composers()}
    if not release.album_artist:
        counts = Counter(name for t in tracks for name in set(_performer_names(t)))
        if counts:
            name, count = counts.most_common(1)[0]
            if count > len(tracks) / 2:
                msg = f"no album artist set; {name} performs on {count}/{len(tracks)} tracks"
                issues.append(info(ALBUM, "2.3.9", msg))
    elif len(composers) > 3 and any(
        a.name.lower() == "various artists" for a in release.album_artist
    ):
        msg = (
            f"{len(composers)} composers: credit the principal ensemble or conductor as album "
            "artist rather than Various Artists"
        )
        issues.append(info(ALBUM, "2.3.9", msg))
    return issues


def check_track_numbering(release: Release, _: RuleContext) -> list[Issue]:
    # Multi-disc releases are numbered per disc; see check_multi_disc_numbering.
    if not release.tracks() or release.is_multi_disc():
        return []
    numbers = sorted({t.track for t in release.tracks() if t.track > 0})
    if not numbers:
        return []
    issues: list[Issue] = []
    if numbers[0] != 1:
        issues.append(info(ALBUM, "2.3.10", f"track numbering starts at {numbers[0]}, not 1"))
    missing = sorted(set(range(1, numbers[-1] + 1)) - set(numbers) - set(range(1, numbers[0])))
    if missing:
        gaps = ", ".join(str(n) for n in missing)
        issues.append(info(ALBUM, "2.3.10", f"track numbering has gaps: missing {gaps}"))
    return issues


def check_filename_titles(release: Release, _: RuleContext) -> list[Issue]:
    issues: list[Issue] = []
    for t in release.tracks():
        title = filename_title(t.name)
        if title is None or not t.title or titles_match(title, t.title):
            continue
        msg = f"filename {t.name!r} does not match the track title {t.title!r}"
        issues.append(error(t.track, "2.3.11", msg))
    return issues


def check_filename_capitalization(release: Release, _: RuleContext) -> list[Issue]:
    issues: list[Issue] = []
    for t in release.tracks():
        title = filename_title(t.name)
        if title is not None and not is_title_case(title):
            msg = f"filename is not in title case: {t.name}"
            issues.append(error(t.track, "2.3.11.1", msg))
    return issues


def check_path_length(release: Release, _: RuleContext) -> list[Issue]:
    issues: list[Issue] = []
    for f in release.files:
        path = f"{release.folder_name}/{f.path}" if release.folder_name else f.path
        if len(path) > MAX_DIRNAME_LENGTH:
            issues.append(
                error(
                    DIRECTORY,
                    "2.3.12",
                    f"path length {len(path)} exceeds {MAX_DIRNAME_LENGTH} characters: {path}",
                )
            )
    return issues


def check_track_filenames(release: Release, _: RuleContext) -> list[Issue]:
    return [
        error(t.track, "2.3.13", f"filename does not start with the track number: {t.name}")
        for t in release.tracks()
        if not TRACK_FILENAME_REGEX.match(t.name)
    ]


def check_track_number_padding(release: Release, _: RuleContext) -> list[Issue]:
    if release.total_tracks() <= 9:
        return []
    issues: list[Issue] = []
    for t in release.tracks():
        m = LEADING_DIGITS_REGEX.match(t.name)
        if m and len(m[0]) < 2:
            msg = f"track number should be zero-padded to two digits: {t.name}"
            issues.append(info(t.track, "2.3.14", msg))
    return issues


def check_multi_disc_numbering(release: Release, _: RuleContext) -> list[Issue]:
    if not release.is_multi_disc():
        return []
    by_disc: dict[int, list[int]] = {}
    for t in release.tracks():
        by_disc.setdefault(t.disc, []).append(t.track)
    issues: list[Issue] = []
    for disc, numbers in sorted(by_disc.items()):
        numbers = sorted(numbers)
        if numbers[0] != 1:
            issues.append(
                warning(numbers[0], "2.3.15", f"disc {disc} starts at track {numbers[0]}, not 1")
            )
        for prev, cur in zip(numbers, numbers[1:]):
            if cur > prev + 1:
                issues.append(
                    warning(cur, "2.3.15", f"disc {disc} skips from track {prev} to track {cur}")
                )
    return issues


def check_required_tags(release: Release, _: RuleContext) -> list[Issue]:
    issues: list[Issue] = []
    if not release.title.strip():
        issues.append(error(ALBUM, "2.3.16.4", "missing required tag: album"))
    for t in release.tracks():
        missing: list[str] = []
        if not t.title.strip():
            missing.append("title")
        if not t.performers():
            missing.append("artist")
        if t.track < 1:
            missing.append("track number")
        if not t.composers():
            missing.append("composer")
        if missing:
            issues.append(
                error(
                    ALBUM,
                    "2.3.16.4",
                    f"track {t.track} ({t.name}) is missing required tags: {', '.join(missing)}",
                )
            )
    return issues


def check_tag_capitalization(release: Release, _: RuleContext) -> list[Issue]:
    issues: list[Issue] = []
    if release.title and not is_title_case(release.title):
        msg = f"album title is not in title case: {release.title!r}"
        issues.append(error(ALBUM, "2.3.18.2", msg))
    for t in release.tracks():
        if t.title and not is_title_case(t.title):
            msg = f"track title is not in title case: {t.title!r}"
            issues.append(error(t.track, "2.3.18.2", msg))
        for a in t.artists:
            if problem := name_case_problem(a.name):
                issues.append(error(t.track, "2.3.18.2", f"artist name {a.name!r} {problem}"))
    return issues


def check_reference_capitalization(release: Release, ctx: RuleContext) -> list[Issue]:
    """Flag tags that spell the reference's words but capitalize them differently."""
    if ctx.reference is None:
        return []
    pairs: list[tuple[int, str, str]] = [(ALBUM, release.title, ctx.reference.title)]
    for t in release.tracks():
        if (ref := ctx.reference_track(t)) is not None:
            pairs.append((t.track, t.title, ref.title))
    issues: list[Issue] = []
    for scope, actual, expected in pairs:
        if actual and actual != expected and normalize_title(actual) == normalize_title(expected):
            msg = f"capitalization differs from the reference: {actual!r} vs {expected!r}"
            issues.append(warning(scope, "2.3.18.2.ref", msg))
    return issues


def check_combined_tags(release: Release, _: RuleContext) -> list[Issue]:
    issues: list[Issue] = []
    for t in release.tracks():
        if TRACK_NUMBER_IN_TITLE_REGEX.match(t.title):
            msg = f"track title starts with a track number: {t.title!r}"
            issues.append(warning(t.track, "2.3.18.3", msg))
        for sep in COMBINED_TAG_SEPARATORS:
            left, found, right = t.title.partition(sep)
            if found and len(left.strip()) > 10 and len(right.strip()) > 10:
                msg = f"track title may combine several tags around {sep.strip()!r}: {t.title!r}"
                issues.append(info(t.track, "2.3.18.3", msg))
                break
    return issues


def check_disc_in_album_title(release: Release, _: RuleContext) -> list[Issue]:
    m = DISC_IN_TITLE_REGEX.search(release.title)
    if not m:
        return []
    # "Complete Sonatas, Vol. 2" names one volume of a series; "Sonatas (Disc 2)" names one disc of
    # a single release.
    if VOLUME_TITLE_REGEX.search(release.title) and not re.search(
        r"\b(disc|cd|disk)\s*\d+", release.title, re.IGNORECASE
    ):
        return []
    return [warning(ALBUM, "2.3.18.3.3", f"album title contains a disc number: {m[0]}")]


def check_reference_accuracy(release: Release, ctx: RuleContext) -> list[Issue]:
    ref = ctx.reference
    if ref is None:
        return []
    issues: list[Issue] = []
    if release.original_year and ref.original_year and release.original_year != ref.original_year:
        msg = f"year {release.original_year} does not match the reference {ref.original_year}"
        issues.append(warning(ALBUM, "2.3.18.4", msg))
    for t in release.tracks():
        rt = ctx.reference_track(t)
        if rt is None:
            continue
        if t.title and rt.title and not titles_match(t.title, rt.title):
            distance = levenshtein(normalize_title(t.title), normalize_title(rt.title))
            msg = f"title {t.title!r} does not match the reference {rt.title!r}"
            make = error if distance > 10 else warning
            issues.append(make(t.track, "2.3.18.4", msg))
        composers, ref_composers = t.composers(), rt.composers()
        if composers and ref_composers and composers[0].name != ref_composers[0].name:
            ours, theirs = composers[0].name, ref_composers[0].name
            msg = f"composer {ours} does not match the reference {theirs}"
            issues.append(error(t.track, "2.3.18.4", msg))
    return issues


def check_disc_folder_sorting(release: Release, _: RuleContext) -> list[Issue]:
    """With ten or more discs, disc folders need zero-padded numbers to sort: CD01, not CD1."""
    if not release.is_multi_disc():
        return []
    width = len(str(max(t.disc for t in release.tracks())))
    folders: dict[int, str] = {}
    for t in release.tracks():
        parent = PurePosixPath(t.path).parent.as_posix()
        if parent != ".":
            folders.setdefault(t.disc, parent)
    issues: list[Issue] = []
    for disc, folder in sorted(folders.items()):
        m = DISC_FOLDER_NUMBER_REGEX.search(folder)
        if m and len(m[2]) < width:
            msg = f"disc {disc} folder {folder!r} will not sort correctly; pad it to {width} digits"
            issues.append(info(DIRECTORY, "2.3.19", msg))
    return issues


def check_leading_spaces(release: Release, _: RuleContext) -> list[Issue]:
    issues: list[Issue] = []
    components = [release.folder_name] + [p for parts in _path_components(release) for p in parts]
    seen: set[str] = set()
    for p in components:
        if p.startswith(" ") and p not in seen:
            seen.add(p)
            issues.append(error(DIRECTORY, "2.3.20", f"path component begins with a space: {p!r}"))
    return issues


def check_duplicate_positions(release: Release, _: RuleContext) -> list[Issue]:
    issues: list[Issue] = []
    seen: set[tuple[int, int]] = set()
    for t in release.tracks():
        key = (t.disc, t.track)
        if key in seen:
            msg = f"disc {t.disc} track {t.track} appears more than once"
            issues.append(error(t.track, "dup.track", msg))
        seen.add(key)
    return issues


def check_album_encoding(release: Release, _: RuleContext) -> list[Issue]:
    if has_encoding_issues(release.title):
        msg = f"album title has character encoding problems: {release.title!r}"
        return [error(ALBUM, "enc.album", msg)]
    return []


def check_track_encoding(release: Release, _: RuleContext) -> list[Issue]:
    issues: list[Issue] = []
    for t in release.tracks():
        fields = [("track title", t.title)]
        fields.extend(("artist name", a.name) for a in t.artists)
        fields.append(("filename", t.name))
        for kind, value in fields:
            if has_encoding_issues(value):
                msg = f"{kind} has character encoding problems: {value!r}"
                issues.append(error(t.track, "enc.track", msg))
    return issues


def check_edition(release: Release, _: RuleContext) -> list[Issue]:
    if release.edition is None:
        return [warning(ALBUM, "ed.missing", "edition (label, catalog number) is missing")]
    issues: list[Issue] = []
    if not release.edition.label:
        issues.append(warning(ALBUM, "ed.label", "edition is missing a record label"))
    if not release.edition.catalog_number:
        issues.append(warning(ALBUM, "ed.catalog", "edition is missing a catalog number"))
    return issues


def check_edition_accuracy(release: Release, ctx: RuleContext) -> list[Issue]:
    ours = release.edition
    theirs = ctx.reference.edition if ctx.reference else None
    if ours is None or theirs is None:
        return []
    issues: list[Issue] = []
    if theirs.label and ours.label != theirs.label:
        msg = f"record label {ours.label!r} does not match the reference {theirs.label!r}"
        issues.append(error(ALBUM, "ed.ref", msg))
    if theirs.catalog_number and ours.catalog_number != theirs.catalog_number:
        msg = (
            f"catalog number {ours.catalog_number!r} does not match the reference "
            f"{theirs.catalog_number!r}"
        )
        issues.append(error(ALBUM, "ed.ref", msg))
    return issues


def check_composer_in_folder(release: Release, _: RuleContext) -> list[Issue]:
    folder = release.folder_name.lower()
    composers = primary_composers(release.tracks())
    if not folder or not composers or "various" in folder:
        return []
    surnames = [last_name(c).lower() for c in composers if last_name(c)]
    if any(s in folder for s in surnames):
        return []
    return [
        warning(
            DIRECTORY,
            "cls.folder",
            f"folder name should mention the composer: {', '.join(composers)}",
        )
    ]


def check_guest_artists(release: Release, _: RuleContext) -> list[Issue]:
    """A soloist or conductor on under a third of the tracks is likely a guest."""
    tracks = release.tracks()
    if len(tracks) <= 3:
        return []
    counts: Counter[str] = Counter()
    for t in tracks:
        counts.update({a.name for a in t.artists if a.role in (Role.SOLOIST, Role.CONDUCTOR)})
    threshold = (len(tracks) + 2) // 3
    issues: list[Issue] = []
    for name, count in counts.items():
        if count >= threshold:
            continue
        titles = [t.title for t in tracks if any(a.name == name for a in t.artists)]
        if any(GUEST_MARKER_REGEX.search(title) for title in titles):
            continue
        msg = f"{name} appears on only {count}/{len(tracks)} tracks; consider crediting as a guest"
        issues.append(info(ALBUM, "cls.guest", msg))
    return issues


def check_arrangement_credit(release: Release, _: RuleContext) -> list[Issue]:
    issues: list[Issue] = []
    for t in release.tracks():
        arranger = next((a for a in t.artists if a.role == Role.ARRANGER), None)
        if arranger is None:
            continue
        title = t.title.lower()
        surname = last_name(arranger.name)
        if not any(marker in title for marker in ARRANGEMENT_MARKERS):
            msg = f"arranged by {arranger.name}; consider crediting it in the title (arr. {surname})"  # fmt: skip
            issues.append(info(t.track, "cls.arrangement", msg))
        elif arranger.name.lower() not in title and surname.lower() not in title:
            msg = f"title marks an arrangement but does not name the arranger {arranger.name}"
            issues.append(info(t.track, "cls.arrangement", msg))
    return issues


def check_opus_numbers(release: Release, ctx: RuleContext) -> list[Issue]:
    issues: list[Issue] = []
    for t in release.tracks():
        opus = extract_opus(t.title)
        ref = ctx.reference_track(t)
        if ref is not None:
            ref_opus = extract_opus(ref.title)
            if ref_opus and not _same_opus(opus, ref_opus):
                msg = f"catalog number {opus or '(none)'} does not match the reference {ref_opus}"
                issues.append(info(t.track, "cls.opus", msg))
            continue
        composers = t.composers()
        if opus or not composers:
            continue
        composer = composers[0].name.lower()
        if any(c in composer for c in CATALOGUED_COMPOSERS):
            msg = f"consider adding the opus or catalog number to the title {t.title!r}"
            issues.append(info(t.track, "cls.opus", msg))
    return issues


def check_tracker_consistency(release: Release, ctx: RuleContext) -> list[Issue]:
    if ctx.tracker is None:
        return []
    return check_tracker_artists(ctx.tracker, release)


RULES: list[Rule] = [
    Rule("empty", "Release has at least one track", check_empty),
    Rule("2.3.1", "No archive files", check_no_archives),
    Rule("2.3.2", "Folder name contains the album title", check_folder_name),
    Rule("2.3.3", "No unnecessary nested folders", check_nesting),
    Rule("2.3.4", "Edition year consistent with the original year", check_edition_year),
    Rule("2.3.5", "No request tag in the album title", check_request_tag),
    Rule("2.3.6", "Album title matches the reference", check_album_title_accuracy),
    Rule("2.3.7", "Artist field lists the performers", check_artist_field),
    Rule("2.3.8", "Composer not in track titles", check_composer_in_title),
    Rule("2.3.9", "Album artist set for consistent grouping", check_album_artist),
    Rule("2.3.10", "Track numbering without gaps", check_track_numbering),
    Rule("2.3.11", "Filenames match track titles", check_filename_titles),
    Rule("2.3.11.1", "Filenames in title case", check_filename_capitalization),
    Rule("2.3.12", "Path length under 180 characters", check_path_length),
    Rule("2.3.13", "Track numbers in filenames", check_track_filenames),
    Rule("2.3.14", "Zero-padded track numbers", check_track_number_padding),
    Rule("2.3.15", "Multi-disc track numbering", check_multi_disc_numbering),
    Rule("2.3.16.4", "Required tags present", check_required_tags),
    Rule("2.3.18.2", "Tags in title case", check_tag_capitalization),
    Rule("2.3.18.2.ref", "Tag capitalization matches the reference", check_reference_capitalization),  # fmt: skip
    Rule("2.3.18.3", "No combined tags", check_combined_tags),
    Rule("2.3.18.3.3", "No disc numbers in the album title", check_disc_in_album_title),
    Rule("2.3.18.4", "Tags match the reference", check_reference_accuracy),
    Rule("2.3.19", "Multi-disc folders sort correctly", check_disc_folder_sorting),
    Rule("2.3.20", "No leading spaces in paths", check_leading_spaces),
    Rule("dup.track", "Track positions are unique", check_duplicate_positions),
    Rule("enc.album", "Album title encoding", check_album_encoding),
    Rule("enc.track", "Track metadata encoding", check_track_encoding),
    Rule("ed", "Edition information present", check_edition),
    Rule("ed.ref", "Edition matches the reference", check_edition_accuracy),
    Rule("cls.folder", "Folder name mentions the composer", check_composer_in_folder),
    Rule("cls.guest", "Occasional performers credited as guests", check_guest_artists),
    Rule("cls.arrangement", "Arrangements credited in the title", check_arrangement_credit),
    Rule("cls.opus", "Catalog numbers in track titles", check_opus_numbers),
    Rule("tracker.artists", "Tracker artists preserved", check_tracker_consistency),
]


def validate_release(
    release: Release,
    tracker: TrackerView | None = None,
    reference: Release | None = None,
) -> list[Issue]:
    """Run every rule in catalog order and concatenate their issues."""
    ctx = RuleContext(tracker=tracker, reference=reference)
    issues: list[Issue] = []
    for rule in RULES:
        issues.extend(rule.check(release, ctx))
    return issues
