import threading
from pathlib import Path

import pytest

from classical_tagger.audiotags import DataLossError, TagStatus, read_tags
from classical_tagger.common import CancelledError
from classical_tagger.releases import Release, save_release
from classical_tagger.tagger import (
    RenameConflictError,
    UnmatchedTrackError,
    apply_tagging,
    match_tracks,
    plan_tagging,
    tag_release,
)
from classical_tagger.validate import ValidationFailedError
from conftest import FAKE_AUDIO_PAYLOAD, write_flac

ARIA = "1 - Goldberg Variations, BWV 988 Aria.flac"
VARIATIO = "2 - Goldberg Variations, BWV 988 Variatio 1.flac"


def test_match_tracks_by_position(goldberg_dir: Path, goldberg_release: Release) -> None:
    matched = match_tracks(goldberg_release, goldberg_dir)
    assert [(t.track, p.name) for t, p in matched] == [
        (1, "01 Aria.flac"),
        (2, "02 Variatio 1.flac"),
    ]


def test_match_tracks_by_filename(isolated_dir: Path, goldberg_release: Release) -> None:
    d = isolated_dir / "untagged"
    write_flac(d / "01.flac")
    write_flac(d / "02.flac")
    matched = match_tracks(goldberg_release, d)
    assert [(t.track, p.name) for t, p in matched] == [(1, "01.flac"), (2, "02.flac")]


def test_match_tracks_unmatched(isolated_dir: Path, goldberg_release: Release) -> None:
    d = isolated_dir / "short"
    write_flac(d / "01.flac", {"TRACKNUMBER": "1"})
    with pytest.raises(UnmatchedTrackError, match="track 2"):
        match_tracks(goldberg_release, d)


def test_plan_tagging(goldberg_dir: Path, goldberg_release: Release) -> None:
    plan = plan_tagging(goldberg_release, goldberg_dir)
    assert plan.dirname == "Bach - Goldberg Variations (Gould) - 1982 [FLAC]"
    assert [tp.target.name for tp in plan.tracks] == [ARIA, VARIATIO]
    assert all(tp.renames for tp in plan.tracks)
    statuses = {c.field: c.status for c in plan.tracks[0].changes}
    assert statuses["TITLE"] == TagStatus.UPDATED
    assert statuses["ARTIST"] == TagStatus.UNCHANGED
    assert statuses["COMPOSER"] == TagStatus.ADDED
    description = plan.describe()
    assert f"01 Aria.flac -> {ARIA}" in description
    assert "COMPOSER: 'Johann Sebastian Bach' (added)" in description
    assert "Compliant directory name: Bach - Goldberg Variations (Gould) - 1982 [FLAC]" in description


def test_plan_tagging_without_rename(goldberg_dir: Path, goldberg_release: Release) -> None:
    plan = plan_tagging(goldberg_release, goldberg_dir, rename=False)
    assert not any(tp.renames for tp in plan.tracks)


def test_plan_tagging_refuses_data_loss(goldberg_dir: Path, goldberg_release: Release) -> None:
    tags = {"TITLE": "Aria", "ARTIST": "Glenn Gould, Yo-Yo Ma", "TRACKNUMBER": "1"}
    write_flac(goldberg_dir / "01 Aria.flac", tags)
    with pytest.raises(DataLossError, match="01 Aria.flac: ARTIST"):
        plan_tagging(goldberg_release, goldberg_dir)
    # Planning for display only reports it.
    plan = plan_tagging(goldberg_release, goldberg_dir, refuse_data_loss=False)
    assert plan.tracks[0].changes[2].status == TagStatus.WOULD_LOSE_DATA


def test_plan_tagging_rename_conflict(goldberg_dir: Path, goldberg_release: Release) -> None:
    # An untagged file that matches no track already holds the target name.
    write_flac(goldberg_dir / ARIA)
    with pytest.raises(RenameConflictError, match="Refusing to overwrite"):
        plan_tagging(goldberg_release, goldberg_dir)


def test_apply_tagging(goldberg_dir: Path, goldberg_release: Release) -> None:
    plan = plan_tagging(goldberg_release, goldberg_dir)
    final = apply_tagging(plan, rename_dir=True)
    assert final.name == "Bach - Goldberg Variations (Gould) - 1982 [FLAC]"
    assert not goldberg_dir.exists()
    assert sorted(p.name for p in final.iterdir()) == [ARIA, VARIATIO, "folder.jpg"]
    tags = read_tags(final / ARIA)
    assert tags.title == "Goldberg Variations, BWV 988: Aria"
    assert tags.composer == "Johann Sebastian Bach"
    assert tags.albumartist == "Glenn Gould"
    assert tags.label == "CBS Masterworks"
    assert (final / VARIATIO).read_bytes().endswith(FAKE_AUDIO_PAYLOAD)
    # The release now describes the files where they are.
    assert goldberg_release.root_path == str(final)
    assert [t.path for t in goldberg_release.tracks()] == [ARIA, VARIATIO]


def test_apply_tagging_swaps_names(isolated_dir: Path, goldberg_release: Release) -> None:
    d = isolated_dir / "swapped"
    # Each file carries the other's name.
    write_flac(d / VARIATIO, {"TRACKNUMBER": "1", "TITLE": "Aria"})
    write_flac(d / ARIA, {"TRACKNUMBER": "2", "TITLE": "Variatio 1"})
    apply_tagging(plan_tagging(goldberg_release, d))
    assert read_tags(d / ARIA).tracknumber == 1
    assert read_tags(d / VARIATIO).tracknumber == 2


def _fail_rename_on_call(monkeypatch: pytest.MonkeyPatch, n: int) -> None:
    rename = Path.rename
    calls = 0

    def flaky(self: Path, target: Path) -> Path:
        nonlocal calls
        calls += 1
        if calls == n:
            raise OSError("disk on fire")
        return rename(self, target)

    monkeypatch.setattr(Path, "rename", flaky)


@pytest.mark.parametrize("failing_call", [2, 3, 4])
def test_apply_tagging_restores_names_on_rename_failure(
    goldberg_dir: Path,
    goldberg_release: Release,
    monkeypatch: pytest.MonkeyPatch,
    failing_call: int,
) -> None:
    plan = plan_tagging(goldberg_release, goldberg_dir)
    _fail_rename_on_call(monkeypatch, failing_call)
    with pytest.raises(OSError, match="disk on fire"):
        apply_tagging(plan)
    names = sorted(p.name for p in goldberg_dir.iterdir())
    assert names == ["01 Aria.flac", "02 Variatio 1.flac", "folder.jpg"]
    assert read_tags(goldberg_dir / "01 Aria.flac").tracknumber == 1


def test_apply_tagging_restores_swapped_names_on_rename_failure(
    isolated_dir: Path,
    goldberg_release: Release,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    d = isolated_dir / "swapped"
    write_flac(d / VARIATIO, {"TRACKNUMBER": "1", "TITLE": "Aria"})
    write_flac(d / ARIA, {"TRACKNUMBER": "2", "TITLE": "Variatio 1"})
    plan = plan_tagging(goldberg_release, d)
    # The first file reaches its final name before the second move fails.
    _fail_rename_on_call(monkeypatch, 4)
    with pytest.raises(OSError):
        apply_tagging(plan)
    assert sorted(p.name for p in d.iterdir()) == sorted([ARIA, VARIATIO])
    assert read_tags(d / VARIATIO).tracknumber == 1
    assert read_tags(d / ARIA).tracknumber == 2


def test_apply_tagging_cancelled(goldberg_dir: Path, goldberg_release: Release) -> None:
    plan = plan_tagging(goldberg_release, goldberg_dir)
    before = (goldberg_dir / "01 Aria.flac").read_bytes()
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(CancelledError):
        apply_tagging(plan, cancel=cancel)
    assert (goldberg_dir / "01 Aria.flac").read_bytes() == before


def test_tag_release(goldberg_dir: Path, goldberg_metadata: Path) -> None:
    plan, final = tag_release(goldberg_metadata, goldberg_dir)
    assert final == goldberg_dir
    assert plan.issues == []
    assert sorted(p.name for p in goldberg_dir.iterdir()) == [ARIA, VARIATIO, "folder.jpg"]


def test_tag_release_dry_run(goldberg_dir: Path, goldberg_metadata: Path) -> None:
    before = sorted(p.name for p in goldberg_dir.iterdir())
    plan, final = tag_release(goldberg_metadata, goldberg_dir, dry_run=True, rename_dir=True)
    assert final == goldberg_dir
    assert [tp.target.name for tp in plan.tracks] == [ARIA, VARIATIO]
    assert sorted(p.name for p in goldberg_dir.iterdir()) == before
    assert read_tags(goldberg_dir / "01 Aria.flac").composer is None


def test_tag_release_invalid_metadata(
    goldberg_dir: Path,
    goldberg_metadata: Path,
    goldberg_release: Release,
) -> None:
    goldberg_release.tracks()[0].title = "Bach: Aria, BWV 988"
    save_release(goldberg_release, goldberg_metadata)
    with pytest.raises(ValidationFailedError) as excinfo:
        tag_release(goldberg_metadata, goldberg_dir)
    assert [i.rule for i in excinfo.value.issues] == ["2.3.8"]
    # Nothing was touched.
    assert read_tags(goldberg_dir / "01 Aria.flac").title == "Aria"

    # With force, tagging goes ahead and the plan keeps the issues.
    plan, _ = tag_release(goldberg_metadata, goldberg_dir, force=True)
    assert [i.rule for i in plan.issues] == ["2.3.8"]
    assert read_tags(goldberg_dir / "1 - Bach Aria, BWV 988.flac").title == "Bach: Aria, BWV 988"
