"""
The cli module defines the command line interface. It does not have any domain logic of its own. It
parses arguments, delegates to the pipeline modules, and prints their results.
"""

import logging
import signal
import sys
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import click
import yaml

from classical_tagger.common import VERSION
from classical_tagger.config import CONFIG_PATH, Config
from classical_tagger.issues import Issue, Level, count_by_level, has_errors

logger = logging.getLogger(__name__)

LEVEL_COLORS = {Level.ERROR: "red", Level.WARNING: "yellow", Level.INFO: "blue"}


@dataclass
class Context:
    config: Config
    # Set by SIGINT/SIGTERM. Long-running operations poll it and abort with CancelledError.
    cancel: threading.Event = field(default_factory=threading.Event)


def install_signal_handlers(cancel: threading.Event) -> None:
    def handler(signum: int, _: Any) -> None:
        if cancel.is_set():
            # A second signal means the user is done waiting.
            raise KeyboardInterrupt
        logger.warning(f"Received {signal.Signals(signum).name}: cancelling")
        cancel.set()

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def print_issues(issues: list[Issue], *, err: bool = False) -> None:
    for i in issues:
        click.secho(str(i), fg=LEVEL_COLORS[i.level], err=err)
    counts = count_by_level(issues)
    click.echo(
        f"{counts[Level.ERROR]} error(s), {counts[Level.WARNING]} warning(s), "
        f"{counts[Level.INFO]} info",
        err=err,
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Emit verbose logging.")
@click.option("--config", "-c", type=click.Path(path_type=Path), help="Override the config file location.")  # fmt: skip
@click.pass_context
def cli(cc: click.Context, verbose: bool, config: Path | None = None) -> None:
    """Prepare classical music releases for a trump upload."""
    cc.obj = Context(config=Config.parse(config_path_override=config))
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.getLogger("classical_tagger").setLevel(logging.DEBUG)
    install_signal_handlers(cc.obj.cancel)


@cli.command()
def version() -> None:
    """Print version."""
    click.echo(VERSION)


@cli.command()
# fmt: off
@click.option("--release-id", type=int, help="Discogs release id to fetch.")
@click.option("--artist", type=str, help="Artist to search Discogs for (with --album).")
@click.option("--album", type=str, help="Album title to search Discogs for (with --artist).")
@click.option("--dir", "directory", type=click.Path(path_type=Path, exists=True, file_okay=False), help="Release directory to read tags from.")
@click.option("--output", "-o", type=click.Path(path_type=Path, dir_okay=False), help="Write the release JSON here instead of stdout.")
@click.option("--force", is_flag=True, help="Keep album artists with unknown roles and write the JSON despite errors.")
# fmt: on
@click.pass_obj
def extract(
    ctx: Context,
    release_id: int | None,
    artist: str | None,
    album: str | None,
    directory: Path | None,
    output: Path | None,
    force: bool,
) -> None:
    """Extract reference metadata from Discogs and/or the local files into release JSON."""
    from classical_tagger.extract import extract_release
    from classical_tagger.reconcile import ReconciliationError
    from classical_tagger.releases import save_release

    if (artist is None) != (album is None):
        raise click.UsageError("--artist and --album must be given together")
    result = extract_release(
        ctx.config,
        release_id=release_id,
        artist=artist,
        album=album,
        directory=directory,
        force=force,
        cancel=ctx.cancel,
    )
    # With the JSON on stdout, the report goes to stderr.
    print_issues(result.issues, err=output is None)
    if result.release is None:
        raise ReconciliationError("Could not reconcile the release: rerun with --force to keep unknown roles")  # fmt: skip
    if output is not None:
        save_release(result.release, output)
        click.echo(f"Wrote {output}")
    else:
        click.echo(result.release.to_json())
    if has_errors(result.issues) and not force:
        sys.exit(1)


@cli.command()
# fmt: off
@click.option("--dir", "directory", type=click.Path(path_type=Path, exists=True, file_okay=False), required=True, help="Release directory to validate.")
@click.option("--metadata", "-m", type=click.Path(path_type=Path, exists=True, dir_okay=False), help="Validate this release JSON instead of the tags.")
@click.option("--reference", "-r", type=click.Path(path_type=Path, exists=True, dir_okay=False), help="Compare the release with this reference release JSON.")
# fmt: on
@click.pass_obj
def validate(_: Context, directory: Path, metadata: Path | None, reference: Path | None) -> None:
    """Check a release directory against the classical music rules."""
    from classical_tagger.validate import validate_directory

    _, issues = validate_directory(directory, metadata, reference=reference)
    print_issues(issues)
    if has_errors(issues):
        sys.exit(1)


@cli.command()
# fmt: off
@click.option("--metadata", "-m", type=click.Path(path_type=Path, exists=True, dir_okay=False), required=True, help="Release JSON to apply.")
@click.option("--dir", "directory", type=click.Path(path_type=Path, exists=True, file_okay=False), required=True, help="Release directory to tag.")
@click.option("--dry-run", is_flag=True, help="Print the changes without writing anything.")
@click.option("--force", is_flag=True, help="Tag even if the metadata fails validation.")
@click.option("--no-rename", is_flag=True, help="Do not rename files.")
@click.option("--rename-dir", is_flag=True, help="Rename the directory to its compliant name.")
# fmt: on
@click.pass_obj
def tag(
    ctx: Context,
    metadata: Path,
    directory: Path,
    dry_run: bool,
    force: bool,
    no_rename: bool,
    rename_dir: bool,
) -> None:
    """Write tags and compliant file names from release JSON."""
    from classical_tagger.tagger import tag_release

    plan, final_dir = tag_release(
        metadata,
        directory,
        dry_run=dry_run,
        force=force,
        rename=not no_rename,
        rename_dir=rename_dir,
        cancel=ctx.cancel,
    )
    if plan.issues:
        print_issues(plan.issues)
    if dry_run:
        click.echo(plan.describe())
        return
    written = sum(1 for tp in plan.tracks if tp.writes)
    renamed = sum(1 for tp in plan.tracks if tp.renames)
    click.echo(f"Tagged {written} file(s), renamed {renamed} file(s)")
    if final_dir.name != plan.dirname:
        click.echo(f"Compliant directory name: {plan.dirname}")
    else:
        click.echo(f"Directory: {final_dir}")


@cli.command()
# fmt: off
@click.option("--dir", "directory", type=click.Path(path_type=Path, exists=True, file_okay=False), required=True, help="Release directory to upload.")
@click.option("--torrent", "torrent_id", type=int, required=True, help="Tracker id of the torrent to trump.")
@click.option("--metadata", "-m", type=click.Path(path_type=Path, exists=True, dir_okay=False), help="Release JSON (default: metadata.json in the directory, else the tags).")
@click.option("--reason", type=str, help="Trump reason appended to the description.")
@click.option("--dry-run", is_flag=True, help="Print the upload payload without uploading.")
@click.option("--clear-cache", is_flag=True, help="Drop cached tracker responses first.")
# fmt: on
@click.pass_obj
def upload(
    ctx: Context,
    directory: Path,
    torrent_id: int,
    metadata: Path | None,
    reason: str | None,
    dry_run: bool,
    clear_cache: bool,
) -> None:
    """Create a torrent and upload it as a trump of an existing torrent."""
    from classical_tagger.upload import describe_request, upload_release

    result = upload_release(
        ctx.config,
        directory,
        torrent_id,
        metadata=metadata,
        reason=reason,
        dry_run=dry_run,
        clear_cache=clear_cache,
        cancel=ctx.cancel,
    )
    if result.issues:
        print_issues(result.issues)
    if dry_run:
        click.echo(describe_request(result.request))
        return
    click.secho(f"Uploaded trump of torrent {torrent_id}", fg="green")


@cli.group()
def cache() -> None:
    """Manage the API response cache."""


@cache.command()
@click.option("--namespace", "-n", type=str, default="", help="Only clear this namespace (e.g. discogs, redacted).")  # fmt: skip
@click.pass_obj
def clear(ctx: Context, namespace: str) -> None:
    """Delete cached responses and torrent files."""
    removed = ctx.config.cache().clear(namespace)
    click.echo(f"Removed {removed} cache entries")


@cli.group()
def config() -> None:
    """Manage the configuration file."""


@config.command()
@click.pass_obj
def init(ctx: Context) -> None:
    """Write a sample configuration file."""
    from classical_tagger.config import write_sample_config

    path = write_sample_config(ctx.config.path or CONFIG_PATH)
    click.echo(f"Wrote {path}")


@config.command()
@click.pass_obj
def show(ctx: Context) -> None:
    """Print the effective configuration with credentials masked."""
    click.echo(f"# {ctx.config.path or CONFIG_PATH}")
    click.echo(yaml.safe_dump(ctx.config.dump(), sort_keys=False).rstrip())
