import sys

import click

from classical_tagger.cli import cli
from classical_tagger.common import ClassicalTaggerExpectedError


def main() -> None:
    try:
        cli()
    except ClassicalTaggerExpectedError as e:
        click.secho(f"{e.__class__.__module__}.{e.__class__.__name__}: ", fg="red", nl=False)
        click.secho(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
