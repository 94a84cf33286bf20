"""Command-line entry point for the branch-narrator action."""

import typer

from .. import __version__
from ._common import console

app = typer.Typer(
    name="narrator-action",
    help="Branch Narrator Action - risk reports and baseline deltas for pull requests",
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"narrator-action {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Branch Narrator Action."""


# Import subcommands to register them
from .run import run as _run  # noqa: F401, E402
from .resolve import resolve_version as _resolve_version  # noqa: F401, E402
from .compare import compare as _compare  # noqa: F401, E402
