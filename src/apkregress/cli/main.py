# Copyright (c) Syntropy Systems
"""Main CLI entry point for apkregress."""

import typer

from apkregress.cli.doctor import doctor
from apkregress.cli.logs import logs
from apkregress.cli.run import run

app = typer.Typer(
    name="apkregress",
    help=(
        "Test reverse dependencies of a package against an APK repository "
        "and report regressions."
    ),
    no_args_is_help=True,
    add_completion=False,
)

# Register commands
_ = app.command()(run)
_ = app.command()(logs)
_ = app.command()(doctor)


if __name__ == "__main__":
    app()
