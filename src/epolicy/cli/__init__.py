from __future__ import annotations

import typer

from . import linkage
from .common import configure_logging

app = typer.Typer(help="Link and unlink Power Platform network injection enterprise policies.")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress at INFO level."),
) -> None:
    configure_logging(verbose)


app.command("link")(linkage.link)
app.command("unlink")(linkage.unlink)
app.command("status")(linkage.status)
app.command("diagnose")(linkage.diagnose)


__all__ = ["app"]
