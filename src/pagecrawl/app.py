"""Typer application and console entry point for pagecrawl.

``crawl`` and ``download`` sit at the root; ``cache`` and ``config`` are
sub-command groups. The root callback turns the global flags into the
process-wide :class:`~pagecrawl.output.OutputManager` and logging setup.
:func:`main` is the ``pagecrawl`` console script.
"""

from __future__ import annotations

import sys
import traceback
from datetime import datetime
from pathlib import Path

import typer

from pagecrawl import __version__
from pagecrawl.commands.cache import cache_app
from pagecrawl.commands.config import config_app
from pagecrawl.commands.crawl import crawl_command, download_command
from pagecrawl.exceptions import PagecrawlError
from pagecrawl.exit_codes import EXIT_GENERIC_FAILURE
from pagecrawl.output import OutputFormat, OutputManager, configure_logging, error, set_output

EXIT_INTERRUPTED = 130

app = typer.Typer(
    name="pagecrawl",
    help="Download page trees from a block-based content service, with a local cache.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)
app.command("crawl")(crawl_command)
app.command("download")(download_command)
app.add_typer(cache_app, name="cache", help="Inspect or clear the page cache.")
app.add_typer(config_app, name="config", help="Show, change or check settings.")


def _show_version(value: bool) -> None:
    if value:
        typer.echo(f"pagecrawl {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False, "--version", callback=_show_version, is_eager=True, help="Show version and exit."
    ),
    json_output: bool = typer.Option(False, "--json", help="Write data as JSON."),
    plain_output: bool = typer.Option(False, "--plain", help="Write data as tab-separated text."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colour."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print data, warnings and errors."),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Report every crawl event and debug log line."
    ),
) -> None:
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        fmt = OutputFormat.AUTO
    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    configure_logging(verbose=verbose, no_color=no_color)


def _write_crash_log() -> Path:
    """Save the current traceback under the data directory."""
    from pagecrawl.config import get_data_dir

    log_dir = get_data_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    path = log_dir / f"crash-{datetime.now():%Y%m%d-%H%M%S}.log"
    path.write_text(traceback.format_exc(), encoding="utf-8")
    return path


def main() -> None:
    """Run the CLI and turn uncaught errors into exit codes.

    A :class:`~pagecrawl.exceptions.PagecrawlError` exits with its own code.
    Anything else is written to a crash log and exits with
    :data:`~pagecrawl.exit_codes.EXIT_GENERIC_FAILURE`. Ctrl-C exits with 130.
    """
    try:
        app()
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)
    except PagecrawlError as exc:
        error(str(exc))
        sys.exit(exc.exit_code)
    except Exception:
        error(f"Unexpected error. Crash log: {_write_crash_log()}")
        sys.exit(EXIT_GENERIC_FAILURE)
