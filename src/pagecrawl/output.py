"""Terminal output for pagecrawl.

stdout carries data only: page listings, cache statistics and config dumps,
rendered as a rich table, tab-separated text or JSON. Everything else goes to
stderr. Status lines for the user come from :class:`OutputManager`; library
modules log through ``logging.getLogger(__name__)`` and
:func:`configure_logging` routes the ``pagecrawl`` logger to a
:class:`rich.logging.RichHandler`.

``NO_COLOR`` (any value), ``TERM=dumb`` and ``--no-color`` all switch colour
off, and with it the rich table renderer when the format is automatic.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from pagecrawl.events import ErrorEvent, Event, describe

if TYPE_CHECKING:
    from pagecrawl.models import Page

_LOGGER_NAME = "pagecrawl"

PAGE_COLUMNS = ("id", "version", "title", "children")


class OutputFormat(str, Enum):
    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Renders command results to stdout and status lines to stderr.

    Args:
        format: ``AUTO`` picks ``RICH`` on a colour-capable TTY, else ``PLAIN``.
        no_color: Force colour off regardless of the environment.
        quiet: Drop info, success and progress lines. Warnings and errors
            are always shown.
        verbose: Also show every crawl event, not only failures.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self.no_color = no_color or _should_disable_color()
        self.quiet = quiet
        self.verbose = verbose
        if format == OutputFormat.AUTO:
            format = OutputFormat.PLAIN if self.no_color or not _is_tty() else OutputFormat.RICH
        self.format = format
        # No explicit file: rich resolves sys.stdout/sys.stderr on every write.
        self._out = Console(no_color=self.no_color, force_terminal=format == OutputFormat.RICH)
        self._err = Console(stderr=True, no_color=self.no_color)

    # -- stdout ---------------------------------------------------------

    def format_response(self, data: Any) -> None:
        """Write a dict or list to stdout in the active format."""
        if self.format == OutputFormat.JSON:
            self._write(json.dumps(data, indent=2, ensure_ascii=False, default=str))
        elif self.format == OutputFormat.RICH:
            self._out.print_json(data=data, default=str)
        elif isinstance(data, dict):
            for key, value in data.items():
                self._write(f"{key}\t{value}")
        else:
            for item in data:
                values = item.values() if isinstance(item, dict) else [item]
                self._write("\t".join(str(v) for v in values))

    def print_table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[Any]],
        title: Optional[str] = None,
    ) -> None:
        if self.format == OutputFormat.JSON:
            self.format_response([dict(zip(headers, row)) for row in rows])
        elif self.format == OutputFormat.PLAIN:
            for line in [headers, *rows]:
                self._write("\t".join(str(cell) for cell in line))
        else:
            table = Table(*headers, title=title, header_style="bold cyan")
            for row in rows:
                table.add_row(*(str(cell) for cell in row))
            self._out.print(table)

    def print_pages(self, pages: Sequence[Page], title: str = "Pages") -> None:
        """List downloaded pages.

        JSON output keeps the full child id lists; the table formats show
        only how many children each page has.
        """
        if self.format == OutputFormat.JSON:
            self.format_response(
                [
                    {"id": p.id, "version": p.version, "title": p.title, "children": p.child_ids}
                    for p in pages
                ]
            )
            return
        rows = [[p.id, p.version, p.title, len(p.child_ids)] for p in pages]
        self.print_table(PAGE_COLUMNS, rows, title=title)

    def _write(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    # -- stderr ---------------------------------------------------------

    def info(self, message: str) -> None:
        if not self.quiet:
            self._status(message)

    def success(self, message: str) -> None:
        if not self.quiet:
            self._status(message, style="green")

    def progress(self, message: str) -> None:
        """Status line shown only when stdout is an interactive terminal."""
        if not self.quiet and _is_tty():
            self._status(message, style="dim")

    def warning(self, message: str) -> None:
        self._status(message, style="yellow", label="Warning:")

    def error(self, message: str) -> None:
        self._status(message, style="bold red", label="Error:")

    def event(self, event: Event) -> None:
        """Report a crawl event: failures always, the rest with ``--verbose``."""
        if isinstance(event, ErrorEvent):
            self.warning(event.message)
        elif self.verbose:
            self._status(describe(event), style="dim")

    def _status(self, message: str, style: str = "", label: str = "") -> None:
        if self.no_color:
            print(f"{label} {message}" if label else message, file=sys.stderr, flush=True)
        elif label:
            self._err.print(Text.assemble((label, style), " ", message), highlight=False)
        else:
            self._err.print(Text(message, style=style), highlight=False)


def configure_logging(verbose: bool = False, no_color: bool = False) -> None:
    """Send ``pagecrawl.*`` log records to stderr through rich.

    ``DEBUG`` and up with *verbose*, otherwise ``WARNING`` and up. Calling it
    again replaces the handler installed by the previous call.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    handler = RichHandler(
        console=Console(stderr=True, no_color=no_color or _should_disable_color()),
        show_time=False,
        show_path=False,
        markup=False,
    )
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


# -- process-wide instance -----------------------------------------------

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed :class:`OutputManager`, creating a default one."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: Optional[OutputManager]) -> None:
    """Install *output* for the module-level helpers. ``None`` uninstalls."""
    global _output
    _output = output


def format_response(data: Any) -> None:
    get_output().format_response(data)


def print_table(
    headers: Sequence[str],
    rows: Sequence[Sequence[Any]],
    title: Optional[str] = None,
) -> None:
    get_output().print_table(headers, rows, title)


def print_pages(pages: Sequence[Page], title: str = "Pages") -> None:
    get_output().print_pages(pages, title)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def progress(message: str) -> None:
    get_output().progress(message)


def error(message: str) -> None:
    get_output().error(message)


def report_event(event: Event) -> None:
    """Event observer that forwards to the installed :class:`OutputManager`."""
    get_output().event(event)
