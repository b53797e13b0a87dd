"""Cache commands -- inspect and clear the page cache.

Provides the ``pagecrawl cache`` sub-command group. Both commands work on the
directory the crawl commands would use, so ``--cache-dir`` and
``PAGECRAWL_CACHE_DIR`` apply here as well.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import typer

from pagecrawl.exceptions import PagecrawlError
from pagecrawl.output import error, format_response, info, print_table, success

if TYPE_CHECKING:
    from pagecrawl.cache import CacheStore


cache_app = typer.Typer(no_args_is_help=True)

_CACHE_DIR_OPT = typer.Option(None, "--cache-dir", help="Page cache directory.")


def _open_store(cache_dir: Optional[str]) -> CacheStore:
    from pagecrawl.cache import CacheStore
    from pagecrawl.config import get_pages_cache_dir, resolve_config

    config = resolve_config(cli_cache_dir=cache_dir)
    return CacheStore.open(get_pages_cache_dir(config))


@cache_app.command("show")
def cache_show(
    cache_dir: Optional[str] = _CACHE_DIR_OPT,
    pages: bool = typer.Option(False, "--pages", help="List every cached page."),
) -> None:
    """Show cache location and statistics.

    Example::

        pagecrawl cache show
        pagecrawl cache show --pages
    """
    try:
        store = _open_store(cache_dir)
    except PagecrawlError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    format_response(store.stats())
    if pages:
        rows = [[pid, str(len(store.records(pid)))] for pid in store.page_ids()]
        print_table(["page", "records"], rows, title="Cached pages")


@cache_app.command("clear")
def cache_clear(
    cache_dir: Optional[str] = _CACHE_DIR_OPT,
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Delete every cached page file.

    Example::

        pagecrawl cache clear --force
    """
    try:
        store = _open_store(cache_dir)
    except PagecrawlError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if not force:
        confirmed = typer.confirm(f"Delete cached pages in {store.directory}?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    try:
        removed = store.clear()
    except PagecrawlError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    success(f"Removed {removed} cached pages.")
