"""Config commands -- inspect, change and check pagecrawl settings.

``show`` prints the user config file, or with ``--effective`` the settings a
crawl started here would use after ``./pagecrawl.json`` and ``PAGECRAWL_*``
are applied. ``check`` looks for problems that would make a crawl fail
before it sends a request.
"""

from __future__ import annotations

import typer

from pagecrawl.config import (
    check_config,
    global_config_path,
    load_global_config,
    resolve_config,
    set_config_value,
)
from pagecrawl.exceptions import ConfigError
from pagecrawl.exit_codes import EXIT_INVALID_USAGE
from pagecrawl.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(
    effective: bool = typer.Option(
        False, "--effective", help="Include project config and PAGECRAWL_* overrides."
    ),
) -> None:
    """Show configuration.

    Example::

        pagecrawl config show
        pagecrawl --json config show --effective
    """
    try:
        config = resolve_config() if effective else load_global_config()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    info(f"Config file: {global_config_path()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Dotted key, e.g. 'cache.redownload_newer_versions'."),
    value: str = typer.Argument(help="New value."),
) -> None:
    """Set a value in the user config file.

    Example::

        pagecrawl config set api.token_source env:NOTION_TOKEN
        pagecrawl config set cache.redownload_newer_versions true
        pagecrawl config set request.max_retries 5
    """
    try:
        set_config_value(key, value)
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    success(f"Set {key} = {value}")


@config_app.command("check")
def config_check() -> None:
    """Check the effective configuration without contacting the API.

    Verifies the base URL, the token source and that the page cache
    directory is writable. Exits non-zero if anything is wrong.

    Example::

        PAGECRAWL_CACHE_DIR=/mnt/pages pagecrawl config check
    """
    try:
        problems = check_config(resolve_config())
    except ConfigError as exc:
        problems = [str(exc)]
    for problem in problems:
        error(problem)
    if problems:
        raise typer.Exit(code=ConfigError.exit_code)
    success("Configuration OK.")
