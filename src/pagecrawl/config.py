"""Where pagecrawl keeps its files, and how its settings are layered.

Directories follow the XDG Base Directory layout on Linux and the BSDs and
live under ``~/.pagecrawl/`` elsewhere:

======  ==============================  ===========================
kind    XDG                             other platforms
======  ==============================  ===========================
config  ``~/.config/pagecrawl``         ``~/.pagecrawl``
cache   ``~/.cache/pagecrawl``          ``~/.pagecrawl/cache``
data    ``~/.local/share/pagecrawl``    ``~/.pagecrawl/logs``
======  ==============================  ===========================

The effective :class:`~pagecrawl.models.GlobalConfig` is built by
:func:`resolve_config` from layers of partial JSON objects, later layers
winning: defaults, the user file, ``./pagecrawl.json``, ``PAGECRAWL_*``
variables, then command-line flags. The merged object is validated once.
"""

from __future__ import annotations

import contextlib
import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ValidationError

from pagecrawl.exceptions import ConfigError
from pagecrawl.models import GlobalConfig

_APP_NAME = "pagecrawl"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "pagecrawl.json"
_PAGES_SUBDIR = "pages"

# kind -> (XDG variable, default below $HOME, subdirectory of ~/.pagecrawl)
_APP_DIRS: dict[str, tuple[str, str, str]] = {
    "config": ("XDG_CONFIG_HOME", ".config", ""),
    "cache": ("XDG_CACHE_HOME", ".cache", "cache"),
    "data": ("XDG_DATA_HOME", ".local/share", "logs"),
}

ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "PAGECRAWL_BASE_URL": ("api", "base_url"),
    "PAGECRAWL_CACHE_DIR": ("cache", "directory"),
}
"""Environment variables mapped to the ``(section, field)`` they override."""

TOKEN_ENV = "PAGECRAWL_TOKEN"


# --- directories ---


def _is_xdg_platform() -> bool:
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _app_dir(kind: str) -> Path:
    env_var, home_default, fallback_subdir = _APP_DIRS[kind]
    if _is_xdg_platform():
        base = os.environ.get(env_var) or Path.home() / home_default
        path = Path(base) / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}" / fallback_subdir
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    return _app_dir("config")


def get_cache_dir() -> Path:
    return _app_dir("cache")


def get_data_dir() -> Path:
    """Directory for crash logs."""
    return _app_dir("data")


def get_pages_cache_dir(config: GlobalConfig) -> Path:
    """Return the page cache directory for *config*.

    ``cache.directory`` wins when set; otherwise ``pages/`` under
    :func:`get_cache_dir`. Not created here; the cache store does that when
    it loads.
    """
    if config.cache.directory:
        return Path(config.cache.directory).expanduser()
    return get_cache_dir() / _PAGES_SUBDIR


def global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


# --- files ---


def _atomic_write(path: Path, text: str) -> None:
    """Replace *path* with *text* through a sibling temp file and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise


def _read_json_object(path: Path, what: str) -> Optional[dict[str, Any]]:
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Invalid {what} at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid {what} at {path}: must be a JSON object")
    return data


def load_global_config() -> GlobalConfig:
    """Load the user config file, or defaults when there is none.

    Raises:
        ConfigError: If the file is not a valid config object.
    """
    path = global_config_path()
    data = _read_json_object(path, "global config") or {}
    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    _atomic_write(global_config_path(), config.model_dump_json(indent=2) + "\n")


def load_project_config() -> Optional[dict[str, Any]]:
    """Return the partial config in ``./pagecrawl.json``, if present.

    Raises:
        ConfigError: If the file is not a JSON object.
    """
    return _read_json_object(Path.cwd() / _PROJECT_CONFIG_FILENAME, "project config")


# --- layering ---


def _merge(base: dict[str, Any], overlay: dict[str, Any]) -> None:
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value


def _layer(values: dict[tuple[str, str], Any]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for (section, field), value in values.items():
        if value is not None:
            layer.setdefault(section, {})[field] = value
    return layer


def _env_layer() -> dict[str, Any]:
    return _layer({target: os.environ.get(var) or None for var, target in ENV_OVERRIDES.items()})


def resolve_config(
    cli_base_url: Optional[str] = None,
    cli_cache_dir: Optional[str] = None,
    cli_read_cache: Optional[bool] = None,
    cli_redownload_newer: Optional[bool] = None,
) -> GlobalConfig:
    """Return the effective configuration for one invocation.

    Arguments left as ``None`` do not override lower layers.

    Raises:
        ConfigError: If a config file is invalid or the merged result does
            not validate.
    """
    merged = load_global_config().model_dump(mode="json")
    cli = _layer(
        {
            ("api", "base_url"): cli_base_url,
            ("cache", "directory"): cli_cache_dir,
            ("cache", "read_cache"): cli_read_cache,
            ("cache", "redownload_newer_versions"): cli_redownload_newer,
        }
    )
    for layer in (load_project_config() or {}, _env_layer(), cli):
        _merge(merged, layer)
    try:
        return GlobalConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(
            f"Invalid configuration (from {_PROJECT_CONFIG_FILENAME} or PAGECRAWL_*): {exc}"
        ) from exc


def set_config_value(key: str, value: str) -> GlobalConfig:
    """Set ``section.field`` in the user config file and save it.

    *value* is validated against the field's type, so ``true``/``false``
    and integers are accepted where the field needs them.

    Returns:
        The saved configuration.

    Raises:
        ConfigError: If *key* names no field or *value* does not validate.
    """
    config = load_global_config()
    section, _, field = key.partition(".")
    group = getattr(config, section, None)
    if not isinstance(group, BaseModel) or field not in type(group).model_fields:
        raise ConfigError(f"Unknown config key: {key}")

    data = config.model_dump(mode="json")
    data[section][field] = value
    try:
        updated = GlobalConfig.model_validate(data)
    except ValidationError as exc:
        reason = exc.errors()[0]["msg"]
        raise ConfigError(f"Invalid value for {key}: {value!r} ({reason})") from exc
    save_global_config(updated)
    return updated


def check_config(config: GlobalConfig) -> list[str]:
    """Return the problems that would stop a crawl with *config*.

    Checks the API base URL, the token source and whether the page cache
    directory can be created and written. Credentials are not read.
    """
    problems: list[str] = []

    try:
        url = httpx.URL(config.api.base_url)
    except httpx.InvalidURL as exc:
        problems.append(f"api.base_url is not a URL: {exc}")
    else:
        if url.scheme not in ("http", "https") or not url.host:
            problems.append(f"api.base_url must be an http(s) URL, got {config.api.base_url!r}")

    if config.api.token_source:
        problem = _check_credential_source(config.api.token_source)
        if problem:
            problems.append(f"api.token_source: {problem}")

    pages_dir = get_pages_cache_dir(config)
    existing = pages_dir
    while not existing.exists() and existing != existing.parent:
        existing = existing.parent
    if existing == pages_dir and not pages_dir.is_dir():
        problems.append(f"Cache directory {pages_dir} exists but is not a directory")
    elif not existing.is_dir() or not os.access(existing, os.W_OK | os.X_OK):
        problems.append(f"Cache directory {pages_dir} is not writable")

    return problems


# --- credentials ---


def _check_credential_source(source: str) -> Optional[str]:
    kind, _, arg = source.partition(":")
    if kind == "env" and arg:
        return None if arg in os.environ else f"environment variable {arg} is not set"
    if kind == "file" and arg:
        path = Path(arg).expanduser()
        return None if path.is_file() else f"credential file not found: {path}"
    if source == "prompt":
        return None
    return f"unknown credential source format: {source}"


def resolve_credential(source: str) -> str:
    """Read a secret from ``env:VAR``, ``file:/path`` or ``prompt``.

    File contents are stripped of surrounding whitespace. ``prompt`` needs an
    interactive stdin.

    Raises:
        ConfigError: If the source is malformed or cannot be read.
    """
    problem = _check_credential_source(source)
    if problem:
        raise ConfigError(problem[0].upper() + problem[1:])

    kind, _, arg = source.partition(":")
    if kind == "env":
        return os.environ[arg]
    if kind == "file":
        path = Path(arg).expanduser()
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc
    if not sys.stdin.isatty():
        raise ConfigError("Cannot prompt for the session token: stdin is not a TTY")
    return getpass.getpass("Session token: ")


def resolve_token(config: GlobalConfig) -> Optional[str]:
    """Return the session token, or ``None`` for anonymous access.

    ``PAGECRAWL_TOKEN`` takes precedence over ``api.token_source``.
    """
    env_token = os.environ.get(TOKEN_ENV)
    if env_token:
        return env_token
    if config.api.token_source:
        return resolve_credential(config.api.token_source)
    return None
