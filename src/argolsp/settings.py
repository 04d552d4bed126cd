"""
Settings resolution for argolsp.

Settings come from a cascade of sources; later entries override earlier
ones key by key:

1. Built-in defaults (:class:`ServerSettings`).
2. A ``.argolsp.toml`` project config file in the workspace root.
3. Options given on the ``argolsp`` command line.
4. ``initializationOptions`` sent by the client with ``initialize``.
5. ``workspace/didChangeConfiguration`` (the ``argolsp`` section).

Keys may be spelled in camelCase (as editors send them) or snake_case (as
the TOML file usually does).  The project file is read once per workspace
root; call :meth:`SettingsResolver.reload_project_config` after it changes.

Example ``.argolsp.toml``::

    render_enabled = true
    helm_path = "/usr/local/bin/helm"
    render_timeout = 20

    [chart]
    max_depth = 3
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from pathlib import Path

from argolsp.services.render_cache import DEFAULT_CACHE_DIR

logger = logging.getLogger(__name__)

PROJECT_CONFIG = '.argolsp.toml'

_CAMEL_RE = re.compile(r'(?<!^)(?=[A-Z])')

# Nested/alternative spellings accepted from clients and the project file.
_ALIASES = {
    'render.enabled': 'render_enabled',
    'render.timeout': 'render_timeout',
    'render.cache_dir': 'cache_dir',
    'helm.path': 'helm_path',
    'chart.max_depth': 'max_chart_depth',
    'diagnostics.debounce': 'diagnostics_debounce',
}


@dataclass(frozen=True)
class ServerSettings:
    render_enabled: bool = True
    helm_path: str = 'helm'
    render_timeout: float = 10.0
    cache_dir: Path = DEFAULT_CACHE_DIR
    max_chart_depth: int = 5
    diagnostics_debounce: float = 0.5
    log_level: str | None = None


_FIELD_TYPES = {
    'render_enabled': bool,
    'helm_path': str,
    'render_timeout': float,
    'cache_dir': Path,
    'max_chart_depth': int,
    'diagnostics_debounce': float,
    'log_level': str,
}


# ---------------------------------------------------------------------------
# Normalisation helpers
# ---------------------------------------------------------------------------

def _snake(key: str) -> str:
    return _CAMEL_RE.sub('_', key).lower()


def _flatten(mapping: dict, prefix: str = '') -> dict[str, object]:
    flat: dict[str, object] = {}
    for key, value in mapping.items():
        name = f'{prefix}{_snake(str(key))}'
        if isinstance(value, dict):
            flat.update(_flatten(value, name + '.'))
        else:
            flat[name] = value
    return flat


def _coerce(name: str, value):
    kind = _FIELD_TYPES[name]
    if kind is bool:
        if isinstance(value, str):
            return value.strip().lower() in ('1', 'true', 'yes', 'on')
        return bool(value)
    if kind is Path:
        return Path(str(value)).expanduser()
    return kind(value)


def settings_from_mapping(mapping: dict | None) -> dict[str, object]:
    """Translate a raw settings mapping into ``ServerSettings`` field overrides.

    Unknown keys and values that cannot be coerced are skipped with a log
    message; a bad entry never discards the rest of the mapping.
    """
    if not isinstance(mapping, dict):
        return {}
    overrides: dict[str, object] = {}
    for key, value in _flatten(mapping).items():
        name = _ALIASES.get(key, key)
        if name not in _FIELD_TYPES:
            logger.debug('settings: ignoring unknown key %r', key)
            continue
        if value is None:
            continue
        try:
            overrides[name] = _coerce(name, value)
        except (TypeError, ValueError):
            logger.warning('settings: invalid value %r for %s', value, key)
    return overrides


# ---------------------------------------------------------------------------
# Project config file
# ---------------------------------------------------------------------------

def _read_project_config(workspace_root: str | None) -> dict[str, object]:
    """Parse ``.argolsp.toml`` in *workspace_root*; ``{}`` when absent or invalid."""
    if not workspace_root:
        return {}
    try:
        import tomllib  # Python 3.11+
    except ImportError:
        import tomli as tomllib  # fallback

    config_path = Path(workspace_root) / PROJECT_CONFIG
    if not config_path.is_file():
        return {}
    try:
        data = tomllib.loads(config_path.read_text(encoding='utf-8'))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning('settings: cannot read %s: %s', config_path, exc)
        return {}
    # Settings may sit at top level or under an [argolsp] table.
    if isinstance(data.get('argolsp'), dict):
        data = data['argolsp']
    return settings_from_mapping(data)


# ---------------------------------------------------------------------------
# SettingsResolver
# ---------------------------------------------------------------------------

class SettingsResolver:
    """Merges the settings sources and caches the result."""

    def __init__(self, workspace_root: str | None = None, command_line: dict | None = None):
        self._workspace_root = workspace_root
        self._command_line = settings_from_mapping(command_line)
        self._project: dict[str, object] | None = None
        self._init_options: dict[str, object] = {}
        self._client: dict[str, object] = {}
        self._settings: ServerSettings | None = None

    @property
    def workspace_root(self) -> str | None:
        return self._workspace_root

    # ------------------------------------------------------------------
    # Configuration entry points
    # ------------------------------------------------------------------

    def set_initialization_options(self, options) -> None:
        self._init_options = settings_from_mapping(options)
        self._settings = None

    def set_client_settings(self, section: dict | None) -> None:
        """Replace the ``didChangeConfiguration`` layer (``None`` clears it)."""
        self._client = settings_from_mapping(section)
        self._settings = None

    def reload_project_config(self) -> None:
        self._project = None
        self._settings = None

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self) -> ServerSettings:
        if self._settings is None:
            if self._project is None:
                self._project = _read_project_config(self._workspace_root)
            merged: dict[str, object] = {}
            for layer in (self._project, self._command_line, self._init_options, self._client):
                merged.update(layer)
            self._settings = replace(ServerSettings(), **merged)
            logger.debug('settings: %s', self._settings)
        return self._settings
