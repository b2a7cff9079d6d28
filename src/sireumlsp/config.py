"""
Settings resolution for sireumlsp.

Settings are resolved in cascade:

1. Explicit client configuration supplied via ``initializationOptions`` or
   ``workspace/didChangeConfiguration`` (the ``sireum`` section).
2. A ``.sireumlsp.toml`` project config file in the workspace root.
3. Server defaults: built-in values, optionally overridden on the command
   line (``--feedback-root``, ``--strict-protocol``...).

Keys use the client's camelCase spelling (``iconsDir``, ``debounceMs``...);
snake_case spellings are accepted too.
"""
from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

CONFIG_FILENAME = '.sireumlsp.toml'

COVERAGE_COLOR = 'rgba(129, 62, 200, 0.2)'


@dataclass(frozen=True)
class Settings:
    icons_dir: str | None = None
    coverage_color: str = COVERAGE_COLOR
    case_insensitive_uris: bool | None = None   # None → platform default
    debounce_ms: int = 50
    step_ms: int = 50
    feedback_root: str | None = None            # None → system temp dir
    strict_protocol: bool = False
    show_summary: bool = True
    log_level: str | None = None


_FIELD_TYPES = {
    'icons_dir': str,
    'coverage_color': str,
    'case_insensitive_uris': bool,
    'debounce_ms': int,
    'step_ms': int,
    'feedback_root': str,
    'strict_protocol': bool,
    'show_summary': bool,
    'log_level': str,
}

_CAMEL_RE = re.compile(r'(?<!^)(?=[A-Z])')


def _snake(key: str) -> str:
    return _CAMEL_RE.sub('_', key).lower()


def _coerce(raw: dict) -> dict:
    """Keep the keys of *raw* that name a setting and have an acceptable type."""
    out = {}
    for key, value in raw.items():
        name = _snake(key)
        expected = _FIELD_TYPES.get(name)
        if expected is None:
            continue
        if value is None:
            out[name] = None
            continue
        if expected is int and isinstance(value, bool):
            logger.warning('Ignoring setting %s=%r: expected %s', key, value, expected.__name__)
            continue
        if not isinstance(value, expected):
            logger.warning('Ignoring setting %s=%r: expected %s', key, value, expected.__name__)
            continue
        out[name] = value
    return out


def _read_project_config(workspace_root: str | None) -> dict:
    """Parse ``.sireumlsp.toml`` in *workspace_root*, or return ``{}``."""
    if not workspace_root:
        return {}
    try:
        import tomllib  # Python 3.11+
    except ImportError:
        import tomli as tomllib

    config_path = Path(workspace_root) / CONFIG_FILENAME
    if not config_path.exists():
        return {}

    try:
        data = tomllib.loads(config_path.read_text(encoding='utf-8'))
    except (OSError, tomllib.TOMLDecodeError):
        logger.warning('Could not read %s', config_path, exc_info=True)
        return {}
    return _coerce(data)


def _client_section(options) -> dict:
    """Extract the ``sireum`` section from client-supplied options.

    Accepts either the section itself or a full settings object that nests
    it under ``sireum``.
    """
    if options is None:
        return {}
    if not isinstance(options, dict):
        # Some clients send a typed object; try attribute access
        options = getattr(options, '__dict__', {}) or {}
    section = options.get('sireum', options)
    return _coerce(section) if isinstance(section, dict) else {}


class SettingsResolver:
    """Holds the effective :class:`Settings` for the session."""

    def __init__(self, workspace_root: str | None = None, defaults: Settings | None = None):
        self._workspace_root = workspace_root
        self._defaults = defaults or Settings()
        self._client: dict = {}
        self._settings = self._resolve()

    @property
    def workspace_root(self) -> str | None:
        return self._workspace_root

    @property
    def defaults(self) -> Settings:
        return self._defaults

    @property
    def settings(self) -> Settings:
        return self._settings

    def update_client(self, options) -> Settings:
        """Merge newly received client options and re-resolve."""
        self._client.update(_client_section(options))
        self._settings = self._resolve()
        return self._settings

    def _resolve(self) -> Settings:
        values = _read_project_config(self._workspace_root)
        values.update(self._client)
        # None from the client means "unset": fall back to the default.
        defaults = self._defaults
        for name, value in list(values.items()):
            if value is None:
                values[name] = getattr(defaults, name)
        return dataclasses.replace(defaults, **values)
