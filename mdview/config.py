"""Viewer configuration, read once at startup and passed to whoever needs it."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Mapping

from .errors import ConfigError
from .renderer import THEMES

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".mdview.cfg"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def config_file_path() -> Path:
    return Path.home() / CONFIG_FILE_NAME


@dataclass(frozen=True)
class ViewerConfig:
    theme: str = "auto"
    debounce_ms: int = 100
    log_level: str = "INFO"
    # URL or local path of mark.js; empty means local bundle, then CDN.
    highlighter_script: str = ""
    open_external_links: bool = True
    window_width: int = 1024
    window_height: int = 768

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    def with_overrides(self, **changes) -> ViewerConfig:
        """Return a copy with non-None ``changes`` applied."""
        return replace(self, **{key: value for key, value in changes.items() if value is not None})


def _validated(name: str, value, default):
    """Coerce one raw config value, falling back to ``default`` when invalid."""
    if name == "theme":
        if isinstance(value, str) and value.strip().lower() in THEMES:
            return value.strip().lower()
    elif name == "log_level":
        if isinstance(value, str) and value.strip().upper() in LOG_LEVELS:
            return value.strip().upper()
    elif name == "open_external_links":
        if isinstance(value, bool):
            return value
    elif name in {"debounce_ms", "window_width", "window_height"}:
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            return value
    elif name == "highlighter_script":
        if isinstance(value, str):
            return value.strip()
    logger.warning("Ignoring invalid config value %s=%r; using %r", name, value, default)
    return default


def config_from_mapping(payload: Mapping) -> ViewerConfig:
    defaults = ViewerConfig()
    values = {}
    for field in fields(ViewerConfig):
        if field.name in payload:
            values[field.name] = _validated(field.name, payload[field.name], getattr(defaults, field.name))
    return replace(defaults, **values)


def parse_config_text(raw: str) -> ViewerConfig:
    if not raw.strip():
        return ViewerConfig()
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise ConfigError(f"Config is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError("Config must be a JSON object")
    return config_from_mapping(payload)


def load_config(path: Path | None = None, environ: Mapping[str, str] | None = None) -> ViewerConfig:
    """Load config from ``path`` (default ``~/.mdview.cfg``) plus env overrides.

    A missing, unreadable or malformed file falls back to defaults; the viewer
    must start regardless.
    """
    cfg_path = path if path is not None else config_file_path()
    config = ViewerConfig()
    try:
        if cfg_path.exists():
            config = parse_config_text(cfg_path.read_text(encoding="utf-8"))
    except ConfigError as exc:
        logger.warning("Ignoring config file %s: %s", cfg_path, exc)
    except OSError as exc:
        logger.warning("Could not read config file %s: %s", cfg_path, exc)

    env = os.environ if environ is None else environ
    env_theme = env.get("MDVIEW_THEME", "").strip()
    if env_theme:
        config = replace(config, theme=_validated("theme", env_theme, config.theme))
    env_markjs = env.get("MDVIEW_MARKJS_JS", "").strip()
    if env_markjs:
        config = replace(config, highlighter_script=env_markjs)
    return config
