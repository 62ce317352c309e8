"""Exception taxonomy shared by the navigation, watch and search controllers."""

from __future__ import annotations


class MdViewError(Exception):
    """Base class for mdview errors."""


class InvalidArgument(MdViewError, ValueError):
    """A required input was missing or blank. Raised at the call site."""


class NotFound(MdViewError, FileNotFoundError):
    """A document that should be loaded does not exist on disk."""


class SurfaceNotReady(MdViewError):
    """The rendering surface has not finished initializing."""


class WatchFailure(MdViewError):
    """File watch setup or teardown failed."""


class ScriptExecutionFailure(MdViewError):
    """A script sent to the rendering surface raised."""


class ConfigError(MdViewError):
    """The config file could not be parsed."""


def require_text(value: str | None, name: str) -> str:
    """Return ``value`` unchanged, or raise when it is None/blank."""
    if value is None or not str(value).strip():
        raise InvalidArgument(f"{name} cannot be empty")
    return str(value)
