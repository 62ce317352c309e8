"""Link classification and path resolution for rendered-document navigation.

Everything here is a pure function of its inputs except ``file_exists``, which
always re-checks the disk. Nothing is cached: the base document changes with
every navigation.
"""

from __future__ import annotations

import enum
import logging
import os
from pathlib import Path
from urllib.parse import unquote, urlsplit

from .errors import require_text

logger = logging.getLogger(__name__)

MARKDOWN_SUFFIXES = (".md", ".markdown")
# Hosts whose requests come from rendered content (diagrams, CDN scripts,
# raw images) rather than from the user following a link.
INLINE_RESOURCE_HOSTS = (
    "plantuml.com",
    "kroki.io",
    "jsdelivr.net",
    "cdnjs.cloudflare.com",
    "unpkg.com",
    "githubusercontent.com",
)
IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp")


class LinkKind(enum.Enum):
    UNKNOWN = "unknown"
    EXTERNAL_HTTP = "external-http"
    LOCAL_DOCUMENT = "local-document"
    ANCHOR = "anchor"
    INLINE_RESOURCE = "inline-resource"


def split_fragment(link: str) -> tuple[str, str]:
    """Split ``doc.md?x=1#section`` into ``("doc.md", "section")``."""
    path_part, _sep, fragment = link.partition("#")
    path_part = path_part.partition("?")[0]
    return path_part, fragment


def _is_markdown_name(text: str) -> bool:
    return text.casefold().endswith(MARKDOWN_SUFFIXES)


def classify(link: str | None) -> LinkKind:
    """Classify a raw link string. Total: every input maps to a kind."""
    if link is None:
        return LinkKind.UNKNOWN
    text = link.strip()
    if not text:
        return LinkKind.UNKNOWN

    folded = text.casefold()
    if folded.startswith(("http://", "https://")):
        return LinkKind.EXTERNAL_HTTP
    if text.startswith("#"):
        return LinkKind.ANCHOR
    if _is_markdown_name(text):
        return LinkKind.LOCAL_DOCUMENT
    # `doc.md#intro` and `file:///x/doc.md` still point at a markdown file.
    path_part, _fragment = split_fragment(text)
    if path_part and _is_markdown_name(path_part):
        return LinkKind.LOCAL_DOCUMENT
    return LinkKind.UNKNOWN


def link_to_path_text(link: str) -> str:
    """Strip a ``file://`` scheme and percent-encoding from a local link."""
    parts = urlsplit(link)
    if parts.scheme.casefold() == "file":
        path_text = unquote(parts.path)
        # file:///C:/x.md on Windows arrives as /C:/x.md.
        if os.name == "nt" and len(path_text) > 2 and path_text[0] == "/" and path_text[2] == ":":
            path_text = path_text[1:]
        return path_text
    return unquote(link)


def resolve(link_path: str | None, base_document_path: str | os.PathLike[str] | None) -> Path:
    """Resolve ``link_path`` against the directory of ``base_document_path``.

    Absolute links are only normalized. Raises ``InvalidArgument`` when either
    input is blank.
    """
    link_text = require_text(link_path, "link_path")
    base_text = require_text(os.fspath(base_document_path) if base_document_path is not None else None,
                             "base_document_path")

    if os.path.isabs(link_text):
        return Path(os.path.abspath(link_text))

    base_directory = os.path.dirname(base_text) or os.curdir
    return Path(os.path.abspath(os.path.join(base_directory, link_text)))


def is_inline_resource(url: str | None) -> bool:
    """Return whether ``url`` is an asset fetched by rendered content."""
    if url is None or not url.strip():
        return False
    text = url.strip()
    parts = urlsplit(text)
    host = (parts.hostname or "").casefold()
    for known in INLINE_RESOURCE_HOSTS:
        if host == known or host.endswith("." + known):
            return True
    # Links without a parseable host (bare paths, data URIs) fall back to a
    # plain substring check, matching how the asset hosts appear in markup.
    if not host and any(known in text.casefold() for known in INLINE_RESOURCE_HOSTS):
        return True
    path = (parts.path if parts.scheme else split_fragment(text)[0]).casefold()
    return path.endswith(IMAGE_SUFFIXES)


def file_exists(path: str | os.PathLike[str] | None, original_link: str | None = None) -> bool:
    """Check ``path`` on disk and log the outcome."""
    if path is None or not os.fspath(path).strip():
        logger.warning("file_exists: resolved path is empty | original link: %s", original_link)
        return False

    candidate = Path(path)
    if not candidate.is_file():
        logger.warning("File not found: %s | original link: %s", candidate, original_link)
        return False

    try:
        size = candidate.stat().st_size
    except OSError as exc:
        logger.warning("File exists but could not be inspected: %s (%s)", candidate, exc)
    else:
        logger.info("File exists: %s | %d bytes", candidate, size)
    return True
