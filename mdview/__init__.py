"""mdview: a live-reloading markdown viewer with link navigation and in-page search.

The core (links, watcher, history, search, navigation) has no Qt dependency;
``mdview.qt_surface`` and ``mdview.app`` provide the PySide6 host.
"""

from .config import ViewerConfig, load_config
from .errors import InvalidArgument, MdViewError, NotFound
from .history import HistoryController
from .links import LinkKind, classify, file_exists, is_inline_resource, resolve
from .navigation import NavigationOrchestrator
from .renderer import MarkdownRenderer, read_document
from .search import SearchController
from .surface import RenderingSurface
from .watcher import ChangeWatcher

__version__ = "0.1.0"

__all__ = [
    "ChangeWatcher",
    "HistoryController",
    "InvalidArgument",
    "LinkKind",
    "MarkdownRenderer",
    "MdViewError",
    "NavigationOrchestrator",
    "NotFound",
    "RenderingSurface",
    "SearchController",
    "ViewerConfig",
    "classify",
    "file_exists",
    "is_inline_resource",
    "load_config",
    "read_document",
    "resolve",
]
