"""Wires link clicks, file changes, history and search to one rendering surface."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable

from .config import ViewerConfig
from .dispatch import Dispatcher, ImmediateDispatcher
from .errors import MdViewError, NotFound, require_text
from .events import EventHook
from .history import HistoryController
from .links import LinkKind, classify, file_exists, is_inline_resource, link_to_path_text, resolve, split_fragment
from .renderer import MarkdownRenderer, read_document
from .search import SearchController, escape_script_string
from .surface import RenderingSurface
from .watcher import ChangeWatcher

logger = logging.getLogger(__name__)

DocumentLoader = Callable[[Path], str]
ExternalOpener = Callable[[str], object]


def _scroll_to_anchor_script(anchor_id: str) -> str:
    return """
(() => {
  const id = '__ID__';
  let target = document.getElementById(id);
  if (!target) {
    try { target = document.getElementById(decodeURIComponent(id)); } catch (e) {}
  }
  if (!target) {
    target = document.getElementsByName(id)[0] || null;
  }
  if (!target) return false;
  target.scrollIntoView({ behavior: "smooth", block: "start" });
  return true;
})();
""".replace("__ID__", escape_script_string(anchor_id))


def _path_key(path: Path | str) -> str:
    return os.path.normcase(os.path.abspath(os.fspath(path)))


def _same_file(first: Path, second: Path) -> bool:
    return os.path.normcase(os.path.realpath(first)) == os.path.normcase(os.path.realpath(second))


class NavigationOrchestrator:
    """Load documents into the surface and react to what happens inside it.

    Owns nothing but the current document path. Watcher notifications are
    posted through ``dispatcher`` so every state change happens on the owner
    thread; with the default ``ImmediateDispatcher`` they run inline.
    """

    def __init__(
        self,
        surface: RenderingSurface,
        watcher: ChangeWatcher,
        history: HistoryController,
        search: SearchController,
        renderer: MarkdownRenderer,
        config: ViewerConfig | None = None,
        dispatcher: Dispatcher | None = None,
        open_external: ExternalOpener | None = None,
        loader: DocumentLoader = read_document,
    ):
        self.surface = surface
        self.watcher = watcher
        self.history = history
        self.search = search
        self.renderer = renderer
        self.config = config or ViewerConfig()
        self._dispatcher = dispatcher or ImmediateDispatcher()
        self._open_external = open_external
        self._loader = loader

        self._current_path: Path | None = None
        self._pending_fragment = ""
        self._pending_search_term = ""
        # True between load_markup and its load_finished; any other finished
        # load came from the surface's own history.
        self._load_in_flight = False
        self._disposed = False

        self.document_loaded = EventHook("document_loaded")
        self.load_failed = EventHook("load_failed")
        self.file_changed = EventHook("file_changed")

        self._unsubscribers = [
            surface.navigation_requested.subscribe(self.on_navigation_requested),
            surface.load_finished.subscribe(self._on_load_finished),
            watcher.file_changed.subscribe(self._dispatcher.wrap(self.on_file_changed)),
        ]

    @property
    def current_path(self) -> Path | None:
        return self._current_path

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def load_document(self, path: str | os.PathLike[str] | None, *, keep_search: bool = False) -> bool:
        """Render ``path`` into the surface and watch it. Return success.

        Failures are reported through ``load_failed`` and logged; only a blank
        ``path`` raises.
        """
        path_text = require_text(os.fspath(path) if path is not None else None, "path")
        target = Path(os.path.abspath(path_text))
        if self._disposed:
            logger.debug("load_document(%s) ignored after dispose", target)
            return False

        if not file_exists(target):
            return self._fail(target, f"File not found: {target}")

        try:
            markdown_text = self._loader(target)
        except NotFound as exc:
            return self._fail(target, str(exc))
        except OSError as exc:
            return self._fail(target, f"Could not read {target.name}: {exc}")

        try:
            html_doc = self.renderer.render_document(markdown_text, target, self.config.theme)
        except Exception as exc:
            logger.error("Rendering %s failed", target, exc_info=True)
            return self._fail(target, f"Could not render {target.name}: {exc}")

        # Set up before load_markup: a surface may report load_finished
        # before it returns.
        self._pending_search_term = self.search.term if keep_search else ""
        self.search.reset_for_new_document()
        self._load_in_flight = True
        try:
            self.surface.load_markup(html_doc, target)
        except Exception as exc:
            logger.error("Surface failed to load %s", target, exc_info=True)
            self._pending_search_term = ""
            self._load_in_flight = False
            return self._fail(target, f"Could not display {target.name}: {exc}")

        self._current_path = target
        if not (self.watcher.is_watching and self.watcher.watched_path == str(target)):
            self.watcher.watch(target)
        logger.info("Loaded %s (%d chars)", target, len(markdown_text))
        self.document_loaded.emit(target)
        return True

    def reload(self) -> bool:
        """Re-render the current document, keeping any active search."""
        if self._current_path is None:
            logger.debug("reload() with no current document")
            return False
        return self.load_document(self._current_path, keep_search=True)

    def on_navigation_requested(self, url: str) -> bool:
        """Decide a surface navigation: True lets the surface proceed."""
        if not url:
            return True
        if is_inline_resource(url):
            return True

        kind = classify(url)
        if kind is LinkKind.EXTERNAL_HTTP:
            self._open_external_link(url)
            return False
        if kind is LinkKind.ANCHOR:
            self.scroll_to_anchor(split_fragment(url)[1])
            return False
        if kind is LinkKind.LOCAL_DOCUMENT:
            self._follow_local_link(url)
            return False
        return True

    def scroll_to_anchor(self, anchor_id: str) -> None:
        if not anchor_id:
            return
        if not self.surface.is_ready:
            logger.debug("Cannot scroll to #%s: rendering surface not ready", anchor_id)
            return
        try:
            self.surface.run_script(_scroll_to_anchor_script(anchor_id))
        except Exception:
            logger.error("Scrolling to #%s failed", anchor_id, exc_info=True)

    def on_file_changed(self, path: str | os.PathLike[str]) -> None:
        """Reload after a watcher notification. Runs on the owner thread."""
        if self._disposed or self._current_path is None:
            return
        if _path_key(path) != _path_key(self._current_path):
            logger.debug("Ignoring change for %s; current document is %s", path, self._current_path)
            return
        logger.info("Auto-reloading %s", self._current_path)
        if self.reload():
            self.file_changed.emit(self._current_path)

    def go_back(self) -> None:
        self.history.go_back()

    def go_forward(self) -> None:
        self.history.go_forward()

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.watcher.dispose()
        self.history.detach()
        self.search.detach()
        self.document_loaded.clear()
        self.load_failed.clear()
        self.file_changed.clear()
        logger.debug("NavigationOrchestrator disposed")

    def _follow_local_link(self, url: str) -> None:
        path_part, fragment = split_fragment(url)
        link_path = link_to_path_text(path_part)
        if self._current_path is not None:
            base = self._current_path
        else:
            # Relative links with no open document resolve against the cwd.
            base = os.path.join(os.getcwd(), "")
        try:
            target = resolve(link_path, base)
        except MdViewError as exc:
            logger.warning("Cannot resolve link %s: %s", url, exc)
            return

        if self._current_path is not None and _path_key(target) == _path_key(self._current_path):
            self.scroll_to_anchor(fragment)
            return
        self._pending_fragment = fragment
        if not self.load_document(target):
            self._pending_fragment = ""

    def _open_external_link(self, url: str) -> None:
        if not self.config.open_external_links or self._open_external is None:
            logger.info("External link not opened: %s", url)
            return
        logger.info("Opening external link: %s", url)
        try:
            self._open_external(url)
        except Exception:
            logger.error("Failed to open external link %s", url, exc_info=True)

    def _on_load_finished(self, ok: bool = True) -> None:
        own_load, self._load_in_flight = self._load_in_flight, False
        fragment, self._pending_fragment = self._pending_fragment, ""
        term, self._pending_search_term = self._pending_search_term, ""
        if not ok:
            logger.warning("Surface reported a failed load for %s", self._current_path)
            return
        if not own_load:
            self._on_history_load()
            return
        if fragment:
            self.scroll_to_anchor(fragment)
        if term:
            self.search.search(term)

    def _on_history_load(self) -> None:
        """Adopt the page the surface restored from its back/forward history.

        The restored page is freshly built: it has no marks and no injected
        highlighter, and it may show a different document than the last one
        loaded here.
        """
        self.search.reset_for_new_document()
        shown = self._displayed_document()
        if shown is None:
            return
        if self._current_path is not None and _same_file(shown, self._current_path):
            return
        logger.info("History navigation to %s", shown)
        self._current_path = shown
        self.watcher.watch(shown)
        self.document_loaded.emit(shown)

    def _displayed_document(self) -> Path | None:
        url = self.surface.current_url
        if not url or classify(url) is not LinkKind.LOCAL_DOCUMENT:
            return None
        path_part = split_fragment(url)[0]
        return Path(os.path.abspath(link_to_path_text(path_part)))

    def _fail(self, target: Path, message: str) -> bool:
        logger.warning("%s", message)
        self.load_failed.emit(target, message)
        return False
