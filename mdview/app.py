from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from PySide6.QtCore import QUrl
from PySide6.QtGui import QDesktopServices, QKeySequence, QShortcut
from PySide6.QtWidgets import (
    QApplication,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QPushButton,
    QSizePolicy,
    QVBoxLayout,
    QWidget,
)

from . import __version__
from .config import LOG_LEVELS, ViewerConfig, load_config
from .history import HistoryController
from .navigation import NavigationOrchestrator
from .qt_surface import QtDispatcher, WebEngineSurface
from .renderer import THEMES, MarkdownRenderer, markjs_script_sources
from .search import SearchController
from .watcher import ChangeWatcher

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Send mdview logs to stderr at ``level``."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


def open_in_system_browser(url: str) -> bool:
    return QDesktopServices.openUrl(QUrl(url))


class MdViewWindow(QMainWindow):
    def __init__(self, config: ViewerConfig, initial_path: Path | None = None):
        super().__init__()
        self.config = config
        self.setWindowTitle("mdview")
        self.resize(config.window_width, config.window_height)

        self.surface = WebEngineSurface()
        self.watcher = ChangeWatcher(debounce_seconds=config.debounce_seconds)
        self.history = HistoryController(self.surface)
        self.search = SearchController(self.surface, markjs_script_sources(config.highlighter_script))
        self.navigator = NavigationOrchestrator(
            self.surface,
            self.watcher,
            self.history,
            self.search,
            MarkdownRenderer(config.theme),
            config=config,
            dispatcher=QtDispatcher(self),
            open_external=open_in_system_browser,
        )

        self.back_btn = QPushButton("Back")
        self.back_btn.setToolTip("Back (Alt+Left)")
        self.back_btn.clicked.connect(self.navigator.go_back)
        self.forward_btn = QPushButton("Forward")
        self.forward_btn.setToolTip("Forward (Alt+Right)")
        self.forward_btn.clicked.connect(self.navigator.go_forward)
        refresh_btn = QPushButton("Refresh")
        refresh_btn.setToolTip("Reload document (F5)")
        refresh_btn.clicked.connect(self._refresh_current_document)
        self.path_label = QLabel("")

        self.search_input = QLineEdit()
        self.search_input.setPlaceholderText("Search in document")
        self.search_input.setMinimumWidth(220)
        self.search_input.returnPressed.connect(self._run_search_now)
        prev_btn = QPushButton("<")
        prev_btn.setToolTip("Previous match (Shift+F3)")
        prev_btn.clicked.connect(self.search.previous_match)
        next_btn = QPushButton(">")
        next_btn.setToolTip("Next match (F3)")
        next_btn.clicked.connect(self.search.next_match)
        clear_btn = QPushButton("Clear")
        clear_btn.clicked.connect(self._clear_search)
        self.match_count_label = QLabel("0/0")

        top_bar = QHBoxLayout()
        top_bar.setContentsMargins(0, 0, 0, 0)
        top_bar.addWidget(self.back_btn)
        top_bar.addWidget(self.forward_btn)
        top_bar.addWidget(refresh_btn)
        top_bar.addWidget(self.path_label, 1)
        top_bar.addSpacing(16)
        top_bar.addWidget(QLabel("Search: "))
        top_bar.addWidget(self.search_input)
        top_bar.addWidget(prev_btn)
        top_bar.addWidget(next_btn)
        top_bar.addWidget(self.match_count_label)
        top_bar.addWidget(clear_btn)

        top_bar_widget = QWidget()
        top_bar_widget.setLayout(top_bar)
        top_bar_widget.setSizePolicy(QSizePolicy.Expanding, QSizePolicy.Fixed)

        central = QWidget()
        layout = QVBoxLayout(central)
        layout.addWidget(top_bar_widget)
        layout.addWidget(self.surface.view, 1)
        self.setCentralWidget(central)

        self._bind_shortcuts()
        self._update_navigation_buttons(False, False)

        self.history.navigation_state_changed.subscribe(self._update_navigation_buttons)
        self.search.results_changed.subscribe(self._update_match_count)
        self.navigator.document_loaded.subscribe(self._on_document_loaded)
        self.navigator.load_failed.subscribe(self._on_load_failed)
        self.navigator.file_changed.subscribe(self._on_file_reloaded)

        if initial_path is not None:
            self.navigator.load_document(initial_path)
        else:
            placeholder = MarkdownRenderer.placeholder_html("Open a markdown file: mdview PATH", config.theme)
            self.surface.load_markup(placeholder)
            self.statusBar().showMessage("No document open")

    def _bind_shortcuts(self) -> None:
        bindings = [
            (QKeySequence.StandardKey.Find, self._focus_search),
            (QKeySequence("F3"), self.search.next_match),
            (QKeySequence("Shift+F3"), self.search.previous_match),
            (QKeySequence("Escape"), self._clear_search),
            (QKeySequence("Alt+Left"), self.navigator.go_back),
            (QKeySequence("Alt+Right"), self.navigator.go_forward),
            (QKeySequence("F5"), self._refresh_current_document),
        ]
        self._shortcuts = []
        for sequence, handler in bindings:
            shortcut = QShortcut(QKeySequence(sequence), self)
            shortcut.activated.connect(handler)
            self._shortcuts.append(shortcut)

    def _focus_search(self) -> None:
        self.search_input.setFocus()
        self.search_input.selectAll()

    def _run_search_now(self) -> None:
        self.search.search(self.search_input.text())

    def _clear_search(self) -> None:
        self.search_input.clear()
        self.search.clear()

    def _refresh_current_document(self) -> None:
        if self.navigator.current_path is None:
            return
        self.statusBar().showMessage(f"Refreshing: {self.navigator.current_path.name}...")
        self.navigator.reload()

    def _update_navigation_buttons(self, can_back: bool, can_forward: bool) -> None:
        self.back_btn.setEnabled(bool(can_back))
        self.forward_btn.setEnabled(bool(can_forward))

    def _update_match_count(self, current: int, total: int) -> None:
        self.match_count_label.setText(f"{current}/{total}")
        if self.search.term and total == 0:
            self.statusBar().showMessage(f"No matches for {self.search.term!r}", 3000)

    def _on_document_loaded(self, path: Path) -> None:
        self.path_label.setText(str(path))
        self.setWindowTitle(f"{path.name} - mdview")
        self.statusBar().showMessage(f"Loaded {path.name}", 3000)

    def _on_load_failed(self, _path: Path, message: str) -> None:
        self.statusBar().showMessage(message, 5000)

    def _on_file_reloaded(self, path: Path) -> None:
        self.statusBar().showMessage(f"Auto-refreshed preview: {path.name} (file changed on disk)", 4500)

    def closeEvent(self, event) -> None:
        self.navigator.dispose()
        super().closeEvent(event)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mdview",
        description="View a markdown file with live reload, link navigation and in-page search.",
    )
    parser.add_argument("path", nargs="?", default=None, help="Markdown file to open.")
    parser.add_argument("--theme", choices=THEMES, default=None, help="Color theme (default: from ~/.mdview.cfg).")
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        type=str.upper,
        default=None,
        help="Logging level (default: from ~/.mdview.cfg, else INFO).",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    config = load_config().with_overrides(theme=args.theme, log_level=args.log_level)
    configure_logging(config.log_level)

    initial_path = None
    if args.path is not None:
        initial_path = Path(args.path).expanduser()
        if not initial_path.exists():
            print(f"Path does not exist: {initial_path}", file=sys.stderr)
            return 2
        if not initial_path.is_file():
            print(f"Path is not a file: {initial_path}", file=sys.stderr)
            return 2
        initial_path = initial_path.resolve()

    app = QApplication(sys.argv[:1] if argv is not None else sys.argv)
    app.setApplicationName("mdview")
    app.setDesktopFileName("mdview")

    window = MdViewWindow(config, initial_path)
    window.show()
    logger.debug("mdview started with config %s", config)
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
