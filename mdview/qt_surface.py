"""PySide6 implementation of the rendering surface and owner-thread dispatcher."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable

from PySide6.QtCore import QFile, QIODevice, QObject, Qt, QUrl, Signal, Slot
from PySide6.QtWebChannel import QWebChannel
from PySide6.QtWebEngineCore import QWebEnginePage, QWebEngineScript, QWebEngineSettings
from PySide6.QtWebEngineWidgets import QWebEngineView

from .dispatch import Dispatcher
from .errors import ScriptExecutionFailure, SurfaceNotReady
from .surface import POST_MESSAGE_FUNCTION, RenderingSurface, ScriptCallback

logger = logging.getLogger(__name__)

BRIDGE_OBJECT_NAME = "mdviewBridge"
_QWEBCHANNEL_RESOURCE = ":/qtwebchannel/qwebchannel.js"


def _read_qwebchannel_js() -> str:
    resource = QFile(_QWEBCHANNEL_RESOURCE)
    if not resource.open(QIODevice.OpenModeFlag.ReadOnly):
        logger.warning("qwebchannel.js resource unavailable; page messages are disabled")
        return ""
    try:
        return bytes(resource.readAll()).decode("utf-8")
    finally:
        resource.close()


def _bridge_bootstrap_js() -> str:
    # Messages posted before the channel connects are queued, not dropped.
    return """
(() => {
  if (window.__POST_FN__) return;
  const pending = [];
  let bridge = null;
  window.__POST_FN__ = (message) => {
    const text = String(message);
    if (bridge) {
      bridge.postMessage(text);
    } else {
      pending.push(text);
    }
  };
  const connect = () => {
    if (typeof QWebChannel === "undefined" || typeof qt === "undefined") {
      console.error("mdview: web channel transport missing");
      return;
    }
    new QWebChannel(qt.webChannelTransport, (channel) => {
      bridge = channel.objects.__BRIDGE__;
      while (pending.length) bridge.postMessage(pending.shift());
    });
  };
  connect();
})();
""".replace("__POST_FN__", POST_MESSAGE_FUNCTION).replace("__BRIDGE__", BRIDGE_OBJECT_NAME)


class _PageBridge(QObject):
    """Object exposed to page scripts over the web channel."""

    messagePosted = Signal(str)

    @Slot(str)
    def postMessage(self, message: str) -> None:
        self.messagePosted.emit(message)


class _NavigationGuardPage(QWebEnginePage):
    """Route link clicks through the surface before the engine follows them."""

    def __init__(self, surface: WebEngineSurface, parent=None):
        super().__init__(parent)
        self._surface = surface

    def acceptNavigationRequest(self, url, nav_type, is_main_frame):
        if nav_type != QWebEnginePage.NavigationType.NavigationTypeLinkClicked or not is_main_frame:
            return super().acceptNavigationRequest(url, nav_type, is_main_frame)
        if not self._surface.request_navigation(url.toString()):
            return False
        return super().acceptNavigationRequest(url, nav_type, is_main_frame)


class WebEngineSurface(RenderingSurface):
    """Rendering surface backed by a ``QWebEngineView``."""

    def __init__(self, view: QWebEngineView | None = None):
        super().__init__()
        self.view = view or QWebEngineView()
        self._ready = False

        page = _NavigationGuardPage(self, self.view)
        self.view.setPage(page)
        # Documents load as local HTML; CDN scripts and sibling images must
        # still resolve.
        settings = self.view.settings()
        settings.setAttribute(QWebEngineSettings.WebAttribute.LocalContentCanAccessRemoteUrls, True)
        settings.setAttribute(QWebEngineSettings.WebAttribute.LocalContentCanAccessFileUrls, True)
        settings.setAttribute(QWebEngineSettings.WebAttribute.JavascriptEnabled, True)

        self._bridge = _PageBridge(self.view)
        self._bridge.messagePosted.connect(self._on_message_posted)
        self._channel = QWebChannel(page)
        self._channel.registerObject(BRIDGE_OBJECT_NAME, self._bridge)
        page.setWebChannel(self._channel)
        self._install_bridge_script(page)

        self.view.loadFinished.connect(self._on_load_finished)
        self.view.urlChanged.connect(self._on_url_changed)

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def current_url(self) -> str:
        # After setHtml the page URL is the base URL, which identifies the document.
        url = self.view.url()
        if url.scheme() == "data":
            return ""
        return url.toString()

    @property
    def can_go_back(self) -> bool:
        return self.view.history().canGoBack()

    @property
    def can_go_forward(self) -> bool:
        return self.view.history().canGoForward()

    def load_markup(self, html_doc: str, base_path: str | os.PathLike[str] | None = None) -> None:
        if base_path is not None:
            base_url = QUrl.fromLocalFile(str(Path(base_path).resolve()))
        else:
            base_url = QUrl.fromLocalFile(f"{Path.cwd()}/")
        self.view.setHtml(html_doc, base_url)

    def run_script(self, script: str, callback: ScriptCallback | None = None) -> None:
        if not self._ready:
            raise SurfaceNotReady("web view has not finished its first load")
        try:
            page = self.view.page()
            if callback is None:
                page.runJavaScript(script)
            else:
                page.runJavaScript(script, 0, callback)
        except RuntimeError as exc:
            # Raised once the underlying C++ page has been deleted.
            raise ScriptExecutionFailure(str(exc)) from exc

    def go_back(self) -> None:
        self.view.back()

    def go_forward(self) -> None:
        self.view.forward()

    def _install_bridge_script(self, page: QWebEnginePage) -> None:
        channel_js = _read_qwebchannel_js()
        script = QWebEngineScript()
        script.setName("mdview-bridge")
        script.setInjectionPoint(QWebEngineScript.InjectionPoint.DocumentCreation)
        script.setWorldId(QWebEngineScript.ScriptWorldId.MainWorld)
        script.setRunsOnSubFrames(False)
        script.setSourceCode(channel_js + "\n" + _bridge_bootstrap_js())
        page.scripts().insert(script)

    def _on_load_finished(self, ok: bool) -> None:
        if not self._ready:
            self._ready = True
            logger.debug("Web engine surface ready")
            self.ready.emit()
        self.history_changed.emit()
        self.load_finished.emit(bool(ok))

    def _on_url_changed(self, _url: QUrl) -> None:
        self.history_changed.emit()

    def _on_message_posted(self, message: str) -> None:
        try:
            self.message_received.emit(message)
        except Exception:
            logger.exception("message_received handler failed for %.80r", message)


class _QueuedCallPoster(QObject):
    posted = Signal(object, object)

    def __init__(self, parent=None):
        super().__init__(parent)
        self.posted.connect(self._run, Qt.ConnectionType.QueuedConnection)

    def _run(self, fn: Callable[..., Any], args: Any) -> None:
        try:
            fn(*args)
        except Exception:
            logger.exception("Posted callback %r failed", fn)


class QtDispatcher(Dispatcher):
    """Post callbacks to the thread that created this dispatcher (the GUI thread)."""

    def __init__(self, parent: QObject | None = None):
        self._poster = _QueuedCallPoster(parent)

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        self._poster.posted.emit(fn, args)

