"""In-document search driven through the rendering surface.

The page does the actual highlighting with mark.js, injected lazily. A search
runs in two halves: ``search()`` sends a mark command tagged with a
generation number, and the page later posts back
``{"type": "search-results", "generation": N, "total": T}``. Replies whose
generation is not the current one are stale and dropped, which is how a
newer search or a clear cancels an older one.
"""

from __future__ import annotations

import json
import logging
from typing import Iterable

from .errors import InvalidArgument
from .events import EventHook
from .surface import POST_MESSAGE_FUNCTION, RenderingSurface

logger = logging.getLogger(__name__)

SEARCH_RESULTS_MESSAGE = "search-results"
HIT_CLASS = "mdview-search-hit"
CURRENT_HIT_CLASS = "mdview-search-current"
MARKJS_CDN_URL = "https://cdn.jsdelivr.net/npm/mark.js@8.11.1/dist/mark.min.js"
# The mark command polls for the injected library instead of sleeping here.
HIGHLIGHTER_WAIT_ATTEMPTS = 50
HIGHLIGHTER_WAIT_INTERVAL_MS = 60

_JS_STRING_ESCAPES = {
    "\\": "\\\\",
    "'": "\\'",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def escape_script_string(text: str | None) -> str:
    """Escape ``text`` for embedding inside a quoted JavaScript string."""
    if not text:
        return ""
    escaped = "".join(_JS_STRING_ESCAPES.get(ch, ch) for ch in text)
    # Keep a literal "</script" from terminating an inline script block.
    return escaped.replace("</", "<\\/")


def _highlighter_bootstrap_script(sources: list[str]) -> str:
    sources_json = json.dumps(sources)
    return """
(() => {
  // Inject mark.js once, trying each source until one loads.
  if (typeof Mark === "undefined" && !document.getElementById("mdview-markjs")) {
    const sources = __SOURCES_JSON__;
    const tryLoad = (index) => {
      if (index >= sources.length) {
        console.error("mdview: could not load mark.js");
        return;
      }
      const script = document.createElement("script");
      script.id = index === 0 ? "mdview-markjs" : "mdview-markjs-" + index;
      script.src = sources[index];
      script.onerror = () => tryLoad(index + 1);
      document.head.appendChild(script);
    };
    tryLoad(0);
  }
  if (!document.getElementById("mdview-search-css")) {
    const style = document.createElement("style");
    style.id = "mdview-search-css";
    style.textContent = `
      mark.__HIT_CLASS__ { background-color: #f5d34f; color: #111827; padding: 0 1px; border-radius: 2px; }
      mark.__HIT_CLASS__.__CURRENT_CLASS__ { background-color: #f6a05f; color: #ffffff; }
    `;
    document.head.appendChild(style);
  }
})();
""".replace("__SOURCES_JSON__", sources_json).replace("__HIT_CLASS__", HIT_CLASS).replace(
        "__CURRENT_CLASS__", CURRENT_HIT_CLASS
    )


def _mark_script(escaped_term: str, generation: int) -> str:
    return """
(() => {
  const term = '__TERM__';
  const generation = __GENERATION__;
  const post = (total) => {
    const send = window.__POST_FN__;
    if (typeof send === "function") {
      send(JSON.stringify({ type: "__MESSAGE_TYPE__", generation: generation, total: total }));
    }
  };
  let attempts = 0;
  const run = () => {
    if (typeof Mark === "undefined") {
      attempts += 1;
      if (attempts > __MAX_ATTEMPTS__) {
        console.error("mdview: mark.js unavailable, search skipped");
        post(0);
        return;
      }
      setTimeout(run, __INTERVAL_MS__);
      return;
    }
    try {
      const root = document.querySelector("main") || document.body;
      const instance = new Mark(root);
      instance.unmark({
        done: () => {
          instance.mark(term, {
            className: "__HIT_CLASS__",
            separateWordSearch: false,
            caseSensitive: false,
            done: (total) => post(total),
          });
        },
      });
    } catch (e) {
      console.error("mdview search error:", e);
      post(0);
    }
  };
  run();
})();
""".replace("__TERM__", escaped_term).replace("__GENERATION__", str(int(generation))).replace(
        "__POST_FN__", POST_MESSAGE_FUNCTION
    ).replace("__MESSAGE_TYPE__", SEARCH_RESULTS_MESSAGE).replace(
        "__MAX_ATTEMPTS__", str(HIGHLIGHTER_WAIT_ATTEMPTS)
    ).replace("__INTERVAL_MS__", str(HIGHLIGHTER_WAIT_INTERVAL_MS)).replace("__HIT_CLASS__", HIT_CLASS)


def _scroll_script(index: int) -> str:
    return """
(() => {
  const marks = document.querySelectorAll("mark.__HIT_CLASS__");
  const target = marks[__INDEX__];
  if (!target) return false;
  marks.forEach((m) => m.classList.remove("__CURRENT_CLASS__"));
  target.classList.add("__CURRENT_CLASS__");
  target.scrollIntoView({ behavior: "smooth", block: "center", inline: "nearest" });
  return true;
})();
""".replace("__HIT_CLASS__", HIT_CLASS).replace("__CURRENT_CLASS__", CURRENT_HIT_CLASS).replace(
        "__INDEX__", str(int(index))
    )


_UNMARK_SCRIPT = """
(() => {
  const root = document.querySelector("main") || document.body;
  if (!root) return 0;
  if (typeof Mark !== "undefined") {
    new Mark(root).unmark();
    return 0;
  }
  // Library never loaded on this page: unwrap any leftover marks by hand.
  const marks = root.querySelectorAll("mark.__HIT_CLASS__");
  for (const mark of marks) {
    const parent = mark.parentNode;
    if (!parent) continue;
    parent.replaceChild(document.createTextNode(mark.textContent || ""), mark);
    parent.normalize();
  }
  return marks.length;
})();
""".replace("__HIT_CLASS__", HIT_CLASS)


class SearchController:
    """Own the search session and keep the page's highlights in step with it."""

    def __init__(self, surface: RenderingSurface, highlighter_sources: Iterable[str] | None = None):
        if surface is None:
            raise InvalidArgument("surface cannot be None")
        self._surface = surface
        sources = [source for source in (highlighter_sources or []) if source]
        self._highlighter_sources = list(dict.fromkeys(sources or [MARKJS_CDN_URL]))
        self._term = ""
        self._total_matches = 0
        self._current_match_index = -1
        self._highlighter_loaded = False
        self._generation = 0
        self.results_changed = EventHook("results_changed")
        self._unsubscribe_messages = surface.message_received.subscribe(self.on_message)

    @property
    def term(self) -> str:
        return self._term

    @property
    def total_matches(self) -> int:
        return self._total_matches

    @property
    def current_match_index(self) -> int:
        return self._current_match_index

    @property
    def current_match(self) -> int:
        """1-based position for display; 0 when there are no matches."""
        if self._total_matches <= 0:
            return 0
        return self._current_match_index + 1

    @property
    def has_results(self) -> bool:
        return self._total_matches > 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def highlighter_loaded(self) -> bool:
        return self._highlighter_loaded

    def search(self, term: str | None) -> None:
        if term is None or not term.strip():
            self.clear()
            return
        if not self._surface.is_ready:
            logger.debug("Cannot search for %r: rendering surface not ready", term)
            return

        self._term = term
        self._current_match_index = 0
        self._total_matches = 0
        self._generation += 1

        self._ensure_highlighter_loaded()
        script = _mark_script(escape_script_string(term), self._generation)
        if self._run_script(script, "search"):
            logger.debug("Search issued for %r (generation %d)", term, self._generation)

    def on_message(self, payload) -> None:
        """Handle a message posted by the page; non-search messages are ignored."""
        message = payload
        if isinstance(payload, (str, bytes)):
            try:
                message = json.loads(payload)
            except ValueError:
                logger.debug("Ignoring non-JSON surface message: %.80r", payload)
                return
        if not isinstance(message, dict) or message.get("type") != SEARCH_RESULTS_MESSAGE:
            return

        generation = message.get("generation")
        if generation != self._generation:
            logger.debug("Dropping stale search results (generation %r, current %d)", generation, self._generation)
            return

        total = message.get("total")
        if isinstance(total, bool) or not isinstance(total, (int, float)) or total < 0:
            logger.warning("Malformed search results message: %r", message)
            return

        self._total_matches = int(total)
        self._current_match_index = 0 if self._total_matches > 0 else -1
        logger.info("Search results: %d matches for %r", self._total_matches, self._term)
        if self._total_matches > 0:
            self._scroll_to_match(0)
        self._emit_results()

    def next_match(self) -> None:
        if self._total_matches == 0:
            return
        self._current_match_index = (self._current_match_index + 1) % self._total_matches
        self._scroll_to_match(self._current_match_index)
        self._emit_results()
        logger.debug("Next match: %d/%d", self.current_match, self._total_matches)

    def previous_match(self) -> None:
        if self._total_matches == 0:
            return
        self._current_match_index = (self._current_match_index - 1 + self._total_matches) % self._total_matches
        self._scroll_to_match(self._current_match_index)
        self._emit_results()
        logger.debug("Previous match: %d/%d", self.current_match, self._total_matches)

    def clear(self) -> None:
        self._reset_session()
        if self._surface.is_ready:
            self._run_script(_UNMARK_SCRIPT, "clear")
        else:
            logger.debug("Search cleared without surface; no marks to remove")
        self._emit_results()
        logger.debug("Search cleared")

    def reset_for_new_document(self) -> None:
        """Forget the session after the surface loaded a different page."""
        self._reset_session()
        # Scripts injected into the previous page are gone with it.
        self._highlighter_loaded = False
        self._emit_results()

    def detach(self) -> None:
        self._unsubscribe_messages()

    def _reset_session(self) -> None:
        self._term = ""
        self._total_matches = 0
        self._current_match_index = -1
        self._generation += 1

    def _emit_results(self) -> None:
        self.results_changed.emit(self.current_match, self._total_matches)

    def _ensure_highlighter_loaded(self) -> None:
        if self._highlighter_loaded:
            return
        if self._run_script(_highlighter_bootstrap_script(self._highlighter_sources), "highlighter injection"):
            self._highlighter_loaded = True
            logger.info("Search highlighter injected")

    def _scroll_to_match(self, index: int) -> None:
        self._run_script(_scroll_script(index), "scroll to match")

    def _run_script(self, script: str, purpose: str) -> bool:
        try:
            self._surface.run_script(script)
        except Exception:
            logger.error("Script for %s failed", purpose, exc_info=True)
            return False
        return True
