"""Markdown to HTML rendering for the preview surface."""

from __future__ import annotations

import html
import json
import os
from pathlib import Path

from markdown_it import MarkdownIt
from mdit_py_plugins.anchors import anchors_plugin
from mdit_py_plugins.dollarmath import dollarmath_plugin

from .errors import NotFound

THEMES = ("auto", "light", "dark")

_LIGHT_VARS = """
      --fg: #1f2937;
      --bg: #f9fafb;
      --code-bg: #e5e7eb;
      --border: #d1d5db;
      --link: #0b57d0;
"""
_DARK_VARS = """
      --fg: #e5e7eb;
      --bg: #111827;
      --code-bg: #1f2937;
      --border: #374151;
      --link: #8ab4f8;
"""


def _theme_css(theme: str) -> str:
    if theme == "light":
        return f":root {{ color-scheme: light;{_LIGHT_VARS}    }}"
    if theme == "dark":
        return f":root {{ color-scheme: dark;{_DARK_VARS}    }}"
    return (
        f":root {{ color-scheme: light dark;{_LIGHT_VARS}    }}\n"
        f"    @media (prefers-color-scheme: dark) {{\n      :root {{{_DARK_VARS}      }}\n    }}"
    )


def _first_existing(candidates: list[Path]) -> Path | None:
    for candidate in candidates:
        try:
            if candidate.is_file():
                return candidate.resolve()
        except Exception:
            continue
    return None


def _local_first_sources(env_name: str, relative_names: list[str], cdn_urls: list[str]) -> list[str]:
    """Return a local bundle URI (env var, then beside the package) before CDN URLs."""
    candidates: list[Path] = []
    env_value = os.environ.get(env_name, "").strip()
    if env_value:
        candidates.append(Path(env_value).expanduser())
    app_dir = Path(__file__).resolve().parent
    for name in relative_names:
        candidates.append(app_dir / "vendor" / name)
        candidates.append(Path("/usr/share/javascript") / name)

    sources: list[str] = []
    local = _first_existing(candidates)
    if local is not None:
        sources.append(local.as_uri())
    sources.extend(cdn_urls)
    # Keep order while dropping duplicates.
    return list(dict.fromkeys(sources))


def mermaid_script_sources() -> list[str]:
    return _local_first_sources(
        "MDVIEW_MERMAID_JS",
        ["mermaid/mermaid.min.js"],
        ["https://cdn.jsdelivr.net/npm/mermaid@10/dist/mermaid.min.js"],
    )


def mathjax_script_sources() -> list[str]:
    return _local_first_sources(
        "MDVIEW_MATHJAX_JS",
        ["mathjax/es5/tex-svg.js"],
        ["https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-svg.js"],
    )


HIGHLIGHTJS_CDN = "https://cdnjs.cloudflare.com/ajax/libs/highlight.js/11.9.0"


def highlightjs_script_sources() -> list[str]:
    return _local_first_sources(
        "MDVIEW_HIGHLIGHTJS_JS",
        ["highlight.js/highlight.min.js"],
        [f"{HIGHLIGHTJS_CDN}/highlight.min.js"],
    )


def highlightjs_style_sources(style: str) -> list[str]:
    return _local_first_sources(
        "MDVIEW_HIGHLIGHTJS_" + style.upper().replace("-", "_") + "_CSS",
        [f"highlight.js/styles/{style}.min.css"],
        [f"{HIGHLIGHTJS_CDN}/styles/{style}.min.css"],
    )


def markjs_script_sources(configured: str | None = None) -> list[str]:
    """Sources for the search highlighter, honoring an explicit config value."""
    sources: list[str] = []
    if configured:
        configured_path = Path(configured).expanduser()
        if "://" in configured:
            sources.append(configured)
        elif configured_path.is_file():
            sources.append(configured_path.resolve().as_uri())
    sources.extend(
        _local_first_sources(
            "MDVIEW_MARKJS_JS",
            ["mark.js/mark.min.js"],
            ["https://cdn.jsdelivr.net/npm/mark.js@8.11.1/dist/mark.min.js"],
        )
    )
    return list(dict.fromkeys(sources))


class MarkdownRenderer:
    """Converts markdown to a standalone HTML page with Mermaid, MathJax and highlight.js."""

    def __init__(self, default_theme: str = "auto") -> None:
        self.default_theme = default_theme if default_theme in THEMES else "auto"
        self._md = MarkdownIt(
            "commonmark",
            {"html": True, "linkify": False, "typographer": True},
        ).enable("table").enable("strikethrough")
        # Parse $...$ / $$...$$ as math tokens before emphasis rules run,
        # so TeX underscores survive.
        self._md.use(dollarmath_plugin)
        # Heading ids make `#section` links and anchor scrolling work.
        self._md.use(anchors_plugin, min_level=1, max_level=6)

        default_fence = self._md.renderer.rules["fence"]

        def custom_math_inline(tokens, idx, options, env):
            # Keep TeX raw for MathJax, only HTML-escape unsafe chars.
            return f"${html.escape(tokens[idx].content)}$"

        def custom_math_block(tokens, idx, options, env):
            math_body = (tokens[idx].content or "").strip("\n")
            return f'<div class="mdview-math-block">$$\n{html.escape(math_body)}\n$$</div>\n'

        def custom_fence(tokens, idx, options, env):
            token = tokens[idx]
            info = token.info.strip().split(maxsplit=1)[0].lower() if token.info else ""
            if info == "mermaid":
                return f'<div class="mermaid">\n{html.escape(token.content)}\n</div>\n'
            return default_fence(tokens, idx, options, env)

        self._md.renderer.rules["fence"] = custom_fence
        self._md.renderer.rules["math_inline"] = custom_math_inline
        self._md.renderer.rules["math_block"] = custom_math_block

        self._mermaid_sources = mermaid_script_sources()
        self._mathjax_sources = mathjax_script_sources()
        self._highlight_sources = highlightjs_script_sources()
        self._highlight_styles = {
            "light": highlightjs_style_sources("github"),
            "dark": highlightjs_style_sources("github-dark"),
        }

    def _code_styles(self, theme: str) -> list[tuple[list[str], str]]:
        if theme in ("light", "dark"):
            return [(self._highlight_styles[theme], "all")]
        return [
            (self._highlight_styles["light"], "(prefers-color-scheme: light)"),
            (self._highlight_styles["dark"], "(prefers-color-scheme: dark)"),
        ]

    def render_body(self, markdown_text: str) -> str:
        return self._md.render(markdown_text or "")

    def render_document(
        self,
        markdown_text: str,
        base_path: str | os.PathLike[str] | None = None,
        theme: str | None = None,
    ) -> str:
        """Render a full page. ``base_path`` only supplies the title here;
        the surface resolves relative links against it."""
        theme = theme if theme in THEMES else self.default_theme
        body = self.render_body(markdown_text)
        title = Path(base_path).name if base_path else "mdview"
        has_mermaid = 'class="mermaid"' in body
        has_math = "$" in (markdown_text or "")
        has_code = "<pre><code" in body
        return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8"/>
  <meta name="viewport" content="width=device-width, initial-scale=1"/>
  <title>{html.escape(title)}</title>
  <style>
    {_theme_css(theme)}
    html, body {{
      margin: 0;
      background: var(--bg);
      color: var(--fg);
      font-family: "Noto Sans", "DejaVu Sans", "Segoe UI", sans-serif;
      line-height: 1.55;
    }}
    main {{
      max-width: 58rem;
      margin: 0 auto;
      padding: 1.5rem 2rem 4rem;
    }}
    a {{ color: var(--link); }}
    pre, code {{
      background: var(--code-bg);
      border-radius: 4px;
      font-family: "JetBrains Mono", "DejaVu Sans Mono", monospace;
    }}
    pre {{ padding: 0.8rem 1rem; overflow-x: auto; }}
    code {{ padding: 0.1rem 0.25rem; }}
    pre code {{ padding: 0; background: transparent; }}
    table {{ border-collapse: collapse; }}
    th, td {{ border: 1px solid var(--border); padding: 0.3rem 0.6rem; }}
    blockquote {{
      margin: 0;
      padding: 0 1rem;
      border-left: 4px solid var(--border);
    }}
    img {{ max-width: 100%; }}
  </style>
</head>
<body>
  <main>
{body}
  </main>
  <script>
  (() => {{
    const loadFirst = (sources, onLoad) => {{
      const tryLoad = (index) => {{
        if (index >= sources.length) return;
        const script = document.createElement("script");
        script.src = sources[index];
        script.onload = onLoad;
        script.onerror = () => tryLoad(index + 1);
        document.head.appendChild(script);
      }};
      tryLoad(0);
    }};
    const loadStyleFirst = (sources, media) => {{
      const tryLoad = (index) => {{
        if (index >= sources.length) return;
        const link = document.createElement("link");
        link.rel = "stylesheet";
        link.href = sources[index];
        link.media = media;
        link.onerror = () => {{ link.remove(); tryLoad(index + 1); }};
        document.head.appendChild(link);
      }};
      tryLoad(0);
    }};
    if ({json.dumps(has_math)}) {{
      window.MathJax = {{ tex: {{ inlineMath: [["$", "$"]], displayMath: [["$$", "$$"]] }} }};
      loadFirst({json.dumps(self._mathjax_sources)}, () => {{}});
    }}
    if ({json.dumps(has_code)}) {{
      for (const [sources, media] of {json.dumps(self._code_styles(theme))}) {{
        loadStyleFirst(sources, media);
      }}
      loadFirst({json.dumps(self._highlight_sources)}, () => window.hljs.highlightAll());
    }}
    if ({json.dumps(has_mermaid)}) {{
      loadFirst({json.dumps(self._mermaid_sources)}, () => {{
        const dark = window.matchMedia && window.matchMedia("(prefers-color-scheme: dark)").matches;
        const theme = {json.dumps(theme)} === "auto" ? (dark ? "dark" : "default")
          : ({json.dumps(theme)} === "dark" ? "dark" : "default");
        window.mermaid.initialize({{ startOnLoad: false, theme: theme }});
        window.mermaid.run();
      }});
    }}
  }})();
  </script>
</body>
</html>
"""

    @staticmethod
    def placeholder_html(message: str, theme: str = "auto") -> str:
        """Page shown while no document is open, styled like rendered documents."""
        theme = theme if theme in THEMES else "auto"
        return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8"/>
  <title>mdview</title>
  <style>
    {_theme_css(theme)}
    html, body {{
      margin: 0;
      height: 100%;
      background: var(--bg);
      color: var(--fg);
      font-family: "Noto Sans", "DejaVu Sans", "Segoe UI", sans-serif;
    }}
    body {{ display: flex; align-items: center; justify-content: center; }}
    p.mdview-empty {{
      padding: 1rem 1.5rem;
      border: 1px dashed var(--border);
      border-radius: 6px;
    }}
  </style>
</head>
<body><p class="mdview-empty">{html.escape(message)}</p></body>
</html>
"""


def read_document(path: str | os.PathLike[str]) -> str:
    """Read a markdown document; raise ``NotFound`` when it is missing."""
    target = Path(path)
    try:
        return target.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError as exc:
        raise NotFound(f"Document not found: {target}") from exc
    except IsADirectoryError as exc:
        raise NotFound(f"Not a document: {target}") from exc
