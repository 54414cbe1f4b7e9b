"""Front matter parsing and the markdown-to-HTML pipeline.

Two entry points share one front matter grammar: a leading ``---`` block that
must start at offset 0 and close with a ``---`` line.

- ``parse_metadata_only`` never renders the body; tree and feed builders use it.
- ``parse_file_content`` renders the body for page views.
"""
from __future__ import annotations

import datetime as dt
import importlib
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.parse import quote

import emoji
import yaml
from markdown_it import MarkdownIt
from markdown_it.rules_core import StateCore
from pygments import highlight as pygments_highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .security import escape_html


logger = logging.getLogger(__name__)

_METADATA_RE = re.compile(r"^---\n(.*?)\n---", re.DOTALL)
_DOCUMENT_RE = re.compile(r"^---\n(.*?)\n---\n?(.*)$", re.DOTALL)


@dataclass(frozen=True)
class FrontMatter:
    date: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class ParsedDocument:
    content: str
    metadata: FrontMatter


def slugify_heading(text: str) -> str:
    """Anchor slug: trimmed, lowercased, whitespace runs to ``-``, percent-encoded."""
    slug = re.sub(r"\s+", "-", str(text).strip().lower())
    return quote(slug, safe="-_.!~*'()")


def _highlight_code(code: str, lang: str, _attrs: str) -> str:
    # Returning "" lets markdown-it fall back to its own escaped <pre><code>.
    if not lang:
        return ""
    try:
        lexer = get_lexer_by_name(lang)
    except ClassNotFound:
        return ""
    formatter = HtmlFormatter(nowrap=True)
    highlighted = pygments_highlight(code, lexer, formatter)
    lang_class = escape_html(lang)
    return f'<pre class="highlight"><code class="language-{lang_class}">{highlighted}</code></pre>\n'


def _emojize_text(state: StateCore) -> None:
    for token in state.tokens:
        if token.type != "inline" or not token.children:
            continue
        for child in token.children:
            if child.type == "text":
                child.content = emoji.emojize(child.content, language="alias")


def emoji_plugin(md: MarkdownIt) -> None:
    """Replace `:shortcode:` text with unicode emoji; code spans are left alone."""
    md.core.ruler.push("emoji", _emojize_text)


# (label, module, plugin attribute, keyword arguments)
RENDER_STAGES: tuple[tuple[str, str, str, dict[str, Any]], ...] = (
    ("anchors", "mdit_py_plugins.anchors", "anchors_plugin", {"min_level": 1, "max_level": 6, "slug_func": slugify_heading}),
    ("footnote", "mdit_py_plugins.footnote", "footnote_plugin", {}),
    ("deflist", "mdit_py_plugins.deflist", "deflist_plugin", {}),
    ("container:warning", "mdit_py_plugins.container", "container_plugin", {"name": "warning"}),
    ("container:info", "mdit_py_plugins.container", "container_plugin", {"name": "info"}),
    ("admonition", "mdit_py_plugins.admon", "admon_plugin", {}),
    ("tasklists", "mdit_py_plugins.tasklists", "tasklists_plugin", {}),
    ("subscript", "mdit_py_plugins.subscript", "sub_plugin", {}),
    ("emoji", __name__, "emoji_plugin", {}),
)


def _load_stage(md: MarkdownIt, label: str, module_name: str, attr: str, kwargs: dict[str, Any]) -> bool:
    try:
        plugin: Callable[..., None] = getattr(importlib.import_module(module_name), attr)
        md.use(plugin, **kwargs)
    except Exception as exc:
        logger.warning("Failed to load markdown stage %s: %s", label, exc)
        return False
    return True


def build_renderer(stages=RENDER_STAGES) -> MarkdownIt:
    """Create the markdown engine once at startup.

    Raw HTML is disabled so source documents cannot inject markup. Stages that
    fail to register are logged and skipped.
    """
    md = MarkdownIt(
        "commonmark",
        {"html": False, "linkify": True, "typographer": True, "highlight": _highlight_code},
    )
    md.enable(["table", "strikethrough", "linkify", "replacements", "smartquotes"])
    for label, module_name, attr, kwargs in stages:
        _load_stage(md, label, module_name, attr, kwargs)
    return md


def _stringify(value: Any) -> Optional[str]:
    if value is None:
        return None
    # PyYAML turns bare ISO dates into date/datetime objects.
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    return str(value)


def _load_front_matter(block: str) -> dict:
    try:
        data = yaml.safe_load(block)
    except (yaml.YAMLError, ValueError) as exc:
        # ValueError: date-shaped values that are not real dates, e.g. 2024-02-30.
        logger.warning("Ignoring malformed front matter: %s", exc)
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def parse_metadata_only(raw: str) -> FrontMatter:
    match = _METADATA_RE.match(raw)
    if not match:
        return FrontMatter()
    data = _load_front_matter(match.group(1))
    return FrontMatter(date=_stringify(data.get("date")), description=_stringify(data.get("description")))


def parse_file_content(raw: str, md: MarkdownIt) -> ParsedDocument:
    match = _DOCUMENT_RE.match(raw)
    if not match:
        return ParsedDocument(content=md.render(raw), metadata=FrontMatter())
    data = _load_front_matter(match.group(1))
    return ParsedDocument(
        content=md.render(match.group(2)),
        metadata=FrontMatter(date=_stringify(data.get("date"))),
    )


def metadata_to_html(metadata: FrontMatter) -> str:
    if not metadata.date:
        return ""
    return f'<div class="metadata"><span class="meta-date">{escape_html(metadata.date)}</span></div>'
