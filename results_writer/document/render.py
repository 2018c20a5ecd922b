"""
Markdown-to-display rendering: one pass yields sanitized HTML with table placeholders
and the extracted table list they point at.
"""

import html
import json
import logging
import re
from dataclasses import dataclass, field
from typing import List, Union

import markdown as md
from bs4 import BeautifulSoup

from results_writer.document.tables import ExtractedTable, extract_tables

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = ["tables", "fenced_code", "sane_lists"]

PLACEHOLDER_CLASS = "table-placeholder"
# Attribute order is whatever the serializer chose.
PLACEHOLDER_RE = re.compile(
    r'<div\b(?=[^>]*\sclass="table-placeholder")(?=[^>]*\sdata-table-index="(\d+)")[^>]*>\s*</div>'
)

# Elements removed together with their content.
DROPPED_TAGS = {
    "script", "style", "iframe", "frame", "frameset", "object", "embed", "applet",
    "form", "input", "button", "select", "textarea", "link", "meta", "base", "svg", "math",
}
ALLOWED_TAGS = {
    "h1", "h2", "h3", "h4", "h5", "h6", "p", "br", "hr", "blockquote", "pre", "code",
    "strong", "b", "em", "i", "u", "s", "del", "sup", "sub", "ul", "ol", "li",
    "table", "thead", "tbody", "tr", "th", "td", "a", "img", "div", "span", "editable",
}
ALLOWED_ATTRIBUTES = {
    "a": {"href", "title"},
    "img": {"src", "alt", "title", "width", "height"},
    "th": {"align", "style"},
    "td": {"align", "style"},
    "code": {"class"},
    "div": {"class", "data-table-index", "data-chart-options"},
    "span": {"class"},
    "editable": {"span-id"},
    "ol": {"start"},
}
URL_ATTRIBUTES = {"href", "src"}
SAFE_URL_RE = re.compile(r"^(?:https?:|mailto:|#|/|\.|data:image/)", re.IGNORECASE)


@dataclass
class RenderedDocument:
    """Sanitized HTML plus the tables its placeholders reference."""
    html: str
    tables: List[ExtractedTable] = field(default_factory=list)

    def fragments(self) -> List[Union[str, int]]:
        return split_on_placeholders(self.html)


def placeholder_html(table: ExtractedTable) -> str:
    """Inert marker that the preview swaps for a table/chart toggle."""
    options = ""
    if table.chart_options:
        options = f' data-chart-options="{html.escape(json.dumps(table.chart_options), quote=True)}"'
    return f'<div class="{PLACEHOLDER_CLASS}" data-table-index="{table.index}"{options}></div>'


def substitute_placeholders(markdown_text: str, tables: List[ExtractedTable]) -> str:
    """Swap each table block for its placeholder using the recorded offsets."""
    result = markdown_text
    for table in reversed(tables):
        result = result[:table.start] + "\n\n" + placeholder_html(table) + "\n\n" + result[table.end:]
    return result


def _is_safe_url(value: str) -> bool:
    compact = re.sub(r"[\s\x00-\x1f]", "", value or "")
    return bool(SAFE_URL_RE.match(compact))


def sanitize_html(raw_html: str) -> str:
    """Strip script-capable markup, keep editable spans and placeholder attributes."""
    soup = BeautifulSoup(raw_html, "html.parser")

    for tag in soup.find_all(list(DROPPED_TAGS)):
        tag.decompose()

    for tag in soup.find_all(True):
        if tag.name not in ALLOWED_TAGS:
            tag.unwrap()
            continue
        allowed = ALLOWED_ATTRIBUTES.get(tag.name, set())
        for attr in list(tag.attrs):
            value = tag.attrs[attr]
            if attr.lower().startswith("on") or attr not in allowed:
                del tag.attrs[attr]
            elif attr in URL_ATTRIBUTES and not _is_safe_url(value if isinstance(value, str) else " ".join(value)):
                del tag.attrs[attr]
            elif attr == "style" and re.search(r"expression|url\s*\(|javascript:", str(value), re.IGNORECASE):
                del tag.attrs[attr]

    return str(soup)


def _convert(markdown_text: str) -> str:
    return md.markdown(markdown_text, extensions=MARKDOWN_EXTENSIONS, output_format="html")


def _convert_blockwise(markdown_text: str) -> str:
    """Fallback: convert blank-line separated blocks independently."""
    parts: List[str] = []
    for block in re.split(r"\n\s*\n", markdown_text):
        if not block.strip():
            continue
        try:
            parts.append(_convert(block))
        except Exception as e:
            logger.error(f"Markdown block failed to render, showing it as text: {str(e)}")
            parts.append(f"<pre>{html.escape(block)}</pre>")
    return "\n".join(parts)


def render_document(markdown_text: str) -> RenderedDocument:
    """Render markdown to sanitized HTML with one placeholder per extracted table."""
    text = markdown_text or ""
    tables = extract_tables(text)
    prepared = substitute_placeholders(text, tables)

    try:
        raw_html = _convert(prepared)
    except Exception as e:
        logger.error(f"Markdown render failed, retrying block by block: {str(e)}")
        raw_html = _convert_blockwise(prepared)

    return RenderedDocument(html=sanitize_html(raw_html), tables=tables)


def split_on_placeholders(rendered_html: str) -> List[Union[str, int]]:
    """Split HTML into fragments and table indices, in order."""
    pieces: List[Union[str, int]] = []
    last = 0
    for match in PLACEHOLDER_RE.finditer(rendered_html):
        if match.start() > last:
            pieces.append(rendered_html[last:match.start()])
        pieces.append(int(match.group(1)))
        last = match.end()
    if last < len(rendered_html):
        pieces.append(rendered_html[last:])
    return pieces
