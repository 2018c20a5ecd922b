"""
Line classification and inline formatting shared by the DOCX and PDF exporters.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

EDITABLE_RE = re.compile(r"<EDITABLE[^>]*>([\s\S]*?)</EDITABLE>", re.IGNORECASE)
COMMENT_LINE_RE = re.compile(r"^[ \t]*<!--(?:(?!-->)[\s\S])*-->[ \t]*(?:\r?\n|$)", re.MULTILINE)
COMMENT_RE = re.compile(r"<!--[\s\S]*?-->")
INLINE_TAG_RE = re.compile(
    r"</?(?:div|span|p|strong|em|b|i|u|code|sup|sub|br|font|mark)\b[^>]*/?>", re.IGNORECASE
)
IMAGE_RE = re.compile(r"!\[(.*?)\]\((.*?)\)")
HEADING_RE = re.compile(r"^(#{1,6})\s+(.*)$")
BULLET_RE = re.compile(r"^[-*]\s+(.*)$")
NUMBERED_RE = re.compile(r"^(\d+)\.\s+(.*)$")
RULE_RE = re.compile(r"^(?:-{3,}|\*{3,}|_{3,})$")

BOLD_RE = re.compile(r"\*\*(.*?)\*\*")
ITALIC_RE = re.compile(r"\*([^*]+)\*")
CODE_RE = re.compile(r"`([^`]+)`")


class LineKind(Enum):
    BLANK = "blank"
    IMAGE = "image"
    HEADING = "heading"
    TABLE_ROW = "table_row"
    BULLET = "bullet"
    NUMBERED = "numbered"
    COMMENT = "comment"
    RULE = "rule"
    TEXT = "text"


@dataclass
class Line:
    """One classified markdown line."""
    kind: LineKind
    text: str = ""
    level: int = 0
    number: int = 0
    alt: str = ""
    src: str = ""


@dataclass
class Run:
    """A span of text with uniform formatting."""
    text: str
    bold: bool = False
    italic: bool = False
    code: bool = False


def unwrap_editable(text: str) -> str:
    """Replace editable spans with their inner text; unmatched tags stay literal."""
    return EDITABLE_RE.sub(lambda match: match.group(1), text or "")


def prepare_markdown(text: str) -> str:
    """Normalise exporter input: editable spans unwrapped, comments and inline tags removed."""
    cleaned = unwrap_editable(text)
    cleaned = COMMENT_LINE_RE.sub("", cleaned)
    cleaned = COMMENT_RE.sub("", cleaned)
    return INLINE_TAG_RE.sub("", cleaned)


def classify_line(raw_line: str) -> Line:
    """Classify one markdown line for the exporters' state machines."""
    line = raw_line.strip()
    if not line:
        return Line(LineKind.BLANK)
    if line.startswith("<!--"):
        return Line(LineKind.COMMENT, text=line)

    image = IMAGE_RE.search(line)
    if image:
        return Line(LineKind.IMAGE, text=line, alt=image.group(1), src=image.group(2).strip())

    heading = HEADING_RE.match(line)
    if heading:
        return Line(LineKind.HEADING, text=heading.group(2).strip(), level=min(len(heading.group(1)), 3))
    if line.startswith("|"):
        return Line(LineKind.TABLE_ROW, text=line)
    if RULE_RE.match(line):
        return Line(LineKind.RULE, text=line)

    bullet = BULLET_RE.match(line)
    if bullet:
        return Line(LineKind.BULLET, text=bullet.group(1))
    numbered = NUMBERED_RE.match(line)
    if numbered:
        return Line(LineKind.NUMBERED, text=numbered.group(2), number=int(numbered.group(1)))
    return Line(LineKind.TEXT, text=line)


def parse_inline(text: str) -> List[Run]:
    """Split text into bold / italic / code runs.

    Matches are ordered by start index; a match that begins inside an earlier
    one is ignored, so overlaps resolve in document order instead of nesting.
    Italics that start inside a bold span are never considered.
    """
    if not text:
        return []

    bold = [(m.start(), m.end(), m.group(1), "bold") for m in BOLD_RE.finditer(text)]
    masked = text
    for start, end, _, _ in bold:
        masked = masked[:start] + " " * (end - start) + masked[end:]
    italic = [(m.start(), m.end(), m.group(1), "italic") for m in ITALIC_RE.finditer(masked)]
    code = [(m.start(), m.end(), m.group(1), "code") for m in CODE_RE.finditer(text)]
    matches = sorted(bold + italic + code, key=lambda item: item[0])

    runs: List[Run] = []
    last = 0
    for start, end, content, style in matches:
        if start < last:
            continue
        if start > last:
            runs.append(Run(text[last:start]))
        runs.append(Run(content, bold=style == "bold", italic=style == "italic", code=style == "code"))
        last = end
    if last < len(text):
        runs.append(Run(text[last:]))
    return [run for run in runs if run.text]


def plain_text(text: str) -> str:
    """Inline markdown flattened to its visible text."""
    return "".join(run.text for run in parse_inline(text))


def is_separator_row(line: str) -> bool:
    return bool(re.match(r"^\|?[\s:|-]+\|?$", line.strip())) and "-" in line


def caption_for(alt: str, placeholder: str = "Chart") -> Optional[str]:
    """Alt text worth printing under an image, if any."""
    alt = (alt or "").strip()
    if not alt or alt == placeholder:
        return None
    return alt
