"""
Table extraction: pipe-delimited markdown tables, chart-options annotations, HTML.
"""

import html
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

CHART_OPTIONS_RE = re.compile(r"^<!--\s*chart-options\s*(\{.*\})\s*-->$", re.DOTALL)
COMMENT_LINE_RE = re.compile(r"^<!--.*-->$", re.DOTALL)
NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")


@dataclass
class TableBlock:
    """A run of pipe lines located in the source text."""
    start: int
    end: int
    lines: List[str]
    first_line: int


@dataclass(frozen=True)
class ExtractedTable:
    """Structured view of one markdown table, in document order."""
    index: int
    headers: List[str]
    rows: List[Dict[str, Any]]
    html: str
    start: int
    end: int
    chart_options: Dict[str, Any] = field(default_factory=dict)

    @property
    def figure_number(self) -> int:
        return self.index + 1


def is_table_line(line: str) -> bool:
    return line.strip().startswith("|")


def split_row(line: str) -> List[str]:
    """Split a pipe row into trimmed cells, dropping the empty edge cells."""
    cells = [cell.strip() for cell in line.strip().split("|")]
    if cells and cells[0] == "":
        cells = cells[1:]
    if cells and cells[-1] == "":
        cells = cells[:-1]
    return cells


def coerce_cell(value: str) -> Any:
    """Return an int/float when the whole cell is numeric, else the trimmed text."""
    text = value.strip()
    if not NUMBER_RE.match(text):
        return text
    if re.fullmatch(r"[+-]?\d+", text):
        return int(text)
    return float(text)


def parse_chart_options(source_lines: List[str], table_first_line: int) -> Dict[str, Any]:
    """Read a `<!-- chart-options {...} -->` comment sitting right above a table.

    Blank lines and other comment lines (e.g. toggle captions) between the
    annotation and the table are skipped. Bad JSON yields no options.
    """
    index = table_first_line - 1
    while index >= 0:
        candidate = source_lines[index].strip()
        index -= 1
        if not candidate:
            continue
        match = CHART_OPTIONS_RE.match(candidate)
        if match:
            try:
                options = json.loads(match.group(1))
            except json.JSONDecodeError as e:
                logger.debug(f"Ignoring malformed chart-options annotation: {str(e)}")
                return {}
            return options if isinstance(options, dict) else {}
        if COMMENT_LINE_RE.match(candidate):
            continue
        break
    return {}


def find_table_blocks(markdown: str) -> List[TableBlock]:
    """Locate every maximal run of two or more pipe lines, with character offsets."""
    blocks: List[TableBlock] = []
    offset = 0
    run: List[str] = []
    run_start = 0
    run_first_line = 0
    run_end = 0

    def _close_run() -> None:
        if len(run) >= 2:
            blocks.append(TableBlock(start=run_start, end=run_end, lines=list(run), first_line=run_first_line))

    for line_no, raw_line in enumerate(markdown.splitlines(keepends=True)):
        line = raw_line.rstrip("\r\n")
        if is_table_line(line):
            if not run:
                run_start = offset
                run_first_line = line_no
            run.append(line)
            run_end = offset + len(line)
        else:
            _close_run()
            run = []
        offset += len(raw_line)
    _close_run()
    return blocks


def render_table_html(headers: List[str], rows: List[Dict[str, Any]]) -> str:
    """Static HTML table for the non-interactive view."""
    parts = ['<table class="data-table">', "<thead><tr>"]
    parts.extend(f"<th>{html.escape(header)}</th>" for header in headers)
    parts.append("</tr></thead><tbody>")
    for row in rows:
        parts.append("<tr>")
        parts.extend(f"<td>{html.escape(str(row.get(header, '')))}</td>" for header in headers)
        parts.append("</tr>")
    parts.append("</tbody></table>")
    return "".join(parts)


def _parse_block(block: TableBlock, index: int, source_lines: List[str]) -> Optional[ExtractedTable]:
    headers = split_row(block.lines[0])
    if not headers or any(not header for header in headers):
        logger.warning(f"Skipping table at line {block.first_line + 1}: empty header cell")
        return None
    if len(set(headers)) != len(headers):
        logger.warning(f"Skipping table at line {block.first_line + 1}: duplicate headers {headers}")
        return None

    rows: List[Dict[str, Any]] = []
    # Line 2 is the separator row, whatever it looks like.
    for offset, line in enumerate(block.lines[2:], start=3):
        cells = split_row(line)
        if len(cells) != len(headers):
            logger.debug(
                f"Dropping row {offset} of table at line {block.first_line + 1}: "
                f"{len(cells)} cells for {len(headers)} headers"
            )
            continue
        rows.append({header: coerce_cell(cell) for header, cell in zip(headers, cells)})

    return ExtractedTable(
        index=index,
        headers=headers,
        rows=rows,
        html=render_table_html(headers, rows),
        start=block.start,
        end=block.end,
        chart_options=parse_chart_options(source_lines, block.first_line),
    )


def extract_tables(markdown: str) -> List[ExtractedTable]:
    """Extract every well-formed table from markdown, in document order."""
    source_lines = (markdown or "").splitlines()
    tables: List[ExtractedTable] = []
    for block in find_table_blocks(markdown or ""):
        table = _parse_block(block, len(tables), source_lines)
        if table is not None:
            tables.append(table)
    return tables
