"""
DOCX export: markdown (with embedded chart images) to a Word document on A4.
"""

import io
import logging
from typing import BinaryIO, List, Union

from docx import Document
from docx.enum.table import WD_TABLE_ALIGNMENT
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Emu, Pt

from results_writer.config import CONFIG, PageConfig
from results_writer.document.images import decode_data_uri, fit_dimensions, image_size, is_data_image, to_png
from results_writer.document.inline import LineKind, caption_for, classify_line, parse_inline, plain_text, prepare_markdown
from results_writer.document.tables import split_row

logger = logging.getLogger(__name__)

EMU_PER_PIXEL = 9525
HEADING_SIZES = {1: 16, 2: 14, 3: 12}
HEADER_FILL = "EEEEEE"
BORDER_COLOR = "CCCCCC"


def _set_cell_borders(cell, color: str = BORDER_COLOR) -> None:
    tc_pr = cell._tc.get_or_add_tcPr()
    borders = OxmlElement("w:tcBorders")
    for edge in ("top", "left", "bottom", "right"):
        element = OxmlElement(f"w:{edge}")
        element.set(qn("w:val"), "single")
        element.set(qn("w:sz"), "4")
        element.set(qn("w:space"), "0")
        element.set(qn("w:color"), color)
        borders.append(element)
    tc_pr.append(borders)


def _shade_cell(cell, fill: str = HEADER_FILL) -> None:
    shading = OxmlElement("w:shd")
    shading.set(qn("w:val"), "clear")
    shading.set(qn("w:color"), "auto")
    shading.set(qn("w:fill"), fill)
    cell._tc.get_or_add_tcPr().append(shading)


class DocxBuilder:
    """Line-by-line markdown to python-docx conversion."""

    def __init__(self, page: PageConfig = None, title: str = None):
        self.page = page or CONFIG.page
        self.document = Document()
        self.table_lines: List[str] = []
        self._setup(title)

    def _setup(self, title: str = None) -> None:
        section = self.document.sections[0]
        section.page_width = Pt(self.page.width_pt)
        section.page_height = Pt(self.page.height_pt)
        for side in ("top_margin", "bottom_margin", "left_margin", "right_margin"):
            setattr(section, side, Pt(self.page.margin_pt))

        normal = self.document.styles["Normal"]
        normal.font.name = self.page.body_font
        normal.font.size = Pt(self.page.body_size_pt)
        if title:
            self.document.core_properties.title = title

    # Inline text

    def _add_runs(self, paragraph, text: str) -> None:
        for run in parse_inline(text):
            docx_run = paragraph.add_run(run.text)
            docx_run.bold = run.bold or None
            docx_run.italic = run.italic or None
            docx_run.font.name = self.page.code_font if run.code else self.page.body_font
            docx_run.font.size = Pt(self.page.body_size_pt)

    def add_text(self, text: str, style: str = None):
        paragraph = self.document.add_paragraph(style=style)
        paragraph.paragraph_format.space_before = Pt(6)
        paragraph.paragraph_format.space_after = Pt(6)
        self._add_runs(paragraph, text)
        return paragraph

    def add_heading(self, text: str, level: int) -> None:
        paragraph = self.document.add_paragraph(style=f"Heading {level}")
        run = paragraph.add_run(plain_text(text))
        run.bold = True
        run.font.size = Pt(HEADING_SIZES.get(level, 12))

    # Images

    def add_image(self, alt: str, src: str) -> None:
        try:
            if not is_data_image(src):
                raise ValueError(f"Only embedded images are exported, got {src[:40]!r}")
            data, mime = decode_data_uri(src)
            if mime not in ("image/png", "image/jpeg", "image/jpg", "image/gif"):
                data = to_png(data)
            width, height = fit_dimensions(*image_size(data), self.page.max_image_width, self.page.max_image_height)

            self.document.add_paragraph().paragraph_format.space_before = Pt(10)
            paragraph = self.document.add_paragraph()
            paragraph.alignment = WD_ALIGN_PARAGRAPH.CENTER
            paragraph.add_run().add_picture(
                io.BytesIO(data), width=Emu(width * EMU_PER_PIXEL), height=Emu(height * EMU_PER_PIXEL)
            )
        except Exception as e:
            logger.warning(f"Could not embed image '{alt}': {str(e)}")
            fallback = self.document.add_paragraph()
            fallback.add_run(f"[Image: {alt}]").italic = True
            return

        caption = caption_for(alt)
        if caption:
            paragraph = self.document.add_paragraph()
            paragraph.alignment = WD_ALIGN_PARAGRAPH.CENTER
            run = paragraph.add_run(caption)
            run.italic = True
            run.font.size = Pt(10)
        self.document.add_paragraph().paragraph_format.space_after = Pt(10)

    # Tables

    def flush_table(self) -> None:
        lines, self.table_lines = self.table_lines, []
        if not lines:
            return
        if len(lines) < 2:
            self.add_text(lines[0])
            return

        headers = split_row(lines[0])
        body = [split_row(line) for line in lines[2:]]
        if not headers:
            logger.warning("Skipping table without header cells")
            return

        try:
            table = self.document.add_table(rows=1 + len(body), cols=len(headers))
            table.alignment = WD_TABLE_ALIGNMENT.CENTER
            for row_index, cells in enumerate([headers] + body):
                cells = (cells + [""] * len(headers))[:len(headers)]
                for col_index, text in enumerate(cells):
                    cell = table.cell(row_index, col_index)
                    _set_cell_borders(cell)
                    paragraph = cell.paragraphs[0]
                    if row_index == 0:
                        run = paragraph.add_run(plain_text(text))
                        run.bold = True
                        _shade_cell(cell)
                    else:
                        self._add_runs(paragraph, text)
            self.document.add_paragraph()
        except Exception as e:
            logger.error(f"Skipping table '{' | '.join(headers)}': {str(e)}")

    # Driver

    def feed(self, raw_line: str) -> None:
        line = classify_line(raw_line)

        if line.kind == LineKind.TABLE_ROW:
            self.table_lines.append(line.text)
            return
        self.flush_table()

        if line.kind == LineKind.BLANK:
            self.document.add_paragraph()
        elif line.kind == LineKind.IMAGE:
            self.add_image(line.alt, line.src)
        elif line.kind == LineKind.HEADING:
            self.add_heading(line.text, line.level)
        elif line.kind == LineKind.BULLET:
            self.add_text(line.text, style="List Bullet")
        elif line.kind == LineKind.NUMBERED:
            self.add_text(line.text, style="List Number")
        elif line.kind == LineKind.TEXT:
            self.add_text(line.text)
        # Comments and horizontal rules produce nothing.

    def build(self, markdown: str):
        for raw_line in prepare_markdown(markdown).split("\n"):
            self.feed(raw_line)
        self.flush_table()
        return self.document


def markdown_to_docx(markdown: str, title: str = None, page: PageConfig = None):
    """Build a python-docx Document from export-ready markdown."""
    return DocxBuilder(page=page, title=title).build(markdown or "")


def export_docx(markdown: str, target: Union[str, BinaryIO], title: str = None) -> None:
    markdown_to_docx(markdown, title=title).save(target)
    logger.info(f"DOCX written to {target if isinstance(target, str) else 'stream'}")


def docx_bytes(markdown: str, title: str = None) -> bytes:
    buffer = io.BytesIO()
    markdown_to_docx(markdown, title=title).save(buffer)
    return buffer.getvalue()
