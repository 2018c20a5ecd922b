"""
PDF export: markdown (with embedded chart images) drawn onto A4 pages with reportlab.

Layout uses a cursor measured from the top margin; every element checks the
remaining space and starts a new page when it would cross the bottom margin.
"""

import io
import logging
from typing import BinaryIO, List, Union
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_LEFT
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from reportlab.platypus import Paragraph, Table, TableStyle

from results_writer.config import CONFIG, PageConfig
from results_writer.document.images import decode_data_uri, fit_dimensions, image_size, is_data_image
from results_writer.document.inline import LineKind, caption_for, classify_line, parse_inline, plain_text, prepare_markdown
from results_writer.document.tables import split_row

logger = logging.getLogger(__name__)

BODY_FONT = "Helvetica"
BOLD_FONT = "Helvetica-Bold"
ITALIC_FONT = "Helvetica-Oblique"
CODE_FONT = "Courier"

HEADINGS = {1: (16, 40), 2: (14, 35), 3: (12, 30)}
LINE_HEIGHT = 15
PARAGRAPH_GAP = 12
BLANK_GAP = 20
IMAGE_GAP = 30


class NumberedCanvas(canvas.Canvas):
    """Canvas that stamps "Page i of N" on every page once the total is known."""

    def __init__(self, *args, **kwargs):
        canvas.Canvas.__init__(self, *args, **kwargs)
        self._saved_page_states = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self.draw_page_number(total)
            canvas.Canvas.showPage(self)
        canvas.Canvas.save(self)

    def draw_page_number(self, total: int) -> None:
        page_width, _ = self._pagesize
        self.setFont(BODY_FONT, 10)
        self.setFillColor(colors.Color(100 / 255, 100 / 255, 100 / 255))
        self.drawString(page_width - 90, 20, f"Page {self._pageNumber} of {total}")


def inline_markup(text: str) -> str:
    """Inline markdown as reportlab paragraph markup."""
    parts = []
    for run in parse_inline(text):
        chunk = escape(run.text)
        if run.code:
            chunk = f'<font face="{CODE_FONT}">{chunk}</font>'
        if run.bold:
            chunk = f"<b>{chunk}</b>"
        if run.italic:
            chunk = f"<i>{chunk}</i>"
        parts.append(chunk)
    return "".join(parts)


class PdfBuilder:
    """Line-by-line markdown to PDF drawing."""

    def __init__(self, target: Union[str, BinaryIO], page: PageConfig = None, title: str = None):
        self.page = page or CONFIG.page
        self.title = title or self.page.default_title
        self.canvas = NumberedCanvas(target, pagesize=(self.page.width_pt, self.page.height_pt))
        self.canvas.setTitle(self.title)
        self.y = self.page.margin_pt
        self.table_lines: List[str] = []

        self.body_style = ParagraphStyle(
            "Body", fontName=BODY_FONT, fontSize=self.page.body_size_pt, leading=LINE_HEIGHT, alignment=TA_LEFT,
        )
        self.list_style = ParagraphStyle(
            "ListItem", parent=self.body_style, leftIndent=18, bulletIndent=6, bulletFontName=BODY_FONT,
        )
        self.cell_style = ParagraphStyle("Cell", fontName=BODY_FONT, fontSize=10, leading=12)
        self.header_style = ParagraphStyle(
            "HeaderCell", parent=self.cell_style, fontName=BOLD_FONT, textColor=colors.white, alignment=1,
        )

    @property
    def bottom(self) -> float:
        return self.page.height_pt - self.page.margin_pt

    def _baseline(self, offset: float) -> float:
        """Convert a distance from the top edge to reportlab's bottom-up coordinate."""
        return self.page.height_pt - offset

    def new_page(self) -> None:
        self.canvas.showPage()
        self.y = self.page.margin_pt

    def ensure_space(self, height: float) -> None:
        if self.y + height > self.bottom:
            self.new_page()

    # Elements

    def draw_title(self) -> None:
        self.canvas.setFont(BOLD_FONT, 18)
        self.canvas.drawCentredString(self.page.width_pt / 2, self._baseline(self.y + 20), self.title)
        self.y += 60

    def draw_heading(self, text: str, level: int) -> None:
        size, advance = HEADINGS.get(level, HEADINGS[3])
        self.ensure_space(30)
        self.canvas.setFont(BOLD_FONT, size)
        self.canvas.drawString(self.page.margin_pt, self._baseline(self.y + 16), plain_text(text))
        self.y += advance

    def draw_flowable(self, flowable) -> None:
        """Draw a wrapped flowable at the cursor, splitting it across pages when needed."""
        width = self.page.printable_width
        pending = [flowable]
        while pending:
            item = pending.pop(0)
            available = self.bottom - self.y
            _, height = item.wrapOn(self.canvas, width, available)
            if height <= available:
                item.drawOn(self.canvas, self.page.margin_pt, self._baseline(self.y + height))
                self.y += height
                continue

            parts = item.split(width, available)
            if len(parts) > 1:
                pending = parts + pending
            elif self.y > self.page.margin_pt:
                self.new_page()
                pending.insert(0, item)
            else:
                # Taller than a whole page and cannot be split.
                item.drawOn(self.canvas, self.page.margin_pt, self._baseline(self.y + height))
                self.new_page()

    def draw_text(self, text: str, bullet: str = None) -> None:
        style = self.list_style if bullet else self.body_style
        self.draw_flowable(Paragraph(inline_markup(text), style, bulletText=bullet))
        self.y += PARAGRAPH_GAP

    def draw_image(self, alt: str, src: str) -> None:
        try:
            if not is_data_image(src):
                raise ValueError(f"Only embedded images are exported, got {src[:40]!r}")
            data, _ = decode_data_uri(src)
            width, height = fit_dimensions(*image_size(data), self.page.max_image_width, self.page.max_image_height)
            reader = ImageReader(io.BytesIO(data))
        except Exception as e:
            logger.warning(f"Could not embed image '{alt}': {str(e)}")
            self.draw_text(f"*[Image: {alt}]*")
            return

        self.y += IMAGE_GAP
        if self.y + height > self.bottom:
            self.new_page()
            self.y += 20
        x = (self.page.width_pt - width) / 2
        self.canvas.drawImage(reader, x, self._baseline(self.y + height), width, height, mask="auto")

        caption = caption_for(alt)
        if caption:
            self.y += height + 15
            self.canvas.setFont(ITALIC_FONT, 10)
            self.canvas.drawCentredString(self.page.width_pt / 2, self._baseline(self.y), caption)
            self.y += 25
        else:
            self.y += height + IMAGE_GAP

    def flush_table(self) -> None:
        lines, self.table_lines = self.table_lines, []
        if not lines:
            return
        if len(lines) < 2:
            self.draw_text(lines[0])
            return

        headers = split_row(lines[0])
        if not headers:
            logger.warning("Skipping table without header cells")
            return
        body = [(split_row(line) + [""] * len(headers))[:len(headers)] for line in lines[2:]]

        data = [[Paragraph(escape(plain_text(h)), self.header_style) for h in headers]]
        data += [[Paragraph(inline_markup(cell), self.cell_style) for cell in row] for row in body]

        table = Table(data, colWidths=[self.page.printable_width / len(headers)] * len(headers), repeatRows=1)
        style = [
            ("GRID", (0, 0), (-1, -1), 0.25, colors.Color(120 / 255, 120 / 255, 120 / 255)),
            ("BACKGROUND", (0, 0), (-1, 0), colors.Color(60 / 255, 60 / 255, 60 / 255)),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("TOPPADDING", (0, 0), (-1, -1), 5),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
            ("LEFTPADDING", (0, 0), (-1, -1), 5),
            ("RIGHTPADDING", (0, 0), (-1, -1), 5),
        ]
        if body:
            style.append(("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.Color(245 / 255, 245 / 255, 245 / 255)]))
        table.setStyle(TableStyle(style))

        try:
            self.draw_flowable(table)
        except Exception as e:
            logger.error(f"Skipping table '{' | '.join(headers)}': {str(e)}")
            return
        self.y += 20

    # Driver

    def feed(self, raw_line: str) -> None:
        line = classify_line(raw_line)

        if line.kind == LineKind.TABLE_ROW:
            self.table_lines.append(line.text)
            return
        self.flush_table()

        if line.kind == LineKind.BLANK:
            self.y += BLANK_GAP
        elif line.kind == LineKind.HEADING:
            self.draw_heading(line.text, line.level)
        elif line.kind == LineKind.IMAGE:
            self.draw_image(line.alt, line.src)
        elif line.kind == LineKind.BULLET:
            self.draw_text(line.text, bullet="•")
        elif line.kind == LineKind.NUMBERED:
            self.draw_text(line.text, bullet=f"{line.number}.")
        elif line.kind == LineKind.TEXT:
            self.draw_text(line.text)

    def build(self, markdown: str) -> None:
        self.draw_title()
        self.canvas.setFont(BODY_FONT, self.page.body_size_pt)
        for raw_line in prepare_markdown(markdown).split("\n"):
            try:
                self.feed(raw_line)
            except Exception as e:
                logger.error(f"Skipping PDF element {raw_line[:60]!r}: {str(e)}")
        try:
            self.flush_table()
        except Exception as e:
            logger.error(f"Skipping trailing PDF table: {str(e)}")
        self.canvas.showPage()
        self.canvas.save()


def export_pdf(markdown: str, target: Union[str, BinaryIO], title: str = None, page: PageConfig = None) -> None:
    PdfBuilder(target, page=page, title=title).build(markdown or "")
    logger.info(f"PDF written to {target if isinstance(target, str) else 'stream'}")


def pdf_bytes(markdown: str, title: str = None) -> bytes:
    buffer = io.BytesIO()
    PdfBuilder(buffer, title=title).build(markdown or "")
    return buffer.getvalue()
