"""
Editable document controller: owns the markdown, the edit/preview mode,
find & replace, the mounted table toggles and export orchestration.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from results_writer.document.render import RenderedDocument, render_document
from results_writer.document.tables import extract_tables
from results_writer.document.toggle import TableChartToggle
from results_writer.export.docx_exporter import docx_bytes
from results_writer.export.pdf_exporter import pdf_bytes

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "research_document"
DEFAULT_TITLE = "Research Results"
UNSAFE_FILENAME_RE = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')

EXPORTERS: Dict[str, Callable[..., bytes]] = {
    "docx": docx_bytes,
    "pdf": pdf_bytes,
}


def find_all_occurrences(text: str, needle: str) -> List[int]:
    """Start offsets of every non-overlapping, case-sensitive match, left to right."""
    if not needle:
        return []
    positions: List[int] = []
    index = text.find(needle)
    while index != -1:
        positions.append(index)
        index = text.find(needle, index + len(needle))
    return positions


@dataclass
class FindSession:
    """Find & replace state."""
    needle: str = ""
    replacement: str = ""
    matches: List[int] = field(default_factory=list)
    current: int = 0

    @property
    def status(self) -> str:
        if not self.needle:
            return ""
        if not self.matches:
            return "No matches"
        return f"Match {self.current + 1} of {len(self.matches)}"


@dataclass
class ExportSnapshot:
    """Chart image captured for one table at export time; None keeps the table."""
    table_index: int
    image_uri: Optional[str] = None


@dataclass
class ExportOutcome:
    success: bool
    data: bytes = b""
    filename: str = ""
    error: Optional[str] = None


class ExportAuthorizer(ABC):
    """Entitlement check consulted before every export."""

    @abstractmethod
    def can_export(self, user_id: Optional[str] = None) -> bool:
        pass


class AllowAllAuthorizer(ExportAuthorizer):

    def can_export(self, user_id: Optional[str] = None) -> bool:
        return True


class EditableDocumentController:
    """Single owner of the document text and everything derived from it."""

    def __init__(
        self,
        text: str = "",
        title: str = DEFAULT_TITLE,
        on_change: Callable[[str], None] = None,
        authorizer: ExportAuthorizer = None,
    ):
        self.text = text or ""
        self.title = title
        self.mode = "edit"
        self.find_session = FindSession()
        self.on_change = on_change
        self.authorizer = authorizer or AllowAllAuthorizer()
        self.rendered: Optional[RenderedDocument] = None
        self.toggles: List[TableChartToggle] = []
        self._rendered_text: Optional[str] = None
        self._exporting = False

    # Text and mode

    def set_text(self, text: str) -> None:
        self.text = text or ""
        self._refresh_matches()
        if self.on_change:
            self.on_change(self.text)
        if self.mode == "preview":
            self.render()

    def set_mode(self, mode: str) -> None:
        if mode not in ("edit", "preview"):
            raise ValueError(f"Unknown mode: {mode}")
        self.mode = mode
        if mode == "preview":
            self.render()
        else:
            self._unmount()

    def render(self) -> RenderedDocument:
        """Re-render the current text and mount fresh toggles."""
        self._unmount()
        self.rendered = render_document(self.text)
        self.toggles = [TableChartToggle(table) for table in self.rendered.tables]
        self._rendered_text = self.text
        logger.debug(f"Rendered document with {len(self.toggles)} tables")
        return self.rendered

    def toggle_for(self, table_index: int) -> Optional[TableChartToggle]:
        if 0 <= table_index < len(self.toggles):
            return self.toggles[table_index]
        return None

    def _unmount(self) -> None:
        for toggle in self.toggles:
            toggle.close()
        self.toggles = []
        self.rendered = None
        self._rendered_text = None

    # Find & replace

    def find(self, needle: str) -> FindSession:
        self.find_session.needle = needle or ""
        self.find_session.matches = find_all_occurrences(self.text, self.find_session.needle)
        self.find_session.current = 0
        return self.find_session

    def _refresh_matches(self) -> None:
        """Recompute match offsets for the current needle after the text changed."""
        session = self.find_session
        session.matches = find_all_occurrences(self.text, session.needle)
        session.current = min(session.current, len(session.matches) - 1) if session.matches else 0

    def next_match(self) -> Optional[int]:
        session = self.find_session
        if not session.matches:
            return None
        session.current = (session.current + 1) % len(session.matches)
        return session.matches[session.current]

    def previous_match(self) -> Optional[int]:
        session = self.find_session
        if not session.matches:
            return None
        session.current = (session.current - 1) % len(session.matches)
        return session.matches[session.current]

    def current_match(self) -> Optional[Tuple[int, int]]:
        """(start, end) of the highlighted match."""
        session = self.find_session
        if not session.matches:
            return None
        start = session.matches[session.current]
        return start, start + len(session.needle)

    def replace_current(self, replacement: str = None) -> bool:
        session = self.find_session
        if replacement is not None:
            session.replacement = replacement
        if not session.matches:
            return False

        start = session.matches[session.current]
        end = start + len(session.needle)
        if self.text[start:end] != session.needle:
            logger.warning("Active match no longer lines up with the text, searching again")
            self._refresh_matches()
            return False
        self.set_text(self.text[:start] + session.replacement + self.text[end:])
        return True

    def replace_all(self, replacement: str = None) -> int:
        session = self.find_session
        if replacement is not None:
            session.replacement = replacement
        count = len(session.matches)
        if not count:
            return 0

        self.set_text(self.text.replace(session.needle, session.replacement))
        session.matches = []
        session.current = 0
        return count

    # Generation

    def apply_generation(self, markdown: str) -> bool:
        """Replace the document with a generated one; blank responses are ignored."""
        if not markdown or not markdown.strip():
            logger.warning("Generation returned no content, keeping the current document")
            return False
        self.find_session = FindSession()
        self.set_text(markdown)
        return True

    # Export

    def build_export_text(self) -> Tuple[str, List[ExportSnapshot]]:
        """Scratch copy of the text with chart-mode tables swapped for captured images."""
        tables = extract_tables(self.text)
        mounted = self.toggles if self._rendered_text == self.text else []

        snapshots: List[ExportSnapshot] = []
        for table in tables:
            toggle = mounted[table.index] if table.index < len(mounted) else None
            snapshots.append(ExportSnapshot(table.index, toggle.capture_image() if toggle else None))

        export_text = self.text
        for table, snapshot in zip(reversed(tables), reversed(snapshots)):
            if snapshot.image_uri:
                export_text = (
                    export_text[:table.start]
                    + f"\n\n![Chart]({snapshot.image_uri})\n\n"
                    + export_text[table.end:]
                )
        return export_text, snapshots

    def export_filename(self, ext: str) -> str:
        base = UNSAFE_FILENAME_RE.sub("_", (self.title or "").strip()).strip(" .")
        return f"{base or DEFAULT_FILENAME}.{ext}"

    def export(self, fmt: str, authorizer: ExportAuthorizer = None, user_id: str = None) -> ExportOutcome:
        """Export the document as DOCX or PDF without touching the stored text."""
        fmt = (fmt or "").lower()
        if fmt not in EXPORTERS:
            return ExportOutcome(success=False, error=f"Unsupported export format: {fmt}")
        if self._exporting:
            return ExportOutcome(success=False, error="An export is already in progress.")

        authorizer = authorizer or self.authorizer
        if not authorizer.can_export(user_id):
            logger.info(f"Export to {fmt} refused for user {user_id}")
            return ExportOutcome(success=False, error="Your plan does not include document export.")

        self._exporting = True
        try:
            export_text, snapshots = self.build_export_text()
            captured = sum(1 for snapshot in snapshots if snapshot.image_uri)
            logger.info(f"Exporting {fmt}: {len(snapshots)} tables, {captured} as charts")
            data = EXPORTERS[fmt](export_text, title=self.title)
            return ExportOutcome(success=True, data=data, filename=self.export_filename(fmt))
        except Exception as e:
            logger.exception(f"Export to {fmt} failed: {str(e)}")
            return ExportOutcome(success=False, error=f"Failed to export to {fmt.upper()}. Please try again.")
        finally:
            self._exporting = False
