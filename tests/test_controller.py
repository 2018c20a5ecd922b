"""
Editable document controller: find & replace, mode switching and export orchestration.
"""

import pytest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

TWO_TABLES = (
    "# Results\n\n"
    "| Age | n |\n|---|---|\n| 18-25 | 4 |\n| 26-40 | 9 |\n\n"
    "Most respondents were women.\n\n"
    "| Gender | n |\n|---|---|\n| F | 7 |\n| M | 3 |\n"
)


class TestFindReplace:
    """Find, navigate and replace."""

    def test_non_overlapping_matches(self):
        from results_writer.document.controller import find_all_occurrences
        assert find_all_occurrences("aaaa", "aa") == [0, 2]
        assert find_all_occurrences("Cat cat", "cat") == [4]
        assert find_all_occurrences("abc", "") == []

    def test_replace_current_keeps_position(self):
        from results_writer.document.controller import EditableDocumentController
        controller = EditableDocumentController("cat cat cat")
        controller.find("cat")
        assert controller.find_session.status == "Match 1 of 3"
        controller.next_match()
        assert controller.replace_current("dog")
        assert controller.text == "cat dog cat"
        assert controller.find_session.matches == [0, 8]
        assert controller.find_session.status == "Match 2 of 2"

    def test_replace_last_match_clamps(self):
        from results_writer.document.controller import EditableDocumentController
        controller = EditableDocumentController("x a x")
        controller.find("x")
        controller.previous_match()
        assert controller.current_match() == (4, 5)
        controller.replace_current("y")
        assert controller.text == "x a y"
        assert controller.find_session.current == 0

    def test_navigation_wraps(self):
        from results_writer.document.controller import EditableDocumentController
        controller = EditableDocumentController("one two one")
        controller.find("one")
        assert controller.next_match() == 8
        assert controller.next_match() == 0
        assert controller.previous_match() == 8

    def test_no_matches(self):
        from results_writer.document.controller import EditableDocumentController
        controller = EditableDocumentController("alpha")
        controller.find("beta")
        assert controller.find_session.status == "No matches"
        assert controller.next_match() is None
        assert controller.replace_current("x") is False
        assert controller.replace_all("x") == 0
        assert controller.text == "alpha"

    def test_edit_after_find_refreshes_matches(self):
        from results_writer.document.controller import EditableDocumentController
        controller = EditableDocumentController("cat cat")
        controller.find("cat")
        controller.set_text("a cat cat")
        assert controller.find_session.matches == [2, 6]
        assert controller.replace_current("dog")
        assert controller.text == "a dog cat"

    def test_replace_all_after_edit(self):
        from results_writer.document.controller import EditableDocumentController
        controller = EditableDocumentController("cat")
        controller.find("cat")
        controller.set_text("cat cat cat")
        assert controller.replace_all("dog") == 3
        assert controller.text == "dog dog dog"

    def test_edit_removing_matches_clamps(self):
        from results_writer.document.controller import EditableDocumentController
        controller = EditableDocumentController("cat cat cat")
        controller.find("cat")
        controller.previous_match()
        controller.set_text("cat only")
        assert controller.find_session.current == 0
        assert controller.find_session.status == "Match 1 of 1"
        controller.set_text("none left")
        assert controller.replace_current("dog") is False
        assert controller.text == "none left"

    def test_misaligned_match_not_replaced(self):
        from results_writer.document.controller import EditableDocumentController
        controller = EditableDocumentController("cat cat")
        controller.find("cat")
        controller.text = "xcat cat"
        assert controller.replace_current("dog") is False
        assert controller.text == "xcat cat"
        assert controller.find_session.matches == [1, 5]

    def test_replace_all_with_same_text(self):
        from results_writer.document.controller import EditableDocumentController
        controller = EditableDocumentController("cat and cat")
        controller.find("cat")
        assert controller.replace_all("cat") == 2
        assert controller.text == "cat and cat"
        assert controller.find_session.matches == []

    def test_replace_all_containing_needle(self):
        from results_writer.document.controller import EditableDocumentController
        controller = EditableDocumentController("a b a")
        controller.find("a")
        assert controller.replace_all("aa") == 2
        assert controller.text == "aa b aa"


class TestModes:
    """Edit/preview switching and text changes."""

    def test_preview_mounts_toggles(self):
        from results_writer.document.controller import EditableDocumentController
        controller = EditableDocumentController(TWO_TABLES)
        controller.set_mode("preview")
        assert len(controller.toggles) == 2
        assert controller.toggle_for(1).caption == "Table 2"
        assert controller.toggle_for(5) is None

    def test_edit_mode_unmounts(self):
        from results_writer.document.controller import EditableDocumentController
        controller = EditableDocumentController(TWO_TABLES)
        controller.set_mode("preview")
        controller.set_mode("edit")
        assert controller.toggles == []
        assert controller.rendered is None

    def test_unknown_mode(self):
        from results_writer.document.controller import EditableDocumentController
        with pytest.raises(ValueError):
            EditableDocumentController().set_mode("split")

    def test_on_change_notified(self):
        from results_writer.document.controller import EditableDocumentController
        seen = []
        controller = EditableDocumentController("old", on_change=seen.append)
        controller.set_text("new")
        assert seen == ["new"]

    def test_set_text_in_preview_rerenders(self):
        from results_writer.document.controller import EditableDocumentController
        controller = EditableDocumentController("No tables yet.")
        controller.set_mode("preview")
        assert controller.toggles == []
        controller.set_text(TWO_TABLES)
        assert len(controller.toggles) == 2

    def test_blank_generation_keeps_document(self):
        from results_writer.document.controller import EditableDocumentController
        controller = EditableDocumentController("Existing text")
        assert controller.apply_generation("   \n") is False
        assert controller.text == "Existing text"
        assert controller.apply_generation("# New") is True
        assert controller.text == "# New"


class TestExport:
    """Export text assembly and outcomes."""

    def test_chart_mode_tables_become_images(self):
        from results_writer.document.controller import EditableDocumentController
        controller = EditableDocumentController(TWO_TABLES)
        controller.set_mode("preview")
        controller.toggle_for(1).show_chart()

        export_text, snapshots = controller.build_export_text()
        assert "| 18-25 | 4 |" in export_text
        assert "| F | 7 |" not in export_text
        assert export_text.count("![Chart](data:image/png;base64,") == 1
        assert [s.image_uri is not None for s in snapshots] == [False, True]
        assert controller.text == TWO_TABLES

    def test_edit_mode_exports_tables(self):
        from results_writer.document.controller import EditableDocumentController
        controller = EditableDocumentController(TWO_TABLES)
        export_text, snapshots = controller.build_export_text()
        assert export_text == TWO_TABLES
        assert all(s.image_uri is None for s in snapshots)

    def test_docx_and_pdf_outcomes(self):
        from results_writer.document.controller import EditableDocumentController
        controller = EditableDocumentController(TWO_TABLES, title="Survey Results")
        controller.set_mode("preview")
        controller.toggle_for(0).show_chart("PieChart")

        docx = controller.export("docx")
        assert docx.success
        assert docx.filename == "Survey Results.docx"
        assert docx.data[:2] == b"PK"

        pdf = controller.export("PDF")
        assert pdf.success
        assert pdf.filename == "Survey Results.pdf"
        assert pdf.data.startswith(b"%PDF")
        assert controller.text == TWO_TABLES

    def test_unsupported_format(self):
        from results_writer.document.controller import EditableDocumentController
        outcome = EditableDocumentController(TWO_TABLES).export("odt")
        assert not outcome.success
        assert "odt" in outcome.error

    def test_refused_by_authorizer(self):
        from results_writer.document.controller import EditableDocumentController, ExportAuthorizer

        class FreePlan(ExportAuthorizer):
            def can_export(self, user_id=None):
                return False

        controller = EditableDocumentController(TWO_TABLES, authorizer=FreePlan())
        outcome = controller.export("pdf", user_id="u1")
        assert not outcome.success
        assert outcome.error == "Your plan does not include document export."

    def test_authorizer_is_abstract(self):
        from results_writer.document.controller import AllowAllAuthorizer, ExportAuthorizer
        with pytest.raises(TypeError):
            ExportAuthorizer()
        assert AllowAllAuthorizer().can_export("anyone")

    def test_second_export_while_running(self, monkeypatch):
        from results_writer.document import controller as controller_module
        from results_writer.document.controller import EditableDocumentController

        controller = EditableDocumentController(TWO_TABLES)
        nested = []

        def reentrant(markdown, title=None):
            nested.append(controller.export("pdf"))
            return b"%PDF-1.4"

        monkeypatch.setitem(controller_module.EXPORTERS, "pdf", reentrant)
        outcome = controller.export("pdf")
        assert outcome.success
        assert nested[0].error == "An export is already in progress."
        assert controller.export("pdf").success

    def test_exporter_failure_message(self, monkeypatch):
        from results_writer.document import controller as controller_module
        from results_writer.document.controller import EditableDocumentController

        def broken(markdown, title=None):
            raise OSError("disk full")

        monkeypatch.setitem(controller_module.EXPORTERS, "docx", broken)
        controller = EditableDocumentController(TWO_TABLES)
        outcome = controller.export("docx")
        assert not outcome.success
        assert outcome.error == "Failed to export to DOCX. Please try again."
        assert controller.text == TWO_TABLES

    def test_filenames(self):
        from results_writer.document.controller import EditableDocumentController
        assert EditableDocumentController(title='Q3: "North/South"').export_filename("pdf") == "Q3_ _North_South_.pdf"
        assert EditableDocumentController(title="  ").export_filename("docx") == "research_document.docx"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
