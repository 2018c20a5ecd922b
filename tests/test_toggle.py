"""
Table/Chart toggle: view state, chart data, options and capture.
"""

import pytest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))


def make_table(markdown, index=0):
    from results_writer.document.tables import extract_tables
    return extract_tables(markdown)[index]


PIE_TABLE = "| Label | Value |\n|---|---|\n| A | 10 |\n| B | 5 |\n"
WIDE_TABLE = (
    "| Region | Q1 | Q2 |\n|---|---|---|\n"
    "| North | 4 | 6 |\n| South | 7 | n/a |\n| East | 2.5 | 3 |\n"
)


class TestToggleState:
    """Mode switching and column selection."""

    def test_defaults(self):
        from results_writer.document.toggle import ChartKind, TableChartToggle, ViewMode
        toggle = TableChartToggle(make_table(WIDE_TABLE))
        assert toggle.mode == ViewMode.TABLE
        assert toggle.view_mode == "table"
        assert toggle.caption == "Table 1"
        assert toggle.chart_kind == ChartKind.COLUMN
        assert toggle.label_column == "Region"
        assert toggle.value_columns == ["Q1"]

    def test_toggle_switches_caption(self):
        from results_writer.document.toggle import TableChartToggle
        toggle = TableChartToggle(make_table(WIDE_TABLE))
        toggle.toggle()
        assert toggle.caption == "Chart 1"
        assert toggle.view_mode == "ColumnChart"
        toggle.toggle()
        assert toggle.caption == "Table 1"
        assert toggle.capture_image() is None

    def test_figure_number_follows_index(self):
        from results_writer.document.toggle import TableChartToggle
        table = make_table(PIE_TABLE + "\nText\n\n" + WIDE_TABLE, index=1)
        assert TableChartToggle(table).caption == "Table 2"

    def test_label_column_leaves_values(self):
        from results_writer.document.toggle import TableChartToggle
        toggle = TableChartToggle(make_table(WIDE_TABLE))
        toggle.set_label_column("Q1")
        assert toggle.label_column == "Q1"
        assert toggle.value_columns == []

    def test_value_column_checks(self):
        from results_writer.document.toggle import TableChartToggle
        toggle = TableChartToggle(make_table(WIDE_TABLE))
        toggle.set_value_column("Q2", True)
        toggle.set_value_column("Q2", True)
        assert toggle.value_columns == ["Q1", "Q2"]
        toggle.set_value_column("Region", True)
        toggle.set_value_column("Missing", True)
        assert toggle.value_columns == ["Q1", "Q2"]
        toggle.set_value_column("Q1", False)
        assert toggle.value_columns == ["Q2"]

    def test_unknown_kind_rejected(self):
        from results_writer.document.toggle import TableChartToggle
        toggle = TableChartToggle(make_table(WIDE_TABLE))
        with pytest.raises(ValueError):
            toggle.set_chart_kind("RadarChart")

    def test_kind_parsing(self):
        from results_writer.document.toggle import ChartKind
        assert ChartKind.parse("PieChart") == ChartKind.PIE
        assert ChartKind.parse("donut") == ChartKind.DONUT
        assert ChartKind.parse("nope") is None
        assert ChartKind.COMBO.label == "Combo Chart"


class TestChartData:
    """Chart-ready data for each kind."""

    def test_pie_data(self):
        from results_writer.document.toggle import TableChartToggle
        toggle = TableChartToggle(make_table(PIE_TABLE))
        toggle.set_chart_kind("PieChart")
        assert toggle.chart_data() == [["Label", "Value"], ["A", 10], ["B", 5]]

    def test_pie_uses_first_value_column_only(self):
        from results_writer.document.toggle import TableChartToggle
        toggle = TableChartToggle(make_table(WIDE_TABLE))
        toggle.set_value_column("Q2", True)
        toggle.set_chart_kind("DonutChart")
        assert toggle.effective_value_columns() == ["Q1"]
        assert toggle.chart_data()[0] == ["Label", "Value"]
        toggle.set_chart_kind("ColumnChart")
        assert toggle.effective_value_columns() == ["Q1", "Q2"]

    def test_non_numeric_counts_as_zero(self):
        from results_writer.document.toggle import TableChartToggle
        toggle = TableChartToggle(make_table(WIDE_TABLE))
        toggle.set_value_column("Q2", True)
        assert toggle.chart_data() == [
            ["Region", "Q1", "Q2"],
            ["North", 4, 6],
            ["South", 7, 0],
            ["East", 2.5, 3],
        ]

    def test_no_value_columns(self):
        from results_writer.document.toggle import NO_DATA, TableChartToggle
        toggle = TableChartToggle(make_table(PIE_TABLE))
        toggle.set_value_column("Value", False)
        assert toggle.chart_data() == NO_DATA

    def test_single_column_table(self):
        from results_writer.document.toggle import NO_DATA, TableChartToggle
        toggle = TableChartToggle(make_table("| Only |\n|---|\n| x |\n"))
        assert toggle.chart_data() == NO_DATA

    def test_scatter_needs_two_columns(self):
        from results_writer.document.toggle import SCATTER_PLACEHOLDER, TableChartToggle
        toggle = TableChartToggle(make_table(WIDE_TABLE))
        toggle.set_chart_kind("ScatterChart")
        assert toggle.chart_data() == SCATTER_PLACEHOLDER
        toggle.set_value_column("Q2", True)
        assert toggle.chart_data() == [["Q1", "Q2"], [4, 6], [7, 0], [2.5, 3]]

    def test_placeholder_is_not_shared(self):
        from results_writer.document.toggle import NO_DATA, TableChartToggle
        toggle = TableChartToggle(make_table("| Only |\n|---|\n| x |\n"))
        toggle.chart_data()[1][0] = "changed"
        assert NO_DATA[1][0] == "No Data"


class TestChartOptions:
    """Per-kind options and table annotations."""

    def test_pie_and_donut(self):
        from results_writer.document.toggle import TableChartToggle
        toggle = TableChartToggle(make_table(PIE_TABLE))
        toggle.set_chart_kind("PieChart")
        assert toggle.chart_options()["pieHole"] == 0
        assert toggle.chart_options()["legend"]["position"] == "right"
        toggle.set_chart_kind("DonutChart")
        assert toggle.chart_options()["pieHole"] == 0.4

    def test_scatter_axis_titles(self):
        from results_writer.document.toggle import TableChartToggle
        toggle = TableChartToggle(make_table(WIDE_TABLE))
        toggle.set_value_column("Q2", True)
        toggle.set_chart_kind("ScatterChart")
        options = toggle.chart_options()
        assert options["hAxis"]["title"] == "Q1"
        assert options["vAxis"]["title"] == "Q2"
        assert options["vAxis"]["viewWindow"]["min"] == 0
        assert options["legend"]["position"] == "none"

    def test_column_slanted_labels(self):
        from results_writer.document.toggle import TableChartToggle
        options = TableChartToggle(make_table(WIDE_TABLE)).chart_options()
        assert options["hAxis"]["slantedText"] is True
        assert options["vAxis"]["gridlines"]["color"] == "#E0E0E0"

    def test_annotation_overrides_defaults(self):
        from results_writer.document.toggle import ChartKind, TableChartToggle
        annotation = '<!-- chart-options {"chartType": "PieChart", "title": "Shares", "legend": {"position": "none"}} -->\n'
        toggle = TableChartToggle(make_table(annotation + PIE_TABLE))
        assert toggle.chart_kind == ChartKind.PIE
        options = toggle.chart_options()
        assert options["title"] == "Shares"
        assert options["legend"]["position"] == "none"
        assert "chartType" not in options
        assert options["pieSliceText"] == "percentage"

    def test_string_legend_annotation(self):
        from results_writer.document.toggle import TableChartToggle
        toggle = TableChartToggle(make_table('<!-- chart-options {"legend": "none"} -->\n' + PIE_TABLE))
        assert toggle.chart_options()["legend"] == {"position": "none"}
        toggle.show_chart()
        assert toggle.capture_image() is not None
        assert toggle.plotly_figure().data
        toggle.close()

    def test_mis_shaped_annotation_values_dropped(self):
        from results_writer.document.toggle import TableChartToggle
        annotation = (
            '<!-- chart-options {"chartType": "ComboChart", "hAxis": "x", "width": "wide", '
            '"series": {"one": {"type": "line"}, "1": {"type": "line"}}, "title": 2024} -->\n'
        )
        toggle = TableChartToggle(make_table(annotation + WIDE_TABLE))
        toggle.set_value_column("Q2", True)
        options = toggle.chart_options()
        assert isinstance(options["hAxis"], dict)
        assert isinstance(options["width"], int)
        assert options["series"] == {1: {"type": "line"}}
        assert options["title"] == "2024"
        toggle.show_chart()
        assert toggle.capture_image() is not None
        assert toggle.plotly_figure().data
        toggle.close()

    def test_conform_options(self):
        from results_writer.document.toggle import conform_options
        assert conform_options({"legend": "top", "pointSize": "big", "colors": ["#000", 3]}) == {
            "legend": {"position": "top"},
            "colors": ["#000"],
        }
        assert conform_options({"vAxis": {"viewWindow": 5, "title": "n"}}) == {"vAxis": {"title": "n"}}
        assert conform_options({"series": "line"}) == {}

    def test_bad_annotation_kind_falls_back(self):
        from results_writer.document.toggle import ChartKind, TableChartToggle
        toggle = TableChartToggle(make_table('<!-- chart-options {"chartType": "Radar"} -->\n' + PIE_TABLE))
        assert toggle.chart_kind == ChartKind.COLUMN


class TestChartRendering:
    """Figures, plotly previews and image capture."""

    def test_every_kind_renders(self):
        from results_writer.document.toggle import ChartKind, TableChartToggle
        toggle = TableChartToggle(make_table(WIDE_TABLE))
        toggle.set_value_column("Q2", True)
        for kind in ChartKind:
            toggle.show_chart(kind)
            assert toggle.render_chart() is not None, kind
            assert toggle.plotly_figure().data
        toggle.close()

    def test_capture_after_show_chart(self):
        from results_writer.document.toggle import TableChartToggle
        toggle = TableChartToggle(make_table(PIE_TABLE))
        assert toggle.capture_image() is None
        toggle.show_chart("PieChart")
        uri = toggle.capture_image()
        assert uri.startswith("data:image/png;base64,")
        toggle.show_table()
        assert toggle.capture_image() is None

    def test_zero_pie_still_renders(self):
        from results_writer.document.toggle import TableChartToggle
        toggle = TableChartToggle(make_table("| Label | Value |\n|---|---|\n| A | 0 |\n"))
        toggle.show_chart("PieChart")
        assert toggle.capture_image() is not None
        toggle.close()

    def test_preview_failure_gives_placeholder_figure(self, monkeypatch):
        from results_writer.document import charts
        from results_writer.document.toggle import TableChartToggle

        def broken(*args, **kwargs):
            raise RuntimeError("plotly down")

        monkeypatch.setattr(charts, "plotly_chart", broken)
        figure = TableChartToggle(make_table(PIE_TABLE)).plotly_figure()
        assert figure.layout.annotations[0].text == "Chart unavailable"

    def test_render_failure_gives_no_capture(self, monkeypatch):
        from results_writer.document import charts
        from results_writer.document.toggle import TableChartToggle

        def broken(*args, **kwargs):
            raise RuntimeError("renderer down")

        monkeypatch.setattr(charts, "draw_chart", broken)
        toggle = TableChartToggle(make_table(PIE_TABLE))
        toggle.show_chart()
        assert toggle.capture_image() is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
