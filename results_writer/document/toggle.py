"""
Table/Chart toggle: per-table view state, chart-ready data, chart options and capture.
"""

import copy
import logging
import math
from enum import Enum
from typing import Any, Dict, List, Optional

import plotly.graph_objects as go

from results_writer.config import CONFIG, ChartConfig
from results_writer.document import charts
from results_writer.document.images import encode_data_uri
from results_writer.document.tables import ExtractedTable, coerce_cell

logger = logging.getLogger(__name__)

NO_DATA = [["Label", "Value"], ["No Data", 0]]
SCATTER_PLACEHOLDER = [["X", "Y"], [0, 0]]


class ChartKind(Enum):
    """Chart kinds a table can be shown as."""
    COLUMN = "ColumnChart"
    BAR = "BarChart"
    LINE = "LineChart"
    AREA = "AreaChart"
    PIE = "PieChart"
    DONUT = "DonutChart"
    SCATTER = "ScatterChart"
    COMBO = "ComboChart"

    @property
    def label(self) -> str:
        return self.value.replace("Chart", " Chart")

    @classmethod
    def parse(cls, value: Any) -> Optional["ChartKind"]:
        if isinstance(value, ChartKind):
            return value
        for kind in cls:
            if str(value).lower() in (kind.value.lower(), kind.name.lower()):
                return kind
        return None


class ViewMode(Enum):
    TABLE = "table"
    CHART = "chart"


PIE_LIKE = (ChartKind.PIE, ChartKind.DONUT)


def to_number(value: Any) -> float:
    """Numeric value of a cell; anything non-numeric or missing counts as 0."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else 0
    coerced = coerce_cell(str(value))
    return coerced if isinstance(coerced, (int, float)) and math.isfinite(coerced) else 0


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


# Expected value shape per option name, wherever the name appears.
DICT_OPTIONS = {"legend", "chartArea", "hAxis", "vAxis", "bar", "textStyle", "gridlines", "viewWindow"}
NUMBER_OPTIONS = {
    "width", "height", "dpi", "fontSize", "pieHole", "pointSize", "lineWidth",
    "areaOpacity", "slantedTextAngle", "min", "max",
}
TEXT_OPTIONS = {"title", "position", "color", "backgroundColor", "seriesType", "curveType", "pieSliceText", "type"}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def conform_options(options: Dict[str, Any]) -> Dict[str, Any]:
    """Reshape annotation options to the layout the renderers read.

    A bare string legend becomes `{"position": value}`, series keys become
    integers, and values of the wrong shape are dropped.
    """
    conformed: Dict[str, Any] = {}
    for key, value in options.items():
        if key == "legend" and isinstance(value, str):
            value = {"position": value}

        if key == "series":
            value = _conform_series(value)
            if not value:
                logger.debug(f"Dropping chart option series={options[key]!r}")
                continue
        elif key in DICT_OPTIONS:
            if not isinstance(value, dict):
                logger.debug(f"Dropping chart option {key}={value!r}: expected an object")
                continue
            value = conform_options(value)
        elif key in NUMBER_OPTIONS:
            if not _is_number(value):
                logger.debug(f"Dropping chart option {key}={value!r}: expected a number")
                continue
        elif key in TEXT_OPTIONS:
            if isinstance(value, (dict, list)):
                logger.debug(f"Dropping chart option {key}={value!r}: expected text")
                continue
            value = str(value)
        elif key == "colors":
            value = [color for color in value if isinstance(color, str)] if isinstance(value, list) else []
            if not value:
                continue
        conformed[key] = value
    return conformed


def _conform_series(series: Any) -> Dict[int, Dict[str, Any]]:
    if not isinstance(series, dict):
        return {}
    conformed = {}
    for key, value in series.items():
        if isinstance(key, bool) or not str(key).strip().isdigit() or not isinstance(value, dict):
            continue
        conformed[int(str(key).strip())] = conform_options(value)
    return conformed


def base_options(chart_config: ChartConfig) -> Dict[str, Any]:
    """Options shared by every chart kind, sized for an A4 page."""
    return {
        "width": chart_config.width_px,
        "height": chart_config.height_px,
        "dpi": chart_config.dpi,
        "fontSize": chart_config.font_size,
        "backgroundColor": "white",
        "colors": list(chart_config.colors),
        "chartArea": {"width": "80%", "height": "70%"},
        "legend": {"position": "bottom"},
        "hAxis": {"textStyle": {"fontSize": chart_config.font_size}},
        "vAxis": {"textStyle": {"fontSize": chart_config.font_size}, "gridlines": {"color": "#E0E0E0"}},
    }


def kind_options(kind: ChartKind, value_columns: List[str]) -> Dict[str, Any]:
    """Per-kind overrides applied on top of the base options; scatter axes are titled after the plotted columns."""
    if kind in PIE_LIKE:
        return {
            "legend": {"position": "right"},
            "pieHole": 0.4 if kind == ChartKind.DONUT else 0,
            "pieSliceText": "percentage",
            "chartArea": {"width": "90%", "height": "80%"},
        }
    if kind == ChartKind.SCATTER:
        return {
            "legend": {"position": "none"},
            "pointSize": 6,
            "hAxis": {"title": value_columns[0] if value_columns else "", "viewWindow": {"min": 0}},
            "vAxis": {"title": value_columns[1] if len(value_columns) > 1 else "", "viewWindow": {"min": 0}},
        }

    options: Dict[str, Any] = {"legend": {"position": "top"}, "vAxis": {"viewWindow": {"min": 0}}}
    if kind in (ChartKind.COLUMN, ChartKind.BAR):
        options["bar"] = {"groupWidth": "70%"}
        options["hAxis"] = {
            "slantedText": kind == ChartKind.COLUMN,
            "slantedTextAngle": 45 if kind == ChartKind.COLUMN else 0,
        }
    elif kind in (ChartKind.LINE, ChartKind.AREA):
        options.update({"curveType": "function", "pointSize": 4, "lineWidth": 2})
        if kind == ChartKind.AREA:
            options["areaOpacity"] = 0.2
    elif kind == ChartKind.COMBO:
        options.update({"seriesType": "bars", "series": {1: {"type": "line"}}})
    return options


class TableChartToggle:
    """Interactive view of one extracted table: either the table or one chart kind.

    The toggle owns a matplotlib figure (its chart handle) while it is in chart
    mode; the figure is redrawn whenever the chart state changes and released
    when the table view is shown again.
    """

    def __init__(self, table: ExtractedTable, chart_config: ChartConfig = None):
        self.table = table
        self.chart_config = chart_config or CONFIG.chart
        self.mode = ViewMode.TABLE
        self.chart_kind = ChartKind.parse(table.chart_options.get("chartType", "")) or ChartKind.COLUMN
        self.label_column: Optional[str] = table.headers[0] if table.headers else None
        self.value_columns: List[str] = [table.headers[1]] if len(table.headers) > 1 else []
        self._figure = None

    # View state

    @property
    def figure_number(self) -> int:
        return self.table.figure_number

    @property
    def view_mode(self) -> str:
        """`"table"` or the active chart kind's name."""
        return ViewMode.TABLE.value if self.mode == ViewMode.TABLE else self.chart_kind.value

    @property
    def caption(self) -> str:
        prefix = "Table" if self.mode == ViewMode.TABLE else "Chart"
        return f"{prefix} {self.figure_number}"

    def show_table(self) -> None:
        self.mode = ViewMode.TABLE
        self.close()

    def show_chart(self, kind: Any = None) -> None:
        if kind is not None:
            parsed = ChartKind.parse(kind)
            if parsed is None:
                raise ValueError(f"Unknown chart kind: {kind}")
            self.chart_kind = parsed
        self.mode = ViewMode.CHART
        self.render_chart()

    def toggle(self) -> None:
        if self.mode == ViewMode.TABLE:
            self.show_chart()
        else:
            self.show_table()

    def set_chart_kind(self, kind: Any) -> None:
        parsed = ChartKind.parse(kind)
        if parsed is None:
            raise ValueError(f"Unknown chart kind: {kind}")
        self.chart_kind = parsed
        self._refresh()

    def set_label_column(self, column: str) -> None:
        if column not in self.table.headers:
            logger.debug(f"Ignoring unknown label column {column!r}")
            return
        self.label_column = column
        self.value_columns = [c for c in self.value_columns if c != column]
        self._refresh()

    def set_value_column(self, column: str, checked: bool) -> None:
        if column not in self.table.headers or column == self.label_column:
            return
        if checked and column not in self.value_columns:
            self.value_columns.append(column)
        elif not checked and column in self.value_columns:
            self.value_columns.remove(column)
        self._refresh()

    def effective_value_columns(self) -> List[str]:
        """Value columns after the active kind's arity rule."""
        if self.chart_kind in PIE_LIKE:
            return self.value_columns[:1]
        if self.chart_kind == ChartKind.SCATTER:
            return self.value_columns[:2]
        return list(self.value_columns)

    # Derived chart inputs

    def chart_data(self) -> List[List[Any]]:
        """Header row followed by one row per table row."""
        columns = self.effective_value_columns()
        rows = self.table.rows

        if self.chart_kind == ChartKind.SCATTER:
            if len(columns) < 2:
                return copy.deepcopy(SCATTER_PLACEHOLDER)
            x_col, y_col = columns
            return [[x_col, y_col]] + [[to_number(row.get(x_col)), to_number(row.get(y_col))] for row in rows]

        if len(self.table.headers) < 2 or not self.label_column or not columns:
            return copy.deepcopy(NO_DATA)

        def label(row: Dict[str, Any]) -> str:
            value = row.get(self.label_column)
            return "" if value is None else str(value)

        if self.chart_kind in PIE_LIKE:
            value_col = columns[0]
            return [["Label", "Value"]] + [[label(row), to_number(row.get(value_col))] for row in rows]

        return [[self.label_column] + columns] + [
            [label(row)] + [to_number(row.get(col)) for col in columns] for row in rows
        ]

    def chart_options(self) -> Dict[str, Any]:
        defaults = kind_options(self.chart_kind, self.effective_value_columns())
        options = _deep_merge(base_options(self.chart_config), defaults)
        annotation = conform_options({k: v for k, v in self.table.chart_options.items() if k != "chartType"})
        return _deep_merge(options, annotation)

    # Chart handle

    def render_chart(self):
        """Draw the current chart into the owned figure and return it (None on failure)."""
        self.close()
        try:
            self._figure = charts.draw_chart(self.chart_kind.value, self.chart_data(), self.chart_options())
        except Exception as e:
            logger.error(f"Chart {self.figure_number} failed to render: {str(e)}")
            self._figure = None
        return self._figure

    def plotly_figure(self) -> go.Figure:
        """Live preview figure; an empty figure with a notice if drawing fails."""
        try:
            return charts.plotly_chart(self.chart_kind.value, self.chart_data(), self.chart_options())
        except Exception as e:
            logger.error(f"Chart {self.figure_number} preview failed: {str(e)}")
            fig = go.Figure()
            fig.add_annotation(text="Chart unavailable", showarrow=False, x=0.5, y=0.5, xref="paper", yref="paper")
            fig.update_layout(xaxis={"visible": False}, yaxis={"visible": False})
            return fig

    def capture_image(self) -> Optional[str]:
        """PNG data URI of the rendered chart, or None when there is nothing to capture."""
        if self.mode != ViewMode.CHART or self._figure is None:
            return None
        try:
            png = charts.figure_to_png(self._figure, dpi=self.chart_config.capture_dpi)
        except Exception as e:
            logger.error(f"Chart {self.figure_number} capture failed, keeping the table: {str(e)}")
            return None
        return encode_data_uri(png) if png else None

    def close(self) -> None:
        charts.close_figure(self._figure)
        self._figure = None

    def _refresh(self) -> None:
        if self.mode == ViewMode.CHART:
            self.render_chart()
