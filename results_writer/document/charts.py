"""
Chart drawing for table toggles: matplotlib (static, exportable) and plotly (live preview).

Both renderers take the same chart-ready table (header row, then data rows)
and the same Google-Charts style options dictionary.
"""

import io
import logging
from typing import Any, Dict, List, Tuple

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import plotly.graph_objects as go

logger = logging.getLogger(__name__)

PIE_KINDS = ("PieChart", "DonutChart")


def _series(data: List[List[Any]]) -> Tuple[List[str], List[str], List[List[float]]]:
    """Split chart data into (labels, series names, series values)."""
    header, rows = data[0], data[1:]
    labels = [str(row[0]) for row in rows]
    names = [str(name) for name in header[1:]]
    values = [[float(row[i + 1]) for row in rows] for i in range(len(names))]
    return labels, names, values


def _place_legend(ax, position: str, handles_exist: bool = True) -> None:
    if not handles_exist or position == "none":
        legend = ax.get_legend()
        if legend:
            legend.remove()
        return
    if position == "top":
        ax.legend(loc="lower center", bbox_to_anchor=(0.5, 1.02), ncol=4, frameon=False)
    elif position == "right":
        ax.legend(loc="center left", bbox_to_anchor=(1.0, 0.5), frameon=False)
    elif position == "left":
        ax.legend(loc="center right", bbox_to_anchor=(0.0, 0.5), frameon=False)
    else:
        ax.legend(loc="upper center", bbox_to_anchor=(0.5, -0.12), ncol=4, frameon=False)


def _style_axes(ax, options: Dict[str, Any], horizontal: bool = False) -> None:
    h_axis = options.get("hAxis", {}) or {}
    v_axis = options.get("vAxis", {}) or {}
    grid_color = (v_axis.get("gridlines") or {}).get("color", "#E0E0E0")
    ax.grid(True, axis="x" if horizontal else "y", color=grid_color, alpha=0.8)
    ax.set_axisbelow(True)
    for side in ("top", "right"):
        ax.spines[side].set_visible(False)

    if h_axis.get("title"):
        ax.set_xlabel(h_axis["title"])
    if v_axis.get("title"):
        ax.set_ylabel(v_axis["title"])

    minimum = (v_axis.get("viewWindow") or {}).get("min")
    if minimum is not None:
        if horizontal:
            ax.set_xlim(left=minimum)
        else:
            ax.set_ylim(bottom=minimum)
    h_minimum = (h_axis.get("viewWindow") or {}).get("min")
    if h_minimum is not None and not horizontal:
        ax.set_xlim(left=h_minimum)

    if h_axis.get("slantedText"):
        angle = h_axis.get("slantedTextAngle", 45)
        for label in ax.get_xticklabels():
            label.set_rotation(angle)
            label.set_horizontalalignment("right")


def _draw_bars(ax, labels, names, values, colors, group_width: float, horizontal: bool) -> None:
    count = max(len(names), 1)
    width = group_width / count
    positions = list(range(len(labels)))
    for i, (name, series) in enumerate(zip(names, values)):
        offsets = [p - group_width / 2 + width * (i + 0.5) for p in positions]
        color = colors[i % len(colors)]
        if horizontal:
            ax.barh(offsets, series, height=width, label=name, color=color)
        else:
            ax.bar(offsets, series, width=width, label=name, color=color)
    if horizontal:
        ax.set_yticks(positions)
        ax.set_yticklabels(labels)
        ax.invert_yaxis()
    else:
        ax.set_xticks(positions)
        ax.set_xticklabels(labels)


def _group_width(options: Dict[str, Any]) -> float:
    raw = (options.get("bar") or {}).get("groupWidth", "70%")
    try:
        return float(str(raw).rstrip("%")) / 100 if str(raw).endswith("%") else 0.7
    except ValueError:
        return 0.7


def draw_chart(kind: str, data: List[List[Any]], options: Dict[str, Any]):
    """Draw the chart with matplotlib and return the figure."""
    width_px = options.get("width", 714)
    height_px = options.get("height", 500)
    dpi = options.get("dpi", 96)
    colors = options.get("colors") or ["#4285F4"]
    legend_position = (options.get("legend") or {}).get("position", "bottom")

    plt.rcParams.update({"font.size": options.get("fontSize", 11)})
    fig, ax = plt.subplots(figsize=(width_px / dpi, height_px / dpi), dpi=dpi)
    fig.patch.set_facecolor(options.get("backgroundColor", "white"))

    if options.get("title"):
        ax.set_title(options["title"], fontsize=14, fontweight="bold")

    if kind in PIE_KINDS:
        labels, _, values = _series(data)
        sizes = [max(v, 0.0) for v in (values[0] if values else [])]
        if not sizes or sum(sizes) <= 0:
            ax.text(0.5, 0.5, "No Data", ha="center", va="center", transform=ax.transAxes)
            ax.axis("off")
            return fig
        hole = float(options.get("pieHole", 0) or 0)
        wedges, _, _ = ax.pie(
            sizes,
            colors=[colors[i % len(colors)] for i in range(len(sizes))],
            autopct="%1.1f%%",
            startangle=90,
            counterclock=False,
            wedgeprops={"width": 1 - hole} if hole else None,
            pctdistance=1 - hole / 2 if hole else 0.6,
        )
        ax.axis("equal")
        if legend_position != "none":
            ax.legend(wedges, labels, loc="center left", bbox_to_anchor=(1.0, 0.5), frameon=False)
        return fig

    if kind == "ScatterChart":
        header, rows = data[0], data[1:]
        xs = [float(row[0]) for row in rows]
        ys = [float(row[1]) for row in rows]
        size = options.get("pointSize", 6)
        ax.scatter(xs, ys, s=size ** 2, color=colors[0])
        _style_axes(ax, options)
        if not (options.get("hAxis") or {}).get("title"):
            ax.set_xlabel(str(header[0]))
        if not (options.get("vAxis") or {}).get("title"):
            ax.set_ylabel(str(header[1]))
        return fig

    labels, names, values = _series(data)
    horizontal = kind == "BarChart"

    if kind in ("ColumnChart", "BarChart"):
        _draw_bars(ax, labels, names, values, colors, _group_width(options), horizontal)
    elif kind in ("LineChart", "AreaChart"):
        positions = list(range(len(labels)))
        for i, (name, series) in enumerate(zip(names, values)):
            color = colors[i % len(colors)]
            ax.plot(
                positions, series, label=name, color=color,
                marker="o", markersize=options.get("pointSize", 4), linewidth=options.get("lineWidth", 2),
            )
            if kind == "AreaChart":
                ax.fill_between(positions, series, alpha=options.get("areaOpacity") or 0.2, color=color)
        ax.set_xticks(positions)
        ax.set_xticklabels(labels)
    elif kind == "ComboChart":
        series_types = {int(k): (v or {}).get("type", "") for k, v in (options.get("series") or {}).items()}
        default_type = options.get("seriesType", "bars")
        bar_series = [i for i in range(len(names)) if series_types.get(i, default_type) in ("bars", "")]
        positions = list(range(len(labels)))
        if bar_series:
            _draw_bars(
                ax, labels, [names[i] for i in bar_series], [values[i] for i in bar_series],
                [colors[i % len(colors)] for i in bar_series], _group_width(options), False,
            )
        for i in range(len(names)):
            if i in bar_series:
                continue
            ax.plot(positions, values[i], label=names[i], color=colors[i % len(colors)], marker="o", linewidth=2)
        ax.set_xticks(positions)
        ax.set_xticklabels(labels)
    else:
        raise ValueError(f"Unsupported chart kind: {kind}")

    _style_axes(ax, options, horizontal=horizontal)
    _place_legend(ax, legend_position, handles_exist=bool(names))
    fig.tight_layout()
    return fig


def figure_to_png(fig, dpi: int = 150) -> bytes:
    """Render a matplotlib figure to PNG bytes."""
    img_buffer = io.BytesIO()
    fig.savefig(img_buffer, format="png", dpi=dpi, bbox_inches="tight", facecolor=fig.get_facecolor())
    img_buffer.seek(0)
    return img_buffer.read()


def close_figure(fig) -> None:
    if fig is not None:
        plt.close(fig)


def plotly_chart(kind: str, data: List[List[Any]], options: Dict[str, Any]) -> go.Figure:
    """Interactive rendition of the same chart for the live preview."""
    colors = options.get("colors") or None
    legend_position = (options.get("legend") or {}).get("position", "bottom")
    fig = go.Figure()

    if kind in PIE_KINDS:
        labels, _, values = _series(data)
        fig.add_trace(go.Pie(
            labels=labels,
            values=values[0] if values else [],
            hole=float(options.get("pieHole", 0) or 0),
            textinfo="percent",
            marker={"colors": colors},
        ))
    elif kind == "ScatterChart":
        header, rows = data[0], data[1:]
        fig.add_trace(go.Scatter(
            x=[row[0] for row in rows], y=[row[1] for row in rows], mode="markers",
            marker={"size": options.get("pointSize", 6), "color": colors[0] if colors else None},
        ))
        fig.update_xaxes(title_text=str(header[0]))
        fig.update_yaxes(title_text=str(header[1]))
    else:
        labels, names, values = _series(data)
        series_types = {int(k): (v or {}).get("type", "") for k, v in (options.get("series") or {}).items()}
        for i, (name, series) in enumerate(zip(names, values)):
            color = colors[i % len(colors)] if colors else None
            if kind == "BarChart":
                trace = go.Bar(x=series, y=labels, orientation="h", name=name, marker_color=color)
            elif kind == "ColumnChart" or (kind == "ComboChart" and series_types.get(i, "bars") in ("bars", "")):
                trace = go.Bar(x=labels, y=series, name=name, marker_color=color)
            elif kind == "AreaChart":
                trace = go.Scatter(x=labels, y=series, name=name, fill="tozeroy", mode="lines+markers", line={"color": color})
            else:
                trace = go.Scatter(x=labels, y=series, name=name, mode="lines+markers", line={"color": color, "shape": "spline"})
            fig.add_trace(trace)
        if kind == "BarChart":
            fig.update_yaxes(autorange="reversed")
            fig.update_xaxes(rangemode="tozero")
        else:
            fig.update_yaxes(rangemode="tozero")
        if (options.get("hAxis") or {}).get("slantedText"):
            fig.update_xaxes(tickangle=-int((options.get("hAxis") or {}).get("slantedTextAngle", 45)))

    legend_layout = {
        "top": {"orientation": "h", "y": 1.1, "x": 0.5, "xanchor": "center"},
        "bottom": {"orientation": "h", "y": -0.2, "x": 0.5, "xanchor": "center"},
        "right": {"orientation": "v", "x": 1.02, "y": 0.5},
        "left": {"orientation": "v", "x": -0.2, "y": 0.5},
    }
    fig.update_layout(
        title=options.get("title"),
        height=options.get("height", 500),
        paper_bgcolor=options.get("backgroundColor", "white"),
        plot_bgcolor=options.get("backgroundColor", "white"),
        font={"size": options.get("fontSize", 11)},
        showlegend=legend_position != "none",
        legend=legend_layout.get(legend_position, legend_layout["bottom"]),
        margin={"l": 40, "r": 20, "t": 60, "b": 40},
    )
    return fig
