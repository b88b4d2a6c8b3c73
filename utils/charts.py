"""Plotly figure builders for the dashboard and report pages.

Builders take plain row dicts (as returned by ``utils.reports``) and return a
``plotly.graph_objects.Figure`` styled with the light or dark theme. Routes
serialise figures with :func:`figure_to_dict`; the browser renders them with
plotly.js ``Plotly.newPlot(el, fig.data, fig.layout)``.
"""

import json
from typing import Any, Iterable, Mapping, Sequence

import plotly.graph_objects as go

from utils.calculations import average, linear_regression

THEMES: dict[str, dict[str, Any]] = {
    "light": {
        "palette": ["#2563eb", "#16a34a", "#ca8a04", "#c62828",
                    "#7c3aed", "#0e7490", "#f59e0b", "#be185d"],
        "font": "#1f2937",
        "grid": "rgba(0, 0, 0, 0.1)",
        "line": "rgba(0, 0, 0, 0.2)",
        "hover_bg": "#f9fafb",
        "hover_font": "#111827",
        "label": "#333",
    },
    "dark": {
        "palette": ["#60a5fa", "#4ade80", "#facc15", "#f87171",
                    "#d8b4fe", "#67e8f9", "#fbbf24", "#f472b6"],
        "font": "#e5e7eb",
        "grid": "rgba(255, 255, 255, 0.1)",
        "line": "rgba(255, 255, 255, 0.2)",
        "hover_bg": "#1f2937",
        "hover_font": "#f3f4f6",
        "label": "#e5e7eb",
    },
}

# Muted colours for per-year series on the report pages.
PASTEL_PALETTE = (
    "rgb(189, 135, 143)", "rgb(5, 80, 105)", "rgb(9, 107, 9)",
    "rgb(126, 126, 7)", "rgb(172, 124, 172)", "rgb(173, 166, 99)",
    "rgb(155, 180, 180)", "rgb(167, 147, 145)", "rgb(163, 175, 163)",
    "rgb(184, 169, 174)", "rgb(110, 110, 5)", "rgb(230, 230, 250)",
)

TREND_LINE_COLOR = "#ef4444"
AVERAGE_LINE_COLOR = "#6b7280"
FONT_FAMILY = "Inter, system-ui, -apple-system, sans-serif"


def get_theme(name: str) -> dict[str, Any]:
    """Return the theme settings, raising ValueError for unknown names."""
    try:
        return THEMES[name]
    except KeyError:
        raise ValueError(f"Unknown theme '{name}'. Use one of: {', '.join(THEMES)}") from None


def theme_layout(theme: str = "light") -> dict[str, Any]:
    """Plotly layout settings shared by every figure: transparent, themed text."""
    t = get_theme(theme)
    axis = {"gridcolor": t["grid"], "linecolor": t["line"], "zeroline": False}
    return {
        "paper_bgcolor": "rgba(0,0,0,0)",
        "plot_bgcolor": "rgba(0,0,0,0)",
        "font": {"color": t["font"], "family": FONT_FAMILY},
        "xaxis": dict(axis),
        "yaxis": dict(axis),
        "colorway": t["palette"],
        "hoverlabel": {
            "bgcolor": t["hover_bg"],
            "font": {"color": t["hover_font"]},
            "bordercolor": t["grid"],
        },
        "legend": {"orientation": "h", "y": -0.2},
        "margin": {"l": 60, "r": 30, "t": 60, "b": 60},
    }


def _base_figure(title: str, x_title: str, y_title: str, theme: str) -> go.Figure:
    fig = go.Figure()
    fig.update_layout(**theme_layout(theme))
    fig.update_layout(
        title={"text": title, "x": 0.5},
        xaxis_title=x_title,
        yaxis_title=y_title,
    )
    return fig


def figure_to_dict(fig: go.Figure) -> dict[str, Any]:
    """JSON-safe ``{"data": [...], "layout": {...}}`` for the browser."""
    return json.loads(fig.to_json())


def _is_numeric_axis(values: Sequence[Any]) -> bool:
    return all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in values)


def _add_reference_lines(fig: go.Figure, rows: Sequence[Mapping[str, Any]], x: str, y: str,
                         show_trend_line: bool, show_average_line: bool) -> None:
    """Overlay the least-squares trend line and/or the mean of *y*.

    Category axes (months, quarters) are regressed on position and the
    endpoints drawn at the first and last category.
    """
    if not rows:
        return
    xs = [r[x] for r in rows]
    numeric = _is_numeric_axis(xs)
    if show_trend_line:
        if numeric:
            line = linear_regression(rows, x, y)
        else:
            indexed = [{"i": i, "y": r[y]} for i, r in enumerate(rows)]
            line = linear_regression(indexed, "i", "y")
            line = [{"x": xs[int(p["x"])], "y": p["y"]} for p in line]
        if line:
            fig.add_trace(go.Scatter(
                x=[p["x"] for p in line],
                y=[p["y"] for p in line],
                mode="lines",
                name="Trend",
                line={"color": TREND_LINE_COLOR, "dash": "dash", "width": 2},
                hoverinfo="skip",
            ))
    if show_average_line:
        mean = average(rows, y)
        fig.add_trace(go.Scatter(
            x=[xs[0], xs[-1]] if not numeric else [min(xs), max(xs)],
            y=[mean, mean],
            mode="lines",
            name=f"Average ({mean:,.0f})",
            line={"color": AVERAGE_LINE_COLOR, "dash": "dot", "width": 2},
            hoverinfo="skip",
        ))


def _category_axis(fig: go.Figure, xs: Sequence[Any]) -> None:
    if _is_numeric_axis(xs):
        fig.update_xaxes(tickmode="array", tickvals=list(xs))
    else:
        fig.update_xaxes(type="category")


def bar_chart(rows: Sequence[Mapping[str, Any]], x: str, y: str, *, title: str,
              x_title: str = "", y_title: str = "", theme: str = "light",
              color: str | None = None, show_trend_line: bool = False,
              show_average_line: bool = False, show_labels: bool = True,
              label_position: str = "inside", orientation: str = "v") -> go.Figure:
    """Single-series bar chart with optional trend and average overlays.

    With ``orientation="h"`` the bars run left to right: *x* still names the
    category key and *y* the value key, rows are drawn top to bottom, and
    *x_title*/*y_title* label the horizontal/vertical axes. Trend and
    average overlays apply to vertical charts only.
    """
    t = get_theme(theme)
    fig = _base_figure(title, x_title, y_title, theme)
    xs = [r[x] for r in rows]
    ys = [r[y] for r in rows]
    if orientation == "h":
        fig.add_trace(go.Bar(
            x=ys,
            y=xs,
            orientation="h",
            name=x_title or y,
            marker={"color": color or PASTEL_PALETTE[0], "opacity": 0.8,
                    "line": {"color": "rgba(0, 0, 0, 0.3)", "width": 1}},
            text=[f"{v:,}" for v in ys] if show_labels else None,
            textposition="auto" if show_labels else None,
            insidetextanchor="middle" if show_labels else None,
            hovertemplate=f"<b>%{{y}}</b><br>{x_title or y}: %{{x:,}}<extra></extra>",
        ))
        fig.update_yaxes(type="category", autorange="reversed")
        fig.update_layout(margin={"l": 120})
        return fig
    fig.add_trace(go.Bar(
        x=xs,
        y=ys,
        name=y_title or y,
        marker={"color": color or PASTEL_PALETTE[0]},
        text=[f"{v:,}" for v in ys] if show_labels else None,
        textposition=label_position if show_labels else None,
        insidetextanchor="middle" if show_labels else None,
        textfont={"color": "white" if label_position == "inside" else t["label"], "size": 12},
        hovertemplate=f"<b>{x_title or x}:</b> %{{x}}<br><b>{y_title or y}:</b> %{{y:,}}<extra></extra>",
    ))
    _add_reference_lines(fig, rows, x, y, show_trend_line, show_average_line)
    _category_axis(fig, xs)
    return fig


def line_chart(rows: Sequence[Mapping[str, Any]], x: str, y: str, *, title: str,
               x_title: str = "", y_title: str = "", theme: str = "light",
               color: str | None = None, show_trend_line: bool = False,
               show_average_line: bool = False, show_labels: bool = False) -> go.Figure:
    t = get_theme(theme)
    fig = _base_figure(title, x_title, y_title, theme)
    xs = [r[x] for r in rows]
    ys = [r[y] for r in rows]
    fig.add_trace(go.Scatter(
        x=xs,
        y=ys,
        mode="lines+markers+text" if show_labels else "lines+markers",
        name=y_title or y,
        line={"color": color or t["palette"][0], "width": 3},
        text=[f"{v:,}" for v in ys] if show_labels else None,
        textposition="top center",
    ))
    _add_reference_lines(fig, rows, x, y, show_trend_line, show_average_line)
    _category_axis(fig, xs)
    return fig


def grouped_bar_chart(rows: Iterable[Mapping[str, Any]], group_key: str, x_key: str,
                      y_key: str, *, title: str, x_title: str = "", y_title: str = "",
                      theme: str = "light", categories: Sequence[Any] | None = None,
                      show_labels: bool = True, barmode: str = "group") -> go.Figure:
    """One bar trace per distinct ``row[group_key]``, laid out over *categories*.

    Missing (group, category) combinations are drawn as zero.
    """
    t = get_theme(theme)
    rows = list(rows)
    if categories is None:
        categories = list(dict.fromkeys(r[x_key] for r in rows))
    groups = sorted({r[group_key] for r in rows})
    values = {(r[group_key], r[x_key]): r[y_key] for r in rows}

    fig = _base_figure(title, x_title, y_title, theme)
    for i, group in enumerate(groups):
        ys = [values.get((group, c), 0) for c in categories]
        fig.add_trace(go.Bar(
            x=[str(c) for c in categories],
            y=ys,
            name=str(group),
            marker={"color": PASTEL_PALETTE[i % len(PASTEL_PALETTE)]},
            text=[f"{v:,}" if v else "" for v in ys] if show_labels else None,
            textposition="outside" if show_labels else None,
            textfont={"color": t["label"], "size": 12},
            hovertemplate=(
                f"<b>{group}</b><br>{x_title or x_key}: %{{x}}<br>"
                f"{y_title or y_key}: %{{y:,}}<extra></extra>"
            ),
        ))
    fig.update_layout(barmode=barmode)
    fig.update_xaxes(type="category")
    return fig


def multi_line_chart(rows: Iterable[Mapping[str, Any]], group_key: str, x_key: str,
                     y_key: str, *, title: str, x_title: str = "", y_title: str = "",
                     theme: str = "light", colors: Sequence[str] | None = None) -> go.Figure:
    """One line per distinct ``row[group_key]``; gaps are drawn as zero."""
    t = get_theme(theme)
    rows = list(rows)
    xs = sorted({r[x_key] for r in rows})
    groups = list(dict.fromkeys(r[group_key] for r in rows))
    values = {(r[group_key], r[x_key]): r[y_key] for r in rows}
    colors = colors or t["palette"]

    fig = _base_figure(title, x_title, y_title, theme)
    for i, group in enumerate(groups):
        color = colors[i % len(colors)]
        fig.add_trace(go.Scatter(
            x=[str(x) for x in xs],
            y=[values.get((group, x), 0) for x in xs],
            mode="lines+markers",
            name=str(group),
            line={"color": color, "width": 3},
            marker={"size": 8, "color": color},
        ))
    fig.update_xaxes(type="category")
    return fig


def stacked_bar_chart(rows: Sequence[Mapping[str, Any]], x_key: str, series: Sequence[str],
                      *, title: str, x_title: str = "", y_title: str = "",
                      theme: str = "light") -> go.Figure:
    """Stacked bars from pivoted rows, one trace per *series* key."""
    fig = _base_figure(title, x_title, y_title, theme)
    xs = [str(r[x_key]) for r in rows]
    for name in series:
        fig.add_trace(go.Bar(
            x=xs,
            y=[r.get(name, 0) for r in rows],
            name=name,
            hovertemplate=f"<b>{name}</b><br>%{{x}}: %{{y:,}}<extra></extra>",
        ))
    fig.update_layout(barmode="stack")
    fig.update_xaxes(type="category")
    return fig


def combination_chart(rows: Sequence[Mapping[str, Any]], x_key: str, bar_key: str,
                      line_key: str, *, title: str, bar_name: str, line_name: str,
                      x_title: str = "", theme: str = "light",
                      line_prefix: str = "") -> go.Figure:
    """Bars on the left axis and a line on a secondary right axis."""
    t = get_theme(theme)
    fig = _base_figure(title, x_title, bar_name, theme)
    xs = [str(r[x_key]) for r in rows]
    fig.add_trace(go.Bar(
        x=xs,
        y=[r[bar_key] for r in rows],
        name=bar_name,
        marker={"color": t["palette"][0]},
    ))
    fig.add_trace(go.Scatter(
        x=xs,
        y=[r[line_key] for r in rows],
        name=line_name,
        mode="lines+markers",
        yaxis="y2",
        line={"color": t["palette"][1], "width": 3},
        hovertemplate=f"%{{x}}: {line_prefix}%{{y:,}}<extra>{line_name}</extra>",
    ))
    fig.update_layout(
        yaxis2={
            "title": {"text": line_name},
            "overlaying": "y",
            "side": "right",
            "showgrid": False,
            "tickprefix": line_prefix,
        },
    )
    fig.update_xaxes(type="category")
    return fig


def heatmap_chart(cells: Sequence[Mapping[str, Any]], *, title: str,
                  x_key: str = "period", y_key: str = "department", z_key: str = "value",
                  x_order: Sequence[str] | None = None, theme: str = "light") -> go.Figure:
    """Heatmap of *z_key* over (x, y); absent cells are left empty."""
    xs = list(x_order) if x_order else list(dict.fromkeys(c[x_key] for c in cells))
    ys = sorted({c[y_key] for c in cells})
    lookup = {(c[y_key], c[x_key]): c[z_key] for c in cells}
    z = [[lookup.get((yv, xv)) for xv in xs] for yv in ys]

    fig = _base_figure(title, "", "", theme)
    fig.add_trace(go.Heatmap(
        x=xs,
        y=ys,
        z=z,
        colorscale="Blues",
        text=[[f"{v}%" if v is not None else "" for v in row] for row in z],
        texttemplate="%{text}",
        hovertemplate="%{y} on %{x}: %{z}%<extra></extra>",
        colorbar={"title": {"text": "%"}},
    ))
    return fig


def box_chart(series: Sequence[Mapping[str, Any]], *, title: str, y_title: str = "",
              theme: str = "light") -> go.Figure:
    """One box per ``{"name", "values", "color"}`` series."""
    fig = _base_figure(title, "", y_title, theme)
    for s in series:
        fig.add_trace(go.Box(
            y=s["values"],
            name=s["name"],
            marker={"color": s["color"]},
            boxmean=True,
        ))
    fig.update_layout(showlegend=False)
    return fig
