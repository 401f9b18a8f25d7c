from __future__ import annotations

from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def trend_chart(df: pd.DataFrame, x: str, series: List[str], *, x_title: str, y_title: str, y_format: str = "~s") -> Optional[Dict[str, Any]]:
    if df.empty or not set(series).issubset(df.columns):
        return None
    hover = alt.selection_point(fields=["series"], on="mouseover", empty="all")
    chart = (
        alt.Chart(df)
        .transform_fold(series, as_=["series", "value"])
        .mark_line(point={"filled": True})
        .encode(
            x=alt.X(f"{x}:O", title=x_title, sort=None, axis=alt.Axis(grid=False)),
            y=alt.Y("value:Q", title=y_title, axis=alt.Axis(format=y_format, gridDash=[4, 4], domain=False, ticks=False)),
            color=alt.Color("series:N", title="Series"),
            opacity=alt.condition(hover, alt.value(1), alt.value(0.2)),
            tooltip=[
                alt.Tooltip(f"{x}:N", title=x_title),
                alt.Tooltip("series:N", title="Series"),
                alt.Tooltip("value:Q", title=y_title, format=",.2f"),
            ],
        )
        .add_params(hover)
    )
    return to_vega_spec(chart)


def bar_chart(df: pd.DataFrame, category: str, value: str, *, title: str, value_format: str = ",.0f") -> Optional[Dict[str, Any]]:
    if df.empty or not {category, value}.issubset(df.columns):
        return None
    chart = (
        alt.Chart(df)
        .mark_bar()
        .encode(
            y=alt.Y(f"{category}:N", title=None, sort="-x"),
            x=alt.X(f"{value}:Q", title=title, axis=alt.Axis(format="~s", gridDash=[4, 4], domain=False, ticks=False)),
            tooltip=[
                alt.Tooltip(f"{category}:N", title=category.replace("_", " ").title()),
                alt.Tooltip(f"{value}:Q", title=title, format=value_format),
            ],
        )
    )
    return to_vega_spec(chart)


def share_chart(df: pd.DataFrame, category: str, value: str = "count") -> Optional[Dict[str, Any]]:
    if df.empty or not {category, value}.issubset(df.columns):
        return None
    chart = (
        alt.Chart(df)
        .mark_arc(innerRadius=50)
        .encode(
            theta=alt.Theta(f"{value}:Q"),
            color=alt.Color(f"{category}:N", title=category.replace("_", " ").title()),
            tooltip=[alt.Tooltip(f"{category}:N"), alt.Tooltip(f"{value}:Q", format=",")],
        )
    )
    return to_vega_spec(chart)
