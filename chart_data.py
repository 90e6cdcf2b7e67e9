#!/usr/bin/env python3

"""
Chart-ready series and table rows derived from entries and the current goal.

Everything here is pure: results depend only on the arguments and are
recomputed whenever entries or goals change.
"""

from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
import plotly.graph_objects as go

from formatting import add_days, format_date_short
from settings import DEFAULT_LOCALE
from validation import GoalDirection, is_favorable_change, weight_bounds
from weight_tracker import UserGoals, WeightEntry, parse_date

TICK_INTERVAL_DAYS = 14

CHART_COLUMNS = ["date", "weight", "date_formatted", "day_number"]
TABLE_COLUMNS = ["date", "date_formatted", "weight", "change", "change_label", "trend"]


def day_offset(entry_date, start_date) -> int:
    """Signed number of days from the goal start (negative before it)."""
    return (parse_date(entry_date) - parse_date(start_date)).days


def total_days(start_date, target_date) -> int:
    return (parse_date(target_date) - parse_date(start_date)).days


def generate_ticks(total: int) -> List[int]:
    """Day offsets every two weeks, always ending on the last day of the range."""
    ticks = [int(t) for t in np.arange(0, total + 1, TICK_INTERVAL_DAYS)]
    if not ticks or ticks[-1] != total:
        ticks.append(int(total))
    return ticks


def format_axis_label(offset: int, start_date, locale: str = DEFAULT_LOCALE) -> str:
    return format_date_short(add_days(start_date, int(offset)), locale)


@dataclass(frozen=True)
class ChartData:
    frame: pd.DataFrame
    start_date: date
    total_days: int
    ticks: List[int]
    locale: str = DEFAULT_LOCALE

    def format_x_axis(self, offset: int) -> str:
        return format_axis_label(offset, self.start_date, self.locale)

    @property
    def tick_labels(self) -> List[str]:
        return [self.format_x_axis(t) for t in self.ticks]


def build_chart_frame(entries: Sequence[WeightEntry], start_date,
                      locale: str = DEFAULT_LOCALE) -> pd.DataFrame:
    if not entries:
        return pd.DataFrame(columns=CHART_COLUMNS)
    return pd.DataFrame({
        "date": [e.date for e in entries],
        "weight": [float(e.weight) for e in entries],
        "date_formatted": [format_date_short(e.date, locale) for e in entries],
        "day_number": [day_offset(e.date, start_date) for e in entries],
    })


def compute_chart_data(entries: Sequence[WeightEntry], start_date, target_date,
                       locale: str = DEFAULT_LOCALE) -> ChartData:
    start = parse_date(start_date)
    total = total_days(start, target_date)
    return ChartData(
        frame=build_chart_frame(entries, start, locale),
        start_date=start,
        total_days=total,
        ticks=generate_ticks(total),
        locale=locale,
    )


def total_change(entries: Sequence[WeightEntry]) -> Optional[float]:
    """Absolute change between the first and the latest entry."""
    if len(entries) < 2:
        return None
    return round(abs(entries[0].weight - entries[-1].weight), 1)


def build_entries_table(entries: Sequence[WeightEntry], direction: GoalDirection,
                        locale: str = DEFAULT_LOCALE) -> pd.DataFrame:
    """Newest-first rows with the change against the previous entry."""
    if not entries:
        return pd.DataFrame(columns=TABLE_COLUMNS)

    df = pd.DataFrame({
        "date": [e.date for e in entries],
        "weight": [float(e.weight) for e in entries],
    })
    df["date_formatted"] = [format_date_short(d, locale) for d in df["date"]]
    df["change"] = df["weight"].diff().round(1)

    labels, trends = [], []
    for change in df["change"]:
        if pd.isna(change):
            labels.append("—")
            trends.append("")
            continue
        change = float(change) + 0.0  # no "-0.0"
        labels.append(f"{'+' if change > 0 else ''}{change:.1f} kg")
        favorable = is_favorable_change(change, direction)
        trends.append("" if favorable is None else ("positive" if favorable else "negative"))
    df["change_label"] = labels
    df["trend"] = trends

    return df[TABLE_COLUMNS].iloc[::-1].reset_index(drop=True)


def create_progress_plot(chart: ChartData, goals: UserGoals) -> go.Figure:
    """Weight against day number with the goal range and target line."""
    bounds = weight_bounds(goals.start_weight, goals.target_weight)
    df = chart.frame

    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=df["day_number"],
        y=df["weight"],
        mode="lines+markers",
        name="Peso",
        line=dict(color="#4ecdc4", width=3, shape="spline"),
        marker=dict(size=10, color="#f3f4f6", line=dict(color="#4ecdc4", width=2)),
        customdata=df["date_formatted"],
        hovertemplate="%{customdata}<br>%{y} kg<extra></extra>",
    ))
    fig.add_hline(
        y=goals.target_weight,
        line_dash="dash",
        line_color="#4ecdc4",
        annotation_text="Meta",
        annotation_position="right",
    )
    fig.update_xaxes(
        range=[0, chart.total_days],
        tickmode="array",
        tickvals=chart.ticks,
        ticktext=chart.tick_labels,
    )
    fig.update_yaxes(range=[bounds.min, bounds.max], ticksuffix="kg")
    fig.update_layout(
        showlegend=False,
        margin=dict(t=10, r=15, l=10, b=5),
        template="plotly_dark",
    )
    return fig
