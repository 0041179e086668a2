"""
Geometry for the admin report charts.

The dashboard draws small SVG charts; this module computes the coordinates
so the numbers can be served by the API and checked in tests. Line charts
are laid out on a 100-unit wide canvas, bar heights are percentages of the
largest value, and pie slices are SVG arc paths starting at 12 o'clock.
"""

import math
from typing import Optional

from pydantic import BaseModel

DEFAULT_HEIGHT = 200
LINE_LABEL_SPACE = 40
LINE_CHART_WIDTH = 100
PIE_MAX_SIZE = 200
PIE_RADIUS_RATIO = 0.35

DEFAULT_COLORS = [
    "#10b981",  # emerald
    "#3b82f6",  # blue
    "#f59e0b",  # amber
    "#ef4444",  # red
    "#8b5cf6",  # violet
    "#ec4899",  # pink
    "#06b6d4",  # cyan
    "#84cc16",  # lime
    "#f97316",  # orange
    "#6366f1",  # indigo
]


class ChartPoint(BaseModel):
    x: float
    y: float
    value: float
    color: str
    label: Optional[str] = None


class BarSegment(BaseModel):
    value: float
    height_percent: float
    color: str
    label: Optional[str] = None


class PieSlice(BaseModel):
    value: float
    percentage: float
    start_angle: float
    end_angle: float
    path: str
    color: str
    label: Optional[str] = None


def color_for(index: int) -> str:
    return DEFAULT_COLORS[index % len(DEFAULT_COLORS)]


def _max_value(values: list[float]) -> float:
    # never below 1 so an all-zero series draws flat instead of dividing by zero
    return max(max(values, default=0), 1)


def _label(labels: Optional[list[str]], index: int) -> Optional[str]:
    return labels[index] if labels and index < len(labels) else None


def line_chart_points(
    values: list[float],
    height: int = DEFAULT_HEIGHT,
    labels: Optional[list[str]] = None,
) -> list[ChartPoint]:
    chart_height = height - LINE_LABEL_SPACE
    spacing = LINE_CHART_WIDTH / max(len(values) - 1, 1)
    max_value = _max_value(values)
    return [
        ChartPoint(
            x=i * spacing,
            y=chart_height - (value / max_value) * chart_height,
            value=value,
            color=color_for(i),
            label=_label(labels, i),
        )
        for i, value in enumerate(values)
    ]


def line_chart_path(points: list[ChartPoint]) -> str:
    """SVG path through the points ("M x y L x y ...")."""
    return " ".join(
        f"{'M' if i == 0 else 'L'} {p.x} {p.y}" for i, p in enumerate(points)
    )


def bar_chart_heights(values: list[float], labels: Optional[list[str]] = None) -> list[BarSegment]:
    max_value = _max_value(values)
    return [
        BarSegment(
            value=value,
            height_percent=value / max_value * 100,
            color=color_for(i),
            label=_label(labels, i),
        )
        for i, value in enumerate(values)
    ]


def pie_chart_slices(
    values: list[float],
    height: int = DEFAULT_HEIGHT,
    labels: Optional[list[str]] = None,
) -> list[PieSlice]:
    """
    Pie slices as SVG paths.

    Each path runs from the centre to the arc start, along the arc, and
    back: "M c c L x1 y1 A r r 0 large 1 x2 y2 Z". The large-arc flag is
    set for slices wider than 180 degrees.
    """
    total = sum(values)
    size = min(height, PIE_MAX_SIZE)
    center = size / 2
    radius = size * PIE_RADIUS_RATIO

    slices = []
    current_angle = -90.0
    for i, value in enumerate(values):
        percentage = value / total * 100 if total > 0 else 0.0
        angle = percentage / 100 * 360
        start_angle = current_angle
        end_angle = current_angle + angle
        current_angle = end_angle

        start_rad = math.radians(start_angle)
        end_rad = math.radians(end_angle)
        x1 = center + radius * math.cos(start_rad)
        y1 = center + radius * math.sin(start_rad)
        x2 = center + radius * math.cos(end_rad)
        y2 = center + radius * math.sin(end_rad)
        large_arc = 1 if angle > 180 else 0

        slices.append(PieSlice(
            value=value,
            percentage=percentage,
            start_angle=start_angle,
            end_angle=end_angle,
            path=f"M {center} {center} L {x1} {y1} A {radius} {radius} 0 {large_arc} 1 {x2} {y2} Z",
            color=color_for(i),
            label=_label(labels, i),
        ))
    return slices
