"""
Watch face view formatter.

This module turns the watch face state into display-ready values: glucose
and delta in mmol/L, reading age, treatment figures and graph series
positioned within the retention window. Drawing them is left to the renderer.
"""

from typing import List, Optional

from .config import Settings
from .constants import (
    MGDL_TO_MMOL,
    MINUTE_MS,
    MISSING_TEXT,
    STALE_READING_MINUTES,
    UNKNOWN_AGE_MINUTES,
)
from .models import (
    BasalBar,
    BolusMarker,
    FaceView,
    GraphPoint,
    GraphSeries,
    SampleKind,
)
from .state import WatchFaceState

# Boluses larger than this are drawn raised
LARGE_BOLUS_UNITS = 0.9


# =============================================================================
# Value Formatting
# =============================================================================

def mgdl_to_mmol(value: float) -> float:
    """Convert a glucose value from mg/dL to mmol/L."""
    return value / MGDL_TO_MMOL


def is_out_of_range(mmol: float, settings: Settings) -> bool:
    """Readings at or beyond either threshold are out of range."""
    return mmol <= settings.glucose_low_mmol or mmol >= settings.glucose_high_mmol


def format_glucose(sgv: Optional[float]) -> str:
    """
    Format a glucose value for display.

    Args:
        sgv: Glucose in mg/dL, or None

    Returns:
        mmol/L with one decimal (e.g. "6.7"), or "---" if unknown
    """
    if sgv is None:
        return MISSING_TEXT
    return f"{mgdl_to_mmol(sgv):.1f}"


def format_delta(delta: Optional[float]) -> str:
    """
    Format a glucose delta with sign for display.

    Args:
        delta: Change in mg/dL, or None

    Returns:
        Signed mmol/L with one decimal (e.g. "+0.3", "-1.2"), or "" if None
    """
    if delta is None:
        return ""
    rounded = round(mgdl_to_mmol(delta), 1)
    if rounded == 0:
        rounded = 0.0  # avoid "-0.0"
    return f"{rounded:+.1f}"


def format_number(value: Optional[float]) -> str:
    """Format IOB / basal figures without trailing zeros."""
    if value is None:
        return MISSING_TEXT
    return f"{value:g}"


def format_cob(cob: Optional[float]) -> str:
    """Carbs on board are shown as whole grams."""
    if cob is None:
        return MISSING_TEXT
    return str(int(round(cob)))


def minutes_since(ts: int, now_ms: int) -> int:
    """
    Age of a reading in whole minutes.

    Returns:
        Rounded minutes, or 100 when no reading has been received
    """
    if ts <= 0:
        return UNKNOWN_AGE_MINUTES
    return int(round((now_ms - ts) / MINUTE_MS))


# =============================================================================
# Graph Series
# =============================================================================

def window_position(ts: int, now_ms: int, window_ms: int) -> float:
    """Position of ``ts`` in the window: 0.0 at the oldest edge, 1.0 at now."""
    return (ts - (now_ms - window_ms)) / window_ms


def glucose_series(state: WatchFaceState, settings: Settings, now_ms: int) -> List[GraphPoint]:
    """Buffered glucose readings that fall within the window."""
    window = state.retention_window_ms
    points = []
    for sample in state.buffer(SampleKind.GLUCOSE):
        x = window_position(sample.ts, now_ms, window)
        if not 0.0 <= x <= 1.0:
            continue
        mmol = mgdl_to_mmol(sample.sgv)
        points.append(GraphPoint(x=x, mmol=round(mmol, 2), out_of_range=is_out_of_range(mmol, settings)))
    return points


def basal_bars(state: WatchFaceState, now_ms: int) -> List[BasalBar]:
    """
    Basal segments, each lasting until the next rate change (or now).

    Segments that began before the window are clipped to its left edge.
    Heights are relative to the largest rate in the buffer.
    """
    samples = state.buffer(SampleKind.BASALS).samples
    if not samples:
        return []

    window = state.retention_window_ms
    max_rate = max(sample.rate for sample in samples) or 1.0

    bars = []
    for i, sample in enumerate(samples):
        end_ts = samples[i + 1].ts if i + 1 < len(samples) else now_ms
        end = min(1.0, window_position(end_ts, now_ms, window))
        if end <= 0.0:
            continue
        start = max(0.0, window_position(sample.ts, now_ms, window))
        bars.append(BasalBar(
            start_x=start,
            end_x=end,
            rate=sample.rate,
            height=sample.rate / max_rate,
        ))
    return bars


def bolus_markers(state: WatchFaceState, now_ms: int) -> List[BolusMarker]:
    """Insulin treatments strictly inside the window."""
    window = state.retention_window_ms
    markers = []
    for sample in state.buffer(SampleKind.TREATMENTS):
        if not sample.insulin:
            continue
        x = window_position(sample.ts, now_ms, window)
        if 0.0 < x < 1.0:
            amount = sample.amount if sample.amount is not None else sample.insulin
            markers.append(BolusMarker(x=x, insulin=sample.insulin, raised=amount > LARGE_BOLUS_UNITS))
    return markers


# =============================================================================
# Main Formatter
# =============================================================================

def format_face_view(
    state: WatchFaceState,
    settings: Settings,
    now_ms: int,
    dialog_active: bool = False,
) -> FaceView:
    """
    Build the display view of the watch face.

    Args:
        state: Current watch face state
        settings: Application settings
        now_ms: Current time in epoch milliseconds
        dialog_active: Whether a dialog currently covers the face

    Returns:
        FaceView ready for a renderer
    """
    snapshot = state.snapshot
    minutes_ago = minutes_since(snapshot.ts, now_ms)

    out_of_range = False
    if snapshot.sgv is not None:
        out_of_range = is_out_of_range(mgdl_to_mmol(snapshot.sgv), settings)

    return FaceView(
        glucose_text=format_glucose(snapshot.sgv),
        out_of_range=out_of_range,
        minutes_ago=minutes_ago,
        reading_stale=minutes_ago > STALE_READING_MINUTES,
        delta_text=format_delta(snapshot.delta),
        trend=snapshot.trend,
        basal_text=format_number(snapshot.basal),
        cob_text=format_cob(snapshot.cob),
        iob_text=format_number(snapshot.iob),
        buffer_lengths=state.buffer_lengths(),
        dialog_active=dialog_active,
        graph=GraphSeries(
            glucose=glucose_series(state, settings, now_ms),
            basals=basal_bars(state, now_ms),
            boluses=bolus_markers(state, now_ms),
        ),
    )
