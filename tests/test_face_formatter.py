"""Tests for aaps_watch/face_formatter.py module."""

import pytest

from aaps_watch.constants import MINUTE_MS, MISSING_TEXT, RETENTION_WINDOW_MS
from aaps_watch.face_formatter import (
    basal_bars,
    bolus_markers,
    format_cob,
    format_delta,
    format_face_view,
    format_glucose,
    format_number,
    glucose_series,
    is_out_of_range,
    mgdl_to_mmol,
    minutes_since,
    window_position,
)
from aaps_watch.models import SampleKind

NOW_MS = 1_700_000_000_000


class TestConversion:
    """Tests for unit conversion and range checks."""

    def test_mgdl_to_mmol(self):
        """Test mg/dL to mmol/L conversion."""
        assert mgdl_to_mmol(180) == pytest.approx(9.99, abs=0.01)
        assert mgdl_to_mmol(0) == 0

    @pytest.mark.parametrize("mmol,expected", [
        (3.9, True),
        (4.0, True),
        (4.1, False),
        (9.9, False),
        (10.0, True),
        (15.0, True),
    ])
    def test_out_of_range_thresholds(self, mock_settings, mmol, expected):
        """Test thresholds are inclusive on both sides."""
        assert is_out_of_range(mmol, mock_settings) is expected


class TestFormatGlucose:
    """Tests for format_glucose function."""

    def test_one_decimal(self):
        """Test glucose is shown in mmol/L with one decimal."""
        assert format_glucose(120) == "6.7"

    def test_missing(self):
        """Test unknown glucose shows the placeholder."""
        assert format_glucose(None) == MISSING_TEXT


class TestFormatDelta:
    """Tests for format_delta function."""

    def test_positive_has_plus_sign(self):
        """Test rising deltas carry a plus sign."""
        assert format_delta(5) == "+0.3"

    def test_negative(self):
        """Test falling deltas carry a minus sign."""
        assert format_delta(-18) == "-1.0"

    def test_tiny_negative_is_not_minus_zero(self):
        """Test a delta rounding to zero is shown as +0.0."""
        assert format_delta(-0.5) == "+0.0"

    def test_missing_is_empty(self):
        """Test an unknown delta is not shown."""
        assert format_delta(None) == ""


class TestFormatNumbers:
    """Tests for IOB, COB and basal formatting."""

    def test_number_without_trailing_zeros(self):
        """Test figures are shown compactly."""
        assert format_number(1.25) == "1.25"
        assert format_number(2.0) == "2"

    def test_number_missing(self):
        """Test unknown figures show the placeholder."""
        assert format_number(None) == MISSING_TEXT

    def test_cob_whole_grams(self):
        """Test carbs on board are rounded to whole grams."""
        assert format_cob(12.4) == "12"
        assert format_cob(12.6) == "13"

    def test_cob_missing(self):
        """Test unknown COB shows the placeholder."""
        assert format_cob(None) == MISSING_TEXT


class TestMinutesSince:
    """Tests for minutes_since function."""

    def test_rounded_minutes(self):
        """Test age is rounded to whole minutes."""
        assert minutes_since(NOW_MS - 3 * MINUTE_MS - 20_000, NOW_MS) == 3

    def test_no_reading(self):
        """Test a missing reading reports 100 minutes."""
        assert minutes_since(0, NOW_MS) == 100


class TestWindowPosition:
    """Tests for window_position function."""

    def test_edges(self):
        """Test the window runs from 0.0 (oldest) to 1.0 (now)."""
        assert window_position(NOW_MS, NOW_MS, RETENTION_WINDOW_MS) == 1.0
        assert window_position(NOW_MS - RETENTION_WINDOW_MS, NOW_MS, RETENTION_WINDOW_MS) == 0.0

    def test_middle(self):
        """Test a sample halfway through the window."""
        ts = NOW_MS - RETENTION_WINDOW_MS // 2
        assert window_position(ts, NOW_MS, RETENTION_WINDOW_MS) == pytest.approx(0.5)


class TestGraphSeries:
    """Tests for graph series built from the buffers."""

    def test_glucose_points(self, state, mock_settings):
        """Test glucose points carry position, value and range flag."""
        state.merge_history(
            SampleKind.GLUCOSE,
            [
                {"ts": NOW_MS - 45 * MINUTE_MS, "sgv": 60},
                {"ts": NOW_MS, "sgv": 108},
            ],
            NOW_MS,
        )

        points = glucose_series(state, mock_settings, NOW_MS)

        assert [p.x for p in points] == [pytest.approx(0.5), 1.0]
        assert points[0].out_of_range is True
        assert points[1].out_of_range is False
        assert points[1].mmol == pytest.approx(5.99, abs=0.01)

    def test_glucose_outside_window_skipped(self, state, mock_settings):
        """Test points that aged out since the last eviction are not drawn."""
        state.merge_history(SampleKind.GLUCOSE, [{"ts": NOW_MS - 10 * MINUTE_MS, "sgv": 100}], NOW_MS)
        later = NOW_MS + 85 * MINUTE_MS
        assert glucose_series(state, mock_settings, later) == []

    def test_basal_bars_run_to_next_change(self, state):
        """Test each bar ends at the next rate change and the last at now."""
        state.merge_history(
            SampleKind.BASALS,
            [
                {"ts": NOW_MS - 60 * MINUTE_MS, "rate": 0.5},
                {"ts": NOW_MS - 30 * MINUTE_MS, "rate": 1.0},
            ],
            NOW_MS,
        )

        bars = basal_bars(state, NOW_MS)

        assert len(bars) == 2
        assert bars[0].end_x == pytest.approx(bars[1].start_x)
        assert bars[1].end_x == 1.0
        assert bars[0].height == 0.5
        assert bars[1].height == 1.0

    def test_basal_bar_clipped_to_window_start(self, state):
        """Test a rate set before the window is drawn from its left edge."""
        state.merge_history(
            SampleKind.BASALS,
            [
                {"ts": NOW_MS - 80 * MINUTE_MS, "rate": 0.5},
                {"ts": NOW_MS - 30 * MINUTE_MS, "rate": 1.0},
            ],
            NOW_MS,
        )

        bars = basal_bars(state, NOW_MS + 20 * MINUTE_MS)

        assert len(bars) == 2
        assert bars[0].start_x == 0.0
        assert bars[0].end_x == pytest.approx(40 / 90)
        assert bars[0].rate == 0.5

    def test_superseded_basal_before_window_skipped(self, state):
        """Test a segment that ended before the window is not drawn."""
        state.merge_history(
            SampleKind.BASALS,
            [
                {"ts": NOW_MS - 89 * MINUTE_MS, "rate": 0.5},
                {"ts": NOW_MS - 85 * MINUTE_MS, "rate": 1.0},
            ],
            NOW_MS,
        )

        bars = basal_bars(state, NOW_MS + 10 * MINUTE_MS)

        assert [b.rate for b in bars] == [1.0]
        assert bars[0].start_x == 0.0
        assert bars[0].end_x == 1.0

    def test_basal_bars_empty(self, state):
        """Test no bars without basal history."""
        assert basal_bars(state, NOW_MS) == []

    def test_zero_basal_rates(self, state):
        """Test all-zero rates do not divide by zero."""
        state.merge_history(SampleKind.BASALS, [{"ts": NOW_MS - MINUTE_MS, "rate": 0.0}], NOW_MS)
        assert basal_bars(state, NOW_MS)[0].height == 0.0

    def test_bolus_markers(self, state):
        """Test insulin treatments become markers and carbs-only ones do not."""
        state.merge_history(
            SampleKind.TREATMENTS,
            [
                {"ts": NOW_MS - 40 * MINUTE_MS, "insulin": 0.5},
                {"ts": NOW_MS - 20 * MINUTE_MS, "insulin": 4.0},
                {"ts": NOW_MS - 10 * MINUTE_MS, "carbs": 30},
            ],
            NOW_MS,
        )

        markers = bolus_markers(state, NOW_MS)

        assert [m.insulin for m in markers] == [0.5, 4.0]
        assert [m.raised for m in markers] == [False, True]

    def test_bolus_at_now_not_drawn(self, state):
        """Test markers must lie strictly inside the window."""
        state.merge_history(SampleKind.TREATMENTS, [{"ts": NOW_MS, "insulin": 2.0}], NOW_MS)
        assert bolus_markers(state, NOW_MS) == []


class TestFormatFaceView:
    """Tests for format_face_view function."""

    def test_full_view(self, state, mock_settings, status_record):
        """Test a complete view built from a snapshot."""
        state.update_snapshot(status_record, NOW_MS)

        view = format_face_view(state, mock_settings, NOW_MS)

        assert view.glucose_text == "6.7"
        assert view.out_of_range is False
        assert view.minutes_ago == 2
        assert view.reading_stale is False
        assert view.delta_text == "+0.3"
        assert view.trend == "FLAT"
        assert view.iob_text == "1.25"
        assert view.cob_text == "12"
        assert view.basal_text == "0.8"
        assert view.buffer_lengths == "1 0 1"
        assert len(view.graph.glucose) == 1

    def test_empty_view(self, state, mock_settings):
        """Test the view before any data has arrived."""
        view = format_face_view(state, mock_settings, NOW_MS)

        assert view.glucose_text == MISSING_TEXT
        assert view.minutes_ago == 100
        assert view.reading_stale is True
        assert view.delta_text == ""
        assert view.graph.glucose == []

    def test_old_reading_is_stale(self, state, mock_settings, status_record):
        """Test readings older than five minutes are flagged."""
        state.update_snapshot(dict(status_record, ts=NOW_MS - 12 * MINUTE_MS), NOW_MS)
        view = format_face_view(state, mock_settings, NOW_MS)
        assert view.reading_stale is True

    def test_high_reading_out_of_range(self, state, mock_settings, status_record):
        """Test a high reading is flagged out of range."""
        state.update_snapshot(dict(status_record, sgv=250), NOW_MS)
        assert format_face_view(state, mock_settings, NOW_MS).out_of_range is True

    def test_dialog_flag(self, state, mock_settings):
        """Test the dialog flag is passed through."""
        assert format_face_view(state, mock_settings, NOW_MS, dialog_active=True).dialog_active is True
