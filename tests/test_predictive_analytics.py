"""
Test suite for the Predictive Analytics Engine.

Covers:
1. Linear regression and forecasting
2. Moving averages
3. Z-score anomaly detection
4. Pearson correlation and the correlation matrix
5. Autocorrelation seasonality
6. End-to-end analysis over chart configs
"""

import pytest

import sheetpulse.services.predictive_analytics as predictive_analytics
from sheetpulse.schemas.dashboard import ChartConfig, Dataset
from sheetpulse.services.dashboard_builder import DashboardBuilder
from sheetpulse.services.predictive_analytics import (
    PredictiveAnalyticsEngine,
    analyze,
    correlation_matrix,
    correlation_strength,
    detect_anomalies,
    detect_seasonality,
    forecast,
    forecast_horizon,
    linear_regression,
    moving_average,
    moving_averages,
    pearson_correlation,
)


def _chart(sheet, columns, labels=None, is_secondary=False):
    """Primary chart config with one dataset per column."""
    length = len(next(iter(columns.values())))
    labels = labels or [f"r{i}" for i in range(length)]
    return ChartConfig(
        sheet_name=sheet,
        title=sheet,
        chart_type="bar",
        label_column="Label",
        data_columns=list(columns),
        labels=labels,
        datasets=[Dataset(label=name, data=data) for name, data in columns.items()],
        row_count=length,
        is_secondary=is_secondary,
    )


# ============================================================================
# REGRESSION & FORECAST
# ============================================================================

class TestLinearRegression:

    def test_perfect_line(self):
        result = linear_regression([1, 2, 3, 4, 5])
        assert result.slope == 1.0
        assert result.intercept == 1.0
        assert result.r_squared == 1.0

    def test_flat_series(self):
        result = linear_regression([3, 3, 3])
        assert result.slope == 0.0
        assert result.r_squared == 0.0

    def test_noisy_series(self):
        result = linear_regression([1000, 1200, 1500])
        assert result.slope == 250.0
        assert result.r_squared == pytest.approx(0.9868, abs=1e-4)

    def test_too_short(self):
        assert linear_regression([5]) is None
        assert linear_regression([]) is None


class TestForecast:

    def test_continues_the_line(self):
        assert forecast([1, 2, 3, 4, 5]) == [6.0, 7.0, 8.0]

    def test_single_step(self):
        assert forecast([1, 2, 3, 4, 5], steps=1) == [6.0]

    def test_explicit_steps(self):
        assert forecast([2, 4, 6], steps=2) == [8.0, 10.0]

    def test_too_short(self):
        assert forecast([1]) == []

    @pytest.mark.parametrize("rows,expected", [(3, 3), (10, 3), (20, 4), (25, 5), (100, 5)])
    def test_horizon(self, rows, expected):
        assert forecast_horizon(rows) == expected


# ============================================================================
# MOVING AVERAGES
# ============================================================================

class TestMovingAverages:

    def test_three_point(self):
        assert moving_average([1, 2, 3, 4, 5], 3) == [None, None, 2.0, 3.0, 4.0]

    def test_five_point(self):
        assert moving_average([1, 2, 3, 4, 5], 5) == [None, None, None, None, 3.0]

    def test_short_series_has_no_ma5(self):
        averages = moving_averages([1, 2, 3, 4])
        assert list(averages) == ["ma3"]

    def test_both_windows(self):
        averages = moving_averages([1, 2, 3, 4, 5, 6])
        assert averages["ma5"][-1] == 4.0
        assert len(averages["ma3"]) == 6


# ============================================================================
# ANOMALIES
# ============================================================================

class TestDetectAnomalies:

    def test_single_high_outlier(self):
        entries = detect_anomalies([10, 10, 10, 10, 50], ["a", "b", "c", "d", "e"])

        assert len(entries) == 1
        entry = entries[0]
        assert entry.index == 4
        assert entry.label == "e"
        assert entry.value == 50
        assert entry.z_score == 2.0
        assert entry.direction == "high"
        assert entry.deviation == 32.0

    def test_single_low_outlier(self):
        entries = detect_anomalies([50, 50, 50, 50, 10])
        assert [e.direction for e in entries] == ["low"]
        assert entries[0].label == "4"

    def test_large_outlier(self):
        entries = detect_anomalies([10, 10, 10, 10, 100])
        assert [(e.index, e.direction) for e in entries] == [(4, "high")]
        assert abs(entries[0].z_score) >= 2.0

    def test_off_by_one_is_noise(self):
        assert detect_anomalies([10, 10, 10, 10, 11]) == []

    def test_steady_series(self):
        assert detect_anomalies([1, 2, 3, 4, 5]) == []

    def test_fewer_than_five_points(self):
        assert detect_anomalies([1, 1, 100]) == []

    def test_constant_series(self):
        assert detect_anomalies([7, 7, 7, 7, 7, 7]) == []

    def test_tiny_deviation_is_not_reported(self):
        assert detect_anomalies([1000, 1000, 1000, 1000, 1001]) == []

    def test_clear_outlier_near_large_mean(self):
        values = [1000, 1001, 999, 1000, 1002, 998, 1000, 1001, 999, 1050]
        entries = detect_anomalies(values)
        assert [e.index for e in entries] == [9]
        assert entries[0].z_score == pytest.approx(2.99, abs=0.01)
        assert entries[0].direction == "high"

    def test_custom_threshold(self):
        assert detect_anomalies([10, 10, 10, 10, 50], threshold=2.5) == []


# ============================================================================
# CORRELATION
# ============================================================================

class TestCorrelation:

    def test_perfect_positive(self):
        assert pearson_correlation([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)

    def test_perfect_negative(self):
        assert pearson_correlation([1, 2, 3, 4], [4, 3, 2, 1]) == pytest.approx(-1.0)

    def test_undefined(self):
        assert pearson_correlation([1, 2], [3, 4]) is None
        assert pearson_correlation([1, 2, 3], [5, 5, 5]) is None

    def test_uses_common_prefix(self):
        assert pearson_correlation([1, 2, 3, 99], [1, 2, 3]) == pytest.approx(1.0)

    @pytest.mark.parametrize("r,expected", [
        (0.9, "very strong"),
        (-0.85, "very strong"),
        (0.75, "strong"),
        (0.65, "moderate"),
    ])
    def test_strength(self, r, expected):
        assert correlation_strength(r) == expected

    def test_matrix(self):
        result = correlation_matrix("Ops", {
            "a": [1, 2, 3, 4],
            "b": [2, 4, 6, 8],
            "c": [4, 3, 2, 1],
            "d": [5, 5, 5, 5],
        })

        assert result.columns == ["a", "b", "c", "d"]
        assert [result.matrix[i][i] for i in range(4)] == [1.0, 1.0, 1.0, 1.0]
        assert result.matrix[0][1] == 1.0
        assert result.matrix[0][2] == -1.0
        assert result.matrix[2][0] == -1.0
        assert result.matrix[0][3] == 0.0
        assert len(result.insights) == 3
        assert {(i.col1, i.col2) for i in result.insights} == {("a", "b"), ("a", "c"), ("b", "c")}
        doubled = next(i for i in result.insights if (i.col1, i.col2) == ("a", "b"))
        assert doubled.r == 1.0
        assert doubled.strength == "very strong"
        assert doubled.direction == "positive"
        negative = next(i for i in result.insights if i.col2 == "c" and i.col1 == "a")
        assert negative.direction == "negative"
        assert negative.strength == "very strong"

    def test_weak_pairs_are_not_insights(self):
        result = correlation_matrix("Ops", {"a": [1, 2, 3, 4, 5], "b": [2, 1, 4, 3, 2]})
        assert result.insights == []
        assert abs(result.matrix[0][1]) < 0.6


# ============================================================================
# SEASONALITY
# ============================================================================

class TestSeasonality:

    def test_quarterly_cycle(self):
        period, strength, label = detect_seasonality([1, 5, 9, 5] * 3)
        assert period == 4
        assert strength == pytest.approx(0.67)
        assert label == "quarterly"

    def test_weekly_cycle(self):
        period, _, label = detect_seasonality([1, 1, 1, 1, 1, 9, 9] * 3)
        assert period == 7
        assert label == "weekly"

    def test_too_short(self):
        assert detect_seasonality([1, 2, 3]) is None

    def test_constant(self):
        assert detect_seasonality([4] * 12) is None

    def test_below_min_strength(self):
        assert detect_seasonality([1, 5, 9, 5] * 3, min_strength=0.9) is None


# ============================================================================
# ENGINE
# ============================================================================

class TestEngine:

    def test_monthly_revenue(self):
        rows = [
            {"Month": "Jan", "Revenue": 1000},
            {"Month": "Feb", "Revenue": 1200},
            {"Month": "Mar", "Revenue": 1500},
        ]
        sheets = {"Sales": rows}
        charts = DashboardBuilder().build(sheets)

        result = analyze(sheets, charts)

        assert len(result.forecasts) == 1
        fc = result.forecasts[0]
        assert fc.column == "Revenue"
        assert fc.horizon == 3
        assert fc.predicted_values == [1733.33, 1983.33, 2233.33]
        assert result.anomalies == []
        assert result.correlations is None
        assert result.seasonality is None
        assert result.moving_averages["Sales"]["Revenue"]["ma3"] == [None, None, 1233.33]
        texts = [i.text for i in result.insights]
        assert any("trending up" in t for t in texts)
        assert any("projected to rise" in t for t in texts)

    def test_correlation_from_first_multi_column_sheet(self):
        charts = [
            _chart("Single", {"Visits": [1, 2, 3, 4]}),
            _chart("Ops", {"Revenue": [10, 20, 30, 40, 50, 60], "Cost": [5, 10, 15, 20, 25, 30]}),
            _chart("Later", {"A": [1, 2, 3], "B": [3, 2, 1]}),
        ]
        result = PredictiveAnalyticsEngine().analyze({}, charts)

        assert result.correlations.sheet == "Ops"
        assert result.correlations.insights[0].r == 1.0
        assert set(result.moving_averages) == {"Single", "Ops", "Later"}

    def test_secondary_charts_are_ignored(self):
        charts = [
            _chart("Ops", {"Revenue": [10, 20, 30, 40]}),
            _chart("Ops", {"Total": [100, 1, 50]}, labels=["a", "b", "c"], is_secondary=True),
        ]
        result = analyze({}, charts)
        assert [f.column for f in result.forecasts] == ["Revenue"]
        assert list(result.moving_averages["Ops"]) == ["Revenue"]

    def test_short_sheets_are_skipped(self):
        result = analyze({}, [_chart("Tiny", {"X": [1, 2]})])
        assert result.forecasts == []
        assert result.moving_averages == {}
        assert result.insights == []

    def test_weak_fit_has_no_forecast(self):
        result = analyze({}, [_chart("Flat", {"X": [5, 1, 5, 1, 5, 1]})])
        assert result.forecasts == []
        assert "X" in result.moving_averages["Flat"]

    def test_anomalies_use_chart_labels(self):
        chart = _chart("Ops", {"Errors": [10, 10, 10, 10, 50]}, labels=["Mon", "Tue", "Wed", "Thu", "Fri"])
        result = analyze({}, [chart])
        assert result.anomalies[0].column == "Errors"
        assert result.anomalies[0].entries[0].label == "Fri"

    def test_seasonality_on_first_series(self):
        chart = _chart("Ops", {"Load": [1, 5, 9, 5] * 3})
        result = analyze({}, [chart])
        assert result.seasonality.column == "Load"
        assert result.seasonality.period == 4

    def test_failing_sheet_is_isolated(self, monkeypatch):
        engine = PredictiveAnalyticsEngine()
        original = engine._analyze_sheet

        def flaky(chart):
            if chart.sheet_name == "Broken":
                raise ValueError("bad data")
            return original(chart)

        monkeypatch.setattr(engine, "_analyze_sheet", flaky)
        charts = [_chart("Broken", {"X": [1, 2, 3]}), _chart("Good", {"Y": [1, 2, 3]})]
        result = engine.analyze({}, charts)
        assert [f.sheet for f in result.forecasts] == ["Good"]

    def test_sheet_failing_midway_leaves_no_partial_output(self, monkeypatch):
        original = predictive_analytics.detect_anomalies

        def failing_on_bad_rows(values, labels=None, **kwargs):
            if 999 in values:
                raise ValueError("bad data")
            return original(values, labels, **kwargs)

        monkeypatch.setattr(predictive_analytics, "detect_anomalies", failing_on_bad_rows)
        charts = [
            _chart("Broken", {"X": [1, 2, 3, 4, 999]}),
            _chart("Good", {"Y": [1, 2, 3, 4, 5], "Z": [2, 4, 6, 8, 10]}),
        ]
        result = PredictiveAnalyticsEngine().analyze({}, charts)

        assert {f.sheet for f in result.forecasts} == {"Good"}
        assert list(result.moving_averages) == ["Good"]
        assert result.correlations.sheet == "Good"
