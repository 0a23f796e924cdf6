"""
Predictive Analytics Engine — forecasting, moving averages, anomalies,
correlation and seasonality over the numeric series of generated charts.

Closed-form statistics only, no trained models. Missing patterns produce
empty collections or None, never exceptions.
"""

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np

from sheetpulse.config import settings
from sheetpulse.schemas.dashboard import (
    AnalyticsResult,
    AnomalyEntry,
    AnomalyRecord,
    ChartConfig,
    CorrelationInsight,
    CorrelationMatrix,
    ForecastResult,
    RegressionResult,
    SeasonalityResult,
)
from sheetpulse.services.insights import synthesize_insights

logger = logging.getLogger(__name__)

MIN_ANALYSIS_ROWS = 3
MIN_ANOMALY_ROWS = 5
MIN_CORRELATION_ROWS = 3
MAX_SEASONALITY_LAG = 12
MOVING_AVERAGE_WINDOWS = (3, 5)


# ============================================================================
# REGRESSION & FORECAST
# ============================================================================

def linear_regression(values: Sequence[float]) -> Optional[RegressionResult]:
    """
    Least-squares fit of value against row index (0, 1, 2, ...).

    A flat series has nothing to explain and gets r_squared 0.
    """
    y = np.asarray(values, dtype=float)
    n = len(y)
    if n < 2:
        return None
    x = np.arange(n, dtype=float)

    x_mean, y_mean = x.mean(), y.mean()
    ss_xx = float(((x - x_mean) ** 2).sum())
    slope = float(((x - x_mean) * (y - y_mean)).sum()) / ss_xx
    intercept = y_mean - slope * x_mean

    predicted = slope * x + intercept
    ss_res = float(((y - predicted) ** 2).sum())
    ss_tot = float(((y - y_mean) ** 2).sum())
    r_squared = 1 - ss_res / ss_tot if ss_tot > 0 else 0.0

    return RegressionResult(
        slope=round(slope, 4),
        intercept=round(float(intercept), 4),
        r_squared=round(max(0.0, min(1.0, r_squared)), 4),
    )


def forecast_horizon(row_count: int) -> int:
    return min(5, max(3, round(0.2 * row_count)))


def forecast(values: Sequence[float], steps: Optional[int] = None) -> List[float]:
    """Extrapolate the fitted line ``steps`` points past the last row."""
    regression = linear_regression(values)
    if regression is None:
        return []
    n = len(values)
    steps = forecast_horizon(n) if steps is None else steps
    return [
        round(regression.slope * (n + i) + regression.intercept, 2)
        for i in range(steps)
    ]


# ============================================================================
# MOVING AVERAGES
# ============================================================================

def moving_average(values: Sequence[float], window: int) -> List[Optional[float]]:
    """Trailing mean; the first ``window - 1`` points have no value."""
    arr = np.asarray(values, dtype=float)
    result: List[Optional[float]] = []
    for i in range(len(arr)):
        if i < window - 1:
            result.append(None)
        else:
            result.append(round(float(arr[i - window + 1 : i + 1].mean()), 2))
    return result


def moving_averages(values: Sequence[float]) -> Dict[str, List[Optional[float]]]:
    averages = {"ma3": moving_average(values, 3)}
    if len(values) >= 5:
        averages["ma5"] = moving_average(values, 5)
    return averages


# ============================================================================
# ANOMALIES
# ============================================================================

def detect_anomalies(
    values: Sequence[float],
    labels: Optional[Sequence[str]] = None,
    threshold: Optional[float] = None,
    min_relative_deviation: Optional[float] = None,
) -> List[AnomalyEntry]:
    """
    Flag points whose population z-score exceeds the threshold.

    A point whose |z| only rounds to the threshold is borderline and is
    reported only when it deviates from the mean by at least
    ``min_relative_deviation`` of the mean's magnitude. Series shorter than
    five points or with zero variance yield nothing.
    """
    threshold = settings.ANOMALY_Z_THRESHOLD if threshold is None else threshold
    if min_relative_deviation is None:
        min_relative_deviation = settings.ANOMALY_MIN_RELATIVE_DEVIATION

    arr = np.asarray(values, dtype=float)
    if len(arr) < MIN_ANOMALY_ROWS:
        return []
    mean = float(arr.mean())
    std = float(arr.std())
    if std == 0:
        return []

    floor = abs(mean) * min_relative_deviation
    entries = []
    for i, value in enumerate(arr):
        z = (float(value) - mean) / std
        deviation = abs(float(value) - mean)
        rounded = round(abs(z), 2)
        if rounded < threshold:
            continue
        if rounded == threshold and deviation < floor:
            continue
        entries.append(AnomalyEntry(
            index=i,
            label=str(labels[i]) if labels is not None and i < len(labels) else str(i),
            value=round(float(value), 2),
            z_score=round(z, 2),
            direction="high" if z > 0 else "low",
            deviation=round(deviation, 2),
        ))
    return entries


# ============================================================================
# CORRELATION
# ============================================================================

def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> Optional[float]:
    """Pearson r over the common prefix of two series; None when undefined."""
    n = min(len(x), len(y))
    if n < MIN_CORRELATION_ROWS:
        return None
    a = np.asarray(x[:n], dtype=float)
    b = np.asarray(y[:n], dtype=float)
    da, db = a - a.mean(), b - b.mean()
    denom = float(np.sqrt((da ** 2).sum() * (db ** 2).sum()))
    if denom == 0:
        return None
    r = float((da * db).sum()) / denom
    return max(-1.0, min(1.0, r))


def correlation_strength(r: float) -> str:
    magnitude = abs(r)
    if magnitude >= 0.85:
        return "very strong"
    if magnitude >= 0.7:
        return "strong"
    return "moderate"


def correlation_matrix(
    sheet: str,
    series: Dict[str, Sequence[float]],
    threshold: Optional[float] = None,
) -> CorrelationMatrix:
    """Pairwise Pearson r; pairs with |r| at or above the threshold become insights."""
    threshold = settings.CORRELATION_THRESHOLD if threshold is None else threshold
    columns = list(series.keys())
    matrix = [[0.0] * len(columns) for _ in columns]
    insights: List[CorrelationInsight] = []

    for i, col1 in enumerate(columns):
        matrix[i][i] = 1.0
        for j in range(i + 1, len(columns)):
            col2 = columns[j]
            r = pearson_correlation(series[col1], series[col2])
            if r is None:
                continue
            r = round(r, 3)
            matrix[i][j] = matrix[j][i] = r
            if abs(r) >= threshold:
                insights.append(CorrelationInsight(
                    col1=col1,
                    col2=col2,
                    r=r,
                    strength=correlation_strength(r),
                    direction="positive" if r > 0 else "negative",
                ))

    insights.sort(key=lambda item: abs(item.r), reverse=True)
    return CorrelationMatrix(sheet=sheet, columns=columns, matrix=matrix, insights=insights)


# ============================================================================
# SEASONALITY
# ============================================================================

def autocorrelation(values: Sequence[float], lag: int) -> Optional[float]:
    arr = np.asarray(values, dtype=float)
    if lag <= 0 or lag >= len(arr):
        return None
    centered = arr - arr.mean()
    denom = float((centered ** 2).sum())
    if denom == 0:
        return None
    return float((centered[:-lag] * centered[lag:]).sum()) / denom


def seasonality_label(period: int) -> str:
    if period <= 4:
        return "quarterly"
    if period <= 7:
        return "weekly"
    return "monthly"


def detect_seasonality(
    values: Sequence[float],
    min_strength: Optional[float] = None,
) -> Optional[tuple]:
    """Best autocorrelation lag as (period, strength, label), or None."""
    min_strength = settings.SEASONALITY_MIN_STRENGTH if min_strength is None else min_strength
    max_lag = min(len(values) // 2, MAX_SEASONALITY_LAG)

    best_lag, best_ac = None, None
    for lag in range(2, max_lag + 1):
        ac = autocorrelation(values, lag)
        if ac is None:
            continue
        if best_ac is None or ac > best_ac:
            best_lag, best_ac = lag, ac

    if best_lag is None or best_ac < min_strength:
        return None
    return best_lag, round(best_ac, 2), seasonality_label(best_lag)


# ============================================================================
# ENGINE
# ============================================================================

class PredictiveAnalyticsEngine:
    def __init__(
        self,
        anomaly_threshold: Optional[float] = None,
        correlation_threshold: Optional[float] = None,
        min_r_squared: Optional[float] = None,
        max_forecast_columns: Optional[int] = None,
        max_correlation_columns: Optional[int] = None,
    ):
        self.anomaly_threshold = (
            settings.ANOMALY_Z_THRESHOLD if anomaly_threshold is None else anomaly_threshold
        )
        self.correlation_threshold = (
            settings.CORRELATION_THRESHOLD if correlation_threshold is None else correlation_threshold
        )
        self.min_r_squared = (
            settings.FORECAST_MIN_R_SQUARED if min_r_squared is None else min_r_squared
        )
        self.max_forecast_columns = max_forecast_columns or settings.MAX_FORECAST_COLUMNS
        self.max_correlation_columns = max_correlation_columns or settings.MAX_CORRELATION_COLUMNS

    def analyze(self, sheets: Dict[str, list], charts: List[ChartConfig]) -> AnalyticsResult:
        result = AnalyticsResult()
        kpis = []
        seasonal_series = None

        for chart in charts:
            if chart.is_secondary:
                continue
            row_count = len(sheets.get(chart.sheet_name) or []) or chart.row_count
            if row_count < MIN_ANALYSIS_ROWS or not chart.datasets:
                continue

            try:
                partial = self._analyze_sheet(chart)
            except Exception:
                logger.exception("Analytics failed for sheet %r", chart.sheet_name)
                continue

            # Merge only once the whole sheet succeeded
            result.forecasts.extend(partial.forecasts)
            result.anomalies.extend(partial.anomalies)
            for sheet_name, columns in partial.moving_averages.items():
                result.moving_averages.setdefault(sheet_name, {}).update(columns)

            kpis.extend(chart.kpis)
            if result.correlations is None and len(chart.datasets) >= 2:
                result.correlations = self._correlations(chart)
            if seasonal_series is None:
                seasonal_series = (chart.sheet_name, chart.datasets[0])

        if seasonal_series is not None:
            sheet_name, dataset = seasonal_series
            found = detect_seasonality(dataset.data)
            if found:
                period, strength, label = found
                result.seasonality = SeasonalityResult(
                    sheet=sheet_name, column=dataset.label,
                    period=period, strength=strength, label=label,
                )

        result.insights = synthesize_insights(
            kpis=kpis,
            correlations=result.correlations,
            anomalies=result.anomalies,
            forecasts=result.forecasts,
            seasonality=result.seasonality,
        )
        return result

    def _analyze_sheet(self, chart: ChartConfig) -> AnalyticsResult:
        """Forecasts, moving averages and anomalies for one primary chart."""
        sheet = chart.sheet_name
        partial = AnalyticsResult()

        for dataset in chart.datasets[: self.max_forecast_columns]:
            values = dataset.data
            regression = linear_regression(values)
            if regression is not None and regression.r_squared > self.min_r_squared:
                horizon = forecast_horizon(len(values))
                partial.forecasts.append(ForecastResult(
                    sheet=sheet,
                    column=dataset.label,
                    regression=regression,
                    predicted_values=forecast(values, horizon),
                    horizon=horizon,
                ))
            partial.moving_averages.setdefault(sheet, {})[dataset.label] = moving_averages(values)

        for dataset in chart.datasets:
            entries = detect_anomalies(dataset.data, chart.labels, threshold=self.anomaly_threshold)
            if entries:
                partial.anomalies.append(AnomalyRecord(sheet=sheet, column=dataset.label, entries=entries))
        return partial

    def _correlations(self, chart: ChartConfig) -> CorrelationMatrix:
        series = {d.label: d.data for d in chart.datasets[: self.max_correlation_columns]}
        return correlation_matrix(chart.sheet_name, series, threshold=self.correlation_threshold)


def analyze(sheets: Dict[str, list], charts: List[ChartConfig]) -> AnalyticsResult:
    return PredictiveAnalyticsEngine().analyze(sheets, charts)
