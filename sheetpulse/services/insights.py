"""
Insight synthesis — fixed sentence templates over KPIs, correlations,
anomalies, the best forecast and seasonality. No model calls.
"""

from typing import List, Optional

from sheetpulse.schemas.dashboard import (
    KPI,
    AnomalyRecord,
    CorrelationMatrix,
    ForecastResult,
    Insight,
    SeasonalityResult,
)

TOP_KPI_COUNT = 4
TREND_THRESHOLD = 10.0
VARIABILITY_RATIO = 0.5


def _fmt(value: float) -> str:
    if float(value).is_integer():
        return f"{value:,.0f}"
    return f"{value:,.2f}"


def kpi_insights(kpis: List[KPI]) -> List[Insight]:
    insights = []
    for kpi in kpis[:TOP_KPI_COUNT]:
        if kpi.trend > TREND_THRESHOLD:
            insights.append(Insight(
                kind="positive",
                text=f"{kpi.label} is trending up: the recent average is {kpi.trend}% above the earlier period.",
            ))
        elif kpi.trend < -TREND_THRESHOLD:
            insights.append(Insight(
                kind="warning",
                text=f"{kpi.label} is declining: the recent average is {abs(kpi.trend)}% below the earlier period.",
            ))
        if kpi.avg > 0 and kpi.std_dev > VARIABILITY_RATIO * kpi.avg:
            insights.append(Insight(
                kind="info",
                text=(
                    f"{kpi.label} shows high variability (std dev {_fmt(kpi.std_dev)} "
                    f"against an average of {_fmt(kpi.avg)})."
                ),
            ))
    return insights


def correlation_insight(correlations: Optional[CorrelationMatrix]) -> List[Insight]:
    if correlations is None or not correlations.insights:
        return []
    top = correlations.insights[0]
    return [Insight(
        kind="info",
        text=(
            f"{top.col1} and {top.col2} have a {top.strength} {top.direction} "
            f"correlation (r = {top.r})."
        ),
    )]


def anomaly_insights(anomalies: List[AnomalyRecord]) -> List[Insight]:
    high_count, low_count = 0, 0
    high_cols: List[str] = []
    low_cols: List[str] = []
    for record in anomalies:
        for entry in record.entries:
            if entry.direction == "high":
                high_count += 1
                if record.column not in high_cols:
                    high_cols.append(record.column)
            else:
                low_count += 1
                if record.column not in low_cols:
                    low_cols.append(record.column)

    insights = []
    if high_count:
        noun = "value" if high_count == 1 else "values"
        insights.append(Insight(
            kind="info",
            text=f"{high_count} unusually high {noun} detected in {', '.join(high_cols)}.",
        ))
    if low_count:
        noun = "value" if low_count == 1 else "values"
        insights.append(Insight(
            kind="warning",
            text=f"{low_count} unusually low {noun} detected in {', '.join(low_cols)}.",
        ))
    return insights


def forecast_insight(forecasts: List[ForecastResult]) -> List[Insight]:
    if not forecasts:
        return []
    best = max(forecasts, key=lambda f: f.regression.r_squared)
    if not best.predicted_values:
        return []
    rising = best.regression.slope > 0
    return [Insight(
        kind="positive" if rising else "warning",
        text=(
            f"{best.column} is projected to {'rise' if rising else 'fall'} to "
            f"{_fmt(best.predicted_values[0])} next period (R² = {best.regression.r_squared})."
        ),
    )]


def seasonality_insight(seasonality: Optional[SeasonalityResult]) -> List[Insight]:
    if seasonality is None:
        return []
    return [Insight(
        kind="info",
        text=(
            f"{seasonality.column} shows a {seasonality.label} pattern repeating every "
            f"{seasonality.period} periods (strength {seasonality.strength})."
        ),
    )]


def synthesize_insights(
    kpis: List[KPI],
    correlations: Optional[CorrelationMatrix],
    anomalies: List[AnomalyRecord],
    forecasts: List[ForecastResult],
    seasonality: Optional[SeasonalityResult],
) -> List[Insight]:
    """All insights in a stable order: KPIs, correlation, anomalies, forecast, seasonality."""
    return (
        kpi_insights(kpis)
        + correlation_insight(correlations)
        + anomaly_insights(anomalies)
        + forecast_insight(forecasts)
        + seasonality_insight(seasonality)
    )
