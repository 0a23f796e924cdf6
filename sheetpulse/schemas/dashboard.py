from __future__ import annotations
from typing import Any, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Sources ──────────────────────────────────────────────────────────────────

SourceKind = Literal["cloud_sheet", "shared_office_doc", "generic", "upload"]
LinkType = Literal["google", "sharepoint", "onedrive", "unknown"]


class RawDocument(CamelModel):
    content: bytes
    source_kind: SourceKind
    link_type: LinkType = "unknown"
    url: Optional[str] = None
    filename: Optional[str] = None


class SheetData(CamelModel):
    sheets: dict[str, list[dict[str, Any]]]
    sheet_names: list[str]
    source: LinkType


# ── Dashboard ────────────────────────────────────────────────────────────────

ChartType = Literal["bar", "line", "doughnut", "radar", "polarArea"]


class Dataset(CamelModel):
    label: str
    data: list[float]


class KPI(CamelModel):
    label: str
    total: float
    avg: float
    max: float
    min: float
    median: float
    std_dev: float
    count: int
    trend: float
    growth_rate: float
    peak_label: str = ""


class ChartConfig(CamelModel):
    sheet_name: str
    title: str
    chart_type: ChartType
    label_column: str
    data_columns: list[str]
    labels: list[str]
    datasets: list[Dataset]
    kpis: list[KPI] = Field(default_factory=list)
    row_count: int = 0
    column_count: Optional[int] = None
    numeric_column_count: Optional[int] = None
    is_secondary: bool = False


# ── Analytics ────────────────────────────────────────────────────────────────

class RegressionResult(CamelModel):
    slope: float
    intercept: float
    r_squared: float


class ForecastResult(CamelModel):
    sheet: str
    column: str
    regression: RegressionResult
    predicted_values: list[float]
    horizon: int


class AnomalyEntry(CamelModel):
    index: int
    label: str
    value: float
    z_score: float
    direction: Literal["high", "low"]
    deviation: float


class AnomalyRecord(CamelModel):
    sheet: str
    column: str
    entries: list[AnomalyEntry]


class CorrelationInsight(CamelModel):
    col1: str
    col2: str
    r: float
    strength: Literal["very strong", "strong", "moderate"]
    direction: Literal["positive", "negative"]


class CorrelationMatrix(CamelModel):
    sheet: str
    columns: list[str]
    matrix: list[list[float]]
    insights: list[CorrelationInsight] = Field(default_factory=list)


class SeasonalityResult(CamelModel):
    sheet: str
    column: str
    period: int
    strength: float
    label: Literal["quarterly", "weekly", "monthly"]


class Insight(CamelModel):
    kind: Literal["positive", "warning", "info"]
    text: str


class AnalyticsResult(CamelModel):
    forecasts: list[ForecastResult] = Field(default_factory=list)
    correlations: Optional[CorrelationMatrix] = None
    anomalies: list[AnomalyRecord] = Field(default_factory=list)
    insights: list[Insight] = Field(default_factory=list)
    # {sheet: {column: {"ma3": [...], "ma5": [...]}}}
    moving_averages: dict[str, dict[str, dict[str, list[Optional[float]]]]] = Field(
        default_factory=dict
    )
    seasonality: Optional[SeasonalityResult] = None


class DashboardResult(CamelModel):
    charts: list[ChartConfig]
    analytics: AnalyticsResult
    source: str
    sheet_names: list[str] = Field(default_factory=list)
