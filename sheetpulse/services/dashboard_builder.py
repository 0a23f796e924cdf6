"""
DashboardBuilder — turns parsed sheets into chart configs with KPIs.

Per sheet: one primary chart (label column vs every numeric column) plus up
to four secondary views (metric distribution, top 8, grouped summary, average
overview).
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from sheetpulse.config import settings
from sheetpulse.schemas.dashboard import KPI, ChartConfig, Dataset
from sheetpulse.services.column_classifier import ColumnClassifier, ColumnProfile
from sheetpulse.services.value_parsing import amount_or_zero, format_label, is_amount

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


# ============================================================================
# CHART TYPE SELECTION
# ============================================================================

@dataclass(frozen=True)
class ChartShape:
    label_type: str
    numeric_count: int
    row_count: int

    @property
    def categorical(self) -> bool:
        return self.label_type == "category"

    @property
    def temporal(self) -> bool:
        return self.label_type == "date"


@dataclass(frozen=True)
class ChartTypeRule:
    name: str
    applies: Callable[[ChartShape], bool]
    chart_type: str


# First match wins; the conditions overlap, so order matters.
CHART_TYPE_RULES: List[ChartTypeRule] = [
    ChartTypeRule(
        "single_metric_composition",
        lambda s: s.numeric_count == 1 and s.row_count <= 10 and s.categorical,
        "doughnut",
    ),
    ChartTypeRule("time_series", lambda s: s.temporal and s.numeric_count <= 3, "line"),
    ChartTypeRule("wide_time_series", lambda s: s.temporal, "bar"),
    ChartTypeRule(
        "small_comparison",
        lambda s: s.categorical and s.row_count <= 8 and s.numeric_count <= 2,
        "bar",
    ),
    ChartTypeRule(
        "multi_metric_profile",
        lambda s: s.categorical and s.row_count <= 6 and s.numeric_count >= 3,
        "radar",
    ),
    ChartTypeRule(
        "category_composition",
        lambda s: s.categorical and s.numeric_count == 1 and s.row_count <= 12,
        "doughnut",
    ),
    ChartTypeRule("category_comparison", lambda s: s.categorical, "bar"),
    ChartTypeRule("long_series", lambda s: s.row_count > 15, "line"),
    ChartTypeRule("multi_metric", lambda s: s.numeric_count >= 2, "bar"),
    ChartTypeRule("small_composition", lambda s: s.row_count <= 8, "doughnut"),
]

DEFAULT_CHART_TYPE = "bar"


def pick_chart_type(label_type: str, numeric_count: int, row_count: int) -> str:
    """Best chart type for a label column type and the sheet's shape."""
    shape = ChartShape(label_type, numeric_count, row_count)
    for rule in CHART_TYPE_RULES:
        if rule.applies(shape):
            return rule.chart_type
    return DEFAULT_CHART_TYPE


# ============================================================================
# KPIs
# ============================================================================

def _mean(values) -> float:
    return float(np.mean(values)) if len(values) else 0.0


def compute_kpis(header: str, values: List[float], labels: Optional[List[str]] = None) -> Optional[KPI]:
    """
    Summary statistics for one numeric column.

    trend compares the mean of the second half against the first half;
    growth_rate compares the last value against the first. Both are 0 when
    the baseline is not positive.
    """
    filtered = [v for v in values if v is not None and np.isfinite(v)]
    if not filtered:
        return None

    arr = np.asarray(filtered, dtype=float)
    count = len(arr)
    total = float(arr.sum())
    avg = total / count
    max_value = float(arr.max())

    midpoint = count // 2
    first_avg = _mean(arr[:midpoint])
    second_avg = _mean(arr[midpoint:])
    trend = (second_avg - first_avg) / first_avg * 100 if first_avg > 0 else 0.0

    first_val, last_val = float(arr[0]), float(arr[-1])
    growth_rate = (last_val - first_val) / first_val * 100 if first_val > 0 else 0.0

    peak_label = ""
    if labels:
        peak_idx = int(np.argmax(arr))
        if peak_idx < len(labels):
            peak_label = labels[peak_idx]

    return KPI(
        label=header,
        total=round(total, 2),
        avg=round(avg, 2),
        max=round(max_value, 2),
        min=round(float(arr.min()), 2),
        median=round(float(np.median(arr)), 2),
        std_dev=round(float(arr.std()), 2),
        count=count,
        trend=round(trend, 1),
        growth_rate=round(growth_rate, 1),
        peak_label=peak_label,
    )


# ============================================================================
# BUILDER
# ============================================================================

@dataclass
class SheetLayout:
    """Column roles chosen for one sheet."""
    label_column: str
    label_type: str
    numeric_columns: List[str]
    profiles: Dict[str, ColumnProfile]


class DashboardBuilder:
    def __init__(
        self,
        classifier: Optional[ColumnClassifier] = None,
        max_kpi_columns: Optional[int] = None,
        recovery_ratio: Optional[float] = None,
    ):
        self.classifier = classifier or ColumnClassifier()
        self.max_kpi_columns = max_kpi_columns or settings.MAX_KPI_COLUMNS
        self.recovery_ratio = (
            recovery_ratio if recovery_ratio is not None else settings.RECOVERY_NUMERIC_RATIO
        )

    def build(self, sheets: Dict[str, List[Row]]) -> List[ChartConfig]:
        """Chart configs for every usable sheet; unusable sheets are skipped."""
        configs: List[ChartConfig] = []
        for sheet_name, rows in sheets.items():
            try:
                configs.extend(self.build_sheet(sheet_name, rows))
            except Exception:
                logger.exception("Skipping sheet %r: dashboard generation failed", sheet_name)
        return configs

    # ── Layout ───────────────────────────────────────────────────────────────

    def layout(self, rows: List[Row]) -> Optional[SheetLayout]:
        """Pick the label column and numeric columns, or None if nothing is numeric."""
        if not rows:
            return None
        headers = list(rows[0].keys())
        if not headers:
            return None

        profiles = self.classifier.classify_all(rows)
        label_cols = [h for h in headers if not profiles[h].is_numeric]
        numeric_cols = [h for h in headers if profiles[h].is_numeric]

        label_col = (
            next((c for c in label_cols if profiles[c].type == "date"), None)
            or next((c for c in label_cols if profiles[c].type == "category"), None)
            or (label_cols[0] if label_cols else None)
            or headers[0]
        )

        if not numeric_cols:
            numeric_cols = self.recover_numeric_columns(rows, headers, label_col, profiles)
        if not numeric_cols:
            return None

        return SheetLayout(
            label_column=label_col,
            label_type=profiles[label_col].type,
            numeric_columns=numeric_cols,
            profiles=profiles,
        )

    def recover_numeric_columns(
        self,
        rows: List[Row],
        headers: List[str],
        label_col: str,
        profiles: Dict[str, ColumnProfile],
    ) -> List[str]:
        """Second pass over every row for columns the sample missed."""
        recovered = []
        for h in headers:
            if h == label_col:
                continue
            numeric_count = sum(1 for r in rows if is_amount(r.get(h, "")))
            if numeric_count > len(rows) * self.recovery_ratio:
                recovered.append(h)
                profiles[h] = ColumnProfile(h, "number", "numeric", "recovered")
        return recovered

    # ── Charts ───────────────────────────────────────────────────────────────

    def build_sheet(self, sheet_name: str, rows: List[Row]) -> List[ChartConfig]:
        layout = self.layout(rows)
        if layout is None:
            logger.info("Dropping sheet %r: no numeric columns", sheet_name)
            return []

        label_col = layout.label_column
        numeric_cols = layout.numeric_columns
        labels = [format_label(r.get(label_col, "")) for r in rows]

        datasets = [
            Dataset(label=col, data=[round(amount_or_zero(r.get(col, "")), 2) for r in rows])
            for col in numeric_cols
        ]

        kpis = []
        for col in numeric_cols[: self.max_kpi_columns]:
            values = [amount_or_zero(r.get(col, "")) for r in rows]
            kpi = compute_kpis(col, values, labels)
            if kpi:
                kpis.append(kpi)

        primary = ChartConfig(
            sheet_name=sheet_name,
            title=sheet_name,
            chart_type=pick_chart_type(layout.label_type, len(numeric_cols), len(rows)),
            label_column=label_col,
            data_columns=numeric_cols,
            labels=labels,
            datasets=datasets,
            kpis=kpis,
            row_count=len(rows),
            column_count=len(rows[0]),
            numeric_column_count=len(numeric_cols),
            is_secondary=False,
        )
        return [primary] + self.secondary_charts(sheet_name, rows, layout)

    def secondary_charts(self, sheet_name: str, rows: List[Row], layout: SheetLayout) -> List[ChartConfig]:
        """Alternate views; each rule fires independently."""
        label_col = layout.label_column
        numeric_cols = layout.numeric_columns
        secondary: List[ChartConfig] = []

        # Metric distribution: column totals as slices
        if len(numeric_cols) >= 3 and len(rows) >= 3:
            cols = numeric_cols[:8]
            totals = [round(sum(amount_or_zero(r.get(c, "")) for r in rows), 2) for c in cols]
            secondary.append(ChartConfig(
                sheet_name=sheet_name,
                title=f"{sheet_name} - Metric Distribution",
                chart_type="doughnut",
                label_column="Metric",
                data_columns=["Total"],
                labels=cols,
                datasets=[Dataset(label="Total", data=totals)],
                row_count=len(cols),
                is_secondary=True,
            ))

        # Top 8 rows by the first numeric column
        if len(rows) > 10:
            primary_col = numeric_cols[0]
            top8 = sorted(rows, key=lambda r: amount_or_zero(r.get(primary_col, "")), reverse=True)[:8]
            secondary.append(ChartConfig(
                sheet_name=sheet_name,
                title=f"Top 8 by {primary_col}",
                chart_type="bar",
                label_column=label_col,
                data_columns=[primary_col],
                labels=[format_label(r.get(label_col, "")) for r in top8],
                datasets=[Dataset(
                    label=primary_col,
                    data=[round(amount_or_zero(r.get(primary_col, "")), 2) for r in top8],
                )],
                row_count=len(top8),
                is_secondary=True,
            ))

        # Grouped summary when a categorical label repeats
        if layout.label_type == "category":
            grouped = self._group_by_label(rows, label_col, numeric_cols[:4])
            if grouped is not None:
                unique_labels, group_datasets = grouped
                secondary.append(ChartConfig(
                    sheet_name=sheet_name,
                    title=f"{sheet_name} - Summary by {label_col}",
                    chart_type="radar" if len(unique_labels) <= 6 else "bar",
                    label_column=label_col,
                    data_columns=numeric_cols[:4],
                    labels=unique_labels,
                    datasets=group_datasets,
                    row_count=len(unique_labels),
                    is_secondary=True,
                ))

        # Average per metric
        if 3 <= len(numeric_cols) <= 8 and len(rows) >= 2:
            averages = [
                round(sum(amount_or_zero(r.get(c, "")) for r in rows) / len(rows), 2)
                for c in numeric_cols
            ]
            secondary.append(ChartConfig(
                sheet_name=sheet_name,
                title=f"{sheet_name} - Average Metrics Overview",
                chart_type="polarArea",
                label_column="Metric",
                data_columns=["Average"],
                labels=list(numeric_cols),
                datasets=[Dataset(label="Average", data=averages)],
                row_count=len(numeric_cols),
                is_secondary=True,
            ))

        return secondary

    @staticmethod
    def _group_by_label(rows: List[Row], label_col: str, cols: List[str]):
        unique_labels: List[str] = []
        for r in rows:
            label = format_label(r.get(label_col, ""))
            if label not in unique_labels:
                unique_labels.append(label)

        if not (2 <= len(unique_labels) <= 12 and len(unique_labels) < len(rows)):
            return None

        sums = {label: {c: 0.0 for c in cols} for label in unique_labels}
        for r in rows:
            label = format_label(r.get(label_col, ""))
            for c in cols:
                sums[label][c] += amount_or_zero(r.get(c, ""))

        datasets = [
            Dataset(label=c, data=[round(sums[label][c], 2) for label in unique_labels])
            for c in cols
        ]
        return unique_labels, datasets


# Convenience function for direct usage
def build_dashboard(sheets: Dict[str, List[Row]]) -> List[ChartConfig]:
    return DashboardBuilder().build(sheets)
