import logging
from typing import Optional

import requests

from sheetpulse.errors import NoDataError
from sheetpulse.schemas.dashboard import DashboardResult, RawDocument, SheetData
from sheetpulse.services.dashboard_builder import DashboardBuilder
from sheetpulse.services.link_resolver import LinkResolver
from sheetpulse.services.predictive_analytics import PredictiveAnalyticsEngine
from sheetpulse.services.spreadsheet_parser import parse, validate_upload

logger = logging.getLogger(__name__)

NO_USABLE_COLUMNS_MESSAGE = (
    "The spreadsheet has no sheet with a usable numeric column to chart."
)


def fetch_sheet_data(url: str, session: Optional[requests.Session] = None) -> SheetData:
    """Download a linked spreadsheet and parse every sheet."""
    document = LinkResolver(session=session).fetch(url)
    sheets = parse(document.content)
    return SheetData(sheets=sheets, sheet_names=list(sheets), source=document.link_type)


def build_dashboard(sheets: dict, source: str) -> DashboardResult:
    """
    Steps, all in-process and stateless:
      1. Classify columns and build chart configs per sheet
      2. Fail with NoDataError if no sheet survived
      3. Run forecasting / anomaly / correlation / seasonality analytics
    """
    # ── Charts + KPIs ─────────────────────────────────────────────────
    charts = DashboardBuilder().build(sheets)
    if not charts:
        raise NoDataError(NO_USABLE_COLUMNS_MESSAGE)

    # ── Predictive analytics ──────────────────────────────────────────
    analytics = PredictiveAnalyticsEngine().analyze(sheets, charts)

    logger.info(
        "Dashboard built: %d chart(s), %d forecast(s), %d insight(s)",
        len(charts), len(analytics.forecasts), len(analytics.insights),
    )
    return DashboardResult(
        charts=charts,
        analytics=analytics,
        source=source,
        sheet_names=list(sheets),
    )


def build_dashboard_from_url(url: str, session: Optional[requests.Session] = None) -> DashboardResult:
    data = fetch_sheet_data(url, session=session)
    return build_dashboard(data.sheets, data.source)


def read_upload(content: bytes, filename: str) -> RawDocument:
    """Validate an uploaded file and wrap it like a downloaded document."""
    validate_upload(filename, len(content))
    return RawDocument(content=content, source_kind="upload", filename=filename)


def build_dashboard_from_upload(content: bytes, filename: str) -> DashboardResult:
    document = read_upload(content, filename)
    sheets = parse(document.content, filename=document.filename)
    return build_dashboard(sheets, document.source_kind)
