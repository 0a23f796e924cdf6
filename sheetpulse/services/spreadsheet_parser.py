"""
Spreadsheet Parser — raw bytes to {sheet name: [row dict, ...]}.

Workbooks (.xlsx / .xls) keep every sheet; delimited text becomes a single
sheet. Blank cells normalise to "", date cells stay datetimes, sheets with no
data rows are dropped.
"""

import io
import logging
import os
from typing import Any, Optional

import pandas as pd

from sheetpulse.config import settings
from sheetpulse.errors import NoDataError, SpreadsheetParseError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".csv", ".xlsx", ".xls")

XLSX_MAGIC = b"PK\x03\x04"
XLS_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

CSV_SHEET_NAME = "Sheet1"
TEXT_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")

PARSE_FAILED_MESSAGE = (
    "Failed to parse the downloaded file. Please ensure it is a valid Excel "
    "(.xlsx, .xls) or CSV file."
)
NO_DATA_MESSAGE = "No valid data found in the sheet. Make sure it contains data with headers."


def validate_upload(filename: str, file_size: int) -> str:
    """Check an uploaded file's extension and size; returns 'csv' or 'xlsx'."""
    file_ext = os.path.splitext(filename or "")[1].lower()

    if file_ext not in ALLOWED_EXTENSIONS:
        raise SpreadsheetParseError(
            f"File type '{file_ext}' not allowed. Only CSV and Excel files accepted."
        )

    max_size = settings.MAX_UPLOAD_BYTES
    if file_size > max_size:
        raise SpreadsheetParseError(
            f"File too large ({file_size / 1024 / 1024:.1f}MB). "
            f"Maximum {max_size / 1024 / 1024:.0f}MB."
        )

    return "csv" if file_ext == ".csv" else "xlsx"


def _detect_container(content: bytes) -> str:
    if content.startswith(XLSX_MAGIC):
        return "xlsx"
    if content.startswith(XLS_MAGIC):
        return "xls"
    return "csv"


def _clean_cell(value: Any) -> Any:
    if value is None or value is pd.NaT:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    if isinstance(value, str):
        return value.strip()
    return value


def _frame_to_rows(df: pd.DataFrame) -> list[dict[str, Any]]:
    df = df.dropna(how="all")
    df.columns = [str(c).strip() for c in df.columns]
    rows = []
    for record in df.to_dict(orient="records"):
        row = {header: _clean_cell(value) for header, value in record.items()}
        if all(v == "" for v in row.values()):
            continue
        rows.append(row)
    return rows


def _read_workbook(content: bytes, engine: Optional[str]) -> dict[str, pd.DataFrame]:
    return pd.read_excel(io.BytesIO(content), sheet_name=None, engine=engine)


def _decode_text(content: bytes) -> str:
    if b"\x00" in content[:4096]:
        raise SpreadsheetParseError(PARSE_FAILED_MESSAGE)
    for encoding in TEXT_ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise SpreadsheetParseError(PARSE_FAILED_MESSAGE)


def _read_csv(content: bytes) -> dict[str, pd.DataFrame]:
    text = _decode_text(content)
    if text.lstrip().lower().startswith(("<!doctype html", "<html")):
        raise SpreadsheetParseError(PARSE_FAILED_MESSAGE)
    df = pd.read_csv(io.StringIO(text), skip_blank_lines=True)
    return {CSV_SHEET_NAME: df}


def parse(content: bytes, filename: Optional[str] = None) -> dict[str, list[dict[str, Any]]]:
    """
    Parse spreadsheet bytes into per-sheet row records.

    Raises SpreadsheetParseError when the bytes are not a workbook or
    delimited text, NoDataError when every sheet is empty.
    """
    if not content:
        raise SpreadsheetParseError(PARSE_FAILED_MESSAGE)

    container = _detect_container(content)
    if filename and container == "csv":
        ext = os.path.splitext(filename)[1].lower()
        if ext in (".xlsx", ".xls"):
            # Declared a workbook but carries no workbook signature
            raise SpreadsheetParseError(PARSE_FAILED_MESSAGE)

    try:
        if container == "xlsx":
            frames = _read_workbook(content, "openpyxl")
        elif container == "xls":
            frames = _read_workbook(content, "xlrd")
        else:
            frames = _read_csv(content)
    except SpreadsheetParseError:
        raise
    except pd.errors.EmptyDataError as e:
        raise NoDataError(NO_DATA_MESSAGE) from e
    except Exception as e:
        # Each engine raises its own exception types on corrupt input
        logger.warning("Could not read %s container: %s", container, e)
        raise SpreadsheetParseError(PARSE_FAILED_MESSAGE) from e

    sheets: dict[str, list[dict[str, Any]]] = {}
    for sheet_name, df in frames.items():
        rows = _frame_to_rows(df)
        if rows:
            sheets[str(sheet_name)] = rows

    if not sheets:
        raise NoDataError(NO_DATA_MESSAGE)

    logger.info("Parsed %d sheet(s): %s", len(sheets), ", ".join(sheets))
    return sheets
