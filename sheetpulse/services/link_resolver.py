"""
Link Resolver — classifies a spreadsheet link and downloads its bytes.

Cloud sheets are exported in native spreadsheet format with a CSV fallback;
shared office documents are rewritten into direct-download candidates tried
in order. Every strategy stops at the first usable payload and distinguishes
"sign-in required" from "nothing usable came back".
"""

import html as html_lib
import logging
import re
from dataclasses import dataclass
from typing import Optional

import requests

from sheetpulse.config import settings
from sheetpulse.errors import (
    AuthRequiredError,
    EmptyPayloadError,
    InvalidSourceError,
)
from sheetpulse.schemas.dashboard import RawDocument

logger = logging.getLogger(__name__)


# ============================================================================
# LINK PATTERNS
# ============================================================================

CLOUD_SHEET_ID_PATTERN = re.compile(r"/spreadsheets/d/([a-zA-Z0-9_-]+)")
CLOUD_SHEET_EXPORT_FORMATS = ("xlsx", "csv")
CLOUD_SHEET_AUTH_MARKERS = ("signin", "ServiceLogin", "accounts.google")

SHARED_DOC_AUTH_MARKERS = (
    "login", "signin", "Sign in", "microsoftonline.com", "federation",
)
SHARED_DOC_ACCEPT = (
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet, "
    "application/vnd.ms-excel, text/csv, */*"
)
EMBEDDED_DOWNLOAD_PATTERNS = (
    re.compile(r'href="([^"]+download[^"]+)"', re.IGNORECASE),
    re.compile(r'data-url="([^"]+)"', re.IGNORECASE),
)

NOT_SHARED_MESSAGE = (
    'Google Sheet is not publicly shared. Please set sharing to '
    '"Anyone with the link can view".'
)
SHARED_DOC_AUTH_MESSAGE = (
    'SharePoint file requires authentication. Please set the file sharing to '
    '"Anyone with the link can view" or "Anyone with the link can edit".'
)
UNSUPPORTED_LINK_MESSAGE = (
    "Unsupported link type. Please provide a Google Sheets URL or "
    "SharePoint/OneDrive sharing link."
)


@dataclass(frozen=True)
class FetchStrategy:
    """One download attempt: a candidate URL plus a label for logging."""
    url: str
    label: str


def detect_link_type(url) -> str:
    """Return 'google' | 'sharepoint' | 'onedrive' | 'unknown' from the URL alone."""
    if not url or not isinstance(url, str):
        return "unknown"
    u = url.lower().strip()
    if "docs.google.com/spreadsheets" in u:
        return "google"
    if ".sharepoint.com" in u:
        return "sharepoint"
    if "onedrive.live.com" in u or "1drv.ms" in u:
        return "onedrive"
    if "office.com" in u or "office365.com" in u:
        return "sharepoint"
    return "unknown"


def detect_source(url) -> str:
    """Classify a link as 'cloud_sheet', 'shared_office_doc' or 'generic'."""
    link_type = detect_link_type(url)
    if link_type == "google":
        return "cloud_sheet"
    if link_type in ("sharepoint", "onedrive"):
        return "shared_office_doc"
    return "generic"


def extract_sheet_id(url: str) -> Optional[str]:
    match = CLOUD_SHEET_ID_PATTERN.search(url)
    return match.group(1) if match else None


def _with_download_flag(url: str) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}download=1"


def build_shared_doc_download_url(url: str) -> str:
    """Rewrite a SharePoint / OneDrive sharing link into a direct-download URL."""
    u = url.strip()

    # /:x:/g/, /:x:/s/ and /:x:/r/ sharing links
    if re.search(r"/:x:/[gsr]/", u):
        return _with_download_flag(u)

    if "_layouts/15/Doc.aspx" in u and "sourcedoc=" in u:
        return u.replace("Doc.aspx", "download.aspx") + "&action=download"

    if "guestaccess.aspx" in u and "share=" in u:
        return u + "&download=1"

    if "onedrive.live.com" in u:
        return u.replace("/edit.aspx", "/download.aspx").replace("/view.aspx", "/download.aspx")

    # Short links resolve through redirects
    if "1drv.ms" in u:
        return u

    if re.search(r"\.(xlsx|xls|csv)(\?|$)", u, re.IGNORECASE):
        return u

    return _with_download_flag(u)


def shared_doc_candidates(url: str) -> list[FetchStrategy]:
    """Ordered, de-duplicated direct-download candidates for a sharing link."""
    attempts = [
        FetchStrategy(build_shared_doc_download_url(url), "direct download"),
        FetchStrategy(_with_download_flag(url), "download=1"),
        FetchStrategy(url, "original URL"),
    ]
    seen: set[str] = set()
    unique = []
    for attempt in attempts:
        if attempt.url in seen:
            continue
        seen.add(attempt.url)
        unique.append(attempt)
    return unique


def _is_html(response: requests.Response) -> bool:
    return "text/html" in response.headers.get("content-type", "").lower()


def _find_embedded_download(html: str) -> Optional[str]:
    for pattern in EMBEDDED_DOWNLOAD_PATTERNS:
        match = pattern.search(html)
        if match:
            return html_lib.unescape(match.group(1))
    return None


# ============================================================================
# RESOLVER
# ============================================================================

class LinkResolver:
    """
    Downloads spreadsheet bytes behind a cloud-sheet, shared-document or plain
    link. Network I/O only; no state is kept between calls.
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT_SECONDS

    def _get(self, url: str, headers: Optional[dict] = None) -> requests.Response:
        return self.session.get(
            url, headers=headers or {}, timeout=self.timeout, allow_redirects=True
        )

    def fetch(self, url: str) -> RawDocument:
        link_type = detect_link_type(url)
        source_kind = detect_source(url)
        logger.info("Detected link type %s for %s", link_type, str(url)[:80])

        if source_kind == "cloud_sheet":
            content = self.fetch_cloud_sheet(url)
        elif source_kind == "shared_office_doc":
            content = self.fetch_shared_doc(url)
        else:
            content = self.fetch_generic(url)

        return RawDocument(content=content, source_kind=source_kind, link_type=link_type, url=url)

    # ── Cloud sheets ─────────────────────────────────────────────────────────

    def fetch_cloud_sheet(self, url: str) -> bytes:
        sheet_id = extract_sheet_id(url)
        if not sheet_id:
            raise InvalidSourceError(
                "Invalid Google Sheet URL. Please provide a valid Google Sheets link."
            )

        headers = {"User-Agent": settings.FETCH_USER_AGENT}
        for export_format in CLOUD_SHEET_EXPORT_FORMATS:
            export_url = (
                f"https://docs.google.com/spreadsheets/d/{sheet_id}/export?format={export_format}"
            )
            try:
                response = self._get(export_url, headers=headers)
            except requests.RequestException as e:
                logger.warning("Cloud sheet %s export failed: %s", export_format, e)
                continue

            if not response.ok:
                logger.info(
                    "Cloud sheet %s export returned %s, trying next format",
                    export_format, response.status_code,
                )
                continue

            if _is_html(response):
                text = response.text
                if any(marker in text for marker in CLOUD_SHEET_AUTH_MARKERS):
                    raise AuthRequiredError(NOT_SHARED_MESSAGE)
                logger.info("Got HTML for %s export, trying next format", export_format)
                continue

            content = response.content
            if content:
                logger.info("Cloud sheet downloaded (%d bytes) as %s", len(content), export_format)
                return content

        raise EmptyPayloadError(
            "Could not download Google Sheet. Make sure it is shared publicly "
            '("Anyone with the link can view").'
        )

    # ── Shared office documents ──────────────────────────────────────────────

    def fetch_shared_doc(self, url: str) -> bytes:
        headers = {
            "User-Agent": settings.SHARED_DOC_USER_AGENT,
            "Accept": SHARED_DOC_ACCEPT,
        }
        for strategy in shared_doc_candidates(url):
            logger.info("Trying shared document (%s)", strategy.label)
            try:
                content = self._attempt_shared_doc(strategy, headers)
            except requests.RequestException as e:
                logger.warning("Shared document %s failed: %s", strategy.label, e)
                continue
            if content:
                logger.info(
                    "Shared document downloaded (%d bytes) via %s", len(content), strategy.label
                )
                return content

        raise EmptyPayloadError(
            "Could not download file from SharePoint/OneDrive. Please ensure:\n"
            '1. The file is shared with "Anyone with the link"\n'
            "2. The link is a direct sharing link to an Excel file (.xlsx, .xls) or CSV"
        )

    def _attempt_shared_doc(self, strategy: FetchStrategy, headers: dict) -> Optional[bytes]:
        """Bytes for one candidate, None to move on, AuthRequiredError to stop."""
        response = self._get(strategy.url, headers=headers)
        if not response.ok:
            logger.info("Shared document %s returned %s", strategy.label, response.status_code)
            return None

        if not _is_html(response):
            return response.content or None

        text = response.text
        if any(marker in text for marker in SHARED_DOC_AUTH_MARKERS):
            raise AuthRequiredError(SHARED_DOC_AUTH_MESSAGE)

        embedded = _find_embedded_download(text)
        if embedded:
            logger.info("Found embedded download link, following it once")
            inner = self._get(embedded)
            if inner.ok and not _is_html(inner) and inner.content:
                return inner.content

        logger.info("Got HTML from shared document host, trying next candidate")
        return None

    # ── Anything else ────────────────────────────────────────────────────────

    def fetch_generic(self, url) -> bytes:
        if not url or not isinstance(url, str):
            raise InvalidSourceError(UNSUPPORTED_LINK_MESSAGE)

        logger.info("Unknown link type, attempting direct download")
        try:
            response = self._get(url)
        except requests.RequestException as e:
            logger.warning("Direct download failed: %s", e)
            raise InvalidSourceError(UNSUPPORTED_LINK_MESSAGE) from e

        if not response.ok or not response.content:
            raise InvalidSourceError(UNSUPPORTED_LINK_MESSAGE)
        return response.content


def fetch_document(url: str, session: Optional[requests.Session] = None) -> RawDocument:
    """Convenience wrapper: resolve and download a link with a fresh resolver."""
    return LinkResolver(session=session).fetch(url)
