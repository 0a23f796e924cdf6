"""
Error taxonomy for the dashboard pipeline.

Resolver and parser failures are fatal for a request; the transport layer maps
``kind`` to a status code and shows ``message`` to the user.
"""


class SheetPulseError(Exception):
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class InvalidSourceError(SheetPulseError):
    """The link is not a supported spreadsheet source and a direct fetch failed."""

    kind = "invalid_source"


class AuthRequiredError(SheetPulseError):
    """The document host answered with a sign-in page."""

    kind = "auth_required"


class EmptyPayloadError(SheetPulseError):
    """Every download candidate came back empty or unusable."""

    kind = "empty_payload"


class SpreadsheetParseError(SheetPulseError):
    """The bytes are not a readable spreadsheet or CSV container."""

    kind = "parse_error"


class NoDataError(SheetPulseError):
    """The document parsed but no sheet carries usable data."""

    kind = "no_data"
