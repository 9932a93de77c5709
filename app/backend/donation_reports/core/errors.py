"""Domain errors raised by the reporting core.

The HTTP layer maps them to status codes in ``donation_reports.main``:

- ``InvalidFilterError``   -> 422
- ``NotFoundError``        -> 404
- ``TenantMismatchError``  -> 404 (existence is not leaked)
- ``DataStoreError``       -> 503

``UnsupportedFormatError`` never leaves the exporter; it becomes a 400 export
result instead.
"""

from __future__ import annotations


class ReportingError(Exception):
    """Base class for reporting failures."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class InvalidFilterError(ReportingError):
    """Filter input is malformed or contradictory."""


class DataStoreError(ReportingError):
    """An aggregate query against the data store failed."""


class NotFoundError(ReportingError):
    """A referenced entity does not exist in the requested scope."""


class TenantMismatchError(NotFoundError):
    """A report was addressed through an organization that does not own it."""

    def __init__(self, detail: str = "Report not found.") -> None:
        super().__init__(detail)


class UnsupportedFormatError(ReportingError):
    """Export requested in a format the exporter cannot render."""

    def __init__(self, format_name: str) -> None:
        super().__init__(f"Unsupported export format: {format_name}")
        self.format_name = format_name


class ExportRenderError(ReportingError):
    """A supported format failed to render."""
