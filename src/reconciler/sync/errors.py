"""Exceptions raised by the reconciliation engine.

- FetchError: a dataset could not be read; fatal to the compare operation.
- InvalidStateError: sync attempted on a result with no remote match.
- UpdateError: the portal store rejected one record's update.
- FieldMappingError: the field mapping table failed validation.
"""

from __future__ import annotations


class FetchError(Exception):
    """Raised when the portal or CRM dataset cannot be fetched.

    Attributes:
        source: Which upstream failed ("portal" or "crm").
        status_code: HTTP status of the failed response, if one was received.
    """

    def __init__(self, source: str, message: str, status_code: int | None = None) -> None:
        self.source = source
        self.status_code = status_code
        super().__init__(f"Failed to fetch {source} records: {message}")


class InvalidStateError(RuntimeError):
    """Raised when syncing a comparison result that has no remote record."""


class UpdateError(Exception):
    """Raised when the portal store fails to apply a partial update.

    Attributes:
        record_id: Portal record the update was addressed to.
        message: Upstream error text, surfaced verbatim in SyncOutcome.error.
        status_code: HTTP status of the failed response, if one was received.
    """

    def __init__(self, record_id: str, message: str, status_code: int | None = None) -> None:
        self.record_id = record_id
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class FieldMappingError(ValueError):
    """Raised when a field mapping table cannot be loaded or is invalid."""
