"""
Exception hierarchy for the guide client.

Decode errors describe a single bad record, fetch errors describe a batch
exchange, and state errors describe objects used before they are ready.
"""
from __future__ import annotations

from typing import Any


class GuideError(Exception):
    """Base class for every error raised by this package"""


class DecodeError(GuideError):
    """A raw record could not be turned into a typed entity"""

    def __init__(self, message: str, *, field: str | None = None, entity_id: str | None = None):
        super().__init__(message)
        self.field = field
        self.entity_id = entity_id

    def with_entity(self, entity_id: str | None) -> "DecodeError":
        """Attach the owning entity id if it was not known when raised."""
        if self.entity_id is None:
            self.entity_id = entity_id
        return self


class MissingField(DecodeError):
    """A required field is absent or null"""

    def __init__(self, field: str, *, entity_id: str | None = None):
        super().__init__(f"Required field '{field}' is missing", field=field, entity_id=entity_id)


class MalformedField(DecodeError):
    """A field is present but holds a value of the wrong shape"""

    def __init__(self, field: str, detail: str, *, entity_id: str | None = None):
        super().__init__(f"Field '{field}' is malformed: {detail}", field=field, entity_id=entity_id)
        self.detail = detail


class ReferentialMismatch(DecodeError):
    """A record refers to an owner other than the one supplied"""

    def __init__(self, expected: str, actual: str, *, field: str = "programID"):
        super().__init__(
            f"Record references '{actual}' but was paired with '{expected}'",
            field=field,
            entity_id=actual,
        )
        self.expected = expected
        self.actual = actual


class UpstreamRecordError(DecodeError):
    """The upstream answered for an id with an error object instead of data"""

    def __init__(self, entity_id: str, message: str, code: int | None = None):
        super().__init__(message, entity_id=entity_id)
        self.code = code


class FetchError(GuideError):
    """Base class for failures while retrieving entities"""


class TransportFailure(FetchError):
    """The batch exchange itself failed; fatal for the whole batch"""


class ConnectivityError(TransportFailure):
    """The upstream could not be reached"""


class HttpStatusError(TransportFailure):
    """The upstream answered with a non-success HTTP status"""

    def __init__(self, message: str, status: int, details: str | None = None):
        super().__init__(message)
        self.status = status
        self.details = details


class ApiResponseError(TransportFailure):
    """The upstream answered with an error document"""

    def __init__(self, message: str, code: int):
        super().__init__(message)
        self.code = code


class ServiceOffline(ApiResponseError):
    """The upstream reported itself offline"""


class AuthenticationError(ApiResponseError):
    """Login was refused"""


class PartialDecodeFailure(FetchError):
    """
    One record of an otherwise successful batch failed to decode.

    Batch APIs never raise this; instances are collected in the failure
    manifest of a BatchResult.
    """

    def __init__(self, entity_id: str, cause: DecodeError, raw: Any = None):
        super().__init__(f"{entity_id}: {cause}")
        self.entity_id = entity_id
        self.cause = cause
        self.raw = raw


class StateError(GuideError):
    """An object was used in a state that does not allow the operation"""


class NotYetLoaded(StateError):
    """Lineup details were accessed before load_details() completed"""

    def __init__(self, lineup_id: str, accessor: str):
        super().__init__(
            f"Lineup {lineup_id}: load_details() must complete before accessing {accessor}"
        )
        self.lineup_id = lineup_id
        self.accessor = accessor
