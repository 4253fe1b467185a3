"""Error taxonomy for the Lemur stream decoder and client."""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class EndOfStream(Exception):  # noqa: N818
    """Raised by ``StreamDecoder.recv()`` once the stream has finished.

    Not an error: the upstream sent ``[DONE]`` or closed the connection
    cleanly.  Kept outside the ``LemurError`` family so callers can tell the
    two apart with a plain ``except``.
    """


class LemurError(Exception):
    """Base class for decode, transport and upstream failures."""


class ConfigError(LemurError):
    """A decoder or client was constructed with invalid configuration."""


class TransportError(LemurError):
    """Reading from the upstream connection failed."""


class MalformedFrameError(LemurError):
    """A data line's top-level envelope could not be decoded."""

    def __init__(self, line: str, reason: str) -> None:
        self.line = line
        self.reason = reason
        super().__init__(f"malformed frame: {reason} (line={line[:120]!r})")


class TooManyEmptyMessagesError(LemurError):
    """The upstream sent more non-data lines than the configured limit."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"stream has sent too many empty messages (limit={limit})")


class AccumulatorOverflowError(LemurError):
    """The error buffer would grow past its byte limit."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"error buffer exceeded {limit} bytes")


class ErrorKind(StrEnum):
    """How a caller should react to an upstream error."""

    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    SERVER = "server"
    OTHER = "other"


_UNAUTHORIZED_CODES = {"invalid_api_key", "unauthorized", "authentication_error", "invalid_token"}
_RATE_LIMIT_CODES = {"rate_limit_exceeded", "rate_limited", "overloaded", "insufficient_quota"}
_SERVER_CODES = {"server_error", "internal_error", "service_unavailable"}


class UpstreamAPIError(LemurError):
    """A structured error payload returned by the upstream provider.

    Attributes:
        message: Human-readable message from the payload.
        code: Provider error code (string or integer, may be None).
        type: Provider error type, e.g. ``"invalid_request_error"``.
        param: Offending request parameter, if reported.
        status_code: HTTP status of the response, or a status found in the
            payload when the error arrived inside a 200 stream.
    """

    def __init__(
        self,
        message: str,
        *,
        code: Any = None,
        type: str | None = None,  # noqa: A002
        param: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.type = type
        self.param = param
        self.status_code = status_code
        super().__init__(f"upstream error (status={status_code}, code={code}): {message}")

    @property
    def kind(self) -> ErrorKind:
        status = self.status_code
        if status is None and isinstance(self.code, int):
            status = self.code
        labels = {str(v).lower() for v in (self.code, self.type) if v is not None}

        if status in (401, 403) or labels & _UNAUTHORIZED_CODES:
            return ErrorKind.UNAUTHORIZED
        if status == 429 or labels & _RATE_LIMIT_CODES:
            return ErrorKind.RATE_LIMITED
        if (status is not None and status >= 500) or labels & _SERVER_CODES:
            return ErrorKind.SERVER
        return ErrorKind.OTHER

    @property
    def retryable(self) -> bool:
        """True for rate limits (back off first) and server-side failures."""
        return self.kind in (ErrorKind.RATE_LIMITED, ErrorKind.SERVER)
