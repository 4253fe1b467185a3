"""Bounded byte buffer for error payloads spread over several stream lines."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from src.lemur.config import DEFAULT_ERROR_BUFFER_LIMIT
from src.lemur.errors import AccumulatorOverflowError, UpstreamAPIError
from src.lemur.models import ErrorPayload

logger = logging.getLogger(__name__)


class ErrorAccumulator:
    """Collects raw bytes until a complete error payload can be decoded.

    An empty buffer means no error has been seen, which is different from an
    error payload that fails to decode.
    """

    def __init__(self, max_bytes: int = DEFAULT_ERROR_BUFFER_LIMIT) -> None:
        self._buffer = bytearray()
        self._max_bytes = max_bytes

    def write(self, data: bytes | str) -> int:
        """Append *data*. Returns the number of bytes written."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        if len(self._buffer) + len(data) > self._max_bytes:
            raise AccumulatorOverflowError(self._max_bytes)
        self._buffer.extend(data)
        return len(data)

    def getvalue(self) -> bytes:
        return bytes(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()

    def __len__(self) -> int:
        return len(self._buffer)

    def __bool__(self) -> bool:
        return bool(self._buffer)

    def parse_error(self, status_code: int | None = None) -> UpstreamAPIError | None:
        """Try once to decode the buffer as ``{"error": {...}}``.

        Returns None when the buffer is empty or does not hold an error
        payload.  The buffer is discarded after a non-empty attempt.
        """
        if not self._buffer:
            return None
        raw = self.getvalue()
        self.reset()
        try:
            payload = ErrorPayload.model_validate_json(raw)
        except ValidationError:
            logger.debug("Accumulated bytes are not an error payload: %r", raw[:200])
            return None

        detail = payload.error
        return UpstreamAPIError(
            detail.message or "upstream returned an error",
            code=detail.code,
            type=detail.type,
            param=detail.param,
            status_code=status_code if status_code is not None else detail.status,
        )
