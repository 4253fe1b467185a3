"""Async decoder for the Lemur server-sent completion stream."""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, NoReturn

import httpx
from pydantic import ValidationError

from src.lemur.accumulator import ErrorAccumulator
from src.lemur.config import DecoderConfig
from src.lemur.errors import (
    ConfigError,
    EndOfStream,
    LemurError,
    MalformedFrameError,
    TooManyEmptyMessagesError,
    TransportError,
)
from src.lemur.models import CompletionChunk, Envelope, SubFrame

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable

logger = logging.getLogger(__name__)

# Failures raised by the line source while reading the body.
_READ_ERRORS = (httpx.RequestError, httpx.StreamError, OSError)


class DecoderState(StrEnum):
    ACTIVE = "active"
    FINISHED = "finished"
    FAILED = "failed"


class StreamDecoder:
    """Turns a line-delimited streaming body into ``CompletionChunk`` events.

    The decoder owns its line source and must be driven by a single task.
    ``recv()`` returns the next chunk, raises ``EndOfStream`` once the stream
    is done, or raises a ``LemurError``.  Both outcomes are terminal: every
    later ``recv()`` repeats them without touching the source again.

    Usage::

        async with StreamDecoder.from_response(response) as decoder:
            async for chunk in decoder:
                print(chunk.delta, end="")
    """

    def __init__(
        self,
        lines: AsyncIterable[str | bytes],
        *,
        config: DecoderConfig | None = None,
        close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        if not hasattr(lines, "__aiter__"):
            raise ConfigError(
                f"line source must be async-iterable, got {type(lines).__name__}"
            )
        self._config = config or DecoderConfig()
        self._lines: AsyncIterator[str | bytes] = lines.__aiter__()
        self._close = close
        self._closed = False
        self._state = DecoderState.ACTIVE
        self._error: LemurError | None = None
        self._accumulator = ErrorAccumulator(self._config.error_buffer_limit)

    @classmethod
    def from_response(
        cls, response: httpx.Response, config: DecoderConfig | None = None
    ) -> StreamDecoder:
        """Wrap an ``httpx.Response`` opened with ``stream=True``."""
        return cls(response.aiter_lines(), config=config, close=response.aclose)

    @property
    def state(self) -> DecoderState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    # -- Public API ------------------------------------------------------------

    async def recv(self) -> CompletionChunk:
        """Return the next chunk of the stream."""
        if self._state is DecoderState.FINISHED:
            raise EndOfStream
        if self._state is DecoderState.FAILED:
            assert self._error is not None
            raise self._error

        try:
            return await self._process_lines()
        except EndOfStream:
            self._state = DecoderState.FINISHED
            raise
        except LemurError as exc:
            self._state = DecoderState.FAILED
            self._error = exc
            logger.warning("Stream decode failed: %s", exc)
            raise

    async def aclose(self) -> None:
        """Release the underlying connection. Later calls do nothing."""
        if self._closed:
            return
        self._closed = True
        if self._close is not None:
            await self._close()
        elif hasattr(self._lines, "aclose"):
            await self._lines.aclose()

    def __aiter__(self) -> StreamDecoder:
        return self

    async def __anext__(self) -> CompletionChunk:
        try:
            return await self.recv()
        except EndOfStream:
            raise StopAsyncIteration from None

    async def __aenter__(self) -> StreamDecoder:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -- Line processing -------------------------------------------------------

    async def _process_lines(self) -> CompletionChunk:
        cfg = self._config
        empty_messages_count = 0

        while True:
            line = await self._read_line()
            if line is None:
                self._raise_at_eof()

            line = line.strip()
            if line.startswith(cfg.error_prefix):
                await self._collect_error(line)

            if not line.startswith(cfg.data_prefix):
                self._accumulator.write(line)
                empty_messages_count += 1
                if empty_messages_count > cfg.empty_messages_limit:
                    raise TooManyEmptyMessagesError(cfg.empty_messages_limit)
                continue

            payload = line.removeprefix(cfg.data_prefix)
            if payload == cfg.done_marker:
                raise EndOfStream

            # Only noise since the last data line can belong to an error body.
            self._accumulator.reset()
            return self._decode_envelope(payload, line)

    async def _read_line(self) -> str | None:
        """Return the next raw line, or None once the source is exhausted."""
        try:
            raw = await anext(self._lines)
        except StopAsyncIteration:
            return None
        except _READ_ERRORS as exc:
            api_error = self._accumulator.parse_error()
            if api_error is not None:
                raise api_error from exc
            raise TransportError(f"reading upstream stream failed: {exc}") from exc
        if isinstance(raw, bytes):
            return raw.decode("utf-8", errors="replace")
        return raw

    def _raise_at_eof(self) -> NoReturn:
        api_error = self._accumulator.parse_error()
        if api_error is not None:
            raise api_error
        logger.debug("Upstream closed the stream without %s", self._config.done_marker)
        raise EndOfStream

    async def _collect_error(self, first_line: str) -> NoReturn:
        """Buffer the rest of the stream as an error payload and raise it."""
        prefix = self._config.data_prefix
        self._accumulator.reset()
        self._accumulator.write(first_line.removeprefix(prefix))

        read_error: Exception | None = None
        while True:
            try:
                raw = await anext(self._lines)
            except StopAsyncIteration:
                break
            except _READ_ERRORS as exc:
                read_error = exc
                break
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8", errors="replace")
            self._accumulator.write(raw.strip().removeprefix(prefix))

        api_error = self._accumulator.parse_error()
        if api_error is not None:
            raise api_error
        if read_error is not None:
            raise TransportError(
                f"reading upstream error payload failed: {read_error}"
            ) from read_error
        raise MalformedFrameError(first_line, "undecodable error payload")

    def _decode_envelope(self, payload: str, line: str) -> CompletionChunk:
        cfg = self._config
        try:
            envelope = Envelope.model_validate_json(payload)
        except ValidationError as exc:
            raise MalformedFrameError(line, exc.errors()[0]["msg"]) from exc

        if envelope.code:
            logger.warning("Envelope reported code=%d (origin=%s)", envelope.code, envelope.origin)

        chunk = CompletionChunk()
        for part in (envelope.data or "").split(cfg.sub_frame_separator):
            part = part.strip()
            if not part:
                continue
            part = part.removeprefix(cfg.data_prefix)
            try:
                frame = SubFrame.model_validate_json(part)
            except ValidationError:
                logger.debug("Skipping undecodable sub-frame: %r", part[:120])
                continue

            chunk.id = frame.id
            chunk.object = frame.object
            chunk.created = frame.created
            chunk.model = frame.model
            for choice in frame.choices:
                if choice.delta.content:
                    chunk.fragments.append(choice.delta.content)
                if choice.finish_reason is not None:
                    chunk.finish_reason = str(choice.finish_reason)

        return chunk
