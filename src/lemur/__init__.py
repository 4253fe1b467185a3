"""Lemur streaming protocol — decoder, error taxonomy, and client."""

from src.lemur.accumulator import ErrorAccumulator
from src.lemur.client import LemurClient
from src.lemur.config import DecoderConfig
from src.lemur.errors import (
    ConfigError,
    EndOfStream,
    ErrorKind,
    LemurError,
    MalformedFrameError,
    TooManyEmptyMessagesError,
    TransportError,
    UpstreamAPIError,
)
from src.lemur.models import CompletionChunk
from src.lemur.stream import DecoderState, StreamDecoder

__all__ = [
    "CompletionChunk",
    "ConfigError",
    "DecoderConfig",
    "DecoderState",
    "EndOfStream",
    "ErrorAccumulator",
    "ErrorKind",
    "LemurClient",
    "LemurError",
    "MalformedFrameError",
    "StreamDecoder",
    "TooManyEmptyMessagesError",
    "TransportError",
    "UpstreamAPIError",
]
