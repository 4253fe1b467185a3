"""Decoder configuration, validated at construction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from src.lemur.errors import ConfigError

if TYPE_CHECKING:
    from src.config import Settings

DEFAULT_EMPTY_MESSAGES_LIMIT = 300
DEFAULT_ERROR_BUFFER_LIMIT = 1024 * 1024


@dataclass(frozen=True)
class DecoderConfig:
    """Markers and limits consumed by ``StreamDecoder``.

    Attributes:
        empty_messages_limit: Max non-data lines tolerated in one ``recv()``.
        data_prefix: Prefix marking a data line (and each packed sub-frame).
        error_prefix: Prefix marking the start of an error payload.
        done_marker: Payload of the end-of-stream data line.
        sub_frame_separator: Separator between sub-frames inside an envelope.
        error_buffer_limit: Max bytes buffered while collecting an error.
    """

    empty_messages_limit: int = DEFAULT_EMPTY_MESSAGES_LIMIT
    data_prefix: str = "data: "
    error_prefix: str = 'data: {"error":'
    done_marker: str = "[DONE]"
    sub_frame_separator: str = "\n\n"
    error_buffer_limit: int = DEFAULT_ERROR_BUFFER_LIMIT

    def __post_init__(self) -> None:
        if self.empty_messages_limit <= 0:
            raise ConfigError(
                f"empty_messages_limit must be positive, got {self.empty_messages_limit}"
            )
        if self.error_buffer_limit <= 0:
            raise ConfigError(
                f"error_buffer_limit must be positive, got {self.error_buffer_limit}"
            )
        for name in ("data_prefix", "error_prefix", "done_marker", "sub_frame_separator"):
            if not getattr(self, name):
                raise ConfigError(f"{name} must not be empty")

    @classmethod
    def from_settings(cls, cfg: Settings) -> DecoderConfig:
        """Build a config from the application ``Settings``."""
        return cls(
            empty_messages_limit=cfg.empty_messages_limit,
            data_prefix=cfg.stream_data_prefix,
            error_prefix=cfg.stream_error_prefix,
            done_marker=cfg.stream_done_marker,
            error_buffer_limit=cfg.error_buffer_limit,
        )
