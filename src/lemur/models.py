"""Wire models for the Lemur streaming protocol.

A Lemur stream is a sequence of ``data: <envelope>`` lines.  Each envelope
carries a ``data`` string that itself packs one or more OpenAI-style
completion sub-frames::

    data: {"origin":"...","code":0,"data":"data: {...}\\n\\ndata: {...}\\n\\n"}

One logical token is often split across several sub-frames, so the decoder
reassembles them into a single ``CompletionChunk``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Envelope(_WireModel):
    """Outer frame of a data line."""

    origin: str = ""
    data: str | None = None
    code: int = 0


class SubFrameDelta(_WireModel):
    role: str | None = None
    content: str | None = None


class SubFrameChoice(_WireModel):
    index: int = 0
    delta: SubFrameDelta = SubFrameDelta()
    finish_reason: Any = None


class SubFrame(_WireModel):
    """One completion fragment packed inside an envelope."""

    id: str = ""
    object: str = ""
    created: int = 0
    model: str = ""
    choices: list[SubFrameChoice] = []


class ErrorDetail(_WireModel):
    message: str = ""
    type: str | None = None
    param: Any = None
    code: Any = None
    status: int | None = None


class ErrorPayload(_WireModel):
    """``{"error": {...}}`` body sent in place of a normal stream."""

    error: ErrorDetail


@dataclass
class CompletionChunk:
    """One decoded increment of assistant text plus its metadata."""

    id: str = ""
    object: str = ""
    created: int = 0
    model: str = ""
    fragments: list[str] = field(default_factory=list)
    finish_reason: str | None = None

    @property
    def delta(self) -> str:
        return "".join(self.fragments)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the metadata the way it is forwarded to clients."""
        return {
            "id": self.id,
            "object": self.object,
            "created": self.created,
            "model": self.model,
            "delta": self.delta,
            "finish_reason": self.finish_reason,
        }
