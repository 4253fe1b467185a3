"""Builders for Lemur stream lines used across the test suite."""

import json
from collections.abc import AsyncIterator, Iterable


def sub_frame(
    content: str,
    *,
    frame_id: str = "chatcmpl-1",
    model: str = "lemur-1",
    created: int = 1700000000,
    finish_reason: str | None = None,
) -> str:
    """Build one ``data: {...}`` completion sub-frame."""
    return "data: " + json.dumps(
        {
            "id": frame_id,
            "object": "chat.completion.chunk",
            "created": created,
            "model": model,
            "choices": [
                {
                    "index": 0,
                    "delta": {"role": "assistant", "content": content},
                    "finish_reason": finish_reason,
                }
            ],
        }
    )


def envelope(*parts: str, code: int = 0) -> str:
    """Pack sub-frames into a single outer ``data:`` line."""
    data = "".join(f"{part}\n\n" for part in parts)
    return "data: " + json.dumps({"origin": "lemur", "code": code, "data": data})


DONE = "data: [DONE]"


async def iter_lines(lines: Iterable[str | bytes]) -> AsyncIterator[str | bytes]:
    """Async line source over a fixed list."""
    for line in lines:
        yield line
