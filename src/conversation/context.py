"""Project a stored parent chain into model input order."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from src.conversation.models import Message, StoredMessage
    from src.conversation.store import ConversationStore

logger = logging.getLogger(__name__)


def order_oldest_first(chain: Sequence[StoredMessage]) -> list[Message]:
    """Reverse a leaf-first chain into the oldest-first list a model expects."""
    return [record.message for record in reversed(chain)]


def apply_window(messages: list[Message], window: int | None) -> list[Message]:
    """Keep only the newest *window* messages. ``None`` keeps everything."""
    if window is None or len(messages) <= window:
        return messages
    return messages[-window:]


class ContextResolver:
    """Builds conversation history for a model call from a leaf message id."""

    def __init__(self, store: ConversationStore, window: int | None = None) -> None:
        if window is not None and window <= 0:
            raise ValueError(f"window must be positive, got {window}")
        self._store = store
        self._window = window

    async def resolve(self, leaf_id: str) -> list[Message]:
        chain = await self._store.get_context_chain(leaf_id)
        messages = apply_window(order_oldest_first(chain), self._window)
        if len(messages) < len(chain):
            logger.info(
                "Context for %s trimmed from %d to %d messages",
                leaf_id,
                len(chain),
                len(messages),
            )
        return messages
