"""Chat turn orchestration: persist, resolve context, stream, persist."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from src.conversation.context import ContextResolver
from src.conversation.models import Message, Role, make_message_id
from src.lemur.models import CompletionChunk

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from src.conversation.store import ConversationStore
    from src.lemur.client import LemurClient

logger = logging.getLogger(__name__)


@dataclass
class ChatReply:
    """One streamed event of an assistant reply.

    ``text`` is everything received so far; ``delta`` is this event's
    increment.  ``id`` is the id the reply will be stored under once the
    stream finishes.
    """

    id: str
    parent_message_id: str
    delta: str
    text: str
    detail: CompletionChunk
    role: Role = Role.ASSISTANT

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": str(self.role),
            "id": self.id,
            "parentMessageId": self.parent_message_id,
            "delta": self.delta,
            "text": self.text,
            "detail": self.detail.to_dict(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


class ChatService:
    """Runs chat turns against Lemur, threading them through the store."""

    def __init__(
        self,
        store: ConversationStore,
        client: LemurClient,
        window: int | None = None,
    ) -> None:
        self._store = store
        self._client = client
        self._resolver = ContextResolver(store, window=window)

    async def process(
        self, prompt: str, parent_message_id: str | None = None
    ) -> AsyncIterator[ChatReply]:
        """Stream the assistant's reply to *prompt*.

        Args:
            prompt: The user's message.
            parent_message_id: Id of the message being replied to; None
                starts a new conversation.

        Yields:
            A ``ChatReply`` per decoded chunk, or a single empty one after
            the reply is stored when the stream carried no chunks.  The reply
            is persisted only when the stream ends cleanly; on any error
            nothing is stored for the assistant and the error propagates.
        """
        parent_id = parent_message_id or self._store.root_parent_id
        if parent_id != self._store.root_parent_id:
            # Raises MessageNotFoundError before anything is written.
            await self._store.get_stored_message(parent_id)

        user_id = make_message_id()
        await self._store.add_message(user_id, parent_id, Message(role=Role.USER, content=prompt))

        history = await self._resolver.resolve(user_id)
        reply_id = make_message_id()
        text = ""
        chunks = 0

        decoder = await self._client.open_stream(history)
        async with decoder:
            async for chunk in decoder:
                chunks += 1
                text += chunk.delta
                yield ChatReply(
                    id=reply_id,
                    parent_message_id=user_id,
                    delta=chunk.delta,
                    text=text,
                    detail=chunk,
                )

        await self._store.add_message(
            reply_id, user_id, Message(role=Role.ASSISTANT, content=text)
        )
        if not chunks:
            # Callers continue the conversation from this id.
            yield ChatReply(
                id=reply_id,
                parent_message_id=user_id,
                delta="",
                text="",
                detail=CompletionChunk(),
            )
        logger.info("Chat turn complete: reply=%s (%d chars)", reply_id, len(text))
