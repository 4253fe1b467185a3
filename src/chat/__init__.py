"""Chat turn service built on the Lemur decoder and the conversation store."""

from src.chat.service import ChatReply, ChatService

__all__ = ["ChatReply", "ChatService"]
