"""Conversation persistence — message forest storage and context resolution."""

from src.conversation.context import ContextResolver, apply_window, order_oldest_first
from src.conversation.errors import (
    ChainTooDeepError,
    CycleDetectedError,
    DuplicateMessageError,
    MessageNotFoundError,
    StorageError,
    StorageIOError,
    StorageTimeoutError,
)
from src.conversation.models import ROOT_PARENT_ID, Message, Role, StoredMessage, make_message_id
from src.conversation.store import ConversationStore

__all__ = [
    "ROOT_PARENT_ID",
    "ChainTooDeepError",
    "ContextResolver",
    "ConversationStore",
    "CycleDetectedError",
    "DuplicateMessageError",
    "Message",
    "MessageNotFoundError",
    "Role",
    "StorageError",
    "StorageIOError",
    "StorageTimeoutError",
    "StoredMessage",
    "apply_window",
    "make_message_id",
    "order_oldest_first",
]
