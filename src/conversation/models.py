"""Conversation message data model."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

ROOT_PARENT_ID = "chatcmpl-start"


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """One conversation turn as sent to the model."""

    role: Role
    content: str

    def __post_init__(self) -> None:
        # Accept plain strings ("user") from callers and storage rows.
        object.__setattr__(self, "role", Role(self.role))


@dataclass(frozen=True)
class StoredMessage:
    """A persisted message with its position in the conversation forest.

    Attributes:
        id: Caller-generated unique id (UUID string).
        parent_id: Id of the previous turn, or the root sentinel.
        message: The role and content.
        created_at: ISO 8601 timestamp of the insert.
    """

    id: str
    parent_id: str
    message: Message
    created_at: str = ""

    @property
    def role(self) -> Role:
        return self.message.role

    @property
    def content(self) -> str:
        return self.message.content

    # -- Serialization ---------------------------------------------------------

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``messages`` column order."""
        return (
            self.id,
            self.parent_id,
            str(self.message.role),
            self.message.content,
            self.created_at or datetime.now(UTC).isoformat(),
        )

    @classmethod
    def from_row(cls, row: tuple) -> StoredMessage:
        """Deserialize from a SQLite row tuple."""
        return cls(
            id=row[0],
            parent_id=row[1],
            message=Message(role=Role(row[2]), content=row[3] or ""),
            created_at=row[4],
        )


def make_message_id() -> str:
    """Generate a new message ID."""
    return str(uuid.uuid4())
