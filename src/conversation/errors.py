"""Storage errors raised by the conversation store."""


class StorageError(Exception):
    """Base class for conversation storage failures."""


class MessageNotFoundError(StorageError):
    def __init__(self, message_id: str) -> None:
        self.message_id = message_id
        super().__init__(f"message not found: {message_id}")


class DuplicateMessageError(StorageError):
    def __init__(self, message_id: str) -> None:
        self.message_id = message_id
        super().__init__(f"message already exists: {message_id}")


class StorageIOError(StorageError):
    """The database driver failed to read or write."""


class StorageTimeoutError(StorageIOError):
    """A database call did not finish before its deadline."""


class CycleDetectedError(StorageError):
    """Parent pointers loop back onto an already visited message."""

    def __init__(self, message_id: str) -> None:
        self.message_id = message_id
        super().__init__(f"parent chain revisits message {message_id}")


class ChainTooDeepError(StorageError):
    def __init__(self, start_id: str, max_depth: int) -> None:
        self.start_id = start_id
        self.max_depth = max_depth
        super().__init__(f"context chain from {start_id} exceeds {max_depth} messages")
