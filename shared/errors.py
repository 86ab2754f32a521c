"""Exception types shared by clients and services."""


class ModelUnavailableError(RuntimeError):
    """Raised when an embed client is asked for a vector before it was booted."""


class ChatNotFoundError(LookupError):
    """Raised on write paths that require an existing chat."""

    def __init__(self, chat_id: int):
        super().__init__(f"Chat with ID {chat_id} not found.")
        self.chat_id = chat_id


class StoreError(RuntimeError):
    """Raised by a store engine when a read or write against its backend fails."""


class VectorSearchUnavailableError(StoreError):
    """Raised by do_vector_search() when the store has no native vector search."""
