"""Pydantic models for vectorization statistics. Derived on demand, never stored."""

from datetime import datetime

from pydantic import BaseModel


class VectorizationStats(BaseModel):
    """Vector coverage of chats and messages."""

    total_chats: int = 0
    chats_with_vectors: int = 0
    chats_without_vectors: int = 0
    total_messages: int = 0
    non_empty_messages: int = 0
    messages_with_vectors: int = 0
    messages_without_vectors: int = 0
    chat_vectorization_percentage: float = 0.0
    message_vectorization_percentage: float = 0.0


class SegmentVectorizationStats(BaseModel):
    """Vector coverage of chat segments."""

    total_chats: int = 0
    total_segments: int = 0
    segments_with_content: int = 0
    segments_with_vectors: int = 0
    segments_without_vectors: int = 0
    vectorization_percentage: float = 0.0
    average_segments_per_chat: float = 0.0
    average_messages_per_segment: float = 0.0


class VectorizationResult(BaseModel):
    """Summary of a full vectorization or re-vectorization run."""

    success: bool
    chats_processed: int = 0
    messages_processed: int = 0
    segments_processed: int = 0
    initial_stats: VectorizationStats | None = None
    final_stats: VectorizationStats | None = None
    duration_seconds: float = 0.0
    error_message: str | None = None

    @property
    def total_items_processed(self) -> int:
        return self.chats_processed + self.messages_processed + self.segments_processed

    def summary(self) -> str:
        """Render a one-line, human-readable summary of the run."""
        if not self.success:
            return f"Vectorization failed: {self.error_message}"
        minutes, seconds = divmod(int(self.duration_seconds), 60)
        return (
            f"Successfully processed {self.chats_processed} chats, {self.messages_processed} messages "
            f"and {self.segments_processed} segments in {minutes:02d}:{seconds:02d}"
        )


class ChatSimilarityStats(BaseModel):
    """How one chat's vector relates to the vectors of all other chats.

    The distribution fields stay 0.0 when the chat has no vector or no other
    chat has one.
    """

    chat_id: int
    has_vector: bool = False
    comparable_chats_count: int = 0
    average_similarity: float = 0.0
    max_similarity: float = 0.0
    min_similarity: float = 0.0
    median_similarity: float = 0.0
    standard_deviation: float = 0.0


class VectorDatabaseStats(BaseModel):
    """Vector counts and estimated float32 storage of the store."""

    total_chats: int = 0
    chats_with_vectors: int = 0
    total_messages: int = 0
    messages_with_vectors: int = 0
    total_segments: int = 0
    segments_with_vectors: int = 0
    vector_dimension: int = 0
    estimated_chat_vector_storage_bytes: int = 0
    estimated_message_vector_storage_bytes: int = 0
    estimated_segment_vector_storage_bytes: int = 0
    total_estimated_storage_bytes: int = 0
    vector_search_enabled: bool = False
    last_calculated: datetime
