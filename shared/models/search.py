"""Pydantic models for search results. Ephemeral, never persisted."""

from enum import Enum

from pydantic import BaseModel

from shared.models.chat import Chat, ChatMessage, ChatSegment, Contact


class MatchType(str, Enum):
    VECTOR = "Vector"
    TEXT = "Text"
    HYBRID = "Hybrid"


class SegmentSimilarityResult(BaseModel):
    """A segment ranked by similarity to a query. Never persisted."""

    segment: ChatSegment
    similarity_score: float
    match_type: MatchType = MatchType.VECTOR
    matched_keywords: str | None = None


class MessageSimilarityResult(BaseModel):
    """A message ranked by similarity to a query. Never persisted."""

    message: ChatMessage
    similarity_score: float


class ChatSimilarityResult(BaseModel):
    """A chat ranked by vector similarity to a query. Never persisted."""

    chat: Chat
    similarity_score: float


class ChatSearchResult(BaseModel):
    """A chat ranked by the hybrid (vector + lexical) score."""

    chat: Chat
    vector_similarity: float = 0.0
    text_relevance: float = 0.0
    hybrid_score: float = 0.0


class ChatSegmentSearchResult(BaseModel):
    """A segment search hit enriched with its chat, contact and a highlighted snippet."""

    segment: ChatSegment
    similarity_score: float
    chat: Chat | None = None
    contact: Contact | None = None
    highlighted_snippet: str = ""



class ChatCluster(BaseModel):
    """A group of chats whose vectors are all close to the seed chat's vector."""

    id: int
    seed_chat: Chat
    chats: list[Chat]
    average_similarity: float = 0.0
