from pydantic import BaseModel

from shared.models.search import ChatSearchResult, ChatSegmentSearchResult, MessageSimilarityResult
from shared.models.stats import SegmentVectorizationStats, VectorizationStats


class SegmentSearchResponse(BaseModel):
    query: str
    results: list[ChatSegmentSearchResult]
    total: int


class HybridSearchResponse(BaseModel):
    query: str
    results: list[ChatSearchResult]
    total: int


class MessageSearchResponse(BaseModel):
    query: str
    results: list[MessageSimilarityResult]
    total: int


class VectorizationStatsResponse(BaseModel):
    vectors: VectorizationStats
    segments: SegmentVectorizationStats
    native_vector_search: bool
