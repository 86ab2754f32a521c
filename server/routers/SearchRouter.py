from fastapi import APIRouter, Depends, Query, Request

from server.dependencies.auth import verify_api_key
from server.models.requests import HybridSearchRequest, SearchRequest
from server.models.responses import HybridSearchResponse, MessageSearchResponse, SegmentSearchResponse
from shared.models.search import ChatCluster
from shared.models.stats import ChatSimilarityStats

router = APIRouter(prefix="/search", tags=["search"])


@router.post("/segments")
async def search_segments(
    request: Request,
    body: SearchRequest,
    _: None = Depends(verify_api_key),
) -> SegmentSearchResponse:
    """Semantic search over chat segments, optionally within one chat.

    Args:
        request (Request): FastAPI request (provides app.state.chat_service).
        body (SearchRequest): JSON body with query, limit and optional chat_id.
        _ (None): Auth dependency result (unused).

    Returns:
        SegmentSearchResponse: Matching segments with chat, contact and highlighted snippet.
    """
    chat_service = request.app.state.chat_service
    if body.chat_id is not None:
        results = await chat_service.search_chat_segments_in_chat(body.chat_id, body.query, body.limit)
    else:
        results = await chat_service.search_chat_segments(body.query, body.limit)
    return SegmentSearchResponse(query=body.query, results=results, total=len(results))


@router.post("/hybrid")
async def search_hybrid(
    request: Request,
    body: HybridSearchRequest,
    _: None = Depends(verify_api_key),
) -> HybridSearchResponse:
    """Rank chats by combined vector similarity and text relevance."""
    results = await request.app.state.hybrid_ranker.hybrid_search(body.query, body.limit)
    return HybridSearchResponse(query=body.query, results=results, total=len(results))


@router.post("/messages")
async def search_messages(
    request: Request,
    body: SearchRequest,
    _: None = Depends(verify_api_key),
) -> MessageSearchResponse:
    """Semantic search over single messages, optionally within one chat."""
    search_service = request.app.state.search_service
    if body.chat_id is not None:
        results = await search_service.find_similar_messages_in_chat(body.chat_id, body.query, body.limit)
    else:
        results = await search_service.find_similar_messages(body.query, body.limit)
    return MessageSearchResponse(query=body.query, results=results, total=len(results))


@router.get("/clusters")
async def chat_clusters(
    request: Request,
    max_clusters: int = Query(5, gt=0, le=50),
    _: None = Depends(verify_api_key),
) -> list[ChatCluster]:
    """Groups of chats whose vectors are close to a common seed chat."""
    return await request.app.state.search_service.find_chat_clusters(max_clusters)


@router.get("/chats/{chat_id}/similarity-stats")
async def chat_similarity_stats(
    request: Request,
    chat_id: int,
    _: None = Depends(verify_api_key),
) -> ChatSimilarityStats:
    """Similarity distribution between one chat and all other chats."""
    return await request.app.state.search_service.get_chat_similarity_stats(chat_id)
