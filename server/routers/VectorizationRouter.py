from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import verify_api_key
from server.models.requests import VectorizationRunRequest
from server.models.responses import VectorizationStatsResponse
from shared.models.stats import VectorDatabaseStats, VectorizationResult

router = APIRouter(prefix="/vectorization", tags=["vectorization"])


@router.post("/run")
async def run_vectorization(
    request: Request,
    body: VectorizationRunRequest,
    _: None = Depends(verify_api_key),
) -> VectorizationResult:
    """Embed everything without a vector, or clear and recompute all vectors.

    Args:
        request (Request): FastAPI request (provides app.state.vectorization_service).
        body (VectorizationRunRequest): JSON body; revectorize=true recomputes all vectors.
        _ (None): Auth dependency result (unused).

    Returns:
        VectorizationResult: Counts, stats before and after, and the duration.
    """
    vectorization_service = request.app.state.vectorization_service
    if body.revectorize:
        return await vectorization_service.revectorize_all()
    return await vectorization_service.vectorize_all_unprocessed()


@router.get("/stats")
async def vectorization_stats(
    request: Request,
    _: None = Depends(verify_api_key),
) -> VectorizationStatsResponse:
    """Vector coverage of chats, messages and segments."""
    vectorization_service = request.app.state.vectorization_service
    return VectorizationStatsResponse(
        vectors=await vectorization_service.get_vectorization_stats(),
        segments=await vectorization_service.get_segment_stats(),
        native_vector_search=request.app.state.store_client.is_vector_search_available(),
    )


@router.get("/database-stats")
async def vector_database_stats(
    request: Request,
    _: None = Depends(verify_api_key),
) -> VectorDatabaseStats:
    """Stored vector counts, the vector dimension and estimated storage bytes."""
    return await request.app.state.vectorization_service.get_vector_database_stats()
