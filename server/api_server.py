"""FastAPI application entry point for the chat segment search service."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.clients.ClientInterface import ClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.store.StoreClientManager import StoreClientManager
from services.chat.ChatService import ChatService
from services.chat.SegmentUpdateWorker import SegmentUpdateWorker
from services.chat_search.HybridRanker import HybridRanker
from services.chat_search.SearchService import SearchService
from services.chat_segments.SegmentService import SegmentService
from services.chat_vectorization.VectorizationService import VectorizationService
from server.routers.ChatRouter import router as chat_router
from server.routers.SearchRouter import router as search_router
from server.routers.VectorizationRouter import router as vectorization_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    app.state.helper_config = HelperConfig(logger=logging)

    embed_client = EmbedClientManager(helper_config=app.state.helper_config).get_client()
    store_client = StoreClientManager(helper_config=app.state.helper_config).get_client()

    logging.info("Booting all clients...")
    for client in [embed_client, store_client]:
        await client.boot()
    logging.info("All clients booted successfully.")

    await check_connections([embed_client, store_client])

    app.state.embed_client = embed_client
    app.state.store_client = store_client

    helper_config = app.state.helper_config
    app.state.segment_service = SegmentService(
        helper_config=helper_config, store_client=store_client, embed_client=embed_client
    )
    app.state.vectorization_service = VectorizationService(
        helper_config=helper_config, store_client=store_client, embed_client=embed_client
    )
    app.state.search_service = SearchService(
        helper_config=helper_config, store_client=store_client, embed_client=embed_client
    )
    app.state.hybrid_ranker = HybridRanker(
        helper_config=helper_config,
        store_client=store_client,
        embed_client=embed_client,
        search_service=app.state.search_service,
    )
    app.state.segment_worker = SegmentUpdateWorker(
        helper_config=helper_config, segment_service=app.state.segment_service
    )
    app.state.segment_worker.start()
    app.state.chat_service = ChatService(
        helper_config=helper_config,
        store_client=store_client,
        embed_client=embed_client,
        search_service=app.state.search_service,
        worker=app.state.segment_worker,
    )

    # while the app is running...
    yield

    # when the app shuts down, drain pending segment updates before closing the clients
    logging.info("Shutting down, finishing pending segment updates...")
    await app.state.segment_worker.stop()
    for client in [embed_client, store_client]:
        await client.close()
    logging.info("All clients closed.")


app = FastAPI(
    title="chat_segment_search",
    description=(
        "Semantic search over chat conversations. Chats are grouped into daily segments, "
        "embedded into vectors and served via POST /search/segments, /search/messages "
        "and /search/hybrid. New messages arrive via POST /chats/{chat_id}/messages."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router)
app.include_router(search_router)
app.include_router(vectorization_router)


async def check_connections(clients: list[ClientInterface]) -> None:
    """Check that the embedding backend and the store are usable on startup.

    Both are fatal: nothing can be embedded or searched without them.

    Raises:
        Exception: If a client is not healthy.
    """
    for client in clients:
        if not await client.do_healthcheck():
            raise Exception(
                f"Client '{client.get_display_name()}' is not healthy. Cannot serve requests."
            )
    logging.info("All clients are healthy.", color="green")


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting chat_segment_search API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
