"""
Shared fixtures: env-driven HelperConfig, a booted hash embed client, a
memory store and the services wired on top of them.
"""

import logging

import pytest

from services.chat_search.HybridRanker import HybridRanker
from services.chat_search.SearchService import SearchService
from services.chat_segments.SegmentService import SegmentService
from services.chat_vectorization.VectorizationService import VectorizationService
from shared.clients.embed.hash.EmbedClientHash import EmbedClientHash
from shared.clients.store.memory.StoreClientMemory import StoreClientMemory
from shared.helper.HelperConfig import HelperConfig

from tests.helpers import TEST_API_KEY, TEST_DIMENSION


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.setenv("ROOT_DIR", str(tmp_path))
    monkeypatch.setenv("EMBED_ENGINE", "hash")
    monkeypatch.setenv("EMBED_DIMENSION", str(TEST_DIMENSION))
    monkeypatch.setenv("STORE_ENGINE", "memory")
    monkeypatch.setenv("APP_API_KEY", TEST_API_KEY)
    monkeypatch.delenv("SEGMENT_THEMATIC_THRESHOLD", raising=False)
    return tmp_path


@pytest.fixture
def helper_config(env):
    return HelperConfig(logger=logging.getLogger("test"))


@pytest.fixture
async def embed_client(helper_config):
    client = EmbedClientHash(helper_config=helper_config)
    await client.boot()
    yield client
    await client.close()


@pytest.fixture
async def store_client(helper_config):
    client = StoreClientMemory(helper_config=helper_config)
    await client.boot()
    yield client
    await client.close()


@pytest.fixture
def segment_service(helper_config, store_client, embed_client):
    return SegmentService(helper_config=helper_config, store_client=store_client, embed_client=embed_client)


@pytest.fixture
def vectorization_service(helper_config, store_client, embed_client):
    return VectorizationService(helper_config=helper_config, store_client=store_client, embed_client=embed_client)


@pytest.fixture
def search_service(helper_config, store_client, embed_client):
    return SearchService(helper_config=helper_config, store_client=store_client, embed_client=embed_client)


@pytest.fixture
def hybrid_ranker(helper_config, store_client, embed_client, search_service):
    return HybridRanker(
        helper_config=helper_config,
        store_client=store_client,
        embed_client=embed_client,
        search_service=search_service,
    )



@pytest.fixture
def restore_root_logger():
    """Undo the handlers setup_logging() installs on the root logger."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
