"""
Tests for the similarity search engine: brute-force ranking, the native path
and the fallback when the native index breaks mid-query.
"""

from datetime import datetime

import numpy as np
import pytest

from services.chat_search.SearchService import SearchService
from services.chat_vectorization.VectorizationService import VectorizationService
from shared.clients.store.memory.StoreClientMemory import StoreClientMemory

from tests.helpers import make_chat, vector_with_similarity

DAY = datetime(2024, 3, 1)
TOPICS = ["Frage zu Rechnung", "Urlaub planen", "Passwort vergessen", "Lieferung verspätet"]


class BrokenIndexStore(StoreClientMemory):
    """Claims native search but fails every native query."""

    def __init__(self, helper_config):
        super().__init__(helper_config=helper_config)
        self.native_calls = 0

    async def _do_enable_vector_search(self) -> bool:
        return True

    async def _do_native_vector_search(self, kind, vector, limit):
        self.native_calls += 1
        raise RuntimeError("index corrupted")


class FixedIndexStore(StoreClientMemory):
    """Native search that answers with preset ids."""

    def __init__(self, helper_config, ids):
        super().__init__(helper_config=helper_config)
        self.ids = ids

    async def _do_enable_vector_search(self) -> bool:
        return True

    async def _do_native_vector_search(self, kind, vector, limit):
        return self.ids[:limit]


async def _seed_segments(store, segment_service):
    for index, topic in enumerate(TOPICS):
        await make_chat(store, [(DAY.replace(hour=9 + index), topic, True)], title=topic)
    await segment_service.create_segments_for_all_chats()


async def _booted(store):
    await store.boot()
    await store.do_enable_vector_search()
    return store


class TestBruteForceSearch:
    async def test_exact_text_ranks_first(self, store_client, segment_service, search_service):
        await _seed_segments(store_client, segment_service)
        target = (await store_client.do_get_all_chat_segments())[2]

        results = await search_service.find_similar_segments(target.combined_content, limit=10)

        assert len(results) == len(TOPICS)
        assert results[0].segment.id == target.id
        assert results[0].similarity_score == pytest.approx(1.0, abs=1e-5)
        scores = [r.similarity_score for r in results]
        assert scores == sorted(scores, reverse=True)

    async def test_limit_is_respected(self, store_client, segment_service, search_service):
        await _seed_segments(store_client, segment_service)

        assert len(await search_service.find_similar_segments("Rechnung", limit=2)) == 2

    @pytest.mark.parametrize("limit", [0, -1])
    async def test_non_positive_limit_gives_empty_list(self, store_client, segment_service, search_service, limit):
        await _seed_segments(store_client, segment_service)

        assert await search_service.find_similar_segments("Rechnung", limit=limit) == []
        assert await search_service.find_similar_messages("Rechnung", limit=limit) == []
        assert await search_service.find_similar_chats("Rechnung", limit=limit) == []

    async def test_entities_without_vectors_are_skipped(self, store_client, search_service):
        await make_chat(store_client, [(DAY, "Hallo", True)])

        assert await search_service.find_similar_messages("Hallo") == []

    async def test_message_search_in_chat(self, store_client, search_service, vectorization_service):
        chat = await make_chat(store_client, [(DAY, "Hallo", True), (DAY.replace(hour=10), "Rechnung", True)])
        other = await make_chat(store_client, [(DAY, "Rechnung", True)])
        await vectorization_service.vectorize_unprocessed_messages()

        results = await search_service.find_similar_messages_in_chat(chat.id, "Rechnung", limit=5)
        everywhere = await search_service.find_similar_messages("Rechnung", limit=5)

        assert [r.message.chat_id for r in results] == [chat.id, chat.id]
        assert results[0].message.content == "Rechnung"
        assert {r.message.chat_id for r in everywhere} == {chat.id, other.id}

    async def test_segment_search_in_chat(self, store_client, segment_service, search_service):
        await _seed_segments(store_client, segment_service)
        chat = (await store_client.do_get_all_chats())[1]

        results = await search_service.find_similar_segments_in_chat(chat.id, "Urlaub", limit=5)

        assert [r.segment.chat_id for r in results] == [chat.id]

    async def test_chat_search(self, store_client, search_service, vectorization_service):
        for topic in TOPICS:
            await make_chat(store_client, [(DAY, topic, True)], title=topic)
        await vectorization_service.vectorize_unprocessed_chats()
        target = (await store_client.do_get_all_chats())[3]

        results = await search_service.find_similar_chats(VectorizationService.build_chat_vector_content(target), limit=1)

        assert [r.chat.id for r in results] == [target.id]

    async def test_embedding_failure_gives_empty_list(self, store_client, segment_service, search_service, embed_client, monkeypatch):
        await _seed_segments(store_client, segment_service)

        async def broken(text):
            raise RuntimeError("model crashed")

        monkeypatch.setattr(embed_client, "embed", broken)

        assert await search_service.find_similar_segments("Rechnung") == []


class TestNativeFallback:
    async def test_broken_index_gives_brute_force_ranking(self, helper_config, embed_client, store_client, segment_service, search_service):
        broken_store = await _booted(BrokenIndexStore(helper_config=helper_config))
        assert broken_store.is_vector_search_available()
        await _seed_segments(store_client, segment_service)
        for segment in await store_client.do_get_all_chat_segments():
            segment.id = 0
            await broken_store.do_save_chat_segment(segment)
        fallback_search = SearchService(helper_config=helper_config, store_client=broken_store, embed_client=embed_client)

        expected = await search_service.find_similar_segments("Rechnung offen", limit=3)
        results = await fallback_search.find_similar_segments("Rechnung offen", limit=3)

        assert broken_store.native_calls == 1
        assert [r.segment.combined_content for r in results] == [r.segment.combined_content for r in expected]
        assert [r.similarity_score for r in results] == pytest.approx([r.similarity_score for r in expected])

    async def test_index_is_re_enabled_after_failure(self, helper_config, embed_client, segment_service):
        broken_store = await _booted(BrokenIndexStore(helper_config=helper_config))
        fallback_search = SearchService(helper_config=helper_config, store_client=broken_store, embed_client=embed_client)

        await fallback_search.find_similar_messages("Hallo")
        await fallback_search.find_similar_messages("Hallo")

        assert broken_store.is_vector_search_available()
        assert broken_store.native_calls == 2

    async def test_native_ids_are_hydrated_in_order(self, helper_config, embed_client):
        store = await _booted(FixedIndexStore(helper_config=helper_config, ids=[3, 99, 1]))
        for topic in TOPICS:
            chat = await make_chat(store, [(DAY, topic, True)], title=topic)
            chat.embedding_vector = await embed_client.embed(topic)
            await store.do_save_chat(chat)
        native_search = SearchService(helper_config=helper_config, store_client=store, embed_client=embed_client)

        results = await native_search.find_similar_chats("Urlaub planen", limit=3)

        assert [r.chat.id for r in results] == [3, 1]

    async def test_empty_native_result_falls_back(self, helper_config, embed_client):
        store = await _booted(FixedIndexStore(helper_config=helper_config, ids=[]))
        chat = await make_chat(store, [(DAY, "Hallo", True)], title="Hallo")
        chat.embedding_vector = await embed_client.embed("Hallo")
        await store.do_save_chat(chat)
        native_search = SearchService(helper_config=helper_config, store_client=store, embed_client=embed_client)

        results = await native_search.find_similar_chats("Hallo", limit=3)

        assert [r.chat.id for r in results] == [chat.id]
        assert results[0].similarity_score == pytest.approx(1.0, abs=1e-5)

    async def test_disabled_index_is_not_queried(self, helper_config, embed_client):
        store = await _booted(FixedIndexStore(helper_config=helper_config, ids=[99]))
        chat = await make_chat(store, [(DAY, "Hallo", True)], title="Hallo")
        chat.embedding_vector = await embed_client.embed("Hallo")
        await store.do_save_chat(chat)
        store.disable_vector_search()
        native_search = SearchService(helper_config=helper_config, store_client=store, embed_client=embed_client)

        results = await native_search.find_similar_chats("Hallo", limit=3)

        assert not store.is_vector_search_available()
        assert [r.chat.id for r in results] == [chat.id]


class TestSearchByVector:
    async def test_precomputed_vector(self, store_client, search_service, vectorization_service, embed_client):
        for topic in TOPICS:
            await make_chat(store_client, [(DAY, topic, True)], title=topic)
        await vectorization_service.vectorize_unprocessed_chats()
        target = (await store_client.do_get_all_chats())[0]

        results = await search_service.find_similar_chats_by_vector(target.embedding_vector, limit=2)

        assert len(results) == 2
        assert results[0].chat.id == target.id
        assert results[0].similarity_score == pytest.approx(1.0, abs=1e-5)


async def _vectored_chat(store, title, vector):
    chat = await make_chat(store, [(DAY, title, True)], title=title)
    chat.embedding_vector = vector
    await store.do_save_chat(chat)
    return chat


class TestChatAnalytics:
    async def test_similarity_stats(self, store_client, search_service, embed_client):
        target_vector = await embed_client.embed("Rechnung")
        other = await embed_client.embed("Urlaub")
        target = await _vectored_chat(store_client, "Rechnung", target_vector)
        for similarity in [0.9, 0.5, 0.1]:
            await _vectored_chat(store_client, f"chat {similarity}", vector_with_similarity(target_vector, other, similarity))
        await make_chat(store_client, [(DAY, "ohne Vektor", True)])

        stats = await search_service.get_chat_similarity_stats(target.id)

        assert stats.has_vector
        assert stats.comparable_chats_count == 3
        assert stats.average_similarity == pytest.approx(0.5, abs=1e-5)
        assert stats.max_similarity == pytest.approx(0.9, abs=1e-5)
        assert stats.min_similarity == pytest.approx(0.1, abs=1e-5)
        assert stats.median_similarity == pytest.approx(0.5, abs=1e-5)
        assert stats.standard_deviation == pytest.approx(float(np.std([0.9, 0.5, 0.1])), abs=1e-5)

    async def test_similarity_stats_without_vector(self, store_client, search_service, embed_client):
        chat = await make_chat(store_client, [(DAY, "Hallo", True)])
        alone = await _vectored_chat(store_client, "Rechnung", await embed_client.embed("Rechnung"))

        assert not (await search_service.get_chat_similarity_stats(chat.id)).has_vector
        assert not (await search_service.get_chat_similarity_stats(999)).has_vector
        stats = await search_service.get_chat_similarity_stats(alone.id)
        assert stats.has_vector
        assert stats.comparable_chats_count == 0

    async def _two_groups(self, store_client, embed_client):
        a = await embed_client.embed("Rechnung")
        c = vector_with_similarity(a, await embed_client.embed("Urlaub"), 0.2)
        return [
            await _vectored_chat(store_client, "a", a),
            await _vectored_chat(store_client, "b", vector_with_similarity(a, await embed_client.embed("Passwort"), 0.9)),
            await _vectored_chat(store_client, "c", c),
            await _vectored_chat(store_client, "d", vector_with_similarity(c, await embed_client.embed("Lieferung"), 0.95)),
        ]

    async def test_clusters_group_chats_around_seeds(self, store_client, search_service, embed_client):
        a, b, c, d = await self._two_groups(store_client, embed_client)

        clusters = await search_service.find_chat_clusters()

        assert [cluster.id for cluster in clusters] == [1, 2]
        assert [[chat.id for chat in cluster.chats] for cluster in clusters] == [[a.id, b.id], [c.id, d.id]]
        assert clusters[0].seed_chat.id == a.id
        assert clusters[0].average_similarity == pytest.approx(0.9, abs=1e-5)
        assert clusters[1].average_similarity == pytest.approx(0.95, abs=1e-5)

    async def test_cluster_count_is_capped(self, store_client, search_service, embed_client):
        await self._two_groups(store_client, embed_client)

        assert len(await search_service.find_chat_clusters(max_clusters=1)) == 1

    async def test_single_chat_clusters_are_dropped(self, store_client, search_service, embed_client):
        a = await embed_client.embed("Rechnung")
        await _vectored_chat(store_client, "a", a)
        await _vectored_chat(store_client, "c", vector_with_similarity(a, await embed_client.embed("Urlaub"), 0.2))

        assert await search_service.find_chat_clusters() == []

    async def test_chat_below_threshold_is_not_clustered(self, store_client, search_service, embed_client):
        a = await embed_client.embed("Rechnung")
        await _vectored_chat(store_client, "a", a)
        await _vectored_chat(store_client, "b", vector_with_similarity(a, await embed_client.embed("Urlaub"), 0.69))

        assert await search_service.find_chat_clusters() == []
