"""Similarity search service.

Ranks chats, messages and segments by cosine similarity to a query. The
store's native k-NN index is used when it is available; otherwise, or when
the native call fails, all vectored candidates are scanned in-process. A
failing native call disables native search and tries to re-enable it once,
so a broken index degrades to the scan instead of failing the query.

Search never raises: problems are logged and an empty list is returned. The
analytics helpers (similarity stats, chat clusters) propagate store failures.
"""

from itertools import combinations
from typing import Awaitable, Callable, Sequence, TypeVar

import numpy as np

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.vector_helper import has_vector
from shared.models.chat import Chat, ChatMessage, ChatSegment
from shared.models.search import ChatCluster, ChatSimilarityResult, MessageSimilarityResult, SegmentSimilarityResult
from shared.models.stats import ChatSimilarityStats

T = TypeVar("T", Chat, ChatMessage, ChatSegment)

CLUSTER_SIMILARITY_THRESHOLD = 0.7


class SearchService:
    """Vector similarity search with native/brute-force fallback."""

    def __init__(
        self,
        helper_config: HelperConfig,
        store_client: StoreClientInterface,
        embed_client: EmbedClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store_client = store_client
        self._embed_client = embed_client

    ##########################################
    ################ HELPERS #################
    ##########################################

    def _rank(self, candidates: Sequence[T], vector: list[float], limit: int) -> list[tuple[T, float]]:
        """Brute-force cosine ranking. Ties keep the candidate order."""
        scored = [
            (candidate, self._embed_client.cosine_similarity(vector, candidate.embedding_vector))
            for candidate in candidates
            if has_vector(candidate.embedding_vector)
        ]
        # sorted() is stable, also with reverse=True
        return sorted(scored, key=lambda item: item[1], reverse=True)[:limit]

    async def _native_ids(self, kind: str, vector: list[float], limit: int) -> list[int]:
        """Ids from the native index, [] if it is unavailable or failed."""
        if not self._store_client.is_vector_search_available():
            return []
        try:
            return await self._store_client.do_vector_search(kind=kind, vector=vector, limit=limit)
        except Exception as e:
            self.logging.warning("Native %s vector search failed, falling back to brute-force search: %s", kind, e)
            self._store_client.disable_vector_search()
            try:
                if await self._store_client.do_enable_vector_search():
                    self.logging.info("Native vector search re-enabled.")
            except Exception as enable_error:
                self.logging.debug("Re-enabling native vector search failed: %s", enable_error)
            return []

    async def _search(
        self,
        kind: str,
        vector: list[float],
        limit: int,
        hydrate: Callable[[int], Awaitable[T | None]],
        load_candidates: Callable[[], Awaitable[list[T]]],
    ) -> list[tuple[T, float]]:
        ids = await self._native_ids(kind, vector, limit)
        if ids:
            results: list[tuple[T, float]] = []
            for entity_id in ids:
                entity = await hydrate(entity_id)
                # the entity may have been removed since the index was queried
                if entity is not None:
                    results.append((entity, self._embed_client.cosine_similarity(vector, entity.embedding_vector)))
            self.logging.debug("Native %s search returned %d results", kind, len(results))
            return results[:limit]
        return self._rank(await load_candidates(), vector, limit)

    async def _all_messages(self) -> list[ChatMessage]:
        return [m for chat in await self._store_client.do_get_all_chats() for m in chat.messages]

    async def _chat_messages(self, chat_id: int) -> list[ChatMessage]:
        chat = await self._store_client.do_get_chat(chat_id)
        if chat is None:
            self.logging.warning("Chat %d not found.", chat_id)
            return []
        return chat.messages

    ##########################################
    ################ CHATS ###################
    ##########################################

    async def find_similar_chats_by_vector(self, vector: list[float], limit: int = 10) -> list[ChatSimilarityResult]:
        """Rank chats by similarity to an already embedded query.

        Args:
            vector (list[float]): The query vector.
            limit (int): Maximum number of results; values <= 0 return [].

        Returns:
            list[ChatSimilarityResult]: Best match first.
        """
        if limit <= 0:
            return []
        try:
            ranked = await self._search(
                kind="chat",
                vector=vector,
                limit=limit,
                hydrate=self._store_client.do_get_chat,
                load_candidates=self._store_client.do_get_all_chats,
            )
        except Exception as e:
            self.logging.error("Error finding similar chats: %s", e)
            return []
        return [ChatSimilarityResult(chat=chat, similarity_score=score) for chat, score in ranked]

    async def find_similar_chats(self, query: str, limit: int = 10) -> list[ChatSimilarityResult]:
        """Rank chats by similarity to a text query.

        Returns:
            list[ChatSimilarityResult]: Best match first, [] on any failure.
        """
        if limit <= 0:
            return []
        self.logging.debug("Finding chats similar to: '%s'", query)
        try:
            vector = await self._embed_client.embed(query)
        except Exception as e:
            self.logging.error("Error embedding query for chat search: %s", e)
            return []
        return await self.find_similar_chats_by_vector(vector, limit)

    ##########################################
    ############### SEGMENTS #################
    ##########################################

    async def find_similar_segments(self, query: str, limit: int = 10) -> list[SegmentSimilarityResult]:
        """Rank all segments by similarity to a text query.

        Returns:
            list[SegmentSimilarityResult]: Best match first, [] on any failure.
        """
        if limit <= 0:
            return []
        self.logging.debug("Finding segments similar to: '%s'", query)
        try:
            vector = await self._embed_client.embed(query)
            ranked = await self._search(
                kind="segment",
                vector=vector,
                limit=limit,
                hydrate=self._store_client.do_get_chat_segment,
                load_candidates=self._store_client.do_get_all_chat_segments,
            )
        except Exception as e:
            self.logging.error("Error finding similar segments: %s", e)
            return []
        self.logging.debug("Found %d similar segments", len(ranked))
        return [SegmentSimilarityResult(segment=segment, similarity_score=score) for segment, score in ranked]

    async def find_similar_segments_in_chat(self, chat_id: int, query: str, limit: int = 10) -> list[SegmentSimilarityResult]:
        """Rank the segments of one chat by similarity to a text query.

        The native index is global, so this always scans the chat's segments.

        Returns:
            list[SegmentSimilarityResult]: Best match first, [] on any failure.
        """
        if limit <= 0:
            return []
        self.logging.debug("Finding segments similar to: '%s' in chat %d", query, chat_id)
        try:
            vector = await self._embed_client.embed(query)
            segments = await self._store_client.do_get_segments_for_chat(chat_id)
            ranked = self._rank(segments, vector, limit)
        except Exception as e:
            self.logging.error("Error finding similar segments in chat %d: %s", chat_id, e)
            return []
        return [SegmentSimilarityResult(segment=segment, similarity_score=score) for segment, score in ranked]

    ##########################################
    ############### MESSAGES #################
    ##########################################

    async def find_similar_messages(self, query: str, limit: int = 10) -> list[MessageSimilarityResult]:
        """Rank all messages by similarity to a text query.

        Returns:
            list[MessageSimilarityResult]: Best match first, [] on any failure.
        """
        if limit <= 0:
            return []
        self.logging.debug("Finding messages similar to: '%s'", query)
        try:
            vector = await self._embed_client.embed(query)
            ranked = await self._search(
                kind="message",
                vector=vector,
                limit=limit,
                hydrate=self._store_client.do_get_message,
                load_candidates=self._all_messages,
            )
        except Exception as e:
            self.logging.error("Error finding similar messages: %s", e)
            return []
        return [MessageSimilarityResult(message=message, similarity_score=score) for message, score in ranked]

    async def find_similar_messages_in_chat(self, chat_id: int, query: str, limit: int = 10) -> list[MessageSimilarityResult]:
        """Rank the messages of one chat by similarity to a text query.

        Returns:
            list[MessageSimilarityResult]: Best match first, [] on any failure.
        """
        if limit <= 0:
            return []
        self.logging.debug("Finding messages similar to: '%s' in chat %d", query, chat_id)
        try:
            vector = await self._embed_client.embed(query)
            ranked = self._rank(await self._chat_messages(chat_id), vector, limit)
        except Exception as e:
            self.logging.error("Error finding similar messages in chat %d: %s", chat_id, e)
            return []
        return [MessageSimilarityResult(message=message, similarity_score=score) for message, score in ranked]

    ##########################################
    ############### ANALYTICS ################
    ##########################################

    async def get_chat_similarity_stats(self, chat_id: int) -> ChatSimilarityStats:
        """Distribution of the similarity between one chat and every other vectored chat.

        Args:
            chat_id (int): The chat to compare.

        Returns:
            ChatSimilarityStats: has_vector=False if the chat is missing or has no vector.

        Raises:
            StoreError: If loading the chats fails.
        """
        self.logging.debug("Calculating similarity stats for chat %d", chat_id)
        target = await self._store_client.do_get_chat(chat_id)
        if target is None or not has_vector(target.embedding_vector):
            if target is None:
                self.logging.warning("Chat %d not found.", chat_id)
            return ChatSimilarityStats(chat_id=chat_id)

        similarities = np.array([
            self._embed_client.cosine_similarity(target.embedding_vector, chat.embedding_vector)
            for chat in await self._store_client.do_get_all_chats()
            if chat.id != chat_id and has_vector(chat.embedding_vector)
        ])
        if similarities.size == 0:
            return ChatSimilarityStats(chat_id=chat_id, has_vector=True)

        return ChatSimilarityStats(
            chat_id=chat_id,
            has_vector=True,
            comparable_chats_count=int(similarities.size),
            average_similarity=float(similarities.mean()),
            max_similarity=float(similarities.max()),
            min_similarity=float(similarities.min()),
            median_similarity=float(np.median(similarities)),
            # population deviation, ddof=0
            standard_deviation=float(similarities.std()),
        )

    async def find_chat_clusters(self, max_clusters: int = 5) -> list[ChatCluster]:
        """Group chats greedily around seed chats.

        Chats with vectors are visited in id order. Each chat not yet assigned
        seeds a cluster and claims every later unassigned chat whose similarity
        to the seed is above CLUSTER_SIMILARITY_THRESHOLD. Clusters with a single
        chat are dropped, but their seed stays assigned. Stops after max_clusters
        clusters were found.

        Args:
            max_clusters (int): Maximum number of clusters to return.

        Returns:
            list[ChatCluster]: Clusters in seed order, ids counting from 1.

        Raises:
            StoreError: If loading the chats fails.
        """
        self.logging.debug("Finding chat clusters (max: %d)", max_clusters)
        chats = [c for c in await self._store_client.do_get_all_chats() if has_vector(c.embedding_vector)]
        if len(chats) < 2:
            self.logging.debug("Not enough chats with vectors for clustering")
            return []

        clusters: list[ChatCluster] = []
        used: set[int] = set()
        for seed_index, seed in enumerate(chats):
            if len(clusters) >= max_clusters:
                break
            if seed.id in used:
                continue
            used.add(seed.id)
            members = [seed]
            for candidate in chats[seed_index + 1:]:
                if candidate.id in used:
                    continue
                if self._embed_client.cosine_similarity(seed.embedding_vector, candidate.embedding_vector) > CLUSTER_SIMILARITY_THRESHOLD:
                    members.append(candidate)
                    used.add(candidate.id)
            if len(members) > 1:
                clusters.append(
                    ChatCluster(
                        id=len(clusters) + 1,
                        seed_chat=seed,
                        chats=members,
                        average_similarity=self._average_pairwise_similarity(members),
                    )
                )

        self.logging.debug("Found %d chat clusters", len(clusters))
        return clusters

    def _average_pairwise_similarity(self, chats: list[Chat]) -> float:
        similarities = [
            self._embed_client.cosine_similarity(a.embedding_vector, b.embedding_vector)
            for a, b in combinations(chats, 2)
        ]
        return float(np.mean(similarities)) if similarities else 0.0
