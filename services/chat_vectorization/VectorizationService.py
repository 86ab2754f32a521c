"""Vectorization service.

Embeds chats, messages and segments in batches or one at a time, re-embeds
everything after a model swap, and reports how much of the store carries
vectors. Batches run sequentially; a failing item is logged and skipped.
"""

import asyncio
import time
from datetime import datetime

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.vector_helper import VECTOR_DTYPE, has_vector
from shared.models.chat import Chat, ChatMessage
from shared.models.stats import (
    SegmentVectorizationStats,
    VectorDatabaseStats,
    VectorizationResult,
    VectorizationStats,
)

CHAT_VECTOR_MESSAGE_COUNT = 5  # leading messages that describe a chat
PROGRESS_EVERY_CHATS = 10
PROGRESS_EVERY_MESSAGES = 50
PROGRESS_EVERY_SEGMENTS = 20


def _percentage(part: int, total: int) -> float:
    return part / total * 100 if total > 0 else 0.0


def _is_cancelled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _has_content(text: str | None) -> bool:
    return bool(text and text.strip())


class VectorizationService:
    """Keeps the embedding vectors of chats, messages and segments up to date."""

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
    ############ SINGLE ENTITIES #############
    ##########################################

    @staticmethod
    def build_chat_vector_content(chat: Chat) -> str:
        """Title plus the first non-empty messages, space-joined."""
        parts = [chat.title or ""]
        parts.extend([m.content for m in chat.messages if _has_content(m.content)][:CHAT_VECTOR_MESSAGE_COUNT])
        return " ".join(parts).strip()

    async def update_chat_vector(self, chat_id: int) -> bool:
        """Recompute and persist the vector of one chat.

        Args:
            chat_id (int): The chat.

        Returns:
            bool: True if a vector was written, False if the chat is missing or has no content.

        Raises:
            Exception: If embedding or persisting fails.
        """
        self.logging.debug("Updating vector for chat %d", chat_id)
        chat = await self._store_client.do_get_chat(chat_id)
        if chat is None:
            self.logging.warning("Chat %d not found.", chat_id)
            return False

        content = self.build_chat_vector_content(chat)
        if not content:
            self.logging.debug("No content to embed for chat %d", chat_id)
            return False

        chat.embedding_vector = await self._embed_client.embed(content)
        await self._store_client.do_save_chat(chat)
        self.logging.debug("Updated vector for chat %d", chat_id)
        return True

    async def _embed_message_in_chat(self, chat: Chat, message: ChatMessage) -> bool:
        if not _has_content(message.content):
            self.logging.debug("Message %d has no content to embed", message.id)
            return False
        message.embedding_vector = await self._embed_client.embed(message.content)
        await self._store_client.do_save_chat(chat)
        return True

    async def update_message_vector(self, message_id: int) -> bool:
        """Recompute and persist the vector of one message.

        Args:
            message_id (int): The message.

        Returns:
            bool: True if a vector was written, False if the message is missing or empty.

        Raises:
            Exception: If embedding or persisting fails.
        """
        self.logging.debug("Updating vector for message %d", message_id)
        found = await self._store_client.do_get_message(message_id)
        chat = await self._store_client.do_get_chat(found.chat_id) if found else None
        message = next((m for m in chat.messages if m.id == message_id), None) if chat else None
        if message is None:
            self.logging.warning("Message %d not found.", message_id)
            return False
        return await self._embed_message_in_chat(chat, message)

    async def update_segment_vector(self, segment_id: int) -> bool:
        """Recompute and persist the vector of one segment from its combined content.

        Args:
            segment_id (int): The segment.

        Returns:
            bool: True if a vector was written, False if the segment is missing or empty.

        Raises:
            Exception: If embedding or persisting fails.
        """
        self.logging.debug("Updating vector for segment %d", segment_id)
        segment = await self._store_client.do_get_chat_segment(segment_id)
        if segment is None:
            self.logging.warning("Segment %d not found.", segment_id)
            return False
        if not _has_content(segment.combined_content):
            self.logging.debug("Segment %d has no content to embed", segment_id)
            return False
        segment.embedding_vector = await self._embed_client.embed(segment.combined_content)
        await self._store_client.do_save_chat_segment(segment)
        return True

    ##########################################
    ########### UNPROCESSED BATCHES ##########
    ##########################################

    async def vectorize_unprocessed_chats(self, cancel_event: asyncio.Event | None = None) -> int:
        """Embed every chat that has no vector yet.

        Returns:
            int: The number of chats that received a vector.
        """
        chats = [c for c in await self._store_client.do_get_all_chats() if not has_vector(c.embedding_vector)]
        self.logging.info("Found %d chats without embeddings.", len(chats))

        processed = 0
        for chat in chats:
            if _is_cancelled(cancel_event):
                self.logging.info("Chat vectorization cancelled after %d chats.", processed)
                break
            try:
                if await self.update_chat_vector(chat.id):
                    processed += 1
                    if processed % PROGRESS_EVERY_CHATS == 0:
                        self.logging.info("Processed %d/%d chats", processed, len(chats))
            except Exception as e:
                self.logging.error("Failed to vectorize chat %d: %s", chat.id, e)

        self.logging.info("Completed chat vectorization. Processed %d chats", processed)
        return processed

    async def vectorize_unprocessed_messages(self, cancel_event: asyncio.Event | None = None) -> int:
        """Embed every non-empty message that has no vector yet.

        Returns:
            int: The number of messages that received a vector.
        """
        self.logging.info("Starting vectorization of unprocessed messages...")
        processed = 0
        total = 0
        for chat in await self._store_client.do_get_all_chats():
            pending = [m for m in chat.messages if not has_vector(m.embedding_vector) and _has_content(m.content)]
            total += len(pending)
            for message in pending:
                if _is_cancelled(cancel_event):
                    self.logging.info("Message vectorization cancelled after %d messages.", processed)
                    return processed
                try:
                    if await self._embed_message_in_chat(chat, message):
                        processed += 1
                        if processed % PROGRESS_EVERY_MESSAGES == 0:
                            self.logging.info("Processed %d messages...", processed)
                except Exception as e:
                    message.embedding_vector = None
                    self.logging.error("Failed to vectorize message %d: %s", message.id, e)

        self.logging.info("Completed message vectorization. Processed %d out of %d messages", processed, total)
        return processed

    async def vectorize_unprocessed_segments(self, cancel_event: asyncio.Event | None = None) -> int:
        """Embed every segment with content that has no vector yet.

        Returns:
            int: The number of segments that received a vector.
        """
        segments = [
            s for s in await self._store_client.do_get_all_chat_segments()
            if not has_vector(s.embedding_vector) and _has_content(s.combined_content)
        ]
        self.logging.info("Found %d segments without embeddings.", len(segments))

        processed = 0
        for segment in segments:
            if _is_cancelled(cancel_event):
                self.logging.info("Segment vectorization cancelled after %d segments.", processed)
                break
            try:
                if await self.update_segment_vector(segment.id):
                    processed += 1
                    if processed % PROGRESS_EVERY_SEGMENTS == 0:
                        self.logging.info("Vectorized %d segments...", processed)
            except Exception as e:
                self.logging.error("Failed to vectorize segment %d: %s", segment.id, e)

        self.logging.info("Completed segment vectorization. Processed %d segments", processed)
        return processed

    ##########################################
    ########## RE-VECTORIZE BATCHES ##########
    ##########################################

    # Every re-vectorize batch clears and persists the old vector before
    # recomputing, so an entity whose recompute fails ends up without a vector
    # instead of keeping one from a different model.

    async def revectorize_all_chats(self, cancel_event: asyncio.Event | None = None) -> int:
        """Clear and recompute the vector of every chat.

        Returns:
            int: The number of chats that received a new vector.

        Raises:
            StoreError: If persisting the cleared state of a chat fails.
        """
        chats = await self._store_client.do_get_all_chats()
        self.logging.info("Re-vectorizing %d chats", len(chats))

        processed = 0
        for chat in chats:
            if _is_cancelled(cancel_event):
                self.logging.info("Chat re-vectorization cancelled after %d chats.", processed)
                break
            chat.embedding_vector = None
            await self._store_client.do_save_chat(chat)
            try:
                if await self.update_chat_vector(chat.id):
                    processed += 1
                    if processed % PROGRESS_EVERY_CHATS == 0:
                        self.logging.info("Re-vectorized %d/%d chats", processed, len(chats))
            except Exception as e:
                self.logging.error("Failed to re-vectorize chat %d: %s", chat.id, e)

        self.logging.info("Completed chat re-vectorization. Processed %d chats", processed)
        return processed

    async def revectorize_all_messages(self, cancel_event: asyncio.Event | None = None) -> int:
        """Clear and recompute the vector of every non-empty message.

        Returns:
            int: The number of messages that received a new vector.

        Raises:
            StoreError: If persisting the cleared state of a message fails.
        """
        chats = await self._store_client.do_get_all_chats()
        total = sum(1 for chat in chats for m in chat.messages if _has_content(m.content))
        self.logging.info("Re-vectorizing %d messages across %d chats", total, len(chats))

        processed = 0
        for chat in chats:
            for message in [m for m in chat.messages if _has_content(m.content)]:
                if _is_cancelled(cancel_event):
                    self.logging.info("Message re-vectorization cancelled after %d messages.", processed)
                    return processed
                message.embedding_vector = None
                await self._store_client.do_save_chat(chat)
                try:
                    if await self._embed_message_in_chat(chat, message):
                        processed += 1
                        if processed % PROGRESS_EVERY_MESSAGES == 0:
                            self.logging.info("Re-vectorized %d/%d messages", processed, total)
                except Exception as e:
                    message.embedding_vector = None
                    self.logging.error("Failed to re-vectorize message %d: %s", message.id, e)

        self.logging.info("Completed message re-vectorization. Processed %d messages", processed)
        return processed

    async def revectorize_all_segments(self, cancel_event: asyncio.Event | None = None) -> int:
        """Clear and recompute the vector of every segment with content.

        Returns:
            int: The number of segments that received a new vector.

        Raises:
            StoreError: If persisting the cleared state of a segment fails.
        """
        segments = [s for s in await self._store_client.do_get_all_chat_segments() if _has_content(s.combined_content)]
        self.logging.info("Re-vectorizing %d segments", len(segments))

        processed = 0
        for segment in segments:
            if _is_cancelled(cancel_event):
                self.logging.info("Segment re-vectorization cancelled after %d segments.", processed)
                break
            segment.embedding_vector = None
            await self._store_client.do_save_chat_segment(segment)
            try:
                if await self.update_segment_vector(segment.id):
                    processed += 1
                    if processed % PROGRESS_EVERY_SEGMENTS == 0:
                        self.logging.info("Re-vectorized %d segments...", processed)
            except Exception as e:
                self.logging.error("Failed to re-vectorize segment %d: %s", segment.id, e)

        self.logging.info("Completed segment re-vectorization. Processed %d segments", processed)
        return processed

    ##########################################
    ################# STATS ##################
    ##########################################

    async def get_vectorization_stats(self) -> VectorizationStats:
        """Count chats and messages with and without vectors."""
        chats = await self._store_client.do_get_all_chats()
        messages = [m for chat in chats for m in chat.messages]
        chats_with_vectors = sum(1 for c in chats if has_vector(c.embedding_vector))
        messages_with_vectors = sum(1 for m in messages if has_vector(m.embedding_vector))
        non_empty_messages = sum(1 for m in messages if _has_content(m.content))

        stats = VectorizationStats(
            total_chats=len(chats),
            chats_with_vectors=chats_with_vectors,
            chats_without_vectors=len(chats) - chats_with_vectors,
            total_messages=len(messages),
            non_empty_messages=non_empty_messages,
            messages_with_vectors=messages_with_vectors,
            messages_without_vectors=non_empty_messages - messages_with_vectors,
            chat_vectorization_percentage=_percentage(chats_with_vectors, len(chats)),
            message_vectorization_percentage=_percentage(messages_with_vectors, non_empty_messages),
        )
        self.logging.debug(
            "Vectorization stats: %d/%d chats, %d/%d messages",
            chats_with_vectors, len(chats), messages_with_vectors, non_empty_messages,
        )
        return stats

    async def get_segment_stats(self) -> SegmentVectorizationStats:
        """Count segments with and without vectors."""
        chats = await self._store_client.do_get_all_chats()
        segments = await self._store_client.do_get_all_chat_segments()
        with_vectors = sum(1 for s in segments if has_vector(s.embedding_vector))
        with_content = sum(1 for s in segments if _has_content(s.combined_content))

        return SegmentVectorizationStats(
            total_chats=len(chats),
            total_segments=len(segments),
            segments_with_content=with_content,
            segments_with_vectors=with_vectors,
            segments_without_vectors=with_content - with_vectors,
            vectorization_percentage=_percentage(with_vectors, with_content),
            average_segments_per_chat=len(segments) / len(chats) if chats else 0.0,
            average_messages_per_segment=sum(s.message_count for s in segments) / len(segments) if segments else 0.0,
        )

    async def get_vector_database_stats(self) -> VectorDatabaseStats:
        """Count stored vectors and estimate their float32 storage size.

        The dimension is taken from the first stored vector (chats, then
        messages, then segments), 0 if there is none.
        """
        self.logging.debug("Gathering vector database statistics...")
        chats = await self._store_client.do_get_all_chats()
        segments = await self._store_client.do_get_all_chat_segments()
        messages = [m for chat in chats for m in chat.messages]

        chat_vectors = [c.embedding_vector for c in chats if has_vector(c.embedding_vector)]
        message_vectors = [m.embedding_vector for m in messages if has_vector(m.embedding_vector)]
        segment_vectors = [s.embedding_vector for s in segments if has_vector(s.embedding_vector)]
        first_vector = next(iter(chat_vectors + message_vectors + segment_vectors), None)
        dimension = len(first_vector) if first_vector else 0

        bytes_per_vector = dimension * VECTOR_DTYPE.itemsize
        chat_bytes = len(chat_vectors) * bytes_per_vector
        message_bytes = len(message_vectors) * bytes_per_vector
        segment_bytes = len(segment_vectors) * bytes_per_vector

        return VectorDatabaseStats(
            total_chats=len(chats),
            chats_with_vectors=len(chat_vectors),
            total_messages=len(messages),
            messages_with_vectors=len(message_vectors),
            total_segments=len(segments),
            segments_with_vectors=len(segment_vectors),
            vector_dimension=dimension,
            estimated_chat_vector_storage_bytes=chat_bytes,
            estimated_message_vector_storage_bytes=message_bytes,
            estimated_segment_vector_storage_bytes=segment_bytes,
            total_estimated_storage_bytes=chat_bytes + message_bytes + segment_bytes,
            vector_search_enabled=self._store_client.is_vector_search_available(),
            last_calculated=datetime.now(),
        )

    ##########################################
    ############### FULL RUNS ################
    ##########################################

    async def vectorize_all_unprocessed(self, cancel_event: asyncio.Event | None = None) -> VectorizationResult:
        """Embed all chats, messages and segments that have no vector yet.

        Returns:
            VectorizationResult: The outcome. Failures are reported, never raised.
        """
        self.logging.info("Starting vectorization of all unprocessed content...")
        return await self._run_full(
            label="Vectorization",
            steps=(self.vectorize_unprocessed_chats, self.vectorize_unprocessed_messages, self.vectorize_unprocessed_segments),
            cancel_event=cancel_event,
            rebuild_index=False,
        )

    async def revectorize_all(self, cancel_event: asyncio.Event | None = None) -> VectorizationResult:
        """Clear and recompute every vector, e.g. after swapping the embedding model.

        Returns:
            VectorizationResult: The outcome. Failures are reported, never raised.
        """
        self.logging.info("Starting re-vectorization of all content...")
        return await self._run_full(
            label="Re-vectorization",
            steps=(self.revectorize_all_chats, self.revectorize_all_messages, self.revectorize_all_segments),
            cancel_event=cancel_event,
            rebuild_index=True,
        )

    async def _run_full(self, label: str, steps: tuple, cancel_event: asyncio.Event | None, rebuild_index: bool) -> VectorizationResult:
        start = time.monotonic()
        try:
            initial_stats = await self.get_vectorization_stats()
            chats_step, messages_step, segments_step = steps
            chats_processed = await chats_step(cancel_event=cancel_event)
            messages_processed = await messages_step(cancel_event=cancel_event)
            segments_processed = await segments_step(cancel_event=cancel_event)

            if rebuild_index and self._store_client.is_vector_search_available():
                await self._store_client.do_enable_vector_search()

            final_stats = await self.get_vectorization_stats()
        except Exception as e:
            self.logging.error("Error during %s: %s", label.lower(), e)
            return VectorizationResult(success=False, error_message=str(e), duration_seconds=0.0)

        result = VectorizationResult(
            success=True,
            chats_processed=chats_processed,
            messages_processed=messages_processed,
            segments_processed=segments_processed,
            initial_stats=initial_stats,
            final_stats=final_stats,
            duration_seconds=time.monotonic() - start,
        )
        self.logging.info("%s completed. %s", label, result.summary())
        return result
