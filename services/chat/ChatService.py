"""Chat service.

The message-send path: creates chats, appends messages and hands the segment
update to the background worker so sending never waits for embeddings. Also
serves segment search results enriched with chat, contact and a snippet.
"""

from datetime import datetime

from services.chat.SegmentUpdateWorker import SegmentUpdateWorker
from services.chat_search.HybridRanker import create_highlighted_snippet
from services.chat_search.SearchService import SearchService
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.errors import ChatNotFoundError
from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import Chat, ChatMessage, Contact
from shared.models.search import ChatSegmentSearchResult, SegmentSimilarityResult


def _greeting(contact: Contact) -> str:
    if contact.department:
        return f"Hello, I am {contact.name} from {contact.department}. How can I help you?"
    return f"Hello, I am {contact.name}. How can I help you?"


class ChatService:
    def __init__(
        self,
        helper_config: HelperConfig,
        store_client: StoreClientInterface,
        embed_client: EmbedClientInterface,
        search_service: SearchService,
        worker: SegmentUpdateWorker,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store_client = store_client
        self._embed_client = embed_client
        self._search_service = search_service
        self._worker = worker

    ##########################################
    ############### SEND PATH ################
    ##########################################

    async def create_chat(self, contact: Contact) -> Chat:
        """Create and persist a chat with a greeting message from the contact.

        Args:
            contact (Contact): The contact. It is persisted first if it is new.

        Returns:
            Chat: The persisted chat.

        Raises:
            StoreError: If persisting fails.
        """
        self.logging.info("Creating new chat with contact: %s (ID: %d)", contact.name, contact.id)
        if contact.id == 0:
            await self._store_client.do_save_contact(contact)

        now = datetime.now()
        greeting = ChatMessage(content=_greeting(contact), timestamp=now, is_user=False)
        chat = Chat(title=f"Chat with {contact.name}", created_at=now, contact_id=contact.id, messages=[greeting])

        try:
            chat.embedding_vector = await self._embed_client.embed(f"{contact.name} {contact.department or ''} {greeting.content}")
        except Exception as e:
            self.logging.error("Error generating embedding for new chat: %s", e)

        await self._store_client.do_save_chat(chat)
        self.logging.info("Chat saved with ID: %d", chat.id)
        return chat

    async def add_message(self, chat_id: int, content: str, is_user: bool) -> ChatMessage:
        """Append a message to a chat and schedule the segment update.

        The segment update runs on the background worker; this method returns
        as soon as the message is persisted.

        Args:
            chat_id (int): The chat to append to.
            content (str): The message text.
            is_user (bool): True if the user wrote the message.

        Returns:
            ChatMessage: The persisted message.

        Raises:
            ChatNotFoundError: If the chat does not exist.
            StoreError: If persisting fails.
        """
        self.logging.debug("Adding message to chat %d: is_user=%s", chat_id, is_user)
        chat = await self._store_client.do_get_chat(chat_id)
        if chat is None:
            raise ChatNotFoundError(chat_id)

        message = ChatMessage(chat_id=chat_id, content=content, timestamp=datetime.now(), is_user=is_user)
        try:
            message.embedding_vector = await self._embed_client.embed(content)
        except Exception as e:
            self.logging.warning("Failed to generate embedding for message in chat %d: %s", chat_id, e)

        chat.messages.append(message)
        await self._store_client.do_save_chat(chat)
        self._worker.enqueue(chat_id)
        self.logging.info("Added message %d to chat %d", message.id, chat_id)
        return message

    ##########################################
    ############ SEGMENT SEARCH ##############
    ##########################################

    async def _enrich(self, results: list[SegmentSimilarityResult], query: str) -> list[ChatSegmentSearchResult]:
        enriched: list[ChatSegmentSearchResult] = []
        chats: dict[int, Chat | None] = {}
        for result in results:
            chat_id = result.segment.chat_id
            if chat_id not in chats:
                chats[chat_id] = await self._store_client.do_get_chat(chat_id)
            chat = chats[chat_id]
            contact = None
            if chat is not None and chat.contact_id is not None:
                contact = await self._store_client.do_get_contact(chat.contact_id)
            enriched.append(
                ChatSegmentSearchResult(
                    segment=result.segment,
                    similarity_score=result.similarity_score,
                    chat=chat,
                    contact=contact,
                    highlighted_snippet=create_highlighted_snippet(result.segment.combined_content, query),
                )
            )
        return enriched

    async def search_chat_segments(self, query: str, limit: int = 10) -> list[ChatSegmentSearchResult]:
        """Segment search across all chats with highlighted snippets.

        Returns:
            list[ChatSegmentSearchResult]: Best match first, [] on any failure.
        """
        self.logging.debug("Searching chat segments with query: %s", query)
        try:
            results = await self._enrich(await self._search_service.find_similar_segments(query, limit), query)
        except Exception as e:
            self.logging.error("Error searching chat segments: %s", e)
            return []
        self.logging.info("Found %d segment results for query: %s", len(results), query)
        return results

    async def search_chat_segments_in_chat(self, chat_id: int, query: str, limit: int = 5) -> list[ChatSegmentSearchResult]:
        """Segment search within one chat with highlighted snippets.

        Returns:
            list[ChatSegmentSearchResult]: Best match first, [] on any failure.
        """
        self.logging.debug("Searching segments in chat %d with query: %s", chat_id, query)
        try:
            results = await self._enrich(
                await self._search_service.find_similar_segments_in_chat(chat_id, query, limit), query
            )
        except Exception as e:
            self.logging.error("Error searching segments in chat %d: %s", chat_id, e)
            return []
        self.logging.info("Found %d segment results in chat %d for query: %s", len(results), chat_id, query)
        return results
