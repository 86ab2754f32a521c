import re

from services.chat_search.SearchService import SearchService
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import Chat
from shared.models.search import ChatSearchResult

VECTOR_WEIGHT = 0.7
TEXT_WEIGHT = 0.3
TITLE_MATCH_RELEVANCE = 0.5
MESSAGE_MATCH_RELEVANCE = 0.1
MAX_MESSAGE_RELEVANCE = 0.5
SNIPPET_CONTEXT_BEFORE = 50
ELLIPSIS = "..."


def _contains(text: str | None, query: str) -> bool:
    return bool(text) and query.lower() in text.lower()


def calculate_text_relevance(chat: Chat, query: str) -> float:
    """Lexical relevance of a chat in [0, 1].

    0.5 for a case-insensitive title match plus 0.1 per matching message,
    the message part capped at 0.5.
    """
    relevance = 0.0
    if _contains(chat.title, query):
        relevance += TITLE_MATCH_RELEVANCE
    matching_messages = sum(1 for m in chat.messages if _contains(m.content, query))
    if matching_messages > 0:
        relevance += min(MAX_MESSAGE_RELEVANCE, matching_messages * MESSAGE_MATCH_RELEVANCE)
    return min(1.0, relevance)


def create_highlighted_snippet(content: str, query: str, max_length: int = 200) -> str:
    """Cut a window of max_length characters around the first match of query.

    The window starts 50 characters before the match. If the match would not
    end inside the window, the window is moved forward until it does. An
    ellipsis marks each side where content was cut, so the result is at most
    max_length + 6 characters long.

    Args:
        content (str): The text to cut from.
        query (str): The text to look for, case-insensitive.
        max_length (int): Length of the window.

    Returns:
        str: The snippet; the head of the content if the query is empty or not found.
    """
    content = content or ""
    match = re.search(re.escape(query), content, re.IGNORECASE) if query else None
    if match is None:
        return content[:max_length] + ELLIPSIS if len(content) > max_length else content

    start = max(0, match.start() - SNIPPET_CONTEXT_BEFORE)
    if match.end() > start + max_length:
        start = max(0, min(match.start(), match.end() - max_length))
    end = min(len(content), start + max_length)

    snippet = content[start:end]
    if start > 0:
        snippet = ELLIPSIS + snippet
    if end < len(content):
        snippet = snippet + ELLIPSIS
    return snippet


class HybridRanker:
    """Ranks chats by a weighted sum of vector similarity and lexical relevance."""

    def __init__(
        self,
        helper_config: HelperConfig,
        store_client: StoreClientInterface,
        embed_client: EmbedClientInterface,
        search_service: SearchService,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store_client = store_client
        self._embed_client = embed_client
        self._search_service = search_service

    async def hybrid_search(self, query: str, limit: int = 10) -> list[ChatSearchResult]:
        """Merge vector and lexical chat matches into one ranking.

        A chat found by both searches appears once, with
        hybrid_score = 0.7 * vector_similarity + 0.3 * text_relevance.

        Args:
            query (str): The search text.
            limit (int): Maximum number of results; values <= 0 return [].

        Returns:
            list[ChatSearchResult]: Highest hybrid score first, [] on any failure.
        """
        if limit <= 0:
            return []
        self.logging.debug("Performing hybrid search for: '%s'", query)
        try:
            vector = await self._embed_client.embed(query)
            vector_matches = await self._search_service.find_similar_chats_by_vector(vector, limit * 2)
            all_chats = await self._store_client.do_get_all_chats()
        except Exception as e:
            self.logging.error("Error in hybrid search: %s", e)
            return []

        combined: dict[int, ChatSearchResult] = {}
        for match in vector_matches:
            similarity = self._embed_client.cosine_similarity(vector, match.chat.embedding_vector)
            combined[match.chat.id] = ChatSearchResult(
                chat=match.chat,
                vector_similarity=similarity,
                hybrid_score=similarity * VECTOR_WEIGHT,
            )

        if query:
            for chat in all_chats:
                if not (_contains(chat.title, query) or any(_contains(m.content, query) for m in chat.messages)):
                    continue
                relevance = calculate_text_relevance(chat, query)
                result = combined.get(chat.id)
                if result is None:
                    similarity = self._embed_client.cosine_similarity(vector, chat.embedding_vector)
                    result = ChatSearchResult(chat=chat, vector_similarity=similarity)
                    combined[chat.id] = result
                result.text_relevance = relevance
                result.hybrid_score = result.vector_similarity * VECTOR_WEIGHT + relevance * TEXT_WEIGHT

        results = sorted(combined.values(), key=lambda r: r.hybrid_score, reverse=True)[:limit]
        self.logging.debug("Hybrid search returned %d results", len(results))
        return results

    @staticmethod
    def create_highlighted_snippet(content: str, query: str, max_length: int = 200) -> str:
        return create_highlighted_snippet(content, query, max_length)
