import asyncio
from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.errors import VectorSearchUnavailableError
from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import Chat, ChatMessage, ChatSegment, Contact

# entity kinds that can be searched natively
VECTOR_KINDS = ("chat", "message", "segment")


class StoreClientInterface(ClientInterface):
    """Persistence for chats, messages, contacts and chat segments.

    Saving assigns ids to new entities (id == 0) in place, so callers can keep
    working with the object they passed in. Reads always return copies; a
    mutation of a returned object has no effect until it is saved again.
    Persisted segments do not keep their message list.

    Native vector search is an optional capability. Engines that support it
    override _do_enable_vector_search() and _do_native_vector_search().
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._lock = asyncio.Lock()
        self._vector_search_available = False

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "store"
        """
        return "store"

    def is_persistent(self) -> bool:
        """
        Returns:
            bool: True if the data outlives the process. E.g. False for the memory engine.
        """
        return True

    ##########################################
    ############# VECTOR SEARCH ##############
    ##########################################

    def is_vector_search_available(self) -> bool:
        """
        Returns:
            bool: True if do_vector_search() can currently be used.
        """
        return self._vector_search_available

    def disable_vector_search(self) -> None:
        """Mark native vector search as unavailable for the rest of the session."""
        if self._vector_search_available:
            self.logging.warning("Native vector search disabled for store engine '%s'.", self.get_engine_name())
        self._vector_search_available = False

    async def do_enable_vector_search(self) -> bool:
        """Try to (re)enable native vector search.

        Returns:
            bool: True if native vector search is available afterwards.
        """
        self._vector_search_available = await self._do_enable_vector_search()
        return self._vector_search_available

    async def _do_enable_vector_search(self) -> bool:
        """
        Engine hook for do_enable_vector_search(). Engines without native search keep the default.

        Returns:
            bool: True if the engine could enable native vector search.
        """
        return False

    async def do_vector_search(self, kind: str, vector: list[float], limit: int) -> list[int]:
        """Nearest-neighbour query against the native index.

        Args:
            kind (str): One of "chat", "message" or "segment".
            vector (list[float]): The query vector.
            limit (int): Maximum number of ids to return.

        Returns:
            list[int]: Entity ids, nearest first.

        Raises:
            ValueError: If kind is unknown.
            VectorSearchUnavailableError: If native search is not available.
            Exception: Any engine failure while running the query.
        """
        if kind not in VECTOR_KINDS:
            raise ValueError(f"Unknown vector kind '{kind}'. Supported: {VECTOR_KINDS}")
        if not self._vector_search_available:
            raise VectorSearchUnavailableError(
                f"Native vector search is not available for store engine '{self.get_engine_name()}'."
            )
        return await self._do_native_vector_search(kind=kind, vector=vector, limit=limit)

    async def _do_native_vector_search(self, kind: str, vector: list[float], limit: int) -> list[int]:
        """
        Engine hook for do_vector_search().

        Raises:
            VectorSearchUnavailableError: Engines without native search keep the default.
        """
        raise VectorSearchUnavailableError(
            f"Store engine '{self.get_engine_name()}' has no native vector search."
        )

    ##########################################
    ################ CHATS ###################
    ##########################################

    @abstractmethod
    async def do_get_chat(self, chat_id: int) -> Chat | None:
        """
        Loads a chat with its messages ordered by timestamp.

        Returns:
            Chat | None: The chat, or None if it does not exist.
        """
        pass

    @abstractmethod
    async def do_get_all_chats(self) -> list[Chat]:
        """
        Loads all chats with their messages.

        Returns:
            list[Chat]: All chats, ordered by id.
        """
        pass

    @abstractmethod
    async def do_save_chat(self, chat: Chat) -> int:
        """
        Inserts the chat if its id is 0, updates it otherwise. Messages with id 0
        are inserted, all others updated.

        Args:
            chat (Chat): The chat. Ids of new chat and messages are set in place.

        Returns:
            int: The id of the chat.

        Raises:
            StoreError: If the write fails.
        """
        pass

    async def do_get_message(self, message_id: int) -> ChatMessage | None:
        """
        Looks up a single message across all chats.

        Returns:
            ChatMessage | None: The message, or None if it does not exist.
        """
        for chat in await self.do_get_all_chats():
            for message in chat.messages:
                if message.id == message_id:
                    return message
        return None

    ##########################################
    ############### SEGMENTS #################
    ##########################################

    @abstractmethod
    async def do_get_segments_for_chat(self, chat_id: int) -> list[ChatSegment]:
        """
        Returns:
            list[ChatSegment]: All segments of the chat, ordered by segment date.
        """
        pass

    @abstractmethod
    async def do_save_chat_segment(self, segment: ChatSegment) -> int:
        """
        Inserts the segment if its id is 0, updates it otherwise. An insert for a
        (chat_id, segment_date) that already has a segment updates that segment,
        so concurrent writers never leave two segments for one day.

        Args:
            segment (ChatSegment): The segment. The id of a new segment is set in place.

        Returns:
            int: The id of the segment.

        Raises:
            StoreError: If the write fails.
        """
        pass

    @abstractmethod
    async def do_get_chat_segment(self, segment_id: int) -> ChatSegment | None:
        """
        Returns:
            ChatSegment | None: The segment, or None if it does not exist.
        """
        pass

    @abstractmethod
    async def do_delete_chat_segment(self, segment_id: int) -> bool:
        """
        Returns:
            bool: True if a segment was deleted.

        Raises:
            StoreError: If the write fails.
        """
        pass

    @abstractmethod
    async def do_get_all_chat_segments(self) -> list[ChatSegment]:
        """
        Returns:
            list[ChatSegment]: All segments, ordered by id.
        """
        pass

    ##########################################
    ############### CONTACTS #################
    ##########################################

    @abstractmethod
    async def do_get_contact(self, contact_id: int) -> Contact | None:
        """
        Returns:
            Contact | None: The contact, or None if it does not exist.
        """
        pass

    @abstractmethod
    async def do_save_contact(self, contact: Contact) -> int:
        """
        Inserts the contact if its id is 0, updates it otherwise.

        Returns:
            int: The id of the contact.

        Raises:
            StoreError: If the write fails.
        """
        pass

    @abstractmethod
    async def do_get_all_contacts(self) -> list[Contact]:
        """
        Returns:
            list[Contact]: All contacts, ordered by id.
        """
        pass
