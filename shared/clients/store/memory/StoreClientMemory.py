from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import Chat, ChatSegment, Contact
from shared.models.config import EnvConfig


class StoreClientMemory(StoreClientInterface):
    """Dict-backed store. Keeps deep copies, never offers native vector search."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._chats: dict[int, Chat] = {}
        self._segments: dict[int, ChatSegment] = {}
        self._contacts: dict[int, Contact] = {}
        self._next_ids = {"chat": 1, "message": 1, "segment": 1, "contact": 1}

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Memory"

    def is_persistent(self) -> bool:
        return False

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return []

    def _next_id(self, kind: str) -> int:
        next_id = self._next_ids[kind]
        self._next_ids[kind] = next_id + 1
        return next_id

    async def do_healthcheck(self) -> bool:
        return True

    ##########################################
    ################ CHATS ###################
    ##########################################

    async def do_get_chat(self, chat_id: int) -> Chat | None:
        async with self._lock:
            chat = self._chats.get(chat_id)
            return chat.model_copy(deep=True) if chat else None

    async def do_get_all_chats(self) -> list[Chat]:
        async with self._lock:
            return [self._chats[chat_id].model_copy(deep=True) for chat_id in sorted(self._chats)]

    async def do_save_chat(self, chat: Chat) -> int:
        async with self._lock:
            if chat.id == 0:
                chat.id = self._next_id("chat")
            for message in chat.messages:
                if message.id == 0:
                    message.id = self._next_id("message")
                message.chat_id = chat.id

            # upsert by message id, messages missing from a stale copy stay stored
            previous = self._chats.get(chat.id)
            messages = {m.id: m for m in previous.messages} if previous else {}
            messages.update((m.id, m.model_copy(deep=True)) for m in chat.messages)

            stored = chat.model_copy(deep=True, update={"messages": []})
            stored.messages = sorted(messages.values(), key=lambda m: (m.timestamp, m.id))
            self._chats[chat.id] = stored
            return chat.id

    ##########################################
    ############### SEGMENTS #################
    ##########################################

    async def do_get_segments_for_chat(self, chat_id: int) -> list[ChatSegment]:
        async with self._lock:
            segments = [s for s in self._segments.values() if s.chat_id == chat_id]
            segments.sort(key=lambda s: (s.segment_date, s.id))
            return [s.model_copy(deep=True) for s in segments]

    async def do_save_chat_segment(self, segment: ChatSegment) -> int:
        async with self._lock:
            if segment.id == 0:
                # a second insert for the same day updates the first one
                same_day = next(
                    (s for s in self._segments.values() if (s.chat_id, s.segment_date) == (segment.chat_id, segment.segment_date)),
                    None,
                )
                segment.id = same_day.id if same_day else self._next_id("segment")
            self._segments[segment.id] = segment.model_copy(deep=True, update={"messages": []})
            return segment.id

    async def do_get_chat_segment(self, segment_id: int) -> ChatSegment | None:
        async with self._lock:
            segment = self._segments.get(segment_id)
            return segment.model_copy(deep=True) if segment else None

    async def do_delete_chat_segment(self, segment_id: int) -> bool:
        async with self._lock:
            return self._segments.pop(segment_id, None) is not None

    async def do_get_all_chat_segments(self) -> list[ChatSegment]:
        async with self._lock:
            return [self._segments[segment_id].model_copy(deep=True) for segment_id in sorted(self._segments)]

    ##########################################
    ############### CONTACTS #################
    ##########################################

    async def do_get_contact(self, contact_id: int) -> Contact | None:
        async with self._lock:
            contact = self._contacts.get(contact_id)
            return contact.model_copy(deep=True) if contact else None

    async def do_save_contact(self, contact: Contact) -> int:
        async with self._lock:
            if contact.id == 0:
                contact.id = self._next_id("contact")
            self._contacts[contact.id] = contact.model_copy(deep=True)
            return contact.id

    async def do_get_all_contacts(self) -> list[Contact]:
        async with self._lock:
            return [self._contacts[contact_id].model_copy(deep=True) for contact_id in sorted(self._contacts)]
