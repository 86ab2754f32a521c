"""Segmentation service.

Turns a chat's message stream into ChatSegments: one per calendar day
(persisted, upserted by date) or one per theme (greedy clustering over message
embeddings, not persisted). Each segment gets a deterministic text rendering
that feeds both the embedding and lexical search.
"""

import unicodedata
from datetime import date, datetime

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import Chat, ChatMessage, ChatSegment, Contact

UNKNOWN_CONTACT_NAME = "Unknown user"
ASSISTANT_LABEL = "AI assistant"
MAX_KEYWORDS = 15
MIN_KEYWORD_LENGTH = 4
KEYWORD_STRIP_CHARS = ".,!?;:"
TITLE_PREVIEW_LENGTH = 40
PROGRESS_EVERY_SEGMENTS = 50


def _is_all_punctuation(token: str) -> bool:
    return all(unicodedata.category(char).startswith("P") for char in token)


def _extract_keywords(messages: list[ChatMessage], name: str, department: str) -> list[str]:
    """Collect lowercase keywords in first-seen order, name and department last.

    Args:
        messages (list[ChatMessage]): Messages ordered by timestamp.
        name (str): Display name of the contact.
        department (str): Department of the contact, may be empty.

    Returns:
        list[str]: At most MAX_KEYWORDS unique keywords.
    """
    # dict keeps insertion order, used as an ordered set
    keywords: dict[str, None] = {}
    for message in messages:
        for token in message.content.split():
            if len(token) < MIN_KEYWORD_LENGTH or _is_all_punctuation(token):
                continue
            word = token.strip(KEYWORD_STRIP_CHARS).lower()
            if word:
                keywords.setdefault(word, None)
    if name:
        keywords.setdefault(name.lower(), None)
    if department:
        keywords.setdefault(department.lower(), None)
    return list(keywords)[:MAX_KEYWORDS]


def _mode_date(messages: list[ChatMessage]) -> date:
    """Most common calendar date among the messages; ties go to the first date seen."""
    counts: dict[date, int] = {}
    for message in messages:
        day = message.timestamp.date()
        counts[day] = counts.get(day, 0) + 1
    best_day, best_count = None, 0
    for day, count in counts.items():
        if count > best_count:
            best_day, best_count = day, count
    return best_day


def _non_empty_messages(chat: Chat) -> list[ChatMessage]:
    messages = [m for m in chat.messages if m.content and m.content.strip()]
    messages.sort(key=lambda m: m.timestamp)
    return messages


class SegmentService:
    """Builds, updates and persists chat segments."""

    def __init__(
        self,
        helper_config: HelperConfig,
        store_client: StoreClientInterface,
        embed_client: EmbedClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store_client = store_client
        self._embed_client = embed_client
        self._thematic_threshold = helper_config.get_similarity_val("SEGMENT_THEMATIC_THRESHOLD", default=0.7)

    ##########################################
    ############ CONTENT SYNTHESIS ###########
    ##########################################

    def generate_segment_content(self, segment: ChatSegment, contact: Contact | None) -> None:
        """Fill combined_content, keywords and title of a segment from its messages.

        Messages written by the user are labelled with the contact's name and
        all other messages with the assistant label.

        Args:
            segment (ChatSegment): The segment, changed in place. Nothing happens if it has no messages.
            contact (Contact | None): The non-user party of the chat.
        """
        if not segment.messages:
            return

        name = contact.name if contact and contact.name else UNKNOWN_CONTACT_NAME
        department = contact.department if contact and contact.department else ""
        formatted_date = segment.segment_date.strftime("%d.%m.%Y")
        messages = sorted(segment.messages, key=lambda m: m.timestamp)

        lines = [f"Conversation with: {name}"]
        if department:
            lines.append(f"Department: {department}")
        lines.append(f"Date: {formatted_date}")
        lines.append("---")
        for message in messages:
            speaker = name if message.is_user else ASSISTANT_LABEL
            lines.append(f"[{speaker}]: {message.content}")

        segment.combined_content = "\n".join(lines).strip()
        segment.keywords = ", ".join(_extract_keywords(messages, name, department))

        first_content = messages[0].content
        preview = first_content[:TITLE_PREVIEW_LENGTH] + "..." if len(first_content) > TITLE_PREVIEW_LENGTH else first_content
        segment.title = f"{name} - {formatted_date}: {preview}"

    async def _resolve_contact(self, chat: Chat) -> Contact | None:
        if chat.contact_id is None:
            return None
        contact = await self._store_client.do_get_contact(chat.contact_id)
        if contact is None:
            self.logging.warning("Contact %d of chat %d not found.", chat.contact_id, chat.id)
        return contact

    async def _embed_segment(self, segment: ChatSegment) -> None:
        """Embed combined_content. A failure is logged and leaves the segment without a vector."""
        if not segment.combined_content:
            return
        try:
            segment.embedding_vector = await self._embed_client.embed(segment.combined_content)
        except Exception as e:
            segment.embedding_vector = None
            self.logging.error("Embedding failed for segment of chat %d (%s): %s", segment.chat_id, segment.segment_date, e)

    def _build_segment(self, chat_id: int, segment_date: date, messages: list[ChatMessage]) -> ChatSegment:
        return ChatSegment(
            chat_id=chat_id,
            segment_date=segment_date,
            messages=[m.model_copy(deep=True) for m in messages],
            message_count=len(messages),
            start_time=min(m.timestamp for m in messages),
            end_time=max(m.timestamp for m in messages),
            created_at=datetime.now(),
        )

    ##########################################
    ########### DAILY SEGMENTATION ###########
    ##########################################

    async def create_daily_segments(self, chat_id: int) -> list[ChatSegment]:
        """Create and persist one segment per calendar day of the chat.

        An existing segment for the same day is overwritten under its id, so at
        most one daily segment per (chat_id, date) exists afterwards. Segments
        for days that no longer have any non-empty message are deleted.

        Args:
            chat_id (int): The chat to segment.

        Returns:
            list[ChatSegment]: The segments in ascending date order, [] if the chat does not exist.

        Raises:
            StoreError: If persisting a segment fails.
        """
        self.logging.debug("Creating daily segments for chat %d", chat_id)
        chat = await self._store_client.do_get_chat(chat_id)
        if chat is None:
            self.logging.warning("Chat %d not found.", chat_id)
            return []

        contact = await self._resolve_contact(chat)
        existing = await self._store_client.do_get_segments_for_chat(chat_id)
        existing_ids = {s.segment_date: s.id for s in existing}

        messages_by_date: dict[date, list[ChatMessage]] = {}
        for message in _non_empty_messages(chat):
            messages_by_date.setdefault(message.timestamp.date(), []).append(message)

        segments: list[ChatSegment] = []
        for segment_date in sorted(messages_by_date):
            segment = self._build_segment(chat_id, segment_date, messages_by_date[segment_date])
            segment.id = existing_ids.get(segment_date, 0)
            self.generate_segment_content(segment, contact)
            await self._embed_segment(segment)
            await self._store_client.do_save_chat_segment(segment)
            segments.append(segment)
            self.logging.debug(
                "Saved segment %d for %s with %d messages.", segment.id, segment_date, segment.message_count
            )

        # days that no longer have messages
        for stale in existing:
            if stale.segment_date not in messages_by_date:
                await self._store_client.do_delete_chat_segment(stale.id)
                self.logging.debug("Deleted segment %d for %s, the day has no messages left.", stale.id, stale.segment_date)

        self.logging.info("Created %d daily segments for chat %d", len(segments), chat_id)
        return segments

    async def update_segments_for_chat(self, chat_id: int) -> None:
        """Re-synthesize today's segment of a chat from scratch.

        Called after every new message. Today's segment is overwritten under the
        same id, or inserted if the day has no segment yet.

        Args:
            chat_id (int): The chat whose segment to update.

        Raises:
            StoreError: If persisting the segment fails.
        """
        self.logging.debug("Updating segments for chat %d", chat_id)
        chat = await self._store_client.do_get_chat(chat_id)
        if chat is None:
            self.logging.warning("Chat %d not found for segment update.", chat_id)
            return

        today = date.today()
        todays_messages = [m for m in _non_empty_messages(chat) if m.timestamp.date() == today]
        if not todays_messages:
            self.logging.debug("No messages found for today in chat %d", chat_id)
            return

        existing = await self._store_client.do_get_segments_for_chat(chat_id)
        todays_segment = next((s for s in existing if s.segment_date == today), None)

        segment = self._build_segment(chat_id, today, todays_messages)
        if todays_segment is not None:
            segment.id = todays_segment.id
            self.logging.debug("Updating existing segment %d for %s in chat %d", segment.id, today, chat_id)
        else:
            self.logging.debug("Creating new segment for %s in chat %d", today, chat_id)

        self.generate_segment_content(segment, await self._resolve_contact(chat))
        await self._embed_segment(segment)
        await self._store_client.do_save_chat_segment(segment)
        self.logging.info("Updated segment %d of chat %d (%d messages).", segment.id, chat_id, segment.message_count)

    async def create_segments_for_all_chats(self) -> int:
        """Run daily segmentation for every chat. A failing chat is logged and skipped.

        Returns:
            int: The number of segments created or updated.
        """
        self.logging.info("Creating segments for all chats...")
        chats = await self._store_client.do_get_all_chats()
        total = 0
        for chat in chats:
            try:
                created = len(await self.create_daily_segments(chat.id))
            except Exception as e:
                self.logging.error("Failed to create segments for chat %d: %s", chat.id, e)
                continue
            if (total + created) // PROGRESS_EVERY_SEGMENTS > total // PROGRESS_EVERY_SEGMENTS:
                self.logging.info("Created %d segments so far...", total + created)
            total += created

        self.logging.info("Completed segment creation. Created %d segments for %d chats", total, len(chats))
        return total

    async def get_segments_for_chat(self, chat_id: int) -> list[ChatSegment]:
        """Load the segments of a chat, creating daily segments if there are none.

        Returns:
            list[ChatSegment]: The segments, [] on any failure.
        """
        try:
            segments = await self._store_client.do_get_segments_for_chat(chat_id)
            if segments:
                self.logging.debug("Loaded %d segments for chat %d", len(segments), chat_id)
                return segments
            self.logging.info("No segments found for chat %d, creating new segments", chat_id)
            return await self.create_daily_segments(chat_id)
        except Exception as e:
            self.logging.error("Error getting segments for chat %d: %s", chat_id, e)
            return []

    ##########################################
    ######### THEMATIC SEGMENTATION ##########
    ##########################################

    async def create_thematic_segments(self, chat_id: int, similarity_threshold: float | None = None) -> list[ChatSegment]:
        """Group the messages of a chat by greedy similarity clustering.

        Messages are visited in timestamp order. Each message that is not yet
        assigned seeds a new segment, which claims every other unassigned
        message whose similarity to the seed reaches the threshold. A message
        close to several seeds belongs to the first seed that claims it, so the
        result depends on message order.

        The segments are not persisted.

        Args:
            chat_id (int): The chat to segment.
            similarity_threshold (float | None): Minimum cosine similarity to the seed.
                Defaults to SEGMENT_THEMATIC_THRESHOLD.

        Returns:
            list[ChatSegment]: The thematic segments in seed order.

        Raises:
            Exception: If embedding the messages fails.
        """
        threshold = self._thematic_threshold if similarity_threshold is None else similarity_threshold
        self.logging.debug("Creating thematic segments for chat %d with threshold %.2f", chat_id, threshold)

        chat = await self._store_client.do_get_chat(chat_id)
        if chat is None:
            self.logging.warning("Chat %d not found.", chat_id)
            return []
        messages = _non_empty_messages(chat)
        if not messages:
            return []

        vectors = await self._embed_client.do_embed([m.content for m in messages])
        contact = await self._resolve_contact(chat)
        used = [False] * len(messages)
        segments: list[ChatSegment] = []

        for seed_index, seed in enumerate(messages):
            if used[seed_index]:
                continue
            used[seed_index] = True
            members = [seed]
            start_time = end_time = seed.timestamp

            for other_index, other in enumerate(messages):
                if used[other_index]:
                    continue
                similarity = self._embed_client.cosine_similarity(vectors[seed_index], vectors[other_index])
                if similarity >= threshold:
                    members.append(other)
                    used[other_index] = True
                    start_time = min(start_time, other.timestamp)
                    end_time = max(end_time, other.timestamp)

            segment = ChatSegment(
                chat_id=chat_id,
                segment_date=_mode_date(members),
                messages=[m.model_copy(deep=True) for m in members],
                message_count=len(members),
                start_time=start_time,
                end_time=end_time,
                created_at=datetime.now(),
            )
            self.generate_segment_content(segment, contact)
            await self._embed_segment(segment)
            segments.append(segment)

        self.logging.info("Created %d thematic segments for chat %d", len(segments), chat_id)
        return segments
