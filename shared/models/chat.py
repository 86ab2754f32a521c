"""Pydantic models for chats, messages, contacts and chat segments.

Hierarchy:
  Contact      - the non-user party of a chat (name/department feed segment content).
  ChatMessage  - a single message; back-references its chat by id only.
  Chat         - owns its ordered list of messages.
  ChatSegment  - a denormalized snapshot of a day's (or theme's) messages,
                 the unit that is embedded and retrieved.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field


class Contact(BaseModel):
    """A contact a chat is held with."""

    id: int = 0
    name: str
    department: str | None = None
    email: str | None = None
    phone: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)


class ChatMessage(BaseModel):
    """A single chat message.

    Attributes:
        id:               0 until the message has been persisted.
        chat_id:          Id of the owning chat (non-owning back-reference).
        content:          Message text; immutable after creation.
        timestamp:        Local time the message was sent or received.
        is_user:          True if the message was written by the user.
        embedding_vector: Cached embedding, None until computed.
    """

    id: int = 0
    chat_id: int = 0
    content: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)
    is_user: bool = False
    embedding_vector: list[float] | None = None


class Chat(BaseModel):
    """A chat with a contact. Owns its messages in insertion order."""

    id: int = 0
    title: str = ""
    created_at: datetime = Field(default_factory=datetime.now)
    contact_id: int | None = None
    is_active: bool = True
    embedding_vector: list[float] | None = None
    messages: list[ChatMessage] = []


class ChatSegment(BaseModel):
    """A time-bounded (daily) or theme-bounded bundle of chat messages.

    Segments are recomputed, never appended to. For a given (chat_id, segment_date)
    there is at most one daily segment in the store.

    Attributes:
        id:               0 until the segment has been persisted.
        chat_id:          Id of the chat the messages belong to.
        segment_date:     Calendar date the segment represents.
        messages:         Value copies of the member messages. Not persisted.
        message_count:    Number of member messages.
        start_time:       Earliest member timestamp.
        end_time:         Latest member timestamp.
        combined_content: Header plus one line per message; embedding input and lexical corpus.
        title:            "{name} - {dd.MM.yyyy}: {preview}".
        keywords:         Comma-joined keywords, at most 15.
        embedding_vector: Embedding of combined_content, None until computed.
        created_at:       When the segment was created or last recomputed.
    """

    id: int = 0
    chat_id: int
    segment_date: date
    messages: list[ChatMessage] = []
    message_count: int = 0
    start_time: datetime
    end_time: datetime
    combined_content: str = ""
    title: str = ""
    keywords: str = ""
    embedding_vector: list[float] | None = None
    created_at: datetime = Field(default_factory=datetime.now)
