"""
Tests for the in-memory store: message upserts and the one segment per day rule.
"""

from datetime import date, datetime

from shared.models.chat import ChatMessage, ChatSegment

from tests.helpers import make_chat

DAY = datetime(2024, 3, 1, 9)


def _segment(chat_id, content):
    return ChatSegment(
        chat_id=chat_id,
        segment_date=DAY.date(),
        message_count=1,
        start_time=DAY,
        end_time=DAY,
        combined_content=content,
        created_at=DAY,
    )


class TestMemoryStore:
    async def test_saving_a_stale_copy_keeps_newer_messages(self, store_client):
        chat = await make_chat(store_client, [(DAY, "a", True)])
        stale = await store_client.do_get_chat(chat.id)
        fresh = await store_client.do_get_chat(chat.id)

        fresh.messages.append(ChatMessage(content="b", timestamp=DAY.replace(hour=10), is_user=False))
        await store_client.do_save_chat(fresh)
        stale.title = "Renamed"
        await store_client.do_save_chat(stale)

        stored = await store_client.do_get_chat(chat.id)
        assert [m.content for m in stored.messages] == ["a", "b"]
        assert stored.title == "Renamed"

    async def test_existing_message_is_updated_in_place(self, store_client):
        chat = await make_chat(store_client, [(DAY, "a", True)])
        chat.messages[0].content = "edited"

        await store_client.do_save_chat(chat)

        stored = await store_client.do_get_chat(chat.id)
        assert [(m.id, m.content) for m in stored.messages] == [(chat.messages[0].id, "edited")]

    async def test_second_insert_for_the_same_day_updates_the_first(self, store_client):
        chat = await make_chat(store_client, [(DAY, "a", True)])
        first = _segment(chat.id, "first")
        second = _segment(chat.id, "second")

        await store_client.do_save_chat_segment(first)
        await store_client.do_save_chat_segment(second)

        segments = await store_client.do_get_segments_for_chat(chat.id)
        assert second.id == first.id
        assert [(s.segment_date, s.combined_content) for s in segments] == [(date(2024, 3, 1), "second")]
