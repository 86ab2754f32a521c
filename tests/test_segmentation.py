"""
Tests for daily and thematic segmentation and the segment text rendering.
"""

from datetime import date, datetime, timedelta

import pytest

from services.chat_segments.SegmentService import ASSISTANT_LABEL, MAX_KEYWORDS, UNKNOWN_CONTACT_NAME
from shared.models.chat import ChatMessage, ChatSegment, Contact

from tests.helpers import make_chat

D1 = datetime(2024, 3, 1)
D2 = datetime(2024, 3, 2)


def _segment(messages):
    return ChatSegment(
        chat_id=1,
        segment_date=messages[0].timestamp.date(),
        messages=messages,
        message_count=len(messages),
        start_time=messages[0].timestamp,
        end_time=messages[-1].timestamp,
    )


class TestDailySegmentation:
    async def test_two_days_give_two_segments(self, store_client, segment_service):
        chat = await make_chat(
            store_client,
            [
                (D1.replace(hour=9), "Hallo", True),
                (D1.replace(hour=10), "Wie geht's?", False),
                (D1.replace(hour=11), "Gut danke", True),
                (D2.replace(hour=9), "Frage zu Rechnung", True),
                (D2.replace(hour=10), "Danke für die Antwort", False),
            ],
        )

        segments = await segment_service.create_daily_segments(chat.id)

        assert len(segments) == 2
        first, second = segments
        assert first.segment_date == D1.date()
        assert first.message_count == 3
        assert second.segment_date == D2.date()
        assert "Rechnung" in second.combined_content
        assert all(s.embedding_vector is not None for s in segments)

    async def test_segments_partition_non_empty_messages(self, store_client, segment_service):
        days = [D1, D2, D2 + timedelta(days=5)]
        messages = []
        for day_index, day in enumerate(days):
            for hour in range(day_index + 1):
                messages.append((day.replace(hour=8 + hour), f"Nachricht {day_index}-{hour}", hour % 2 == 0))
        messages.append((D1.replace(hour=20), "   ", True))
        chat = await make_chat(store_client, messages)

        segments = await segment_service.create_daily_segments(chat.id)

        assert [s.segment_date for s in segments] == [d.date() for d in days]
        seen = []
        for segment in segments:
            assert {m.timestamp.date() for m in segment.messages} == {segment.segment_date}
            assert segment.message_count == len(segment.messages)
            seen.extend(m.id for m in segment.messages)
        non_empty_ids = [m.id for m in (await store_client.do_get_chat(chat.id)).messages if m.content.strip()]
        assert sorted(seen) == sorted(non_empty_ids)

    async def test_repeated_run_reuses_segment_ids(self, store_client, segment_service):
        chat = await make_chat(store_client, [(D1.replace(hour=9), "Hallo", True), (D2.replace(hour=9), "Rechnung", True)])

        first_ids = [s.id for s in await segment_service.create_daily_segments(chat.id)]
        second_ids = [s.id for s in await segment_service.create_daily_segments(chat.id)]

        assert first_ids == second_ids
        assert len(await store_client.do_get_segments_for_chat(chat.id)) == 2

    async def test_day_without_messages_loses_its_segment(self, store_client, segment_service):
        chat = await make_chat(store_client, [(D1.replace(hour=9), "Hallo", True), (D2.replace(hour=9), "Rechnung", True)])
        await segment_service.create_daily_segments(chat.id)
        chat.messages[1].content = "   "
        await store_client.do_save_chat(chat)

        segments = await segment_service.create_daily_segments(chat.id)

        stored = await store_client.do_get_segments_for_chat(chat.id)
        assert [s.segment_date for s in segments] == [D1.date()]
        assert [s.segment_date for s in stored] == [D1.date()]

    async def test_missing_chat_gives_no_segments(self, segment_service):
        assert await segment_service.create_daily_segments(999) == []

    async def test_update_twice_same_day_keeps_one_segment(self, store_client, segment_service):
        now = datetime.now()
        chat = await make_chat(store_client, [(now, "Erste Nachricht heute", True)])
        await segment_service.update_segments_for_chat(chat.id)

        chat.messages.append(ChatMessage(content="Zweite Nachricht heute", timestamp=now + timedelta(seconds=1), is_user=False))
        await store_client.do_save_chat(chat)
        await segment_service.update_segments_for_chat(chat.id)

        segments = await store_client.do_get_segments_for_chat(chat.id)
        todays = [s for s in segments if s.segment_date == date.today()]
        assert len(todays) == 1
        assert todays[0].message_count == 2
        assert "Zweite Nachricht heute" in todays[0].combined_content

    async def test_all_chats_are_segmented(self, store_client, segment_service):
        await make_chat(store_client, [(D1.replace(hour=9), "Hallo", True)])
        await make_chat(store_client, [(D1.replace(hour=9), "Hallo", True), (D2.replace(hour=9), "Rechnung", True)])

        assert await segment_service.create_segments_for_all_chats() == 3

    async def test_get_segments_creates_missing_segments(self, store_client, segment_service):
        chat = await make_chat(store_client, [(D1.replace(hour=9), "Hallo", True)])

        segments = await segment_service.get_segments_for_chat(chat.id)

        assert len(segments) == 1
        assert len(await store_client.do_get_segments_for_chat(chat.id)) == 1


class TestSegmentContent:
    def test_user_messages_are_labelled_with_contact_name(self, segment_service):
        segment = _segment(
            [
                ChatMessage(content="Ich habe eine Frage", timestamp=D1.replace(hour=9), is_user=True),
                ChatMessage(content="Gerne, worum geht es?", timestamp=D1.replace(hour=10), is_user=False),
            ]
        )

        segment_service.generate_segment_content(segment, Contact(name="Anna", department="Billing"))

        assert segment.combined_content.splitlines() == [
            "Conversation with: Anna",
            "Department: Billing",
            "Date: 01.03.2024",
            "---",
            "[Anna]: Ich habe eine Frage",
            f"[{ASSISTANT_LABEL}]: Gerne, worum geht es?",
        ]
        assert segment.title == "Anna - 01.03.2024: Ich habe eine Frage"

    def test_missing_contact_uses_placeholder(self, segment_service):
        segment = _segment([ChatMessage(content="Hallo", timestamp=D1, is_user=True)])

        segment_service.generate_segment_content(segment, None)

        assert segment.combined_content.startswith(f"Conversation with: {UNKNOWN_CONTACT_NAME}\nDate: 01.03.2024")
        assert "Department" not in segment.combined_content

    def test_long_first_message_is_truncated_in_title(self, segment_service):
        text = "Eine sehr lange Nachricht, die deutlich mehr als vierzig Zeichen hat"
        segment = _segment([ChatMessage(content=text, timestamp=D1, is_user=True)])

        segment_service.generate_segment_content(segment, Contact(name="Anna"))

        assert segment.title == f"Anna - 01.03.2024: {text[:40]}..."

    def test_keywords_are_stripped_and_lowercased(self, segment_service):
        segment = _segment([ChatMessage(content="Frage zu Rechnung! Danke??? ... für die Antwort.", timestamp=D1, is_user=True)])

        segment_service.generate_segment_content(segment, Contact(name="Anna", department="Billing"))

        assert segment.keywords == "frage, rechnung, danke, antwort, anna, billing"

    def test_keywords_are_capped(self, segment_service):
        words = " ".join(f"wort{i:03d}" for i in range(100))
        segment = _segment([ChatMessage(content=words, timestamp=D1, is_user=True)])

        segment_service.generate_segment_content(segment, Contact(name="Anna"))

        assert len(segment.keywords.split(", ")) == MAX_KEYWORDS

    def test_empty_segment_is_left_untouched(self, segment_service):
        segment = ChatSegment(chat_id=1, segment_date=D1.date(), start_time=D1, end_time=D1)

        segment_service.generate_segment_content(segment, Contact(name="Anna"))

        assert segment.combined_content == ""
        assert segment.title == ""


class TestThematicSegmentation:
    async def test_groups_identical_topics_and_uses_most_common_date(self, store_client, segment_service):
        chat = await make_chat(
            store_client,
            [
                (D1.replace(hour=9), "Rechnung offen", True),
                (D1.replace(hour=10), "Urlaub planen", True),
                (D2.replace(hour=9), "Rechnung offen", False),
                (D2.replace(hour=10), "Rechnung offen", True),
            ],
        )

        segments = await segment_service.create_thematic_segments(chat.id, similarity_threshold=0.99)

        assert [s.message_count for s in segments] == [3, 1]
        invoice, holiday = segments
        assert invoice.segment_date == D2.date()
        assert invoice.start_time == D1.replace(hour=9)
        assert invoice.end_time == D2.replace(hour=10)
        assert holiday.segment_date == D1.date()
        assert "Urlaub planen" in holiday.combined_content

    async def test_thematic_segments_are_not_persisted(self, store_client, segment_service):
        chat = await make_chat(store_client, [(D1.replace(hour=9), "Hallo", True)])

        await segment_service.create_thematic_segments(chat.id)

        assert await store_client.do_get_segments_for_chat(chat.id) == []

    async def test_embedding_failure_propagates(self, store_client, segment_service, embed_client, monkeypatch):
        chat = await make_chat(store_client, [(D1.replace(hour=9), "Hallo", True)])

        async def broken(texts):
            raise RuntimeError("model crashed")

        monkeypatch.setattr(embed_client, "do_embed", broken)
        with pytest.raises(RuntimeError):
            await segment_service.create_thematic_segments(chat.id)
