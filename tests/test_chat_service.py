"""
Tests for the message-send path, the background segment worker and the
enriched segment search.
"""

import asyncio
from datetime import date, datetime
from unittest.mock import AsyncMock

import pytest

from services.chat.ChatService import ChatService
from services.chat.SegmentUpdateWorker import SegmentUpdateWorker
from shared.errors import ChatNotFoundError
from shared.models.chat import Contact

from tests.helpers import make_chat


@pytest.fixture
async def worker(helper_config, segment_service):
    worker = SegmentUpdateWorker(helper_config=helper_config, segment_service=segment_service)
    worker.start()
    yield worker
    await worker.stop()


@pytest.fixture
def chat_service(helper_config, store_client, embed_client, search_service, worker):
    return ChatService(
        helper_config=helper_config,
        store_client=store_client,
        embed_client=embed_client,
        search_service=search_service,
        worker=worker,
    )


class TestSegmentUpdateWorker:
    async def test_failing_job_does_not_stop_the_worker(self, helper_config):
        segment_service = AsyncMock()
        segment_service.update_segments_for_chat.side_effect = [RuntimeError("store down"), None]
        worker = SegmentUpdateWorker(helper_config=helper_config, segment_service=segment_service)
        worker.start()

        worker.enqueue(1)
        worker.enqueue(2)
        await worker.join()

        assert worker.is_running()
        assert [chat_id for chat_id, _ in worker.errors] == [1]
        assert str(worker.errors[0][1]) == "store down"
        assert segment_service.update_segments_for_chat.await_count == 2
        await worker.stop()
        assert not worker.is_running()

    async def test_stop_drains_pending_jobs(self, helper_config):
        segment_service = AsyncMock()
        worker = SegmentUpdateWorker(helper_config=helper_config, segment_service=segment_service)
        worker.start()

        for chat_id in range(5):
            worker.enqueue(chat_id)
        await worker.stop()

        assert segment_service.update_segments_for_chat.await_count == 5


class TestChatService:
    async def test_create_chat_persists_contact_and_greeting(self, store_client, chat_service):
        chat = await chat_service.create_chat(Contact(name="Anna", department="Billing"))

        stored = await store_client.do_get_chat(chat.id)
        assert stored.title == "Chat with Anna"
        assert stored.contact_id is not None
        assert await store_client.do_get_contact(stored.contact_id) is not None
        assert stored.embedding_vector is not None
        assert [m.is_user for m in stored.messages] == [False]
        assert "Billing" in stored.messages[0].content

    async def test_add_message_updates_todays_segment_in_background(self, store_client, chat_service, worker):
        chat = await chat_service.create_chat(Contact(name="Anna"))

        message = await chat_service.add_message(chat.id, "Frage zu Rechnung", is_user=True)
        await worker.join()

        assert message.id > 0
        assert message.embedding_vector is not None
        segments = await store_client.do_get_segments_for_chat(chat.id)
        assert [s.segment_date for s in segments] == [date.today()]
        assert "[Anna]: Frage zu Rechnung" in segments[0].combined_content

    async def test_concurrent_messages_are_all_kept(self, store_client, embed_client, chat_service, worker, monkeypatch):
        chat = await chat_service.create_chat(Contact(name="Anna"))
        embed = embed_client.embed

        async def slow_embed(text):
            # yield so the other senders load the chat before this one saves
            await asyncio.sleep(0)
            return await embed(text)

        monkeypatch.setattr(embed_client, "embed", slow_embed)

        sent = await asyncio.gather(*(chat_service.add_message(chat.id, f"msg {i}", is_user=True) for i in range(3)))
        await worker.join()

        stored = await store_client.do_get_chat(chat.id)
        assert len({m.id for m in sent}) == 3
        assert sorted(m.content for m in stored.messages[1:]) == ["msg 0", "msg 1", "msg 2"]

    async def test_add_message_to_missing_chat_raises(self, chat_service):
        with pytest.raises(ChatNotFoundError):
            await chat_service.add_message(999, "Hallo", is_user=True)

    async def test_segment_search_is_enriched(self, store_client, segment_service, chat_service):
        chat = await make_chat(store_client, [(datetime(2024, 3, 1, 9), "Frage zu Rechnung", True)])
        await segment_service.create_daily_segments(chat.id)

        results = await chat_service.search_chat_segments("Rechnung", limit=5)

        assert len(results) == 1
        assert results[0].chat.id == chat.id
        assert results[0].contact.name == "Anna"
        assert "Rechnung" in results[0].highlighted_snippet

    async def test_segment_search_in_chat(self, store_client, segment_service, chat_service):
        first = await make_chat(store_client, [(datetime(2024, 3, 1, 9), "Frage zu Rechnung", True)])
        second = await make_chat(store_client, [(datetime(2024, 3, 1, 9), "Frage zu Rechnung", True)])
        await segment_service.create_segments_for_all_chats()

        results = await chat_service.search_chat_segments_in_chat(second.id, "Rechnung")

        assert [r.segment.chat_id for r in results] == [second.id]
        assert first.id != second.id
