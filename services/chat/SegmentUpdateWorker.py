import asyncio
from collections import deque

from services.chat_segments.SegmentService import SegmentService
from shared.helper.HelperConfig import HelperConfig

MAX_RECORDED_ERRORS = 100


class SegmentUpdateWorker:
    """Runs segment updates for new messages in the background.

    Jobs are processed one at a time, which serializes segment writers within
    the process. A failing job is logged and recorded in `errors`; it is never
    re-raised to the sender and never retried.
    """

    def __init__(self, helper_config: HelperConfig, segment_service: SegmentService) -> None:
        self.logging = helper_config.get_logger()
        self._segment_service = segment_service
        self._queue: asyncio.Queue[int] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self.errors: deque[tuple[int, Exception]] = deque(maxlen=MAX_RECORDED_ERRORS)

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the worker task on the running event loop."""
        if self.is_running():
            return
        self._task = asyncio.create_task(self._run(), name="segment-update-worker")
        self.logging.debug("Segment update worker started.")

    async def stop(self) -> None:
        """Finish all queued jobs, then stop the worker task."""
        if self._task is None:
            return
        if self.is_running():
            await self._queue.join()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.logging.debug("Segment update worker stopped.")

    def enqueue(self, chat_id: int) -> None:
        """Schedule a segment update for a chat and return immediately."""
        self._queue.put_nowait(chat_id)

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            chat_id = await self._queue.get()
            try:
                await self._segment_service.update_segments_for_chat(chat_id)
                self.logging.debug("Updated segments for chat %d after new message", chat_id)
            except Exception as e:
                self.errors.append((chat_id, e))
                self.logging.warning("Failed to update segments for chat %d: %s", chat_id, e)
            finally:
                self._queue.task_done()
