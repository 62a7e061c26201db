"""Cancellable periodic tick while a topic is on screen."""

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from exam_prep.progress.tracker import ProgressTracker

logger = structlog.get_logger()

TickHandler = Callable[[int], Awaitable[None]]


class TopicTimer:
    """Calls ``tracker.tick(topic_id)`` every ``interval_seconds``.

    The timer lives exactly as long as the topic is being viewed: cancel it
    when the user navigates away. Tick failures are logged and never stop
    the loop.

    Args:
        tracker: Progress tracker of the viewing user.
        topic_id: Topic on screen.
        interval_seconds: Tick period.
        on_tick: Optional async callback receiving the minutes accrued.
    """

    def __init__(
        self,
        tracker: ProgressTracker,
        topic_id: str,
        interval_seconds: float = 30.0,
        on_tick: TickHandler | None = None,
    ):
        self.tracker = tracker
        self.topic_id = topic_id
        self.interval_seconds = interval_seconds
        self._on_tick = on_tick
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.debug("topic_timer_started", topic_id=self.topic_id)

    async def cancel(self) -> None:
        """Stop ticking and forget the tick anchor."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.debug("topic_timer_cancelled", topic_id=self.topic_id)
        self.tracker.stop_topic(self.topic_id)

    async def __aenter__(self) -> "TopicTimer":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.cancel()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                minutes = self.tracker.tick(self.topic_id)
            except Exception:
                logger.exception("topic_tick_error", topic_id=self.topic_id)
                continue
            if self._on_tick is not None:
                try:
                    await self._on_tick(minutes)
                except Exception:
                    logger.exception("topic_tick_handler_error", topic_id=self.topic_id)
