"""Browser WebSocket handler: one topic-viewing session at a time.

While a topic is on screen the server ticks its progress, pushes access
changes as they happen and accepts completion/answer messages. Leaving the
topic or disconnecting cancels both the timer and the entitlement watch.
"""

import asyncio

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from exam_prep.access.watcher import EntitlementWatcher
from exam_prep.config import Settings
from exam_prep.models.access import AccessDecision
from exam_prep.progress.timer import TopicTimer
from exam_prep.progress.tracker import ProgressTracker
from exam_prep.storage.documents import DocumentStore

logger = structlog.get_logger()


class StudySession:
    """A user viewing one topic.

    Args:
        settings: Application settings.
        browser_ws: WebSocket connection to the browser.
        store: Document store.
        uid: Viewing user.
        topic_id: Topic on screen.
    """

    def __init__(
        self,
        settings: Settings,
        browser_ws: WebSocket,
        store: DocumentStore,
        uid: str,
        topic_id: str,
    ):
        self.settings = settings
        self.browser_ws = browser_ws
        self.uid = uid
        self.topic_id = topic_id
        self.tracker = ProgressTracker(store, uid)
        self.timer = TopicTimer(
            self.tracker,
            topic_id,
            interval_seconds=settings.tick_interval_seconds,
            on_tick=self._on_tick,
        )
        self.watcher = EntitlementWatcher(store, uid, on_change=self._on_access_change)
        self._access_queue: asyncio.Queue[AccessDecision] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: list[asyncio.Task] = []

    async def start(self, program_id: str = "", level: str = "", role_id: str = "", title: str | None = None) -> None:
        self._loop = asyncio.get_running_loop()
        logger.info("study_session_starting", uid=self.uid, topic_id=self.topic_id)
        self._tasks = [asyncio.create_task(self._access_send_loop())]
        self.watcher.start()
        record = self.tracker.start_topic(
            self.topic_id, program_id=program_id, level=level, role_id=role_id, title=title
        )
        self.timer.start()
        await self._send_progress(record.model_dump(mode="json"))

    async def stop(self) -> None:
        """Cancel the tick timer and the entitlement watch."""
        logger.info("study_session_stopping", uid=self.uid, topic_id=self.topic_id)
        await self.timer.cancel()
        self.watcher.cancel()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    async def complete(self) -> None:
        record = self.tracker.mark_complete(self.topic_id)
        await self.timer.cancel()
        await self._send_progress(record.model_dump(mode="json"))

    async def set_percent(self, percent: int) -> None:
        record = self.tracker.set_percent(self.topic_id, percent)
        await self._send_progress(record.model_dump(mode="json"))

    async def answer(self, was_correct: bool, elapsed_seconds: float) -> None:
        stats = self.tracker.record_answer(self.topic_id, was_correct, elapsed_seconds)
        await self._send_to_browser({"type": "stats", "stats": stats.model_dump(mode="json")})

    def _on_access_change(self, decision: AccessDecision) -> None:
        # Store listeners may fire from any thread
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._access_queue.put_nowait, decision)

    async def _access_send_loop(self) -> None:
        while True:
            decision = await self._access_queue.get()
            await self._send_to_browser({"type": "access", **decision.model_dump(mode="json")})

    async def _on_tick(self, minutes: int) -> None:
        if minutes:
            record = self.tracker.get(self.topic_id)
            if record is not None:
                await self._send_progress(record.model_dump(mode="json"))

    async def _send_progress(self, progress: dict) -> None:
        warnings, self.tracker.warnings = self.tracker.warnings, []
        await self._send_to_browser({"type": "progress", "progress": progress, "warnings": warnings})

    async def _send_to_browser(self, data: dict) -> None:
        """Send a message to the browser WebSocket."""
        try:
            await self.browser_ws.send_json(data)
        except Exception:
            logger.warning("browser_send_failed")


async def handle_browser_websocket(
    websocket: WebSocket, settings: Settings, store: DocumentStore
) -> None:
    """Handle a browser WebSocket connection."""
    await websocket.accept()
    session: StudySession | None = None

    try:
        while True:
            data = await websocket.receive_json()
            msg_type = data.get("type", "")

            if msg_type == "view_topic":
                uid, topic_id = data.get("uid"), data.get("topic_id")
                if not uid or not topic_id:
                    await websocket.send_json({"type": "error", "reason": "missing_fields"})
                    continue
                if session:
                    await session.stop()
                session = StudySession(settings, websocket, store, uid, topic_id)
                await session.start(
                    program_id=data.get("program_id", ""),
                    level=data.get("level", ""),
                    role_id=data.get("role_id", ""),
                    title=data.get("title"),
                )

            elif msg_type == "leave_topic":
                if session:
                    await session.stop()
                    session = None

            elif session is None:
                await websocket.send_json({"type": "error", "reason": "no_topic"})

            elif msg_type == "complete":
                await session.complete()

            elif msg_type == "set_percent":
                await session.set_percent(int(data.get("percent", 0)))

            elif msg_type == "answer":
                await session.answer(bool(data.get("was_correct")), float(data.get("elapsed_seconds", 0)))

    except WebSocketDisconnect:
        logger.info("browser_disconnected")
    except Exception:
        logger.exception("websocket_handler_error")
    finally:
        if session:
            try:
                await session.stop()
            except Exception:
                logger.exception("study_session_stop_error")
