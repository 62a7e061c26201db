"""Tests for the topic-viewing WebSocket session."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI, WebSocket
from fastapi.testclient import TestClient

from exam_prep.api.websocket import StudySession, handle_browser_websocket
from exam_prep.storage.documents import PROGRESS, USERS


@pytest.fixture
def ws_settings():
    settings = MagicMock()
    settings.tick_interval_seconds = 30.0
    return settings


def _sent(ws, msg_type):
    return [c.args[0] for c in ws.send_json.call_args_list if c.args[0]["type"] == msg_type]


async def _drain():
    for _ in range(5):
        await asyncio.sleep(0)


class TestStudySession:
    async def test_start_sends_progress_and_access(self, ws_settings, store, make_user):
        make_user(store)
        ws = AsyncMock()
        session = StudySession(ws_settings, ws, store, "alice", "t1")
        await session.start(program_id="pf")
        await _drain()

        progress = _sent(ws, "progress")
        assert progress[0]["progress"]["status"] == "in_progress"
        assert progress[0]["progress"]["program_id"] == "pf"
        assert len(_sent(ws, "access")) == 1
        assert session.timer.running
        assert store.get_document(PROGRESS, "alice_t1") is not None
        await session.stop()

    async def test_access_changes_are_pushed(self, ws_settings, store, make_user):
        make_user(store)
        ws = AsyncMock()
        session = StudySession(ws_settings, ws, store, "alice", "t1")
        await session.start()
        await _drain()

        store.set_document(USERS, "alice", {"subscription": {"status": "active"}}, merge=True)
        await _drain()
        assert _sent(ws, "access")[-1]["can_access_full_content"] is True

        store.set_document(USERS, "alice", {"subscription": {"status": "cancelled"}}, merge=True)
        await _drain()
        assert _sent(ws, "access")[-1]["can_access_full_content"] is False
        await session.stop()

    async def test_stop_cancels_timer_and_watch(self, ws_settings, store, make_user):
        make_user(store)
        ws = AsyncMock()
        session = StudySession(ws_settings, ws, store, "alice", "t1")
        await session.start()
        await session.stop()

        assert not session.timer.running
        assert not session.watcher.active
        count = len(_sent(ws, "access"))
        store.set_document(USERS, "alice", {"subscription": {"status": "active"}}, merge=True)
        await _drain()
        assert len(_sent(ws, "access")) == count

    async def test_complete_and_answer(self, ws_settings, store, make_user):
        make_user(store)
        ws = AsyncMock()
        session = StudySession(ws_settings, ws, store, "alice", "t1")
        await session.start()

        await session.answer(True, 12)
        assert _sent(ws, "stats")[-1]["stats"]["total_questions"] == 1

        await session.complete()
        assert _sent(ws, "progress")[-1]["progress"]["status"] == "completed"
        assert not session.timer.running
        await session.stop()

    async def test_send_failure_is_logged(self, ws_settings, store, make_user):
        make_user(store)
        ws = AsyncMock()
        ws.send_json.side_effect = RuntimeError("closed")
        session = StudySession(ws_settings, ws, store, "alice", "t1")
        await session.start()
        await session.stop()


def test_websocket_protocol(ws_settings, store, make_user):
    make_user(store)
    app = FastAPI()

    @app.websocket("/ws")
    async def endpoint(websocket: WebSocket):
        await handle_browser_websocket(websocket, ws_settings, store)

    with TestClient(app) as client, client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "complete"})
        assert ws.receive_json() == {"type": "error", "reason": "no_topic"}

        ws.send_json({"type": "view_topic", "uid": "alice", "topic_id": "t1", "program_id": "pf"})
        types = {ws.receive_json()["type"], ws.receive_json()["type"]}
        assert types == {"progress", "access"}

        ws.send_json({"type": "answer", "was_correct": True, "elapsed_seconds": 3})
        stats = None
        for _ in range(5):
            message = ws.receive_json()
            if message["type"] == "stats":
                stats = message["stats"]
                break
        assert stats["total_correct"] == 1

        ws.send_json({"type": "leave_topic"})
        ws.send_json({"type": "set_percent", "percent": 10})
        # An access push triggered by the answer may still be queued
        message = ws.receive_json()
        while message["type"] == "access":
            message = ws.receive_json()
        assert message == {"type": "error", "reason": "no_topic"}


def test_view_topic_missing_fields(ws_settings, store, make_user):
    make_user(store)
    app = FastAPI()

    @app.websocket("/ws")
    async def endpoint(websocket: WebSocket):
        await handle_browser_websocket(websocket, ws_settings, store)

    with TestClient(app) as client, client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "view_topic", "topic_id": "t1"})
        assert ws.receive_json() == {"type": "error", "reason": "missing_fields"}
        ws.send_json({"type": "view_topic", "uid": "alice"})
        assert ws.receive_json() == {"type": "error", "reason": "missing_fields"}

        # The connection is still usable
        ws.send_json({"type": "view_topic", "uid": "alice", "topic_id": "t1"})
        types = {ws.receive_json()["type"], ws.receive_json()["type"]}
        assert types == {"progress", "access"}
        assert store.get_document(PROGRESS, "alice_t1") is not None
