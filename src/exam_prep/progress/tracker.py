"""Per-topic study progress: start, time accrual, completion, answers, streaks."""

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

import structlog

from exam_prep.errors import NotFoundError
from exam_prep.models.progress import (
    AnswerTally,
    ProgressRecord,
    ProgressStatus,
    ProgressSummary,
    progress_doc_id,
)
from exam_prep.models.user import Stats, utc_now
from exam_prep.progress.anchors import TickAnchors
from exam_prep.progress.streak import next_streak
from exam_prep.progress.summary import summarize
from exam_prep.storage.documents import ANSWERS, PROGRESS, USERS, DocumentStore, Increment
from exam_prep.storage.writes import try_write

logger = structlog.get_logger()


def whole_minutes(start: datetime, end: datetime) -> int:
    """Elapsed whole minutes (floor); never negative."""
    seconds = (end - start).total_seconds()
    return int(seconds // 60) if seconds > 0 else 0


class ProgressTracker:
    """Tracks one user's progress through topics.

    Each topic moves ``not_started -> in_progress -> completed``. While a
    topic is in progress, ``tick`` accrues the whole minutes elapsed since the
    tick anchor and advances the anchor by exactly that amount, so partial
    minutes carry over and a replayed tick accrues nothing. Completed topics
    stay completed (no accrual) until ``reopen_topic`` is called.

    Every transition starts from the stored record and writes back only the
    fields it changes. Minutes and stats counters are written as increments,
    so trackers for the same user never move a counter backwards.

    Writes are retried once; a second failure keeps the in-memory state and
    is reported through ``warnings`` rather than raised. Minutes that could
    not be saved ride along with the next successful write.

    Args:
        store: Document store holding users, progress and answers.
        user_id: The studying user.
        clock: Source of the current time.
        anchors: Tick anchors; pass a shared instance when trackers are
            rebuilt per request.
    """

    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        clock: Callable[[], datetime] = utc_now,
        anchors: TickAnchors | None = None,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self._clock = clock
        self.anchors = anchors if anchors is not None else TickAnchors()
        # Records whose first write never reached the store
        self._unsaved: dict[str, ProgressRecord] = {}
        # Accrued minutes whose increment write failed
        self._unsaved_minutes: dict[str, int] = {}
        self.warnings: list[str] = []

    # -- reads ----------------------------------------------------------

    def get(self, topic_id: str) -> ProgressRecord | None:
        """Current record for a topic, read from the store."""
        data = self.store.get_document(PROGRESS, progress_doc_id(self.user_id, topic_id))
        if data is None:
            return self._unsaved.get(topic_id)

        local = self._unsaved.pop(topic_id, None)
        if local is not None:
            # Someone else created the record; our minutes become pending
            pending = self._unsaved_minutes.get(topic_id, 0) + local.minutes_spent
            self._unsaved_minutes[topic_id] = pending
        record = ProgressRecord.model_validate(data)
        record.minutes_spent += self._unsaved_minutes.get(topic_id, 0)
        return record

    def stats(self) -> Stats:
        data = self.store.get_document(USERS, self.user_id)
        if data is None:
            raise NotFoundError("user", self.user_id)
        return Stats.model_validate(data.get("stats") or {})

    def answer_tally(self, topic_id: str) -> AnswerTally | None:
        data = self.store.get_document(ANSWERS, progress_doc_id(self.user_id, topic_id))
        return AnswerTally.model_validate(data) if data is not None else None

    def summary(self) -> ProgressSummary:
        records: dict[str, ProgressRecord] = {}
        for snap in self.store.list_documents(PROGRESS, {"user_id": self.user_id}):
            record = ProgressRecord.model_validate(snap.data)
            record.minutes_spent += self._unsaved_minutes.get(record.topic_id, 0)
            records[record.topic_id] = record
        for topic_id, record in self._unsaved.items():
            records.setdefault(topic_id, record)
        return summarize(records.values(), self.stats())

    # -- transitions ----------------------------------------------------

    def start_topic(
        self,
        topic_id: str,
        program_id: str = "",
        level: str = "",
        role_id: str = "",
        title: str | None = None,
    ) -> ProgressRecord:
        """Record a view of a topic and anchor time accrual at now."""
        now = self._clock()
        record = self.get(topic_id)

        if record is not None and record.status == ProgressStatus.COMPLETED:
            return record

        changes: dict[str, Any]
        if record is None:
            record = ProgressRecord(
                user_id=self.user_id,
                topic_id=topic_id,
                status=ProgressStatus.IN_PROGRESS,
                percent_complete=0,
                minutes_spent=0,
                started_at=now,
                last_access=now,
                program_id=program_id,
                level=level,
                role_id=role_id,
                title=title,
            )
            self._unsaved[topic_id] = record
            changes = {}
            logger.info("topic_started", user_id=self.user_id, topic_id=topic_id)
        elif record.status == ProgressStatus.NOT_STARTED:
            record.status = ProgressStatus.IN_PROGRESS
            record.percent_complete = 0
            record.started_at = now
            record.last_access = now
            record.program_id = program_id or record.program_id
            record.level = level or record.level
            record.role_id = role_id or record.role_id
            record.title = title or record.title
            changes = record.model_dump(
                include={
                    "status", "percent_complete", "started_at", "last_access",
                    "program_id", "level", "role_id", "title",
                }
            )
            logger.info("topic_started", user_id=self.user_id, topic_id=topic_id)
        else:
            record.last_access = now
            changes = {"last_access": now}

        self.anchors.set(self.user_id, topic_id, now)
        self._save(record, changes)
        return record

    def tick(self, topic_id: str) -> int:
        """Accrue elapsed whole minutes for an in-progress topic.

        Returns:
            Minutes added (0 if nothing accrued).
        """
        record = self.get(topic_id)
        if record is None or record.status != ProgressStatus.IN_PROGRESS:
            return 0

        now = self._clock()
        anchor = self.anchors.get(self.user_id, topic_id, now)
        if anchor is None:
            self.anchors.set(self.user_id, topic_id, now)
            return 0

        minutes = whole_minutes(anchor, now)
        if minutes == 0:
            return 0

        self.anchors.set(self.user_id, topic_id, anchor + timedelta(minutes=minutes))
        record.minutes_spent += minutes
        record.last_access = now
        self._save_minutes(record, minutes, {"last_access": now})
        self._add_stats(total_minutes=minutes)
        logger.debug("topic_time_accrued", topic_id=topic_id, minutes=minutes, total=record.minutes_spent)
        return minutes

    def set_percent(self, topic_id: str, percent: int) -> ProgressRecord:
        """Update partial progress; completion goes through ``mark_complete``."""
        record = self._require(topic_id)
        if record.status != ProgressStatus.IN_PROGRESS:
            return record
        record.percent_complete = max(0, min(99, percent))
        record.last_access = self._clock()
        self._save(record, {"percent_complete": record.percent_complete, "last_access": record.last_access})
        return record

    def mark_complete(self, topic_id: str) -> ProgressRecord:
        """Finish a topic, folding the ongoing session's minutes in."""
        record = self._require(topic_id)
        if record.status == ProgressStatus.COMPLETED:
            return record

        now = self._clock()
        anchor = self.anchors.pop(self.user_id, topic_id, now)
        minutes = whole_minutes(anchor, now) if anchor is not None else 0

        record.minutes_spent += minutes
        record.percent_complete = 100
        record.status = ProgressStatus.COMPLETED
        record.last_access = now
        self._save_minutes(
            record,
            minutes,
            {"status": record.status, "percent_complete": 100, "last_access": now},
        )
        if minutes:
            self._add_stats(total_minutes=minutes)
        logger.info(
            "topic_completed",
            user_id=self.user_id,
            topic_id=topic_id,
            minutes_spent=record.minutes_spent,
        )
        self.update_streak()
        return record

    def reopen_topic(self, topic_id: str) -> ProgressRecord:
        """Explicitly resume a completed topic; accrued minutes are kept."""
        record = self._require(topic_id)
        if record.status == ProgressStatus.NOT_STARTED:
            return self.start_topic(topic_id)

        now = self._clock()
        if record.status == ProgressStatus.COMPLETED:
            record.status = ProgressStatus.IN_PROGRESS
            logger.info("topic_reopened", user_id=self.user_id, topic_id=topic_id)
        record.last_access = now
        self.anchors.set(self.user_id, topic_id, now)
        self._save(record, {"status": record.status, "last_access": now})
        return record

    def stop_topic(self, topic_id: str) -> None:
        """Forget the tick anchor when the user navigates away."""
        self.anchors.pop(self.user_id, topic_id)

    # -- answers and streak ---------------------------------------------

    def record_answer(self, topic_id: str, was_correct: bool, elapsed_seconds: float) -> Stats:
        """Count one answered question; the topic's progress record is untouched."""
        if elapsed_seconds < 0:
            raise ValueError("elapsed_seconds must be >= 0")
        correct = 1 if was_correct else 0
        stats = self._add_stats(total_questions=1, total_correct=correct)

        warning = try_write(
            self.store,
            ANSWERS,
            progress_doc_id(self.user_id, topic_id),
            {
                "user_id": self.user_id,
                "topic_id": topic_id,
                "attempts": Increment(1),
                "correct": Increment(correct),
                "seconds_spent": Increment(elapsed_seconds),
                "last_access": self._clock(),
            },
            merge=True,
        )
        self._warn(warning)
        return stats

    def update_streak(self) -> int:
        now = self._clock()
        stats = self.stats()
        streak = next_streak(stats.streak, stats.last_access, now)
        warning = try_write(
            self.store,
            USERS,
            self.user_id,
            {"stats.streak": streak, "stats.last_access": now},
            merge=True,
        )
        self._warn(warning)
        return streak

    # -- internals ------------------------------------------------------

    def _require(self, topic_id: str) -> ProgressRecord:
        record = self.get(topic_id)
        if record is None:
            raise NotFoundError("progress", progress_doc_id(self.user_id, topic_id))
        return record

    def _save(self, record: ProgressRecord, changes: dict[str, Any]) -> bool:
        if record.topic_id in self._unsaved:
            data = record.model_dump()
            data["minutes_spent"] = Increment(record.minutes_spent)
        else:
            data = {"user_id": self.user_id, "topic_id": record.topic_id, **changes}

        warning = try_write(self.store, PROGRESS, record.doc_id, data, merge=True)
        if warning is not None:
            self._warn(warning)
            return False
        self._unsaved.pop(record.topic_id, None)
        return True

    def _save_minutes(self, record: ProgressRecord, minutes: int, changes: dict[str, Any]) -> None:
        topic_id = record.topic_id
        if topic_id in self._unsaved:
            # The full record carries its minutes
            self._save(record, changes)
            return
        pending = self._unsaved_minutes.pop(topic_id, 0) + minutes
        if not self._save(record, {"minutes_spent": Increment(pending), **changes}):
            self._unsaved_minutes[topic_id] = pending

    def _add_stats(self, **increments: int) -> Stats:
        # Checked first so a merge write never creates a bare user document
        if self.store.get_document(USERS, self.user_id) is None:
            raise NotFoundError("user", self.user_id)
        warning = try_write(
            self.store,
            USERS,
            self.user_id,
            {f"stats.{field}": Increment(amount) for field, amount in increments.items()},
            merge=True,
        )
        stats = self.stats()
        if warning is not None:
            self._warn(warning)
            for field, amount in increments.items():
                setattr(stats, field, getattr(stats, field) + amount)
        return stats

    def _warn(self, warning: str | None) -> None:
        if warning is not None:
            self.warnings.append(warning)
