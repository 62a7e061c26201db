"""Progress data models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from exam_prep.models.user import utc_now


class ProgressStatus(StrEnum):
    """Topic progress lifecycle states."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def progress_doc_id(user_id: str, topic_id: str) -> str:
    """Document id shared by a user's progress record and answer tally for a topic."""
    return f"{user_id}_{topic_id}"


class ProgressRecord(BaseModel):
    """Progress of one user on one curriculum topic."""

    user_id: str
    topic_id: str
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    percent_complete: int = Field(default=0, ge=0, le=100)
    minutes_spent: int = Field(default=0, ge=0)
    started_at: datetime | None = None
    last_access: datetime = Field(default_factory=utc_now)
    program_id: str = ""
    level: str = ""
    role_id: str = ""
    title: str | None = None

    @property
    def doc_id(self) -> str:
        return progress_doc_id(self.user_id, self.topic_id)


class AnswerTally(BaseModel):
    """Question answers given by a user within one topic."""

    user_id: str
    topic_id: str
    attempts: int = Field(default=0, ge=0)
    correct: int = Field(default=0, ge=0)
    seconds_spent: float = Field(default=0.0, ge=0)
    last_access: datetime = Field(default_factory=utc_now)


class ProgramProgress(BaseModel):
    total: int = 0
    completed: int = 0
    percent: int = 0


class ProgressSummary(BaseModel):
    """Aggregated study statistics for the dashboard."""

    total_topics: int = 0
    completed_topics: int = 0
    in_progress_topics: int = 0
    total_minutes: int = 0
    total_questions: int = 0
    total_correct: int = 0
    streak: int = 0
    by_program: dict[str, ProgramProgress] = Field(default_factory=dict)
