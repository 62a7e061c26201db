"""User record model: identity, subscription, preferences and study stats."""

from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, Field, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionStatus(StrEnum):
    """Subscription lifecycle states."""

    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Plan(StrEnum):
    MONTHLY = "monthly"
    ANNUAL = "annual"


class Subscription(BaseModel):
    # Kept as a plain string so unknown values reach the evaluator (fail closed)
    status: str = SubscriptionStatus.TRIAL.value
    plan: Plan | None = None
    trial_ends_at: datetime | None = None
    expires_at: datetime | None = None


class ProgramPreference(BaseModel):
    """A program (exam) the user is preparing for, at a given level and role."""

    program_id: str
    level: str
    role_id: str
    selected_at: datetime = Field(default_factory=utc_now)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.program_id, self.level, self.role_id)


class Preferences(BaseModel):
    interested_programs: list[ProgramPreference] = Field(default_factory=list)
    daily_goal_minutes: int = Field(default=60, ge=0)
    notifications_enabled: bool = True


class Stats(BaseModel):
    total_questions: int = Field(default=0, ge=0)
    total_correct: int = Field(default=0, ge=0)
    total_minutes: int = Field(default=0, ge=0)
    streak: int = Field(default=0, ge=0)
    last_access: datetime | None = None

    @model_validator(mode="after")
    def _correct_within_total(self) -> "Stats":
        if self.total_correct > self.total_questions:
            raise ValueError("total_correct cannot exceed total_questions")
        return self

    @property
    def accuracy(self) -> float:
        """Share of correct answers (0.0 when nothing was answered)."""
        if self.total_questions == 0:
            return 0.0
        return self.total_correct / self.total_questions


class User(BaseModel):
    uid: str
    email: str | None = None
    display_name: str = "User"
    photo_url: str | None = None
    subscription: Subscription = Field(default_factory=Subscription)
    preferences: Preferences = Field(default_factory=Preferences)
    stats: Stats = Field(default_factory=Stats)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
