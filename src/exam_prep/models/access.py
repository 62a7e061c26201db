"""Access decision, catalog topic and gated view models."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class AccessDecision(BaseModel):
    """Derived entitlement state. Never persisted."""

    can_access_full_content: bool = False
    is_preview_only: bool = True
    status: str | None = None
    days_remaining: int | None = None


# Decision used for signed-out users, missing records and unknown states
DENIED = AccessDecision()


class CatalogTopic(BaseModel):
    """Topic metadata owned by the content-authoring side; read-only here."""

    id: str
    title: str = ""
    is_preview: bool = False
    estimated_minutes: int = 45
    program_id: str | None = None
    flashcards: list[dict[str, Any]] = Field(default_factory=list)
    exercises: list[dict[str, Any]] = Field(default_factory=list)


class TopicContent(BaseModel):
    program_area: str
    topic: CatalogTopic
    body: str


class ViewMode(StrEnum):
    FULL = "full"
    PREVIEW = "preview"
    BLOCKED = "blocked"


class UpsellKind(StrEnum):
    TRIAL = "trial"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    SUBSCRIBE = "subscribe"


class Upsell(BaseModel):
    kind: UpsellKind
    message: str
    days_remaining: int | None = None


class ContentView(BaseModel):
    """What the topic screen should render."""

    mode: ViewMode
    body: str
    upsell: Upsell | None = None
