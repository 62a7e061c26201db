"""Content gate: decide between full, preview and blocked rendering."""

from exam_prep.models.access import (
    AccessDecision,
    ContentView,
    Upsell,
    UpsellKind,
    ViewMode,
)
from exam_prep.models.user import SubscriptionStatus

PREVIEW_CHARS = 500
ELLIPSIS = "..."


def truncate_preview(full_content: str, limit: int = PREVIEW_CHARS) -> str:
    """First ``limit`` characters of the content, marked as cut."""
    if not full_content or limit <= 0:
        return ""
    if len(full_content) <= limit:
        return full_content
    return full_content[:limit] + ELLIPSIS


def upsell_for(decision: AccessDecision) -> Upsell:
    if decision.status == SubscriptionStatus.TRIAL and decision.days_remaining:
        return Upsell(
            kind=UpsellKind.TRIAL,
            message=f"You have {decision.days_remaining} days left in your trial.",
            days_remaining=decision.days_remaining,
        )
    if decision.status == SubscriptionStatus.EXPIRED:
        return Upsell(kind=UpsellKind.EXPIRED, message="Your subscription has expired. Renew to keep studying.")
    if decision.status == SubscriptionStatus.CANCELLED:
        return Upsell(kind=UpsellKind.CANCELLED, message="Your subscription was cancelled. Subscribe again for full access.")
    return Upsell(kind=UpsellKind.SUBSCRIBE, message="Subscribers get the full content.")


def resolve_view(
    topic_is_preview: bool,
    decision: AccessDecision,
    full_content: str,
    preview_content: str | None = None,
    preview_chars: int = PREVIEW_CHARS,
) -> ContentView:
    """Pick what to render for a topic.

    A topic flagged as preview is a content-level override and is always
    rendered in full, whatever the user's entitlement.
    """
    if topic_is_preview or decision.can_access_full_content:
        return ContentView(mode=ViewMode.FULL, body=full_content)

    body = preview_content if preview_content else truncate_preview(full_content, preview_chars)
    mode = ViewMode.PREVIEW if body else ViewMode.BLOCKED
    return ContentView(mode=mode, body=body, upsell=upsell_for(decision))
