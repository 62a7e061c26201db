"""Entitlement evaluation: subscription + current time -> access decision.

The evaluator is a pure function; the caller injects ``now`` so the same
input always produces the same decision.
"""

import math
from datetime import datetime, timedelta

import structlog

from exam_prep.errors import EntitlementComputeError
from exam_prep.models.access import DENIED, AccessDecision, CatalogTopic
from exam_prep.models.user import Subscription, SubscriptionStatus

logger = structlog.get_logger()

_ONE_DAY = timedelta(days=1)


def days_until(moment: datetime, now: datetime) -> int:
    """Whole days left until ``moment``, rounded up (1s before expiry -> 1)."""
    return math.ceil((moment - now) / _ONE_DAY)


def _decide(subscription: Subscription, now: datetime) -> AccessDecision:
    status = subscription.status

    if status == SubscriptionStatus.ACTIVE:
        days = days_until(subscription.expires_at, now) if subscription.expires_at else None
        return AccessDecision(
            can_access_full_content=True,
            is_preview_only=False,
            status=status,
            days_remaining=days,
        )

    if status == SubscriptionStatus.TRIAL:
        # Strict comparison: a trial ending exactly now is over
        if subscription.trial_ends_at is not None and subscription.trial_ends_at > now:
            return AccessDecision(
                can_access_full_content=True,
                is_preview_only=False,
                status=status,
                days_remaining=days_until(subscription.trial_ends_at, now),
            )
        return AccessDecision(status=status)

    if status in (SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELLED):
        return AccessDecision(status=status)

    raise EntitlementComputeError(status)


def evaluate(subscription: Subscription | None, now: datetime) -> AccessDecision:
    """Compute the access decision for a subscription at ``now``.

    Args:
        subscription: The user's subscription, or None when there is none.
        now: Current time (timezone-aware).

    Returns:
        The decision. Unknown statuses fail closed (preview only).
    """
    if subscription is None:
        return DENIED
    try:
        return _decide(subscription, now)
    except EntitlementComputeError as e:
        logger.warning("entitlement_unknown_status", status=str(e.status))
        return AccessDecision(status=None)


def can_access_topic(topic: CatalogTopic, decision: AccessDecision) -> bool:
    """Free-sample topics are always open; others follow the decision."""
    return topic.is_preview or decision.can_access_full_content
