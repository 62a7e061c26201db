"""Tests for entitlement evaluation."""

from datetime import datetime, timedelta, timezone

import pytest

from exam_prep.access.entitlement import can_access_topic, days_until, evaluate
from exam_prep.models.access import AccessDecision, CatalogTopic
from exam_prep.models.user import Plan, Subscription

NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


class TestActive:
    @pytest.mark.parametrize("offset", [
        timedelta(seconds=1),
        timedelta(hours=5),
        timedelta(days=30),
        timedelta(days=365),
    ])
    def test_future_expiry_grants_access(self, offset):
        sub = Subscription(status="active", plan=Plan.MONTHLY, expires_at=NOW + offset)
        decision = evaluate(sub, NOW)
        assert decision.can_access_full_content is True
        assert decision.is_preview_only is False
        assert decision.status == "active"

    def test_days_remaining_rounds_up(self):
        sub = Subscription(status="active", expires_at=NOW + timedelta(days=29, hours=1))
        assert evaluate(sub, NOW).days_remaining == 30

    def test_no_expiry_has_no_day_count(self):
        sub = Subscription(status="active", plan=Plan.ANNUAL, expires_at=None)
        decision = evaluate(sub, NOW)
        assert decision.can_access_full_content is True
        assert decision.days_remaining is None


class TestTrial:
    def test_two_days_left(self):
        sub = Subscription(status="trial", trial_ends_at=NOW + timedelta(days=2))
        assert evaluate(sub, NOW) == AccessDecision(
            can_access_full_content=True,
            is_preview_only=False,
            status="trial",
            days_remaining=2,
        )

    def test_ended_one_second_ago(self):
        sub = Subscription(status="trial", trial_ends_at=NOW - timedelta(seconds=1))
        decision = evaluate(sub, NOW)
        assert decision.can_access_full_content is False
        assert decision.is_preview_only is True
        assert decision.days_remaining is None

    def test_ending_exactly_now_is_expired(self):
        sub = Subscription(status="trial", trial_ends_at=NOW)
        decision = evaluate(sub, NOW)
        assert decision.can_access_full_content is False
        assert decision.is_preview_only is True

    def test_one_second_before_end_reports_one_day(self):
        sub = Subscription(status="trial", trial_ends_at=NOW + timedelta(seconds=1))
        decision = evaluate(sub, NOW)
        assert decision.can_access_full_content is True
        assert decision.days_remaining == 1

    def test_missing_end_date_is_expired(self):
        decision = evaluate(Subscription(status="trial", trial_ends_at=None), NOW)
        assert decision.can_access_full_content is False


class TestClosedStates:
    @pytest.mark.parametrize("status", ["expired", "cancelled"])
    def test_closed_status_is_preview_only(self, status):
        sub = Subscription(status=status, expires_at=NOW + timedelta(days=10))
        decision = evaluate(sub, NOW)
        assert decision.can_access_full_content is False
        assert decision.is_preview_only is True
        assert decision.status == status
        assert decision.days_remaining is None

    def test_missing_subscription(self):
        decision = evaluate(None, NOW)
        assert decision.can_access_full_content is False
        assert decision.is_preview_only is True
        assert decision.status is None

    @pytest.mark.parametrize("status", ["paused", "", "ACTIVE", "lifetime"])
    def test_unknown_status_fails_closed(self, status):
        sub = Subscription(status=status, trial_ends_at=NOW + timedelta(days=3))
        decision = evaluate(sub, NOW)
        assert decision.can_access_full_content is False
        assert decision.is_preview_only is True


class TestPurity:
    @pytest.mark.parametrize("sub", [
        Subscription(status="trial", trial_ends_at=NOW + timedelta(hours=30)),
        Subscription(status="active", expires_at=NOW + timedelta(days=3)),
        Subscription(status="expired"),
        Subscription(status="mystery"),
    ])
    def test_same_input_same_output(self, sub):
        first = evaluate(sub, NOW)
        for _ in range(5):
            assert evaluate(sub, NOW) == first

    def test_input_not_mutated(self):
        sub = Subscription(status="trial", trial_ends_at=NOW + timedelta(days=1))
        before = sub.model_dump()
        evaluate(sub, NOW)
        assert sub.model_dump() == before


def test_days_until_ceiling():
    assert days_until(NOW + timedelta(days=1), NOW) == 1
    assert days_until(NOW + timedelta(days=1, seconds=1), NOW) == 2
    assert days_until(NOW + timedelta(minutes=1), NOW) == 1


def test_can_access_topic_preview_overrides():
    denied = evaluate(None, NOW)
    assert can_access_topic(CatalogTopic(id="t1", is_preview=True), denied) is True
    assert can_access_topic(CatalogTopic(id="t2", is_preview=False), denied) is False
    granted = evaluate(Subscription(status="active"), NOW)
    assert can_access_topic(CatalogTopic(id="t2"), granted) is True
