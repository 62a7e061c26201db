"""Consecutive study-day bookkeeping."""

from datetime import datetime, timezone


def next_streak(current: int, last_access: datetime | None, now: datetime) -> int:
    """Streak after studying at ``now``.

    Days are UTC calendar days: studying again the same day keeps the streak
    (at least 1), the next day extends it, any longer gap restarts at 1.
    """
    if last_access is None:
        return 1
    gap = (now.astimezone(timezone.utc).date() - last_access.astimezone(timezone.utc).date()).days
    if gap <= 0:
        return max(current, 1)
    if gap == 1:
        return current + 1
    return 1
