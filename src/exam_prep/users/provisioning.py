"""Create a default user record on first sign-in (idempotent)."""

from datetime import datetime, timedelta

import structlog
from pydantic import BaseModel, ValidationError

from exam_prep.auth.identity import Identity, default_display_name
from exam_prep.errors import NotFoundError
from exam_prep.models.user import (
    Preferences,
    Stats,
    Subscription,
    SubscriptionStatus,
    User,
    utc_now,
)
from exam_prep.storage.documents import USERS, DocumentStore, apply_write

logger = structlog.get_logger()

TRIAL_DAYS = 7


class ProvisionResult(BaseModel):
    created: bool
    user: User


def default_user(
    identity: Identity,
    now: datetime,
    trial_days: int = TRIAL_DAYS,
    daily_goal_minutes: int = 60,
) -> User:
    return User(
        uid=identity.uid,
        email=identity.email,
        display_name=default_display_name(identity),
        photo_url=identity.photo_url,
        subscription=Subscription(
            status=SubscriptionStatus.TRIAL,
            plan=None,
            trial_ends_at=now + timedelta(days=trial_days),
            expires_at=None,
        ),
        preferences=Preferences(daily_goal_minutes=daily_goal_minutes),
        stats=Stats(),
        created_at=now,
        updated_at=now,
    )


def ensure_user_record(
    store: DocumentStore,
    identity: Identity,
    now: datetime | None = None,
    trial_days: int = TRIAL_DAYS,
    daily_goal_minutes: int = 60,
) -> ProvisionResult:
    """Make sure ``identity`` has a user record.

    Safe to call on every authentication event: the write is a
    create-if-absent, so concurrent callers end up with a single record and
    an existing record is never overwritten.

    Returns:
        ``created`` is True only for the call that actually wrote the record.
    """
    now = now or utc_now()
    existing = store.get_document(USERS, identity.uid)
    if existing is not None:
        user = user_from_document(identity, existing, now, trial_days, daily_goal_minutes)
        return ProvisionResult(created=False, user=user)

    user = default_user(identity, now, trial_days, daily_goal_minutes)
    created = store.create_if_absent(USERS, identity.uid, user.model_dump())
    if created:
        logger.info("user_provisioned", uid=identity.uid, trial_ends_at=str(user.subscription.trial_ends_at))
        return ProvisionResult(created=True, user=user)

    # Lost a race with another sign-in callback; the stored record wins
    logger.debug("user_provision_race", uid=identity.uid)
    return ProvisionResult(created=False, user=load_user(store, identity.uid))


def user_from_document(
    identity: Identity,
    data: dict,
    now: datetime,
    trial_days: int = TRIAL_DAYS,
    daily_goal_minutes: int = 60,
) -> User:
    """Parse a stored user, filling gaps from the defaults.

    A record written by an older client may be partial or malformed. It is
    read as the default record with the stored fields merged over it; the
    stored document itself is left as is.
    """
    try:
        return User.model_validate(data)
    except ValidationError as e:
        logger.warning("user_record_invalid", uid=identity.uid, errors=e.error_count())

    defaults = default_user(identity, now, trial_days, daily_goal_minutes)
    try:
        return User.model_validate(apply_write(defaults.model_dump(), data, merge=True))
    except ValidationError as e:
        logger.warning("user_record_unusable", uid=identity.uid, errors=e.error_count())
        return defaults


def load_user(store: DocumentStore, uid: str) -> User:
    data = store.get_document(USERS, uid)
    if data is None:
        raise NotFoundError("user", uid)
    return user_from_document(Identity(uid=uid), data, utc_now())
