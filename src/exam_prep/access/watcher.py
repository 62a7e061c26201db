"""Real-time entitlement: re-evaluate whenever the user's record changes."""

from collections.abc import Callable
from datetime import datetime

import structlog
from pydantic import ValidationError

from exam_prep.access.entitlement import evaluate
from exam_prep.models.access import DENIED, AccessDecision
from exam_prep.models.user import Subscription, utc_now
from exam_prep.storage.documents import USERS, DocumentSnapshot, DocumentStore, Unsubscribe

logger = structlog.get_logger()


class EntitlementWatcher:
    """Subscribes to one user document and keeps the latest access decision.

    Snapshots older than the last one applied are ignored, so the most recent
    write always wins even if deliveries arrive out of order.

    Args:
        store: Document store to subscribe to.
        user_id: The user whose subscription is watched.
        on_change: Called with every new decision (optional).
        clock: Source of the current time.
    """

    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        on_change: Callable[[AccessDecision], None] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.user_id = user_id
        self._on_change = on_change
        self._clock = clock
        self._decision: AccessDecision = DENIED
        self._version = -1
        self._unsubscribe: Unsubscribe | None = None

    @property
    def decision(self) -> AccessDecision:
        return self._decision

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> "EntitlementWatcher":
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe_document(USERS, self.user_id, self.apply)
        return self

    def cancel(self) -> None:
        """Stop listening. Safe to call more than once."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
            logger.info("entitlement_watch_cancelled", user_id=self.user_id)

    def apply(self, snapshot: DocumentSnapshot) -> None:
        """Apply a snapshot of the user document."""
        if snapshot.version < self._version:
            logger.debug("entitlement_stale_snapshot", user_id=self.user_id, version=snapshot.version)
            return
        self._version = snapshot.version

        decision = DENIED
        if snapshot.exists:
            raw = snapshot.data.get("subscription")
            try:
                subscription = Subscription.model_validate(raw) if raw is not None else None
            except ValidationError:
                logger.warning("entitlement_bad_subscription", user_id=self.user_id)
                subscription = None
            decision = evaluate(subscription, self._clock())

        changed = decision != self._decision
        self._decision = decision
        if changed:
            logger.info(
                "entitlement_changed",
                user_id=self.user_id,
                status=decision.status,
                can_access=decision.can_access_full_content,
            )
        if self._on_change is not None:
            self._on_change(decision)
