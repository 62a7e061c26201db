"""Sign-in flows and the signed-in session lifetime."""

from collections.abc import Callable
from datetime import datetime

import structlog

from exam_prep.access.watcher import EntitlementWatcher
from exam_prep.auth.identity import (
    POPUP_CLOSED,
    Identity,
    IdentityProvider,
    ProviderError,
    classify_provider_error,
)
from exam_prep.config import Settings
from exam_prep.errors import AuthError
from exam_prep.models.access import AccessDecision
from exam_prep.models.user import utc_now
from exam_prep.storage.documents import DocumentStore
from exam_prep.users.provisioning import ProvisionResult, ensure_user_record

logger = structlog.get_logger()


class AuthService:
    """Wraps an injected identity provider and provisions users on success.

    Args:
        provider: External identity provider.
        store: Document store for user records.
        settings: Application settings (trial length, default goal).
        clock: Source of the current time.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        store: DocumentStore,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.provider = provider
        self.store = store
        self.settings = settings
        self.clock = clock

    def provision(self, identity: Identity) -> ProvisionResult:
        return ensure_user_record(
            self.store,
            identity,
            now=self.clock(),
            trial_days=self.settings.trial_days,
            daily_goal_minutes=self.settings.default_daily_goal_minutes,
        )

    def _complete(self, method: str, call: Callable[[], Identity]) -> Identity:
        try:
            identity = call()
        except ProviderError as e:
            error = classify_provider_error(e)
            logger.warning("sign_in_failed", method=method, kind=error.kind, code=e.code)
            raise error from e
        self.provision(identity)
        logger.info("signed_in", method=method, uid=identity.uid)
        return identity

    def sign_in_with_password(self, email: str, password: str) -> Identity:
        return self._complete("password", lambda: self.provider.sign_in_with_password(email, password))

    def sign_up_with_password(self, email: str, password: str) -> Identity:
        return self._complete("sign_up", lambda: self.provider.sign_up_with_password(email, password))

    def sign_in_federated(self, provider_name: str) -> Identity | None:
        """Federated sign-in; returns None if the user closed the popup."""
        try:
            return self._complete(provider_name, lambda: self.provider.sign_in_federated(provider_name))
        except AuthError as e:
            if e.code == POPUP_CLOSED:
                logger.info("sign_in_cancelled", method=provider_name)
                return None
            raise

    def sign_out(self) -> None:
        self.provider.sign_out()
        logger.info("signed_out")


class AuthSession:
    """Follows identity changes: provisions and watches entitlement while signed in.

    Args:
        auth: Auth service used for provisioning.
        on_access_change: Called with every new access decision.
    """

    def __init__(
        self,
        auth: AuthService,
        on_access_change: Callable[[AccessDecision], None] | None = None,
    ):
        self.auth = auth
        self._on_access_change = on_access_change
        self.identity: Identity | None = None
        self.watcher: EntitlementWatcher | None = None
        self._unsubscribe: Callable[[], None] | None = None

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.auth.provider.subscribe(self.on_identity_change)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._stop_watcher()

    def on_identity_change(self, identity: Identity | None) -> None:
        if identity is None:
            self._stop_watcher()
            self.identity = None
            return

        # Provisioning runs on every authentication event, not only the first
        self.auth.provision(identity)
        same_user = self.identity is not None and self.identity.uid == identity.uid
        self.identity = identity
        if same_user and self.watcher is not None:
            return

        self._stop_watcher()
        self.watcher = EntitlementWatcher(
            self.auth.store,
            identity.uid,
            on_change=self._on_access_change,
            clock=self.auth.clock,
        ).start()

    @property
    def access(self) -> AccessDecision | None:
        return self.watcher.decision if self.watcher is not None else None

    def _stop_watcher(self) -> None:
        if self.watcher is not None:
            self.watcher.cancel()
            self.watcher = None
