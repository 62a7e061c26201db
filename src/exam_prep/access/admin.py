"""Admin console authorization from an explicit allow-list."""

from exam_prep.auth.identity import Identity
from exam_prep.errors import AuthError


class AdminPolicy:
    """Decides who may use the admin console.

    Args:
        admin_emails: Allowed e-mail addresses (compared case-insensitively).
    """

    def __init__(self, admin_emails: list[str]):
        self._emails = frozenset(e.strip().lower() for e in admin_emails if e.strip())

    def is_admin(self, identity: Identity | None) -> bool:
        if identity is None or not identity.email:
            return False
        return identity.email.strip().lower() in self._emails

    def require_admin(self, identity: Identity | None) -> Identity:
        if identity is None:
            raise AuthError("unauthenticated", "Please sign in to continue.")
        if not self.is_admin(identity):
            raise AuthError("forbidden", "You do not have access to the admin area.")
        return identity
