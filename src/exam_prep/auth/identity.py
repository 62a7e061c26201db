"""Identity provider contract and sign-in error classification.

Credential storage and verification live in the external provider; the
core only consumes identities and maps provider failures to ``AuthError``.
"""

from collections.abc import Callable
from typing import Protocol

from pydantic import BaseModel

from exam_prep.errors import AuthError


class Identity(BaseModel):
    uid: str
    email: str | None = None
    display_name: str | None = None
    photo_url: str | None = None


class ProviderError(Exception):
    """Failure reported by an identity provider, identified by ``code``."""

    def __init__(self, code: str, message: str = ""):
        self.code = code
        super().__init__(message or code)


IdentityCallback = Callable[[Identity | None], None]

POPUP_CLOSED = "auth/popup-closed-by-user"

# provider code -> (kind, user-facing message)
_ERROR_MESSAGES: dict[str, tuple[str, str]] = {
    "auth/user-not-found": ("user_not_found", "No account found for this e-mail."),
    "auth/wrong-password": ("wrong_password", "Incorrect password."),
    "auth/invalid-credential": ("wrong_password", "Incorrect e-mail or password."),
    "auth/invalid-email": ("invalid_email", "Invalid e-mail address."),
    "auth/email-already-in-use": ("email_in_use", "An account already exists for this e-mail."),
    "auth/weak-password": ("weak_password", "Password is too weak."),
}
_FALLBACK = ("unknown", "Could not sign in. Please try again.")


class IdentityProvider(Protocol):
    def current_identity(self) -> Identity | None: ...

    def subscribe(self, callback: IdentityCallback) -> Callable[[], None]: ...

    def sign_in_with_password(self, email: str, password: str) -> Identity: ...

    def sign_in_federated(self, provider: str) -> Identity: ...

    def sign_up_with_password(self, email: str, password: str) -> Identity: ...

    def sign_out(self) -> None: ...


def classify_provider_error(error: ProviderError) -> AuthError:
    kind, message = _ERROR_MESSAGES.get(error.code, _FALLBACK)
    return AuthError(kind, message, code=error.code)


def default_display_name(identity: Identity) -> str:
    """Display name, else the e-mail local part, else "User"."""
    if identity.display_name:
        return identity.display_name
    if identity.email:
        return identity.email.split("@")[0]
    return "User"


def short_name(identity: Identity | None) -> str | None:
    """First name for greetings."""
    if identity is None:
        return None
    if identity.display_name:
        return identity.display_name.split()[0]
    if identity.email:
        return identity.email.split("@")[0]
    return None


def initials(identity: Identity | None) -> str:
    if identity is None:
        return "U"
    if identity.display_name:
        names = identity.display_name.split()
        if len(names) >= 2:
            return f"{names[0][0]}{names[1][0]}".upper()
        if names:
            return names[0][0].upper()
    if identity.email:
        return identity.email[0].upper()
    return "U"
