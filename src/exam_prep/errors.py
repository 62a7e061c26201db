"""Error hierarchy for the access/progress core.

Provides:
- ExamPrepError: base for all core failures
- NotFoundError: user, topic or content record absent
- TransientWriteError: a store write failed (retried once by callers)
- AuthError: sign-in / sign-up / authorization failure with a user-facing message
- EntitlementComputeError: unknown subscription state (evaluator fails closed)
"""


class ExamPrepError(Exception):
    """Base exception for core failures."""

    error_code = "EXAM_PREP_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class NotFoundError(ExamPrepError):
    """Raised when a document or content file does not exist."""

    error_code = "NOT_FOUND"

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")

    def to_dict(self) -> dict:
        return {"error": self.error_code, "kind": self.kind, "key": self.key}


class TransientWriteError(ExamPrepError):
    """Raised by a store when a write could not be applied."""

    error_code = "TRANSIENT_WRITE_FAILED"

    def __init__(self, collection: str, doc_id: str, cause: Exception | None = None):
        self.collection = collection
        self.doc_id = doc_id
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Write to {collection}/{doc_id} failed{detail}")


class AuthError(ExamPrepError):
    """Raised when authentication or authorization fails.

    ``kind`` is machine-readable (e.g. ``wrong_password``); ``message`` is
    safe to show to the user.
    """

    error_code = "AUTH_FAILED"

    def __init__(self, kind: str, message: str, code: str | None = None):
        self.kind = kind
        self.code = code
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.error_code, "kind": self.kind, "message": self.message}


class EntitlementComputeError(ExamPrepError):
    """Unknown subscription status encountered during evaluation."""

    error_code = "ENTITLEMENT_EVAL_FAILED"

    def __init__(self, status: object):
        self.status = status
        super().__init__(f"Unknown subscription status: {status!r}")
