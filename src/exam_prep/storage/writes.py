"""Store writes with a single transparent retry.

Study flow must never block on a failed write: ``try_write`` retries once and
then reports the failure as a warning string instead of raising.
"""

from typing import Any

import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_none

from exam_prep.errors import TransientWriteError
from exam_prep.storage.documents import DocumentStore

logger = structlog.get_logger()


@retry(
    retry=retry_if_exception_type(TransientWriteError),
    wait=wait_none(),
    stop=stop_after_attempt(2),
    reraise=True,
)
def write_with_retry(
    store: DocumentStore,
    collection: str,
    doc_id: str,
    data: dict[str, Any],
    merge: bool = True,
) -> None:
    """Write a document, retrying once on TransientWriteError."""
    store.set_document(collection, doc_id, data, merge=merge)


def try_write(
    store: DocumentStore,
    collection: str,
    doc_id: str,
    data: dict[str, Any],
    merge: bool = True,
) -> str | None:
    """Write with retry; return a warning message instead of raising on failure."""
    try:
        write_with_retry(store, collection, doc_id, data, merge=merge)
    except TransientWriteError as e:
        logger.warning(
            "write_degraded_to_memory",
            collection=collection,
            doc_id=doc_id,
            error=str(e),
        )
        return f"Could not save {collection}/{doc_id}; changes kept locally"
    return None
