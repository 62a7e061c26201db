"""Static topic content: marked-up bodies and JSON metadata on disk.

Files are addressed as ``{program_area}/{topic_id}.html`` and
``{program_area}/{topic_id}.json`` under the content root.
"""

import functools
import json
from pathlib import Path
from typing import Any

import structlog

from exam_prep.config import get_settings
from exam_prep.errors import NotFoundError
from exam_prep.models.access import CatalogTopic, TopicContent

logger = structlog.get_logger()


class StaticContentStore:
    """Read-only access to topic files.

    Args:
        root: Directory holding one sub-directory per program area.
        default_estimated_minutes: Used when a topic's metadata omits it.
    """

    def __init__(self, root: Path, default_estimated_minutes: int = 45):
        self.root = Path(root).resolve()
        self.default_estimated_minutes = default_estimated_minutes

    def _resolve(self, path: str) -> Path:
        resolved = (self.root / path).resolve()
        if not resolved.is_relative_to(self.root):
            raise NotFoundError("content", path)
        if not resolved.is_file():
            raise NotFoundError("content", path)
        return resolved

    def fetch_text(self, path: str) -> str:
        return self._resolve(path).read_text(encoding="utf-8")

    def fetch_json(self, path: str) -> dict[str, Any]:
        with open(self._resolve(path), encoding="utf-8") as f:
            return json.load(f)

    def load_topic(self, program_area: str, topic_id: str) -> TopicContent:
        """Load a topic's body and metadata.

        A missing body is an error; missing metadata falls back to defaults.
        """
        body = self.fetch_text(f"{program_area}/{topic_id}.html")
        try:
            metadata = self.fetch_json(f"{program_area}/{topic_id}.json")
        except NotFoundError:
            logger.info("topic_metadata_missing", program_area=program_area, topic_id=topic_id)
            metadata = {}

        topic = CatalogTopic(
            id=metadata.get("id") or topic_id,
            title=metadata.get("title") or topic_id,
            is_preview=bool(metadata.get("is_preview", False)),
            estimated_minutes=metadata.get("estimated_minutes") or self.default_estimated_minutes,
            program_id=metadata.get("program_id"),
            flashcards=metadata.get("flashcards", []),
            exercises=metadata.get("exercises", []),
        )
        return TopicContent(program_area=program_area, topic=topic, body=body)


@functools.lru_cache
def get_content_store() -> StaticContentStore:
    settings = get_settings()
    return StaticContentStore(
        settings.content_root,
        default_estimated_minutes=settings.default_estimated_minutes,
    )
