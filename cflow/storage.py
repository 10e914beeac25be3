"""Artifact storage — where the persister node writes finished quizzes and outlines."""

import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from cflow.errors import StorageError
from cflow.utils.formatter import render_markdown

logger = logging.getLogger(__name__)


class ArtifactStore(Protocol):
    def save(self, record: dict) -> str:
        ...


class JsonFileArtifactStore:
    """Writes each artifact to ``<output_dir>/<kind>_<uuid>.json``.

    With ``write_markdown`` a human-readable ``.md`` rendering is written
    next to it. Returns the JSON file path as the artifact reference.
    """

    def __init__(self, output_dir: str | Path, write_markdown: bool = False):
        self.output_dir = Path(output_dir)
        self.write_markdown = write_markdown

    def save(self, record: dict) -> str:
        artifact_id = str(uuid.uuid4())
        kind = record.get("kind", "artifact")
        content = {"id": artifact_id, "createdAt": datetime.now(timezone.utc).isoformat(), **record}
        path = self.output_dir / f"{kind}_{artifact_id}.json"
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(content, ensure_ascii=False, indent=2), encoding="utf-8")
            if self.write_markdown:
                path.with_suffix(".md").write_text(render_markdown(content), encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(f"Failed to save {kind} artifact: {exc}") from exc
        logger.info("Saved %s artifact to %s", kind, path)
        return str(path)


class InMemoryArtifactStore:
    """Keeps artifacts in a dict. Used by tests and dry runs."""

    def __init__(self):
        self._lock = threading.Lock()
        self.saved: dict[str, dict] = {}

    def save(self, record: dict) -> str:
        ref = f"memory://{record.get('kind', 'artifact')}/{uuid.uuid4()}"
        with self._lock:
            self.saved[ref] = record
        return ref
