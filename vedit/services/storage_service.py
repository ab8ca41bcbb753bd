"""Local filesystem collaborators: timeline persistence and asset resolution."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from vedit.config import get_settings
from vedit.schemas.timeline import Timeline

logger = logging.getLogger(__name__)


class TimelineStore(Protocol):
    """Load/save timelines by project id."""

    def load(self, project_id: str) -> Timeline | None: ...

    def save(self, project_id: str, timeline: Timeline) -> None: ...

    def record_export(self, project_id: str, output_path: str) -> None: ...


class AssetResolver(Protocol):
    """Map a logical source path to a readable local file."""

    def resolve(self, logical_path: str) -> Path | None: ...


class LocalTimelineStore:
    """JSON documents under ``<local_storage_path>/projects/<project_id>/``."""

    TIMELINE_FILE = "timeline.json"
    EXPORTS_FILE = "exports.json"

    def __init__(self, base_path: str | Path | None = None) -> None:
        self.base_path = Path(base_path or get_settings().local_storage_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _project_dir(self, project_id: str) -> Path:
        path = self.base_path / "projects" / project_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def load(self, project_id: str) -> Timeline | None:
        path = self.base_path / "projects" / project_id / self.TIMELINE_FILE
        if not path.exists():
            return None
        return Timeline.model_validate_json(path.read_text(encoding="utf-8"))

    def save(self, project_id: str, timeline: Timeline) -> None:
        path = self._project_dir(project_id) / self.TIMELINE_FILE
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(timeline.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(path)
        logger.info(f"[STORE] Saved timeline for project {project_id}")

    def record_export(self, project_id: str, output_path: str) -> None:
        path = self._project_dir(project_id) / self.EXPORTS_FILE
        exports = json.loads(path.read_text(encoding="utf-8")) if path.exists() else []
        exports.append(
            {
                "output_path": output_path,
                "exported_at": datetime.now(timezone.utc).isoformat(),
            }
        )
        path.write_text(json.dumps(exports, indent=2), encoding="utf-8")
        logger.info(f"[STORE] Recorded export for project {project_id}: {output_path}")

    def list_exports(self, project_id: str) -> list[dict]:
        path = self.base_path / "projects" / project_id / self.EXPORTS_FILE
        if not path.exists():
            return []
        return json.loads(path.read_text(encoding="utf-8"))


class LocalAssetResolver:
    """Resolve logical paths relative to the local storage root.

    Absolute paths are accepted as-is. Returns None when the file is missing.
    """

    def __init__(self, base_path: str | Path | None = None) -> None:
        self.base_path = Path(base_path or get_settings().local_storage_path)

    def resolve(self, logical_path: str) -> Path | None:
        if not logical_path:
            return None
        candidate = Path(logical_path)
        if not candidate.is_absolute():
            candidate = self.base_path / logical_path.lstrip("/")
        if candidate.is_file():
            return candidate
        return None
