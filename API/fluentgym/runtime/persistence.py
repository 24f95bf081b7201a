import json
from datetime import datetime, timezone
from pathlib import Path

from fluentgym.core.settings import settings


class SessionSnapshotStore:
    """Persistence collaborator: one JSON file per ended session."""

    def __init__(self, base_dir: str | Path | None = None):
        self.base = Path(base_dir or settings.runtime_data_dir)

    def _path(self, session_id: str) -> Path:
        return self.base / f"session_{session_id}.json"

    def save(self, snapshot: dict) -> None:
        self.base.mkdir(parents=True, exist_ok=True)
        session_id = snapshot["session"]["id"]
        payload = {"saved_at": datetime.now(timezone.utc).isoformat(), **snapshot}
        self._path(session_id).write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def load(self, session_id: str) -> dict | None:
        path = self._path(session_id)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def list_ids(self) -> list[str]:
        if not self.base.exists():
            return []
        return sorted(p.stem.removeprefix("session_") for p in self.base.glob("session_*.json"))
