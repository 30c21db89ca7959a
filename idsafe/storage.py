import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from . import config
from .audit import record_event
from .db import sync_snapshot
from .engine import ApprovalEngine
from .utils import dump_yaml, file_lock, load_yaml, utc_now


logger = logging.getLogger(__name__)


class StateStore:
    """
    Durable home of the registry state.

    The YAML snapshot is the source of truth; SQLite is a best-effort mirror.
    Cross-process callers hold ``locked()`` around a whole load/apply/save
    cycle.
    """

    def __init__(self, path: Optional[Path] = None, lock_path: Optional[Path] = None):
        self.path = path or config.STATE_FILE
        self.lock_path = lock_path or config.LOCK_DIR / "state.lock"

    def exists(self) -> bool:
        return self.path.exists()

    @contextmanager
    def locked(self):
        with file_lock(self.lock_path):
            yield self

    def load(self) -> Dict[str, Any]:
        if not self.exists():
            raise FileNotFoundError(f"No registry state at {self.path}; run `idsafe init` first")
        data = load_yaml(self.path)
        if not data:
            raise FileNotFoundError(f"Registry state at {self.path} is empty or invalid")
        return data

    def save(self, data: Dict[str, Any]) -> None:
        data = dict(data)
        data["saved_at"] = utc_now()
        dump_yaml(data, self.path)
        try:
            sync_snapshot(data)
        except sqlite3.Error as exc:
            # DB is best-effort; YAML remains source of truth
            logger.warning(f"State snapshot not mirrored to SQLite: {exc}")

    def initialise(self, admin: str, validators: Iterable[str], threshold: int) -> ApprovalEngine:
        """Create fresh state. Refuses to overwrite an existing registry."""
        if self.exists():
            raise FileExistsError(f"Registry state already exists at {self.path}")
        engine = ApprovalEngine.create(
            admin, validators, threshold, checkpoint=self.save, audit=record_event
        )
        self.save(engine.snapshot())
        record_event(
            "initialise",
            None,
            engine.admin(),
            {"validators": engine.validators(), "threshold": engine.approval_threshold()},
        )
        return engine

    def open_engine(self) -> ApprovalEngine:
        """Load state into an engine that checkpoints and audits every mutation."""
        return ApprovalEngine.from_snapshot(self.load(), checkpoint=self.save, audit=record_event)


def load_genesis(path: Path) -> Dict[str, Any]:
    data = load_yaml(path)
    if not data:
        raise ValueError(f"Genesis file is empty or missing: {path}")
    missing = [key for key in ("admin", "validators", "threshold") if key not in data]
    if missing:
        raise ValueError(f"Genesis file {path} missing keys: {', '.join(missing)}")
    if not isinstance(data["admin"], str):
        raise ValueError(f"Genesis file {path}: admin must be a string")
    validators = data["validators"]
    if not isinstance(validators, list) or not all(isinstance(v, str) for v in validators):
        raise ValueError(f"Genesis file {path}: validators must be a list of strings")
    threshold = data["threshold"]
    if isinstance(threshold, bool) or not isinstance(threshold, int):
        raise ValueError(f"Genesis file {path}: threshold must be an integer")
    return data
