import json
import logging
import sqlite3
from typing import Any, Dict, Optional

from . import config
from .db import insert_event
from .utils import ensure_dir, utc_now, file_lock


logger = logging.getLogger(__name__)


def record_event(event_type: str, subject: Optional[str], actor: str, data: Dict[str, Any]) -> None:
    ensure_dir(config.AUDIT_LOG_FILE.parent)
    entry = {
        "timestamp": utc_now(),
        "event": event_type,
        "subject": subject,
        "actor": actor,
        "data": data,
    }
    lock_path = config.LOCK_DIR / "audit.log.lock"
    with file_lock(lock_path):
        with config.AUDIT_LOG_FILE.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False))
            f.write("\n")
    # Best-effort SQLite write; failures should not block
    try:
        insert_event(entry["timestamp"], event_type, subject, actor, data)
    except sqlite3.Error as exc:
        logger.warning(f"Audit event {event_type} not mirrored to SQLite: {exc}")
