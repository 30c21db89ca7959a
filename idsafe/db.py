import json
import sqlite3
from typing import Any, Dict, List

from . import config
from .utils import ensure_dir, file_lock


def _connect() -> sqlite3.Connection:
    ensure_dir(config.DB_FILE.parent)
    conn = sqlite3.connect(config.DB_FILE)
    conn.execute("pragma journal_mode=WAL;")
    conn.execute("pragma foreign_keys=ON;")
    return conn


def init_db() -> None:
    with file_lock(config.LOCK_DIR / "db.lock"):
        conn = _connect()
        try:
            conn.execute(
                """
                create table if not exists events (
                    id integer primary key autoincrement,
                    ts text not null,
                    event text not null,
                    subject text,
                    actor text,
                    data text
                );
                """
            )
            conn.execute(
                """
                create table if not exists identities (
                    subject text primary key,
                    data_hash text not null,
                    approvers text,
                    registered integer not null default 0,
                    state text,
                    created_at text,
                    updated_at text
                );
                """
            )
            conn.execute(
                """
                create table if not exists settings (
                    key text primary key,
                    value text
                );
                """
            )
            conn.commit()
        finally:
            conn.close()


def insert_event(ts: str, event: str, subject: str, actor: str, data: Dict[str, Any]) -> None:
    init_db()
    with file_lock(config.LOCK_DIR / "db.lock"):
        conn = _connect()
        try:
            conn.execute(
                "insert into events (ts, event, subject, actor, data) values (?, ?, ?, ?, ?)",
                (ts, event, subject, actor, json.dumps(data, ensure_ascii=False)),
            )
            conn.commit()
        finally:
            conn.close()


def sync_snapshot(data: Dict[str, Any]) -> None:
    """Mirror a state snapshot into SQLite (YAML remains source-of-truth)."""
    init_db()
    identities = data.get("identities") or {}
    with file_lock(config.LOCK_DIR / "db.lock"):
        conn = _connect()
        try:
            conn.executemany(
                """
                insert into settings (key, value) values (?, ?)
                on conflict(key) do update set value=excluded.value;
                """,
                [
                    ("admin", data.get("admin")),
                    ("threshold", str(data.get("threshold"))),
                    ("validators", json.dumps(data.get("validators", []), ensure_ascii=False)),
                ],
            )
            conn.executemany(
                """
                insert into identities
                    (subject, data_hash, approvers, registered, state, created_at, updated_at)
                values
                    (:subject, :data_hash, :approvers, :registered, :state, :created_at, :updated_at)
                on conflict(subject) do update set
                    data_hash=excluded.data_hash,
                    approvers=excluded.approvers,
                    registered=excluded.registered,
                    state=excluded.state,
                    created_at=excluded.created_at,
                    updated_at=excluded.updated_at;
                """,
                [
                    {
                        "subject": subject,
                        "data_hash": record.get("data_hash"),
                        "approvers": json.dumps(record.get("approvers", []), ensure_ascii=False),
                        "registered": int(bool(record.get("registered"))),
                        "state": record.get("state"),
                        "created_at": record.get("created_at"),
                        "updated_at": record.get("updated_at"),
                    }
                    for subject, record in identities.items()
                ],
            )
            conn.commit()
        finally:
            conn.close()


def list_events(limit: int = 50) -> List[Dict[str, Any]]:
    init_db()
    with file_lock(config.LOCK_DIR / "db.lock"):
        conn = _connect()
        try:
            cur = conn.execute(
                "select ts, event, subject, actor, data from events order by id desc limit ?",
                (limit,),
            )
            rows = cur.fetchall()
        finally:
            conn.close()
    events = []
    for ts, event, subject, actor, data in rows:
        try:
            payload = json.loads(data) if data else {}
        except ValueError:
            payload = {"raw": data}
        events.append(
            {"timestamp": ts, "event": event, "subject": subject, "actor": actor, "data": payload}
        )
    return events
