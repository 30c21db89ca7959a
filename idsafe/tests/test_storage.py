import json
import sqlite3

import pytest
import yaml

from idsafe import config
from idsafe.db import list_events
from idsafe.errors import Unauthorized
from idsafe.storage import StateStore, load_genesis

from conftest import ADMIN, H1, NGO1, NGO2, USER


def test_load_without_state(isolated_home):
    with pytest.raises(FileNotFoundError):
        StateStore().load()


def test_initialise_persists_state(isolated_home):
    store = StateStore()
    store.initialise(ADMIN, [NGO1, NGO2], 2)

    data = yaml.safe_load(config.STATE_FILE.read_text())
    assert data["admin"] == ADMIN
    assert data["validators"] == [NGO1, NGO2]
    assert data["threshold"] == 2
    assert data["identities"] == {}


def test_initialise_refuses_to_overwrite(isolated_home):
    store = StateStore()
    store.initialise(ADMIN, [NGO1, NGO2], 2)
    with pytest.raises(FileExistsError):
        store.initialise("someone", [NGO1], 1)
    assert store.load()["admin"] == ADMIN


def test_mutations_survive_reload(isolated_home):
    store = StateStore()
    store.initialise(ADMIN, [NGO1, NGO2], 2)

    with store.locked():
        engine = store.open_engine()
        engine.register_identity(NGO1, USER, H1)
        engine.approve_identity(NGO1, USER)
    with store.locked():
        engine = store.open_engine()
        engine.approve_identity(NGO2, USER)

    reloaded = StateStore().open_engine()
    assert reloaded.is_registered(USER)
    assert reloaded.get_identity_hash(USER) == H1
    assert reloaded.get_approvals(USER) == [NGO1, NGO2]


def test_failed_call_is_not_persisted(isolated_home):
    store = StateStore()
    store.initialise(ADMIN, [NGO1, NGO2], 2)
    engine = store.open_engine()
    with pytest.raises(Unauthorized):
        engine.register_identity(USER, USER, H1)
    assert store.load()["identities"] == {}


def test_sqlite_mirror(isolated_home):
    store = StateStore()
    engine = store.initialise(ADMIN, [NGO1, NGO2], 2)
    engine.register_identity(NGO1, USER, H1)
    engine.approve_identity(NGO1, USER)

    conn = sqlite3.connect(config.DB_FILE)
    try:
        row = conn.execute(
            "select data_hash, approvers, registered, state from identities where subject = ?",
            (USER,),
        ).fetchone()
        settings = dict(conn.execute("select key, value from settings").fetchall())
    finally:
        conn.close()
    assert row == (H1, json.dumps([NGO1]), 0, "pending")
    assert settings["admin"] == ADMIN
    assert settings["threshold"] == "2"


def test_audit_trail(isolated_home):
    store = StateStore()
    engine = store.initialise(ADMIN, [NGO1, NGO2], 2)
    engine.register_identity(NGO1, USER, H1)
    engine.approve_identity(NGO1, USER)
    engine.approve_identity(NGO2, USER)
    engine.revoke_identity(ADMIN, USER)

    lines = [json.loads(line) for line in config.AUDIT_LOG_FILE.read_text().splitlines()]
    assert [entry["event"] for entry in lines] == [
        "initialise",
        "register",
        "approve",
        "approve",
        "registered",
        "revoke",
    ]
    assert lines[1]["subject"] == USER
    assert lines[1]["actor"] == NGO1

    events = list_events(limit=2)
    assert [e["event"] for e in events] == ["revoke", "registered"]
    assert events[0]["actor"] == ADMIN


def test_load_genesis(tmp_path):
    genesis = load_genesis(config.EXAMPLE_GENESIS_FILE)
    assert genesis["threshold"] == 2
    assert len(genesis["validators"]) == 3

    partial = tmp_path / "genesis.yaml"
    partial.write_text(yaml.safe_dump({"admin": "a", "validators": ["b"]}))
    with pytest.raises(ValueError, match="threshold"):
        load_genesis(partial)
    with pytest.raises(ValueError, match="empty or missing"):
        load_genesis(tmp_path / "missing.yaml")


@pytest.mark.parametrize(
    "genesis",
    [
        {"admin": "a", "validators": "ngo1", "threshold": 1},
        {"admin": "a", "validators": ["ngo1", 7], "threshold": 1},
        {"admin": "a", "validators": ["ngo1"], "threshold": None},
        {"admin": "a", "validators": ["ngo1"], "threshold": True},
        {"admin": "a", "validators": ["ngo1"], "threshold": "1"},
        {"admin": None, "validators": ["ngo1"], "threshold": 1},
    ],
)
def test_load_genesis_rejects_wrong_types(tmp_path, genesis):
    path = tmp_path / "genesis.yaml"
    path.write_text(yaml.safe_dump(genesis))
    with pytest.raises(ValueError, match="must be"):
        load_genesis(path)


def test_revoked_record_state_is_mirrored(isolated_home):
    engine = StateStore().initialise(ADMIN, [NGO1, NGO2], 2)
    engine.register_identity(NGO1, USER, H1)
    engine.approve_identity(NGO1, USER)
    engine.revoke_identity(ADMIN, USER)

    conn = sqlite3.connect(config.DB_FILE)
    try:
        row = conn.execute(
            "select approvers, registered, state from identities where subject = ?", (USER,)
        ).fetchone()
    finally:
        conn.close()
    assert row == ("[]", 0, "unregistered")
