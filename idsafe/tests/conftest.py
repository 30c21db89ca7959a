import pytest

from idsafe import config
from idsafe.engine import ApprovalEngine
from idsafe.utils import text_to_digest


ADMIN = "admin"
NGO1 = "ngo1"
NGO2 = "ngo2"
USER = "user"

H1 = text_to_digest("testData")
H2 = text_to_digest("newData")


@pytest.fixture
def engine():
    """Two validators, threshold 2 (the reference deployment)."""
    return ApprovalEngine.create(ADMIN, [NGO1, NGO2], 2)


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    """Point every storage location at a temporary directory."""
    monkeypatch.setattr(config, "DATA_DIR", tmp_path)
    monkeypatch.setattr(config, "STATE_FILE", tmp_path / "state.yaml")
    monkeypatch.setattr(config, "LOCK_DIR", tmp_path / "locks")
    monkeypatch.setattr(config, "DB_FILE", tmp_path / "idsafe.db")
    monkeypatch.setattr(config, "AUDIT_LOG_FILE", tmp_path / "audit.log")
    monkeypatch.setattr(config, "API_TOKEN_FILE", tmp_path / "api_tokens.txt")
    monkeypatch.setattr(config, "GENESIS_FILE", tmp_path / "genesis.yaml")
    monkeypatch.delenv(config.API_TOKEN_ENV, raising=False)
    monkeypatch.delenv(config.API_IDENTITY_ENV, raising=False)
    return tmp_path
