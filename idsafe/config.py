import os
from pathlib import Path

# Base directory for the package
BASE_DIR = Path(__file__).resolve().parent

# Data directory (override with IDSAFE_HOME)
HOME_ENV = "IDSAFE_HOME"
DATA_DIR = Path(os.environ.get(HOME_ENV, str(BASE_DIR / "data")))

# Storage locations
STATE_FILE = DATA_DIR / "state.yaml"
LOCK_DIR = DATA_DIR / "locks"
DB_FILE = DATA_DIR / "idsafe.db"

# Default files
GENESIS_FILE = DATA_DIR / "genesis.yaml"
EXAMPLE_GENESIS_FILE = BASE_DIR / "genesis" / "example.yaml"

# Identifier / digest conventions
ZERO_ID = "0x" + "0" * 40
DIGEST_SIZE = 32

# Auth / audit
AUDIT_LOG_FILE = DATA_DIR / "audit.log"
API_TOKEN_ENV = "IDSAFE_API_TOKEN"
API_IDENTITY_ENV = "IDSAFE_API_IDENTITY"
API_TOKEN_FILE = DATA_DIR / "api_tokens.txt"
