from datetime import datetime, timezone
import os
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import yaml

from . import config
from .errors import InvalidArgument

_HEX_DIGEST = re.compile(r"^0x[0-9a-f]{64}$")

EMPTY_DIGEST = "0x" + "0" * (2 * config.DIGEST_SIZE)


def utc_now() -> str:
    """Return an ISO 8601 timestamp in UTC."""
    return datetime.now(timezone.utc).isoformat()


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    text = path.read_text()
    if not text.strip():
        return {}
    return yaml.safe_load(text) or {}


def dump_yaml(data: Dict[str, Any], path: Path) -> None:
    """Write YAML atomically: temp file in the same directory, then rename."""
    ensure_dir(path.parent)
    tmp_path = path.with_name(f".{path.name}.tmp")
    tmp_path.write_text(yaml.safe_dump(data, sort_keys=False))
    os.replace(tmp_path, path)


def normalize_id(raw: Optional[str]) -> str:
    """Lower-case and strip an identifier; empty string stays empty."""
    if raw is None:
        return ""
    return str(raw).strip().lower()


def is_null_id(identifier: Optional[str]) -> bool:
    normalized = normalize_id(identifier)
    return normalized in ("", config.ZERO_ID)


def require_id(raw: Optional[str], what: str = "identifier") -> str:
    normalized = normalize_id(raw)
    if is_null_id(normalized):
        raise InvalidArgument(f"{what} must not be the null identifier")
    return normalized


def normalize_ids(raws: Iterable[str], what: str = "identifier") -> List[str]:
    return sorted({require_id(raw, what) for raw in raws})


def normalize_digest(raw: Union[str, bytes, None]) -> str:
    """Coerce a 32-byte digest (bytes or 0x-hex) to lower-case 0x-hex."""
    if isinstance(raw, (bytes, bytearray)):
        if len(raw) != config.DIGEST_SIZE:
            raise InvalidArgument(f"digest must be {config.DIGEST_SIZE} bytes, got {len(raw)}")
        return "0x" + bytes(raw).hex()
    if raw is None:
        raise InvalidArgument("digest is required")
    text = str(raw).strip().lower()
    if not _HEX_DIGEST.match(text):
        raise InvalidArgument(f"digest must be 0x followed by 64 hex digits: {raw!r}")
    return text


def text_to_digest(text: str) -> str:
    """Encode short text as a zero-padded 32-byte digest (formatBytes32String)."""
    encoded = text.encode("utf-8")
    if len(encoded) > config.DIGEST_SIZE - 1:
        raise InvalidArgument("text too long for a 32-byte digest")
    return "0x" + encoded.ljust(config.DIGEST_SIZE, b"\x00").hex()


@contextmanager
def file_lock(lock_path: Path):
    """Advisory lock using fcntl (best-effort)."""
    ensure_dir(lock_path.parent)
    import fcntl

    with lock_path.open("w") as lock_file:
        fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
