import hmac
import os
from typing import Dict, Optional

from . import config
from .utils import is_null_id, normalize_id


def load_api_tokens() -> Dict[str, str]:
    """Map API tokens to the caller identity they authenticate.

    Token file lines read ``<token> <identifier>``; blank lines and ``#``
    comments are ignored. The environment token maps to IDSAFE_API_IDENTITY.
    """
    tokens: Dict[str, str] = {}
    env_token = os.environ.get(config.API_TOKEN_ENV)
    env_identity = normalize_id(os.environ.get(config.API_IDENTITY_ENV))
    if env_token and not is_null_id(env_identity):
        tokens[env_token.strip()] = env_identity
    path = config.API_TOKEN_FILE
    if path.exists():
        for line in path.read_text().splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            parts = line.split()
            if len(parts) != 2 or is_null_id(parts[1]):
                continue
            tokens[parts[0]] = normalize_id(parts[1])
    return tokens


def resolve_caller(token: Optional[str]) -> Optional[str]:
    """Return the identity bound to ``token``, or None when it is unknown."""
    if not token:
        return None
    for known, identity in load_api_tokens().items():
        if hmac.compare_digest(known.encode(), token.encode()):
            return identity
    return None
