"""Bearer-token identity resolution"""

import hashlib
import json
import logging
import secrets
import threading
from pathlib import Path
from typing import Dict, Optional, Union

from errors import AuthenticationFailed
from managers.kv_store import validate_owner_id

logger = logging.getLogger("Hosting_Server")


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class IdentityManager:
    """Resolves the current user from a bearer token.

    Tokens are stored as SHA-256 digests in a JSON file:
    {"tokens": {"<sha256>": "<user id>"}}. The file is re-read on every
    resolution so tokens issued by another process take effect immediately.
    """

    def __init__(self, tokens_file: Union[str, Path]):
        self.tokens_file = Path(tokens_file)
        self._lock = threading.Lock()

    def _load_tokens(self) -> Dict[str, str]:
        if not self.tokens_file.exists():
            return {}
        try:
            with open(self.tokens_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load tokens file {self.tokens_file}: {e}")
            return {}
        tokens = data.get("tokens", {}) if isinstance(data, dict) else {}
        return tokens if isinstance(tokens, dict) else {}

    def resolve_current_user(self, token: Optional[str]) -> Dict[str, str]:
        """Return {"id": user_id} for a valid token.

        Raises:
            AuthenticationFailed: If the token is missing or unknown
        """
        if not token:
            raise AuthenticationFailed()
        user_id = self._load_tokens().get(hash_token(token))
        if not user_id or not validate_owner_id(user_id):
            raise AuthenticationFailed()
        return {"id": user_id}

    def issue_token(self, user_id: str) -> str:
        """Create and persist a new token for user_id, returning the plain token"""
        if not validate_owner_id(user_id):
            raise ValueError(f"Invalid user id: '{user_id}'")

        token = secrets.token_urlsafe(32)
        with self._lock:
            tokens = self._load_tokens()
            tokens[hash_token(token)] = user_id
            self.tokens_file.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.tokens_file.with_suffix(".tmp")
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump({"tokens": tokens}, f, indent=2)
            temp_path.replace(self.tokens_file)
        logger.info(f"Issued token for user {user_id}")
        return token
