"""Per-owner key/value store backed by one JSON document per owner"""

import json
import logging
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

logger = logging.getLogger("Hosting_Server")

# Owner ids become file names: no separators, no leading dot
OWNER_ID_REGEX = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$')

_file_locks: Dict[str, threading.Lock] = {}
_file_locks_guard = threading.Lock()


def validate_owner_id(owner_id: str) -> bool:
    return bool(owner_id) and bool(OWNER_ID_REGEX.match(owner_id))


def _lock_for(path: Path) -> threading.Lock:
    """Process-level lock shared by every store instance bound to the same file."""
    key = str(path)
    with _file_locks_guard:
        lock = _file_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _file_locks[key] = lock
        return lock


class KeyValueStore:
    """JSON key/value store scoped to a single owner"""

    def __init__(self, root_dir: Union[str, Path], owner_id: str):
        if not validate_owner_id(owner_id):
            raise ValueError(f"Invalid owner id: '{owner_id}'")
        self.owner_id = owner_id
        self.root_dir = Path(root_dir)
        self.path = self.root_dir / f"{owner_id}.json"
        self._lock = _lock_for(self.path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Failed to read key/value store {self.path}: {e}")
            raise

    def _write(self, data: Dict[str, Any]):
        self.root_dir.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            temp_path.replace(self.path)
        except (OSError, TypeError) as e:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError:
                    pass
            logger.error(f"Failed to write key/value store {self.path}: {e}")
            raise

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: Any):
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)
        logger.debug(f"kv[{self.owner_id}] set {key}")

    def list(self, prefix: str = "", with_values: bool = False) -> List[Union[str, Tuple[str, Any]]]:
        """List keys starting with prefix, sorted.

        Returns:
            Keys, or (key, value) pairs when with_values is True
        """
        with self._lock:
            data = self._read()
        keys = sorted(k for k in data if k.startswith(prefix))
        if with_values:
            return [(k, data[k]) for k in keys]
        return keys


class KeyValueStoreFactory:
    """Hands out owner-scoped stores under a shared root directory"""

    def __init__(self, root_dir: Union[str, Path]):
        self.root_dir = Path(root_dir)

    def for_owner(self, owner_id: str) -> KeyValueStore:
        return KeyValueStore(self.root_dir, owner_id)
