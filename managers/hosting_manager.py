"""Hosting namespaces: local hosting provider and the per-owner namespace provisioner"""

import json
import logging
import os
import secrets
import string
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union
from urllib.parse import urlparse

from errors import ProvisioningFailed
from managers.kv_store import KeyValueStore, validate_owner_id
from models.project import HostingNamespace

logger = logging.getLogger("Hosting_Server")

HOSTING_CONFIG_KEY = "hosting_config"
SLUG_PREFIX = "projects"
_SLUG_ALPHABET = string.ascii_lowercase + string.digits
_BASE36 = string.digits + string.ascii_lowercase

_owner_locks: Dict[str, threading.Lock] = {}
_owner_locks_guard = threading.Lock()


def _lock_for(key: str) -> threading.Lock:
    with _owner_locks_guard:
        lock = _owner_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _owner_locks[key] = lock
        return lock


def canonicalize_path(path: Union[str, Path], must_exist: bool = True) -> Path:
    """Resolve path to absolute real path (handles symlinks).

    Raises:
        ValueError: If path cannot be resolved and must_exist=True
    """
    try:
        return Path(path).resolve(strict=must_exist)
    except (OSError, RuntimeError) as e:
        raise ValueError(f"Cannot resolve path {path}: {e}")


def is_within(child_path: Union[str, Path], parent_path: Union[str, Path], child_must_exist: bool = True) -> bool:
    """Check if child_path is within parent_path using real path resolution.

    Both paths are canonicalized (symlinks resolved) before comparison.
    """
    try:
        child_real = canonicalize_path(child_path, must_exist=child_must_exist)
        parent_real = canonicalize_path(parent_path, must_exist=True)
        return child_real.is_relative_to(parent_real)
    except (ValueError, OSError):
        return False


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def create_hosting_slug(prefix: str = SLUG_PREFIX) -> str:
    """Generate a DNS-label-safe namespace handle: <prefix>-<base36 ms>-<random>"""
    stamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_SLUG_ALPHABET) for _ in range(6))
    return f"{prefix}-{stamp}-{suffix}"


def is_hosted_url(url: Optional[str], hosting_domain: str) -> bool:
    """True when url already points into a hosting namespace under hosting_domain"""
    if not url or not hosting_domain:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https"):
        return False
    host = (parsed.hostname or "").lower()
    suffix = "." + hosting_domain.lower().lstrip(".")
    # Require a handle label in front of the domain
    return host.endswith(suffix) and len(host) > len(suffix)


class LocalHostingProvider:
    """Hosting provider that publishes an owner's files from a local directory tree.

    Layout under root:
        owners/<owner_id>/...   files written by the owner
        sites.json              handle -> {owner_id, root_path, created_at}
    A web server serving <handle>.<domain> from the registered directory makes
    the files publicly reachable.
    """

    def __init__(
        self,
        root: Union[str, Path],
        owner_id: str,
        domain: str,
        scheme: str = "https"
    ):
        if not validate_owner_id(owner_id):
            raise ValueError(f"Invalid owner id: '{owner_id}'")
        self.root = Path(root)
        self.owner_id = owner_id
        self.domain = domain.lstrip(".")
        self.scheme = scheme
        self.owner_root = self.root / "owners" / owner_id
        self.registry_path = self.root / "sites.json"
        self._registry_lock = _lock_for(f"registry:{self.registry_path}")

    def _resolve_owner_path(self, path: str) -> Path:
        """Map an owner-relative path to disk, rejecting escapes from the owner root"""
        self.owner_root.mkdir(parents=True, exist_ok=True)
        target = self.owner_root / path.lstrip("/")
        if not is_within(target, self.owner_root, child_must_exist=False):
            raise ValueError(f"Path {path} is outside the owner root")
        return target

    def _load_registry(self) -> Dict[str, Any]:
        if not self.registry_path.exists():
            return {}
        with open(self.registry_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}

    def create_namespace(self, handle: str, root_path: str = ".") -> Dict[str, str]:
        """Register handle as a public site serving root_path of the owner's files.

        Raises:
            ProvisioningFailed: On handle collision, invalid handle or unsafe root path
        """
        if not handle or not all(c in _SLUG_ALPHABET + "-" for c in handle) or len(handle) > 63:
            raise ProvisioningFailed(f"Invalid namespace handle: '{handle}'")
        try:
            site_dir = self._resolve_owner_path(root_path)
        except ValueError as e:
            raise ProvisioningFailed(str(e))

        with self._registry_lock:
            try:
                registry = self._load_registry()
            except (json.JSONDecodeError, OSError) as e:
                raise ProvisioningFailed(f"Site registry unreadable: {e}")
            if handle in registry:
                raise ProvisioningFailed(f"Namespace handle already taken: '{handle}'")

            site_dir.mkdir(parents=True, exist_ok=True)
            registry[handle] = {
                "owner_id": self.owner_id,
                "root_path": str(site_dir),
                "created_at": datetime.now(timezone.utc).isoformat(),
            }
            self.root.mkdir(parents=True, exist_ok=True)
            temp_path = self.registry_path.with_suffix(".tmp")
            try:
                with open(temp_path, "w", encoding="utf-8") as f:
                    json.dump(registry, f, indent=2)
                temp_path.replace(self.registry_path)
            except OSError as e:
                raise ProvisioningFailed(f"Failed to register namespace {handle}: {e}")

        logger.info(f"Created hosting namespace {handle} for owner {self.owner_id}")
        return {"handle": handle}

    def mkdir(self, path: str, create_parents: bool = True):
        """Create a directory; never errors if it already exists"""
        self._resolve_owner_path(path).mkdir(parents=create_parents, exist_ok=True)

    def write_blob(self, path: str, blob: bytes) -> int:
        """Write blob atomically, returning the number of bytes written"""
        target_path = self._resolve_owner_path(path)
        temp_path = target_path.with_suffix(target_path.suffix + ".tmp")
        try:
            with open(temp_path, "wb") as f:
                f.write(blob)
            temp_path.replace(target_path)
        except OSError:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError:
                    pass
            raise
        return os.path.getsize(target_path)

    def public_url_for(self, namespace: HostingNamespace, path: str) -> str:
        return f"{self.scheme}://{namespace.handle}.{self.domain}/{path.lstrip('/')}"


class HostingManager:
    """Lazily provisions and caches the owner's hosting namespace.

    The cached config lives in the owner's key/value store under
    HOSTING_CONFIG_KEY. Within one process, provisioning for an owner is
    serialized; separate processes can still race, and the last cache write wins.
    """

    def __init__(self, kv_store: KeyValueStore, provider: LocalHostingProvider):
        self.kv_store = kv_store
        self.provider = provider

    def get_cached_namespace(self) -> Optional[HostingNamespace]:
        existing = self.kv_store.get(HOSTING_CONFIG_KEY)
        if isinstance(existing, dict):
            handle = existing.get("handle")
            if isinstance(handle, str) and handle:
                return HostingNamespace(handle=handle)
        return None

    def get_or_create_namespace(self) -> Optional[HostingNamespace]:
        """Return the cached namespace, provisioning one on first use.

        Returns:
            HostingNamespace, or None when provisioning failed
        """
        try:
            cached = self.get_cached_namespace()
        except Exception as e:
            logger.warning(f"Could not read hosting config for {self.kv_store.owner_id}: {e}")
            return None
        if cached:
            logger.debug(f"Using cached hosting namespace {cached.handle}")
            return cached

        with _lock_for(f"owner:{self.kv_store.owner_id}"):
            try:
                cached = self.get_cached_namespace()
                if cached:
                    return cached

                handle = create_hosting_slug()
                created = self.provider.create_namespace(handle, ".")
                namespace = HostingNamespace(handle=created["handle"])
                self.kv_store.set(HOSTING_CONFIG_KEY, namespace.to_dict())
                return namespace
            except Exception as e:
                logger.warning(f"Could not provision hosting namespace for {self.kv_store.owner_id}: {e}")
                return None
