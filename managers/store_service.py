"""Project store operations: authenticated save/get/list over per-owner key/value stores"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from errors import InvalidInput, NotFound
from managers.identity_manager import IdentityManager
from managers.kv_store import KeyValueStoreFactory

logger = logging.getLogger("Hosting_Server")

PROJECT_KEY_PREFIX = "project:"
VISIBILITIES = ("private", "public")


def project_key(project_id: str) -> str:
    return f"{PROJECT_KEY_PREFIX}{project_id}"


def utc_timestamp() -> str:
    """Current UTC time as ISO 8601 with milliseconds and a Z suffix"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ProjectStoreService:
    """Server side of the project store.

    Every operation resolves the caller's identity first; nothing is read or
    written for an unauthenticated request.
    """

    def __init__(self, kv_factory: KeyValueStoreFactory, identity_manager: IdentityManager):
        self.kv_factory = kv_factory
        self.identity_manager = identity_manager

    def _authenticate(self, token: Optional[str]):
        user = self.identity_manager.resolve_current_user(token)
        return self.kv_factory.for_owner(user["id"]), user

    def save(self, token: Optional[str], body: Any) -> Dict[str, Any]:
        """Store body["project"] under project:<id>, stamping ownerId and updatedAt.

        Raises:
            AuthenticationFailed: If the token does not resolve to a user
            InvalidInput: If id or sourceImage is missing, or visibility is unknown
        """
        kv_store, user = self._authenticate(token)

        body = body if isinstance(body, dict) else {}
        project = body.get("project")
        if not isinstance(project, dict):
            raise InvalidInput("Project ID and source image are required")
        project_id = project.get("id")
        if project_id is None or project_id == "" or not project.get("sourceImage"):
            raise InvalidInput("Project ID and source image are required")

        visibility = body.get("visibility", "private")
        if visibility not in VISIBILITIES:
            raise InvalidInput(f"Invalid visibility: {visibility}", {"allowed": list(VISIBILITIES)})

        project_id = str(project_id)
        stored = dict(project)
        stored["id"] = project_id
        stored["ownerId"] = user["id"]
        stored["updatedAt"] = utc_timestamp()

        kv_store.set(project_key(project_id), stored)
        logger.info(f"Saved project {project_id} for {user['id']}")
        return {"saved": True, "id": project_id, "project": stored}

    def get(self, token: Optional[str], project_id: Optional[str]) -> Dict[str, Any]:
        """Raises AuthenticationFailed, InvalidInput (no id) or NotFound"""
        kv_store, _ = self._authenticate(token)
        if not project_id:
            raise InvalidInput("Project ID is required")

        project = kv_store.get(project_key(project_id))
        if project is None:
            raise NotFound("Project not found", {"id": project_id})
        return {"project": project}

    def list(self, token: Optional[str]) -> Dict[str, List[Dict[str, Any]]]:
        """Every project of the caller, in key order, with its stored visibility"""
        kv_store, _ = self._authenticate(token)
        entries = kv_store.list(PROJECT_KEY_PREFIX, with_values=True)
        return {"projects": [value for _, value in entries if isinstance(value, dict)]}
