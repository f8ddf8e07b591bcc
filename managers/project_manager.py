"""Project persistence: host project images, then save the record to the project store"""

import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import requests

from asset_processor import fetch_as_data_url, fetch_blob, file_to_data_url
from errors import AuthenticationFailed, RemoteCallFailed, RenderFailed
from managers.asset_manager import LABEL_RENDERED, LABEL_SOURCE, AssetManager
from managers.config_manager import ConfigManager
from managers.hosting_manager import HostingManager, LocalHostingProvider
from managers.identity_manager import IdentityManager
from managers.kv_store import KeyValueStoreFactory
from models.project import ProjectRecord
from store_client import ProjectStoreClient

logger = logging.getLogger("Hosting_Server")


def _now_ms() -> int:
    return int(time.time() * 1000)


def resolve_owner_id(config_manager: ConfigManager, identity_manager: Optional[IdentityManager] = None) -> str:
    """Owner for namespace and record ownership: the store token's user, else the owner_id setting"""
    configured = config_manager.get("owner_id")
    token = config_manager.get("store_token")
    if identity_manager is None or not token:
        return configured
    try:
        user_id = identity_manager.resolve_current_user(token)["id"]
    except AuthenticationFailed:
        logger.warning(f"Store token does not resolve to a user; using configured owner {configured}")
        return configured
    if user_id != configured:
        logger.info(f"Using authenticated owner {user_id} instead of configured owner {configured}")
    return user_id


class ProjectManager:
    """Orchestrates namespace lookup, asset hosting and the store save call.

    Every public method returns None (or an empty list) instead of raising when
    the store is unconfigured or a remote step fails; the cause is logged.
    """

    def __init__(
        self,
        store_client: ProjectStoreClient,
        hosting_manager: HostingManager,
        asset_manager: AssetManager,
        owner_id: str,
        renderer=None,
        timeout: int = 30
    ):
        self.store_client = store_client
        self.hosting_manager = hosting_manager
        self.asset_manager = asset_manager
        self.owner_id = owner_id
        self.renderer = renderer
        self.timeout = timeout

    @classmethod
    def from_config(
        cls,
        config_manager: ConfigManager,
        kv_factory: KeyValueStoreFactory,
        identity_manager: Optional[IdentityManager] = None,
        renderer=None,
        session=None
    ) -> "ProjectManager":
        """Wire a manager from configuration.

        When identity_manager is given and the store token resolves to a user,
        that user owns the hosting namespace and the saved records; the
        owner_id setting is only the fallback for unauthenticated setups.
        """
        owner_id = resolve_owner_id(config_manager, identity_manager)
        domain = config_manager.get("hosting_domain")
        timeout = config_manager.get("request_timeout")

        provider = LocalHostingProvider(
            root=config_manager.get("hosting_root"),
            owner_id=owner_id,
            domain=domain,
            scheme=config_manager.get("hosting_scheme"),
        )
        store_client = ProjectStoreClient(
            base_url=config_manager.get("store_base_url"),
            token=config_manager.get("store_token"),
            timeout=timeout,
            session=session,
        )
        return cls(
            store_client=store_client,
            hosting_manager=HostingManager(kv_factory.for_owner(owner_id), provider),
            asset_manager=AssetManager(provider, domain, timeout=timeout),
            owner_id=owner_id,
            renderer=renderer,
            timeout=timeout,
        )

    def _resolve_image(self, hosted, original: Optional[str]) -> Optional[str]:
        """Prefer the freshly hosted URL, else keep an original that is already durable"""
        if hosted is not None:
            return hosted.url
        if self.asset_manager.is_durable(original):
            return original
        return None

    def create_or_update_project(
        self,
        record: Union[ProjectRecord, Dict[str, Any]],
        visibility: str = "private"
    ) -> Optional[ProjectRecord]:
        """Host the record's images and save it.

        Args:
            record: ProjectRecord or its wire-shaped dict
            visibility: "private" or "public"; defaults isPublic when the record has none

        Returns:
            The record as stored (server fields such as updatedAt included), or
            None when the store is unconfigured, the source image could not be
            hosted, or the store rejected the save
        """
        if isinstance(record, dict):
            record = ProjectRecord.from_dict(record)

        if not self.store_client.is_configured:
            logger.info("Project store URL not configured; skipping save")
            return None

        # The id names the asset directory; nothing is hosted without one
        if not record.id:
            logger.warning("Save skipped: project has no id")
            return None

        namespace = self.hosting_manager.get_or_create_namespace()

        hosted_source = self.asset_manager.materialize(namespace, record.source_image, record.id, LABEL_SOURCE)
        hosted_rendered = None
        if record.rendered_image:
            hosted_rendered = self.asset_manager.materialize(namespace, record.rendered_image, record.id, LABEL_RENDERED)

        source_image = self._resolve_image(hosted_source, record.source_image)
        if not source_image:
            logger.warning(f"Save skipped for project {record.id}: source image is not hostable")
            return None
        rendered_image = self._resolve_image(hosted_rendered, record.rendered_image)

        payload = replace(
            record,
            source_image=source_image,
            rendered_image=rendered_image,
            owner_id=self.owner_id,
            is_public=record.is_public if record.is_public is not None else visibility == "public",
        ).to_dict(include_local_hints=False)

        try:
            response = self.store_client.save_project(payload, visibility)
        except RemoteCallFailed as e:
            logger.warning(f"Failed to save project {record.id}: {e}")
            return None

        saved = response.get("project") if isinstance(response, dict) else None
        if not isinstance(saved, dict):
            logger.warning(f"Project store returned no record for {record.id}")
            return None
        return ProjectRecord.from_dict(saved)

    def get_project(self, project_id: str) -> Optional[ProjectRecord]:
        if not self.store_client.is_configured:
            logger.info("Project store URL not configured; cannot load project")
            return None
        try:
            return ProjectRecord.from_dict(self.store_client.get_project(project_id))
        except (RemoteCallFailed, KeyError) as e:
            logger.warning(f"Failed to load project {project_id}: {e}")
            return None

    def list_projects(self) -> List[ProjectRecord]:
        if not self.store_client.is_configured:
            logger.info("Project store URL not configured; no projects to list")
            return []
        try:
            return [ProjectRecord.from_dict(item) for item in self.store_client.list_projects()]
        except RemoteCallFailed as e:
            logger.warning(f"Failed to list projects: {e}")
            return []

    def create_project_from_file(self, path: Union[str, Path], name: Optional[str] = None) -> Optional[ProjectRecord]:
        """Create a private project from a local JPEG/PNG upload.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file type is not allowed or the file is too large
        """
        source_image = file_to_data_url(path)
        created_at = _now_ms()
        project_id = str(created_at)
        record = ProjectRecord(
            id=project_id,
            source_image=source_image,
            name=name or f"Project {project_id}",
            owner_id=self.owner_id,
            is_public=False,
            timestamp=created_at,
            source_path=str(path),
        )
        return self.create_or_update_project(record, visibility="private")

    def render_project(self, project_id: str, force: bool = False) -> Optional[ProjectRecord]:
        """Render the project's source image and save the result as its rendered image.

        An already-hosted render is kept unless force is set. Render failures
        leave the stored record untouched.
        """
        if self.renderer is None:
            logger.warning("No render provider configured")
            return None

        record = self.get_project(project_id)
        if record is None or not record.source_image:
            return None
        if record.rendered_image and not force and self.asset_manager.is_durable(record.rendered_image):
            logger.debug(f"Project {project_id} already has a hosted render")
            return record

        try:
            blob, mime_type = fetch_blob(record.source_image, timeout=self.timeout)
            rendered_url = self.renderer.render(blob, mime_type or "image/png")
            rendered_image = fetch_as_data_url(rendered_url, timeout=self.timeout)
        except (RenderFailed, requests.RequestException, ValueError) as e:
            logger.warning(f"Render failed for project {project_id}: {e}")
            return None

        updated = replace(
            record,
            rendered_image=rendered_image,
            rendered_path=None,
            timestamp=_now_ms(),
            owner_id=self.owner_id,
            is_public=record.is_public if record.is_public is not None else False,
        )
        return self.create_or_update_project(updated, visibility="private")
