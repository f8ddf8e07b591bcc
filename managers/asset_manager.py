"""Asset materialization: turn image references into durable hosted files"""

import logging
from typing import Optional

from asset_processor import fetch_blob, get_image_extension, get_image_metadata, image_url_to_png
from errors import MaterializationFailed
from managers.hosting_manager import LocalHostingProvider, is_hosted_url
from managers.kv_store import validate_owner_id
from models.project import HostedAsset, HostingNamespace

logger = logging.getLogger("Hosting_Server")

LABEL_SOURCE = "source"
LABEL_RENDERED = "rendered"
LABELS = (LABEL_SOURCE, LABEL_RENDERED)


def asset_path(project_id: str, label: str, ext: str) -> str:
    """Destination path for a project asset: projects/<id>/<label>.<ext>"""
    return f"projects/{project_id}/{label}.{ext}"


class AssetManager:
    """Hosts project images under the owner's namespace.

    Rendered images are always normalized to PNG; source images keep their
    original encoding. References that already point into a hosting namespace
    are returned untouched.
    """

    def __init__(self, provider: LocalHostingProvider, hosting_domain: str, timeout: int = 30):
        self.provider = provider
        self.hosting_domain = hosting_domain
        self.timeout = timeout

    def is_durable(self, reference: Optional[str]) -> bool:
        return is_hosted_url(reference, self.hosting_domain)

    def _resolve(self, reference: str, label: str):
        """Return (blob, content_type) for a reference according to its label"""
        try:
            if label == LABEL_RENDERED:
                return image_url_to_png(reference, timeout=self.timeout), "image/png"
            return fetch_blob(reference, timeout=self.timeout)
        except Exception as e:
            raise MaterializationFailed(f"Could not resolve {label} image: {e}")

    def materialize(
        self,
        namespace: Optional[HostingNamespace],
        image_reference: Optional[str],
        project_id: str,
        label: str
    ) -> Optional[HostedAsset]:
        """Host image_reference at projects/<project_id>/<label>.<ext>.

        Returns:
            HostedAsset, or None when there is nothing to do or materialization failed
        """
        if label not in LABELS:
            raise ValueError(f"Unknown asset label: '{label}'")
        if namespace is None or not image_reference:
            return None

        if self.is_durable(image_reference):
            logger.debug(f"{label} image for {project_id} is already hosted")
            return HostedAsset(url=image_reference)

        # The id becomes a directory name
        if not validate_owner_id(str(project_id)):
            logger.warning(f"Cannot materialize {label} image: invalid project id '{project_id}'")
            return None

        try:
            blob, content_type = self._resolve(image_reference, label)
            ext = get_image_extension(content_type, image_reference)
            path = asset_path(project_id, label, ext)

            self.provider.mkdir(f"projects/{project_id}", create_parents=True)
            size = self.provider.write_blob(path, blob)
            url = self.provider.public_url_for(namespace, path)
        except Exception as e:
            logger.warning(f"Failed to materialize {label} image for project {project_id}: {e}")
            return None

        metadata = get_image_metadata(blob)
        logger.info(f"Hosted {label} image for project {project_id} at {url} ({size} bytes)")
        return HostedAsset(
            url=url,
            path=path,
            mime_type=content_type or None,
            bytes_size=size,
            width=metadata.get("width"),
            height=metadata.get("height"),
        )
