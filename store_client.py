import logging
from typing import Any, Dict, List, Optional

import requests

from errors import RemoteCallFailed, StoreUnavailable

logger = logging.getLogger("StoreClient")


class ProjectStoreClient:
    """HTTP client for the project store REST API.

    `session` is anything with requests-style get/post methods; it defaults
    to a requests.Session.
    """

    def __init__(self, base_url: Optional[str], token: Optional[str] = None, timeout: int = 30, session=None):
        self.base_url = (base_url or "").rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        if not self.is_configured:
            raise StoreUnavailable("Project store URL is not configured")
        url = f"{self.base_url}{path}"
        try:
            response = getattr(self.session, method)(url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise RemoteCallFailed(f"Project store unreachable at {url}: {e}")

        try:
            body = response.json()
        except ValueError:
            body = {"error": response.text}

        if not 200 <= response.status_code < 300:
            message = body.get("error") if isinstance(body, dict) else None
            raise RemoteCallFailed(
                f"{method.upper()} {path} failed: {response.status_code} - {message or 'unknown error'}",
                status_code=response.status_code,
                body=body,
            )
        return body

    def save_project(self, project: Dict[str, Any], visibility: str = "private") -> Dict[str, Any]:
        body = self._request("post", "/api/projects/save", json={"project": project, "visibility": visibility})
        logger.info(f"Saved project {body.get('id')}")
        return body

    def get_project(self, project_id: str) -> Dict[str, Any]:
        body = self._request("get", "/api/projects/get", params={"id": project_id})
        return body["project"]

    def list_projects(self) -> List[Dict[str, Any]]:
        body = self._request("get", "/api/projects/list")
        return body.get("projects", [])
