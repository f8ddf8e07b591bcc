"""Error taxonomy for project hosting and persistence"""

from typing import Any, Dict, Optional


class HostingError(Exception):
    """Base error. `status_code` is the HTTP status used when surfaced over REST."""
    status_code = 500

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}


class AuthenticationFailed(HostingError):
    status_code = 401

    def __init__(self, message: str = "Authentication failed", extra: Optional[Dict[str, Any]] = None):
        super().__init__(message, extra)


class InvalidInput(HostingError):
    status_code = 400


class NotFound(HostingError):
    status_code = 404


class ProvisioningFailed(HostingError):
    """Hosting namespace could not be created (collision, quota, network)."""


class MaterializationFailed(HostingError):
    """An image reference could not be fetched, decoded or written."""


class StoreUnavailable(HostingError):
    """The remote store base address is not configured."""
    status_code = 503


class RemoteCallFailed(HostingError):
    """The remote store answered with a non-2xx status or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message, {"status_code": status_code})
        self.remote_status = status_code
        self.body = body


class RenderFailed(HostingError):
    """The render provider did not produce an image."""
