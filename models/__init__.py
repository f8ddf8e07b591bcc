"""Data models for the project hosting server"""

from models.project import HostedAsset, HostingNamespace, ProjectRecord

__all__ = ["HostedAsset", "HostingNamespace", "ProjectRecord"]
