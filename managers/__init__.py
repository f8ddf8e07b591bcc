"""Manager classes for the project hosting server"""

from managers.asset_manager import AssetManager
from managers.config_manager import ConfigManager
from managers.hosting_manager import HostingManager, LocalHostingProvider
from managers.identity_manager import IdentityManager
from managers.kv_store import KeyValueStore, KeyValueStoreFactory
from managers.project_manager import ProjectManager
from managers.store_service import ProjectStoreService

__all__ = [
    "AssetManager",
    "ConfigManager",
    "HostingManager",
    "IdentityManager",
    "KeyValueStore",
    "KeyValueStoreFactory",
    "LocalHostingProvider",
    "ProjectManager",
    "ProjectStoreService",
]
