import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from mcp.server.fastmcp import FastMCP

from managers.config_manager import ConfigManager
from managers.identity_manager import IdentityManager
from managers.kv_store import KeyValueStoreFactory
from managers.project_manager import ProjectManager
from managers.store_service import ProjectStoreService
from render_client import RenderClient
from tools.configuration import register_configuration_tools
from tools.project import register_project_tools
from tools.store_routes import register_store_routes

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("Hosting_Server")

config_manager = ConfigManager()
identity_manager = IdentityManager(config_manager.get("tokens_file"))
kv_factory = KeyValueStoreFactory(Path(config_manager.get("data_dir")) / "kv")
store_service = ProjectStoreService(kv_factory, identity_manager)


def get_project_manager() -> ProjectManager:
    """Build a project manager from the current configuration"""
    renderer = RenderClient(
        config_manager.get("render_url"),
        model=config_manager.get("render_model"),
        timeout=config_manager.get("request_timeout"),
    )
    return ProjectManager.from_config(config_manager, kv_factory, identity_manager=identity_manager, renderer=renderer)


# Define application context
class AppContext:
    def __init__(self, config_manager: ConfigManager, store_service: ProjectStoreService):
        self.config_manager = config_manager
        self.store_service = store_service


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Manage application lifecycle"""
    logger.info("Starting project hosting server lifecycle...")
    try:
        if config_manager.store_configured():
            logger.info(f"Project store: {config_manager.get('store_base_url')}")
        else:
            logger.info("Project store URL not configured; project saves are disabled")
        logger.info(f"Hosting root: {config_manager.get('hosting_root')} (domain {config_manager.get('hosting_domain')})")
        yield AppContext(config_manager=config_manager, store_service=store_service)
    finally:
        logger.info("Shutting down project hosting server")


# Initialize FastMCP with lifespan
mcp = FastMCP(
    "Project_Hosting_Server",
    lifespan=app_lifespan,
    host=config_manager.get("host"),
    port=config_manager.get("port"),
)

register_store_routes(mcp, store_service)
register_project_tools(mcp, get_project_manager)
register_configuration_tools(mcp, config_manager)

if __name__ == "__main__":
    mcp.run(transport="streamable-http")
