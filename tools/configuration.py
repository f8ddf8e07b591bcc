"""Configuration tools for the project hosting server"""

from typing import Any, Dict

from mcp.server.fastmcp import FastMCP

from managers.config_manager import ConfigManager


def register_configuration_tools(
    mcp: FastMCP,
    config_manager: ConfigManager
):
    """Register configuration tools with the MCP server"""

    @mcp.tool()
    def get_config() -> dict:
        """Get the effective configuration.

        Returns merged settings from all sources (runtime, config file, env, hardcoded).
        The store token is redacted.
        """
        return config_manager.get_all(redact=True)

    @mcp.tool()
    def set_config(settings: Dict[str, Any], persist: bool = False) -> dict:
        """Set runtime configuration values.

        Args:
            settings: Dict of settings (e.g., {"store_base_url": "http://127.0.0.1:9000", "owner_id": "alice"})
            persist: If True, write settings to the config file
                (~/.config/project-hosting/config.json). Otherwise, changes are ephemeral.

        Returns:
            Success status and any validation errors (e.g., unknown keys).
        """
        result = config_manager.set_settings(settings)
        if "errors" in result:
            return {"success": False, "errors": result["errors"]}

        if persist:
            persist_result = config_manager.persist_settings(settings)
            if "error" in persist_result:
                return {"success": False, "errors": [f"Failed to persist settings: {persist_result['error']}"]}
            result["persisted"] = persist_result["persisted"]

        return result
