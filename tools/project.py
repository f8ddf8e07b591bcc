"""Project tools: save, load, list, upload and render projects"""

import logging
from typing import Any, Callable, Dict, Optional

from mcp.server.fastmcp import FastMCP

from managers.project_manager import ProjectManager
from tools.helpers import tool_error

logger = logging.getLogger("Hosting_Server")


def register_project_tools(
    mcp: FastMCP,
    get_project_manager: Callable[[], ProjectManager]
):
    """Register project tools with the MCP server.

    get_project_manager is called per invocation so configuration changes made
    through set_config take effect on the next call.
    """

    @mcp.tool()
    def save_project(project: Dict[str, Any], visibility: str = "private") -> dict:
        """Save a project, hosting its images first.

        Data URLs and third-party image URLs in sourceImage/renderedImage are
        copied into the owner's hosting namespace at
        projects/<id>/source.<ext> and projects/<id>/rendered.png before the
        record is stored. Images that are already hosted are not re-uploaded.

        Args:
            project: Project record with at least "id" and "sourceImage"
                (optional: name, renderedImage, ownerId, isPublic, timestamp)
            visibility: "private" (default) or "public"

        Returns:
            {"project": <stored record>} or an error dict with "error" and "error_code"
        """
        if not isinstance(project, dict) or not project.get("id") or not project.get("sourceImage"):
            return tool_error("Project ID and source image are required", "INVALID_INPUT")
        if visibility not in ("private", "public"):
            return tool_error(f"Invalid visibility: {visibility}", "INVALID_INPUT")

        manager = get_project_manager()
        if not manager.store_client.is_configured:
            return tool_error("Project store URL is not configured (set store_base_url)", "STORE_UNAVAILABLE")

        saved = manager.create_or_update_project(project, visibility=visibility)
        if saved is None:
            return tool_error(
                "Save skipped: the source image could not be hosted or the store rejected the save",
                "SAVE_FAILED"
            )
        return {"project": saved.to_dict()}

    @mcp.tool()
    def get_project(project_id: str) -> dict:
        """Load a saved project by id.

        Returns:
            {"project": <record>} or an error dict
        """
        record = get_project_manager().get_project(project_id)
        if record is None:
            return tool_error(f"Project {project_id} not found or store unavailable", "PROJECT_NOT_FOUND")
        return {"project": record.to_dict()}

    @mcp.tool()
    def list_projects() -> dict:
        """List all saved projects of the configured owner."""
        projects = get_project_manager().list_projects()
        return {
            "projects": [record.to_dict() for record in projects],
            "count": len(projects),
        }

    @mcp.tool()
    def create_project_from_file(path: str, name: Optional[str] = None) -> dict:
        """Create a private project from a local JPEG or PNG file (max 50 MB).

        The project id is the creation time in epoch milliseconds; the name
        defaults to "Project <id>".

        Args:
            path: Path to a .png, .jpg or .jpeg file
            name: Optional display name
        """
        try:
            saved = get_project_manager().create_project_from_file(path, name=name)
        except FileNotFoundError:
            return tool_error(f"File not found: {path}", "FILE_NOT_FOUND")
        except ValueError as e:
            return tool_error(str(e), "INVALID_UPLOAD")

        if saved is None:
            return tool_error("Project could not be saved", "SAVE_FAILED")
        return {"project": saved.to_dict()}

    @mcp.tool()
    def render_project(project_id: str, force: bool = False) -> dict:
        """Render a 3D view of a project's source image and save it as the rendered image.

        Projects that already have a hosted render are returned unchanged
        unless force is True.
        """
        try:
            rendered = get_project_manager().render_project(project_id, force=force)
        except Exception as e:
            logger.exception(f"Render of project {project_id} failed")
            return tool_error(f"Render failed: {e}", "RENDER_FAILED")

        if rendered is None:
            return tool_error(f"Project {project_id} could not be rendered", "RENDER_FAILED")
        return {"project": rendered.to_dict()}
