"""REST routes for the project store (save/get/list), CORS-open"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Tuple

from mcp.server.fastmcp import FastMCP
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from errors import HostingError
from managers.store_service import ProjectStoreService
from tools.helpers import bearer_token, json_error, json_response, preflight_response

logger = logging.getLogger("Hosting_Server")

Handler = Callable[[Request], Awaitable[Response]]


async def _run(failure_message: str, call: Callable[[], Any]) -> Response:
    """Run a blocking store call, mapping errors onto JSON error responses"""
    try:
        result = await run_in_threadpool(call)
    except HostingError as e:
        return json_error(e.status_code, e.message, e.extra)
    except Exception as e:
        logger.exception(failure_message)
        return json_error(500, failure_message, {"message": str(e) or "Unknown error"})
    return json_response(result)


def build_store_handlers(service: ProjectStoreService) -> List[Tuple[str, List[str], Handler]]:
    """Return (path, methods, handler) for each store endpoint"""

    async def save_project(request: Request) -> Response:
        if request.method == "OPTIONS":
            return preflight_response()
        token = bearer_token(request)
        try:
            body = await request.json()
        except ValueError:
            body = None
        return await _run("Failed to save project", lambda: service.save(token, body))

    async def get_project(request: Request) -> Response:
        if request.method == "OPTIONS":
            return preflight_response()
        token = bearer_token(request)
        project_id = request.query_params.get("id")
        return await _run("Failed to get project", lambda: service.get(token, project_id))

    async def list_projects(request: Request) -> Response:
        if request.method == "OPTIONS":
            return preflight_response()
        token = bearer_token(request)
        return await _run("Failed to list projects", lambda: service.list(token))

    return [
        ("/api/projects/save", ["POST", "OPTIONS"], save_project),
        ("/api/projects/get", ["GET", "OPTIONS"], get_project),
        ("/api/projects/list", ["GET", "OPTIONS"], list_projects),
    ]


def build_store_app(service: ProjectStoreService) -> Starlette:
    """Standalone Starlette app serving only the store endpoints"""
    routes = [
        Route(path, endpoint=handler, methods=methods)
        for path, methods, handler in build_store_handlers(service)
    ]
    return Starlette(routes=routes)


def register_store_routes(mcp: FastMCP, service: ProjectStoreService) -> Dict[str, Handler]:
    """Register the store endpoints on the MCP server's HTTP app"""
    registered = {}
    for path, methods, handler in build_store_handlers(service):
        mcp.custom_route(path, methods=methods)(handler)
        registered[path] = handler
        logger.info(f"Registered route {', '.join(methods)} {path}")
    return registered
