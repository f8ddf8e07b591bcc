"""Shared helper functions for route and tool implementations"""

import logging
from typing import Any, Dict, Optional

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger("Hosting_Server")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Authorization, Content-Type",
}


def json_response(data: Any, status: int = 200) -> JSONResponse:
    return JSONResponse(data, status_code=status, headers=CORS_HEADERS)


def json_error(status: int, message: str, extra: Optional[Dict[str, Any]] = None) -> JSONResponse:
    """Error response with body {error: message, ...extra}"""
    body = {"error": message}
    if extra:
        body.update({k: v for k, v in extra.items() if k != "error"})
    return json_response(body, status=status)


def preflight_response() -> Response:
    return Response(status_code=204, headers=CORS_HEADERS)


def bearer_token(request: Request) -> Optional[str]:
    """Extract the token from an `Authorization: Bearer <token>` header"""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def tool_error(message: str, error_code: str) -> Dict[str, str]:
    return {"error": message, "error_code": error_code}
