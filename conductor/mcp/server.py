"""JSON-RPC 2.0 over HTTP endpoint exposing Conductor's tools to a model session.

One path accepts POST. Everything else is 404. Every response is JSON with an
explicit Content-Length and ``Connection: close``.
"""

import asyncio
import contextlib
import json
import logging
import os
import socket
from pathlib import Path
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import Response

from conductor import __version__
from conductor.config import MCPSettings
from conductor.mcp.auth import MCPAuthPolicy
from conductor.mcp.handlers import ToolHandlers
from conductor.mcp.tools import TOOL_DEFINITIONS

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "conductor-context"
SERVER_VERSION = "1.0.0"

PARSE_ERROR = -32700
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603

INTERNAL_ERROR_BODY = json.dumps(
    {"jsonrpc": "2.0", "error": {"code": INTERNAL_ERROR, "message": "Internal serialization error"}}
).encode()


def json_response(payload: Any, status_code: int = 200) -> Response:
    try:
        body = json.dumps(payload).encode()
    except (TypeError, ValueError) as e:
        logger.error("Could not serialize tool-call response: %s", e)
        body, status_code = INTERNAL_ERROR_BODY, 500
    return Response(
        content=body,
        status_code=status_code,
        media_type="application/json",
        headers={"Connection": "close"},
    )


def rpc_error(code: int, message: str, request_id: Any = None) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def rpc_result(result: Any, request_id: Any) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


async def dispatch_rpc(handlers: ToolHandlers, message: dict) -> Optional[dict]:
    """Handle one decoded JSON-RPC request. Returns None for notifications."""
    method = message["method"]
    request_id = message.get("id")
    params = message.get("params") if isinstance(message.get("params"), dict) else {}

    if method == "initialize":
        return rpc_result(
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
            },
            request_id,
        )
    if method == "notifications/initialized":
        return None
    if method == "tools/list":
        return rpc_result({"tools": TOOL_DEFINITIONS}, request_id)
    if method == "tools/call":
        name = params.get("name", "")
        logger.debug("Tool call: %s", name)
        result = await handlers.handle_tool_call(name, params.get("arguments") or {})
        return rpc_result(result, request_id)
    return rpc_error(METHOD_NOT_FOUND, f"Method not found: {method}", request_id)


async def read_limited_body(request: Request, limit: int) -> Optional[bytes]:
    """Read the request body, stopping as soon as it exceeds ``limit`` bytes.

    Returns None when the body is too large.
    """
    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


def create_app(handlers: ToolHandlers, auth: MCPAuthPolicy, path: str = "/mcp") -> FastAPI:
    app = FastAPI(
        title="Conductor tool-call server",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.post(path)
    async def mcp_endpoint(request: Request) -> Response:
        declared = request.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > auth.max_request_body_bytes:
            return json_response({"error": "Payload Too Large"}, 413)
        if not auth.is_authorized(request.headers, request.url.query):
            return json_response({"error": "Unauthorized"}, 401)

        body = await read_limited_body(request, auth.max_request_body_bytes)
        if body is None:
            return json_response({"error": "Payload Too Large"}, 413)

        try:
            message = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            message = None
        if not isinstance(message, dict) or not isinstance(message.get("method"), str):
            return json_response(rpc_error(PARSE_ERROR, "Parse error"))

        response = await dispatch_rpc(handlers, message)
        return json_response(response if response is not None else {})

    @app.api_route("/{full_path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"])
    async def not_found(full_path: str) -> Response:
        return json_response({"error": "Not Found"}, 404)

    return app


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the daemon."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class MCPServer:
    """Runs the endpoint on a local socket and tells clients where to find it."""

    def __init__(self, handlers: ToolHandlers, settings: MCPSettings, auth: Optional[MCPAuthPolicy] = None):
        self.settings = settings
        self.auth = auth or MCPAuthPolicy.issue(settings.token_ttl_hours, settings.max_request_body_bytes)
        self.app = create_app(handlers, self.auth, settings.path)
        self.port: Optional[int] = None
        self._server: Optional[_EmbeddedServer] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def url(self) -> str:
        return f"http://{self.settings.host}:{self.port}{self.settings.path}"

    async def start(self) -> None:
        if self._task is not None:
            return
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.settings.host, self.settings.port))
        self.port = sock.getsockname()[1]

        config = uvicorn.Config(self.app, log_level="warning", lifespan="off", access_log=False)
        self._server = _EmbeddedServer(config)
        self._task = asyncio.create_task(self._server.serve(sockets=[sock]), name="mcp-server")
        self.write_client_config()
        logger.info("Tool-call server listening on %s", self.url)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._server.should_exit = True
        await self._task
        self._task = None
        self._server = None
        logger.info("Tool-call server stopped")

    def write_client_config(self, path: Optional[Path] = None) -> Path:
        path = path or self.settings.config_path
        path.parent.mkdir(parents=True, exist_ok=True)
        config = {
            "mcpServers": {
                SERVER_NAME: {
                    "type": "http",
                    "url": self.url,
                    "headers": {"Authorization": f"Bearer {self.auth.token}"},
                }
            }
        }
        path.write_text(json.dumps(config, indent=2))
        os.chmod(path, 0o600)
        return path
