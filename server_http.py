import os
import logging
import contextlib
from typing import Any, Callable, Dict, Optional

import httpx
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
import uvicorn

from commons_core import make_client
from tools_core import METHOD_NOT_FOUND, ToolError, WikiImageTools

SERVER_NAME = "wiki-images-mcp"
SERVER_VERSION = "1.0.0"
PROTOCOL_VERSION = "2025-03-26"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600

logger = logging.getLogger(__name__)

def rpc_ok(_id: Any, result: Dict[str, Any]) -> JSONResponse:
    return JSONResponse({"jsonrpc": "2.0", "id": _id, "result": result})

def rpc_err(_id: Any, code: int, msg: str, status: int = 400, data: Optional[Dict[str, Any]] = None) -> JSONResponse:
    error: Dict[str, Any] = {"code": code, "message": msg}
    if data is not None:
        error["data"] = data
    return JSONResponse(
        {"jsonrpc": "2.0", "id": _id, "error": error},
        status_code=status,
    )

async def health_mcp(_):
    return JSONResponse({"ok": True, "mcp": True})

async def options_mcp(_):
    return PlainTextResponse("", status_code=204)

async def mcp_endpoint(request: Request):
    try:
        body = await request.json()
    except ValueError:
        return rpc_err(None, PARSE_ERROR, "Parse error")
    if not isinstance(body, dict):
        return rpc_err(None, INVALID_REQUEST, "Invalid Request")
    _id, method, params = body.get("id"), body.get("method"), body.get("params", {}) or {}
    if not isinstance(params, dict):
        return rpc_err(_id, INVALID_REQUEST, "Invalid Request")

    # notifications carry no id and get no JSON-RPC answer
    if "id" not in body and isinstance(method, str) and method.startswith("notifications/"):
        return Response(status_code=202)

    if method == "initialize":
        return rpc_ok(_id, {"serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
                            "protocolVersion": PROTOCOL_VERSION,
                            "capabilities": {"tools": {"listChanged": False}}})
    tools: WikiImageTools = request.app.state.tools
    if method == "tools/list":
        return rpc_ok(_id, {"tools": tools.list_tools()})
    if method == "tools/call":
        name, args = params.get("name"), params.get("arguments", {}) or {}
        try:
            payload = await tools.call_tool(name, args)
        except ToolError as e:
            return rpc_err(_id, e.code, e.message, data=e.to_envelope())
        return rpc_ok(_id, payload)

    return rpc_err(_id, METHOD_NOT_FOUND, "Method not found")


def create_app(client_factory: Callable[[], httpx.AsyncClient] = make_client) -> Starlette:
    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        async with client_factory() as client:
            app.state.tools = WikiImageTools(client)
            yield
        logger.info("HTTP client closed")

    return Starlette(
        debug=False,
        routes=[
            Route("/mcp", mcp_endpoint, methods=["POST"]),
            Route("/mcp", health_mcp, methods=["GET", "HEAD"]),
            Route("/mcp", options_mcp, methods=["OPTIONS"]),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["*"],
                allow_headers=["*"],
            ),
        ],
        lifespan=lifespan,
    )

app = create_app()

def main() -> None:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=port)

if __name__ == "__main__":
    main()
