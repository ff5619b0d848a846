# server.py
# pip install mcp httpx certifi
import asyncio
import logging
import os
import sys
from typing import List

from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.shared.exceptions import McpError
from mcp.types import ErrorData, TextContent, Tool

from commons_core import make_client
from tools_core import ToolError, WikiImageTools

SERVER_NAME = "wiki-images-mcp"
SERVER_VERSION = "1.0.0"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logger = logging.getLogger(__name__)


def build_server(tools: WikiImageTools) -> Server:
    app = Server(SERVER_NAME, version=SERVER_VERSION)

    @app.list_tools()
    async def list_tools() -> List[Tool]:
        return [Tool(**d) for d in tools.list_tools()]

    async def call_tool(req: types.CallToolRequest) -> types.ServerResult:
        try:
            payload = await tools.call_tool(req.params.name, req.params.arguments)
        except ToolError as e:
            raise McpError(ErrorData(code=e.code, message=e.message, data=e.to_envelope())) from e
        content = [TextContent(**c) for c in payload["content"]]
        return types.ServerResult(types.CallToolResult(content=content))

    # registered raw so McpError goes out as a JSON-RPC error, not an isError result
    app.request_handlers[types.CallToolRequest] = call_tool

    return app


async def serve() -> None:
    async with make_client() as client:
        app = build_server(WikiImageTools(client))
        async with stdio_server() as (read_stream, write_stream):
            logger.info("Wikipedia Image MCP server running on stdio")
            await app.run(read_stream, write_stream, app.create_initialization_options())


def main() -> None:
    # stdout is the MCP channel; logs go to stderr
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stderr,
    )
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        logger.info("shutting down")


if __name__ == "__main__":
    main()  # serves MCP over stdio
