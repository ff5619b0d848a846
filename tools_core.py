# tools_core.py
from __future__ import annotations
import copy
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import httpx

from commons_core import (
    ImageNotFound,
    image_info_core,
    search_images_core,
    to_text,
)

logger = logging.getLogger(__name__)

SEARCH_TOOL = "wiki_image_search"
INFO_TOOL = "wiki_image_info"

DEFAULT_LIMIT = 10
MIN_LIMIT = 1
MAX_LIMIT = 50

# JSON-RPC error codes (same values as mcp.types)
INVALID_PARAMS = -32602
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603

# ---- Errors ------------------------------------------------------------------

class ToolError(Exception):
    """Terminal failure of one invocation; shells turn it into an error envelope."""

    kind = "internal"
    code = INTERNAL_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_envelope(self) -> Dict[str, str]:
        return {"kind": self.kind, "message": self.message}


class InvalidParams(ToolError):
    kind = "invalid-params"
    code = INVALID_PARAMS


class MethodNotFound(ToolError):
    kind = "method-not-found"
    code = METHOD_NOT_FOUND


class UpstreamError(ToolError):
    kind = "upstream-error"
    code = INTERNAL_ERROR


class InternalError(ToolError):
    pass

# ---- Descriptors -------------------------------------------------------------

SEARCH_SCHEMA = {
    "type": "object",
    "properties": {
        "query": {
            "type": "string",
            "description": "Search query for images",
        },
        "limit": {
            "type": "number",
            "description": f"Maximum number of results ({MIN_LIMIT}-{MAX_LIMIT})",
            "minimum": MIN_LIMIT,
            "maximum": MAX_LIMIT,
            "default": DEFAULT_LIMIT,
        },
    },
    "required": ["query"],
}
INFO_SCHEMA = {
    "type": "object",
    "properties": {
        "title": {
            "type": "string",
            "description": "Title/filename of the image on Wikipedia Commons",
        },
    },
    "required": ["title"],
}

TOOLS = (
    {
        "name": SEARCH_TOOL,
        "description": "Search for images on Wikipedia Commons",
        "inputSchema": SEARCH_SCHEMA,
    },
    {
        "name": INFO_TOOL,
        "description": "Get detailed information about a specific Wikipedia image",
        "inputSchema": INFO_SCHEMA,
    },
)

# ---- Argument validation -----------------------------------------------------

@dataclass(frozen=True)
class SearchArgs:
    query: str
    limit: int


@dataclass(frozen=True)
class InfoArgs:
    title: str


def clamp_limit(raw: Any) -> int:
    """
    Out-of-range limits are clamped, not rejected.
    Numeric strings count as numbers; missing or non-numeric values
    (bools, other strings, NaN) fall back to the default.
    """
    if isinstance(raw, str):
        try:
            raw = float(raw)
        except ValueError:
            raw = DEFAULT_LIMIT
    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or math.isnan(raw):
        raw = DEFAULT_LIMIT
    return int(min(max(raw, MIN_LIMIT), MAX_LIMIT))


def parse_search_args(arguments: Mapping[str, Any]) -> SearchArgs:
    query = arguments.get("query")
    if not query or not isinstance(query, str):
        raise InvalidParams("Invalid query parameter")
    return SearchArgs(query=query, limit=clamp_limit(arguments.get("limit")))


def parse_info_args(arguments: Mapping[str, Any]) -> InfoArgs:
    title = arguments.get("title")
    if not title or not isinstance(title, str):
        raise InvalidParams("Invalid title parameter")
    return InfoArgs(title=title)

# ---- Dispatcher --------------------------------------------------------------

def text_content(payload: Any) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": to_text(payload)}]}


class WikiImageTools:
    """
    Routes tool calls by name. Holds nothing but the shared HTTP client,
    which the shell creates at startup and closes at shutdown.
    """

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    def list_tools(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(list(TOOLS))

    async def call_tool(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Returns an MCP content payload or raises ToolError, never anything else."""
        if not isinstance(arguments, Mapping):
            arguments = {}
        logger.info("%s called with: %s", name, dict(arguments))
        try:
            if name == SEARCH_TOOL:
                return await self._search(parse_search_args(arguments))
            if name == INFO_TOOL:
                return await self._info(parse_info_args(arguments))
            raise MethodNotFound(f"Unknown tool: {name}")
        except ToolError:
            raise
        except ImageNotFound as e:
            raise InternalError(str(e)) from e
        except httpx.HTTPError as e:
            logger.warning("Wikipedia API error in %s: %s", name, e)
            raise UpstreamError(f"Wikipedia API error: {e}") from e
        except Exception as e:
            logger.exception("Unexpected failure in %s", name)
            raise InternalError(str(e) or type(e).__name__) from e

    async def _search(self, args: SearchArgs) -> Dict[str, Any]:
        results = await search_images_core(self.client, args.query, args.limit)
        return text_content(results)

    async def _info(self, args: InfoArgs) -> Dict[str, Any]:
        record = await image_info_core(self.client, args.title)
        return text_content(record)
