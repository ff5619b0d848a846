# commons_core.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional
import json
import logging
import os
import ssl
import httpx
import certifi

logger = logging.getLogger(__name__)

# ---- Constants ---------------------------------------------------------------

API_BASE = "https://commons.wikimedia.org/w"
API_PATH = "api.php"
USER_AGENT = os.getenv("WIKI_USER_AGENT", "WikipediaMCPServer/1.0")
UA = {"User-Agent": USER_AGENT}
TIMEOUT = float(os.getenv("WIKI_HTTP_TIMEOUT", "20"))

SEARCH_IIPROP = "url|size|mime"
INFO_IIPROP = "url|size|mime|extmetadata"


class ImageNotFound(LookupError):
    """Upstream answered, but carried no image-info for the requested title."""

    def __init__(self, title: str):
        super().__init__(f"Image not found: {title}")
        self.title = title


# ---- HTTP client helper (force HTTP/1.1; use certifi for TLS) ---------------

def make_client(
    timeout: float = TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """The one long-lived client; the shell opens it at startup and closes it on exit."""
    return httpx.AsyncClient(
        base_url=API_BASE,
        headers=UA,
        timeout=timeout,
        verify=ssl.create_default_context(cafile=certifi.where()),
        http2=False,
        transport=transport,
    )

# ---- Upstream records --------------------------------------------------------

def _meta_value(meta: Dict[str, Any], key: str) -> Optional[str]:
    entry = meta.get(key)
    if not isinstance(entry, dict):
        return None
    return entry.get("value")


@dataclass(frozen=True)
class ImageInfo:
    url: Optional[str] = None
    descriptionurl: Optional[str] = None
    mime: Optional[str] = None
    size: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    license: Optional[str] = None
    artist: Optional[str] = None

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> "ImageInfo":
        meta = raw.get("extmetadata") or {}
        if not isinstance(meta, dict):
            meta = {}
        return cls(
            url=raw.get("url"),
            descriptionurl=raw.get("descriptionurl"),
            mime=raw.get("mime"),
            size=raw.get("size"),
            width=raw.get("width"),
            height=raw.get("height"),
            license=_meta_value(meta, "License"),
            artist=_meta_value(meta, "Artist"),
        )


@dataclass(frozen=True)
class Page:
    title: Optional[str] = None
    imageinfo: List[ImageInfo] = field(default_factory=list)

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> "Page":
        infos = raw.get("imageinfo") or []
        return cls(
            title=raw.get("title"),
            imageinfo=[ImageInfo.from_json(i) for i in infos if isinstance(i, dict)],
        )

    @property
    def first_info(self) -> Optional[ImageInfo]:
        return self.imageinfo[0] if self.imageinfo else None


def pages_from(data: Dict[str, Any]) -> List[Page]:
    """`query.pages` values, in the order upstream sent them."""
    pages = (data.get("query") or {}).get("pages") or {}
    if isinstance(pages, dict):
        pages = pages.values()
    return [Page.from_json(p) for p in pages if isinstance(p, dict)]

# ---- Query builders ----------------------------------------------------------

def search_params(query: str, limit: int) -> Dict[str, Any]:
    return {
        "action": "query",
        "generator": "search",
        "gsrsearch": f"File:{query}",
        "gsrlimit": limit,
        "prop": "imageinfo",
        "iiprop": SEARCH_IIPROP,
        "format": "json",
        "origin": "*",
    }


def info_params(title: str) -> Dict[str, Any]:
    return {
        "action": "query",
        "titles": title,
        "prop": "imageinfo",
        "iiprop": INFO_IIPROP,
        "format": "json",
        "origin": "*",
    }

# ---- Commons API -------------------------------------------------------------

async def commons_get(client: httpx.AsyncClient, params: Dict[str, Any]) -> Dict[str, Any]:
    """Single GET against api.php. Transport faults and non-2xx raise httpx.HTTPError."""
    r = await client.get(API_PATH, params=params)
    r.raise_for_status()
    return r.json()

# ---- Normalizers -------------------------------------------------------------

def _dimensions(info: ImageInfo) -> Dict[str, Any]:
    return {"width": info.width, "height": info.height}


def normalize_search(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Project the first image-info of every page that has one; others are dropped."""
    results: List[Dict[str, Any]] = []
    for page in pages_from(data):
        info = page.first_info
        if info is None:
            continue
        results.append({
            "title": page.title,
            "url": info.url,
            "mime_type": info.mime,
            "dimensions": _dimensions(info),
            "size": info.size,
        })
    return results


def normalize_info(data: Dict[str, Any], title: str) -> Dict[str, Any]:
    pages = pages_from(data)
    page = pages[0] if pages else None
    info = page.first_info if page else None
    if info is None:
        raise ImageNotFound(title)

    record: Dict[str, Any] = {
        "title": page.title or title,
        "url": info.url,
        "description_url": info.descriptionurl,
        "mime_type": info.mime,
        "size": info.size,
        "dimensions": _dimensions(info),
    }
    if info.license is not None:
        record["license"] = info.license
    if info.artist is not None:
        record["author"] = info.artist
    return record


def to_text(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)

# ---- Main operations ---------------------------------------------------------

async def search_images_core(client: httpx.AsyncClient, query: str, limit: int) -> List[Dict[str, Any]]:
    """
    Stateless search. One upstream call, results in upstream relevance order.
    `query` and `limit` must already be validated.
    """
    data = await commons_get(client, search_params(query, limit))
    results = normalize_search(data)
    logger.debug("search %r -> %d results", query, len(results))
    return results


async def image_info_core(client: httpx.AsyncClient, title: str) -> Dict[str, Any]:
    data = await commons_get(client, info_params(title))
    return normalize_info(data, title)
