"""Etchant Selector MCP Server - metallographic etchant recommendations."""

import logging
import time
from contextlib import asynccontextmanager

from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route

from . import __version__
from .catalog import Catalog, CatalogClient, CatalogError, load_catalog_file
from .categories import normalize_category
from .config import (
    CATALOG_PATH,
    CATALOG_URL,
    DEFAULT_RECOMMENDATION_LIMIT,
    HTTP_PORT,
    MATERIAL_SEARCH_LIMIT,
    MAX_MATERIAL_SEARCH_LIMIT,
    MAX_QUERY_LENGTH,
    MAX_RECOMMENDATION_LIMIT,
    RATE_LIMIT_REQUESTS,
)
from .matcher import (
    PURPOSE_KEYWORDS,
    PURPOSE_OPTIONS,
    PURPOSES,
    build_recommendation_response,
    match_etchants,
    material_summary,
)
from .materials import quick_select, search_materials
from .product_links import (
    flatten_stage_links,
    get_material_product_links,
    get_relevant_product_links,
    group_links_by_stage,
)

logger = logging.getLogger(__name__)

# Global state
_catalog: Catalog | None = None
_catalog_client: CatalogClient | None = None


@asynccontextmanager
async def lifespan(app):
    """Load the catalog on startup (hosted API if configured, else local file)."""
    global _catalog, _catalog_client

    if CATALOG_URL:
        _catalog_client = CatalogClient()
        try:
            catalog = await _catalog_client.get_catalog()
            logger.info(f"Catalog ready: {catalog.get_stats()}")
        except CatalogError as e:
            # Tools retry on demand; startup should not fail on a flaky store
            logger.error(f"Initial catalog fetch failed: {e}")
    else:
        _catalog = load_catalog_file(CATALOG_PATH)
        logger.info(f"Catalog ready: {_catalog.get_stats()}")

    yield

    if _catalog_client:
        await _catalog_client.close()
        _catalog_client = None


# Create MCP server
mcp = FastMCP(
    name="etchant-selector",
    instructions="Metallographic etchant selection. Use material_search to find a material, then etchant_recommend with its id or name (optionally a purpose such as 'grain-boundaries') for ranked etchants with match reasons. etchant_purposes lists valid purposes. product_links maps preparation notes to equipment and supplies.",
    lifespan=lifespan,
)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limiting middleware - requests/minute per IP.

    Tracked IPs are capped and stale entries pruned to bound memory.
    """

    MAX_TRACKED_IPS = 10_000

    def __init__(self, app, requests_per_minute: int = RATE_LIMIT_REQUESTS):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.request_counts: dict[str, list[float]] = {}
        self._last_cleanup = time.time()

    def _get_client_ip(self, request) -> str:
        """Client IP, preferring the rightmost X-Forwarded-For entry (set by our proxy)."""
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ips = [ip.strip() for ip in forwarded.split(",")]
            return ips[-1] if ips else "unknown"
        return request.client.host if request.client else "unknown"

    def _prune(self, now: float) -> None:
        window_start = now - 60
        stale = [
            ip for ip, stamps in self.request_counts.items()
            if not stamps or stamps[-1] < window_start
        ]
        for ip in stale:
            del self.request_counts[ip]

    def _check_rate_limit(self, client_ip: str) -> bool:
        """Record a request; True if the IP is over its limit."""
        now = time.time()

        if now - self._last_cleanup > 60:
            self._prune(now)
            self._last_cleanup = now

        if client_ip not in self.request_counts and len(self.request_counts) >= self.MAX_TRACKED_IPS:
            self._prune(now)
            if len(self.request_counts) >= self.MAX_TRACKED_IPS:
                return True

        window_start = now - 60
        stamps = [t for t in self.request_counts.get(client_ip, []) if t > window_start]
        if len(stamps) >= self.requests_per_minute:
            self.request_counts[client_ip] = stamps
            return True

        stamps.append(now)
        self.request_counts[client_ip] = stamps
        return False

    async def dispatch(self, request, call_next):
        if request.url.path == "/health":
            return await call_next(request)

        if self._check_rate_limit(self._get_client_ip(request)):
            return JSONResponse(
                status_code=429,
                content={"error": "Rate limit exceeded", "retry_after": 60},
                headers={"Retry-After": "60"},
            )
        return await call_next(request)


async def _get_catalog() -> Catalog | None:
    """Current catalog snapshot; hosted catalogs refresh through the client cache."""
    if _catalog_client is not None:
        try:
            return await _catalog_client.get_catalog()
        except CatalogError as e:
            logger.error(f"Catalog fetch failed: {e}")
            return None
    return _catalog


_CATALOG_UNAVAILABLE = {
    "error": "Catalog not available. Server may still be starting up or the catalog store is unreachable.",
    "hint": "Try again in a moment",
}


# Tools

@mcp.tool(
    annotations=ToolAnnotations(
        title="Recommend Etchants",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def etchant_recommend(
    material: str | int,
    purpose: str | None = None,
    limit: int = DEFAULT_RECOMMENDATION_LIMIT,
) -> dict:
    """Rank etchants for a material, with match reasons and a percentage score.

    Scoring (additive, incompatible etchants are always excluded):
    - Compatible with the material's category: +100
    - Listed in the material's common etchants: +80
    - Directly linked to the material: +70
    - Reveals the chosen purpose: +50
    - Nital strength suited to the material's hardness: +30 hard / +20 soft
    - Featured: +10, product available: +5

    Args:
        material: Material id, slug, or name (e.g., "AISI 1045", "304 Stainless Steel")
        purpose: Optional feature to reveal: grain-boundaries, carbides, phases,
            precipitates, inclusions, twin-boundaries, martensite, pearlite,
            ferrite, austenite, general
        limit: Max recommendations (default 10, max 50)

    Returns:
        material: Selected material with its normalized category
        recommendations: Ranked etchants with score, match_reasons, percentage, band
        total: Number of matching etchants before limit
        summary: Human-readable message
    """
    if isinstance(material, str) and len(material) > MAX_QUERY_LENGTH:
        return {"error": f"Material too long (max {MAX_QUERY_LENGTH} characters)"}
    if purpose == "":
        purpose = None
    if purpose is not None and purpose not in PURPOSE_KEYWORDS:
        return {
            "error": f"Unknown purpose: '{purpose}'",
            "hint": f"Valid purposes: {', '.join(PURPOSES)}",
        }

    catalog = await _get_catalog()
    if catalog is None:
        return dict(_CATALOG_UNAVAILABLE)

    selected = catalog.get_material(material)
    if selected is None:
        return {
            "error": f"Material not found: '{material}'",
            "hint": "Use material_search(query=...) to find the material id",
        }

    effective_limit = max(1, min(limit, MAX_RECOMMENDATION_LIMIT))
    matches = match_etchants(selected, catalog.etchants, purpose)
    return build_recommendation_response(selected, matches, purpose, effective_limit)


@mcp.tool(
    annotations=ToolAnnotations(
        title="Search Materials",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def material_search(
    query: str | None = None,
    limit: int = MATERIAL_SEARCH_LIMIT,
) -> dict:
    """Search materials by name, category, alternative name, or tag.

    Args:
        query: Search text (e.g., "4140", "stainless", "Ti-6Al-4V"). Omit to list
            featured materials first.
        limit: Max results (default 20, max 100)

    Returns:
        results: Materials with id, name, category, hardness and normalized category
        total: Number of results returned
    """
    if query and len(query) > MAX_QUERY_LENGTH:
        return {"error": f"Query too long (max {MAX_QUERY_LENGTH} characters)", "results": [], "total": 0}

    catalog = await _get_catalog()
    if catalog is None:
        return {**_CATALOG_UNAVAILABLE, "results": [], "total": 0}

    found = search_materials(catalog.materials, query, limit=max(1, min(limit, MAX_MATERIAL_SEARCH_LIMIT)))
    results = [
        {**material_summary(m), "normalized_category": normalize_category(m)}
        for m in found
    ]
    return {"results": results, "total": len(results)}


@mcp.tool(
    annotations=ToolAnnotations(
        title="Quick Select Common Materials",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def material_quick_select() -> dict:
    """Representative materials for the common categories (carbon steel, stainless,
    aluminum, titanium, copper/brass, nickel alloys).

    Returns:
        materials: One entry per category that has a material in the catalog
    """
    catalog = await _get_catalog()
    if catalog is None:
        return dict(_CATALOG_UNAVAILABLE)
    return {"materials": quick_select(catalog.materials)}


@mcp.tool(
    annotations=ToolAnnotations(
        title="List Etching Purposes",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def etchant_purposes() -> dict:
    """List the purposes accepted by etchant_recommend.

    Returns:
        purposes: value, label, description and the keywords matched in etchant descriptions
    """
    return {
        "purposes": [
            {
                "value": value,
                "label": PURPOSE_OPTIONS[value]["label"],
                "description": PURPOSE_OPTIONS[value]["description"],
                "keywords": list(PURPOSE_KEYWORDS[value]),
            }
            for value in PURPOSES
        ]
    }


@mcp.tool(
    annotations=ToolAnnotations(
        title="Preparation Product Links",
        readOnlyHint=True,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
async def product_links(
    text: str | None = None,
    material: str | int | None = None,
) -> dict:
    """Find equipment and supplies mentioned in preparation notes.

    Args:
        text: Free-text preparation notes (e.g., "Section with a diamond saw, polish with colloidal silica")
        material: Material id, slug, or name; its per-stage notes
            (sectioning_notes ... etching_notes, plus preparation_notes) are
            scanned instead of text

    One of text or material must be provided.

    Returns:
        links: Ordered links with label, url, is_equipment, stage
        by_stage: Links grouped by sectioning, mounting, grinding, polishing, etching
            (for a material, the stage whose notes mentioned them)
    """
    if not text and material is None:
        return {"error": "Must provide either text or material"}
    if text and len(text) > 10 * MAX_QUERY_LENGTH:
        return {"error": f"Text too long (max {10 * MAX_QUERY_LENGTH} characters)"}

    if material is None:
        links = get_relevant_product_links(text)
        return {"links": links, "by_stage": group_links_by_stage(links), "total": len(links)}

    catalog = await _get_catalog()
    if catalog is None:
        return dict(_CATALOG_UNAVAILABLE)
    selected = catalog.get_material(material)
    if selected is None:
        return {
            "error": f"Material not found: '{material}'",
            "hint": "Use material_search(query=...) to find the material id",
        }

    by_stage = get_material_product_links(selected)
    links = flatten_stage_links(by_stage)
    return {"links": links, "by_stage": by_stage, "total": len(links)}


# Health check endpoint
async def health(request):
    return JSONResponse({
        "status": "healthy",
        "service": "etchant-selector-mcp",
        "version": __version__,
    })


# Create ASGI app
def create_app():
    """Create the ASGI application."""
    middleware = [
        Middleware(RateLimitMiddleware, requests_per_minute=RATE_LIMIT_REQUESTS),
    ]

    app = mcp.http_app(
        path="/mcp",
        middleware=middleware,
        transport="streamable-http",
        stateless_http=True,
    )
    app.routes.append(Route("/health", health))
    return app


app = create_app()


class _HealthFilterLog(logging.Filter):
    """Suppress /health access logs from container healthchecks."""

    def filter(self, record: logging.LogRecord) -> bool:
        return "/health" not in record.getMessage()


def main():
    """Run the server."""
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    logging.getLogger("uvicorn.access").addFilter(_HealthFilterLog())

    uvicorn.run(
        "etchant_mcp.server:app",
        host="0.0.0.0",
        port=HTTP_PORT,
        lifespan="on",
    )


if __name__ == "__main__":
    main()
