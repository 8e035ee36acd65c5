"""Configuration for Etchant Selector MCP server."""

import os
from pathlib import Path

# Server settings
HTTP_PORT = int(os.getenv("HTTP_PORT", "8080"))
RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", "100"))

# Local catalog file (used when no hosted catalog is configured)
_PACKAGE_DATA_DIR = Path(__file__).parent.parent.parent / "data"
CATALOG_PATH = Path(os.getenv("CATALOG_PATH", str(_PACKAGE_DATA_DIR / "catalog.json")))

# Hosted catalog (PostgREST-style REST API)
CATALOG_URL = os.getenv("CATALOG_URL", "").rstrip("/")
CATALOG_API_KEY = os.getenv("CATALOG_API_KEY", "")
CATALOG_MATERIALS_TABLE = os.getenv("CATALOG_MATERIALS_TABLE", "materials")
CATALOG_ETCHANTS_TABLE = os.getenv("CATALOG_ETCHANTS_TABLE", "etchants")
CATALOG_CACHE_TTL = int(os.getenv("CATALOG_CACHE_TTL", "900"))  # Refetch every 15 minutes
CATALOG_PAGE_SIZE = 1000  # PostgREST default max rows per response

# Request settings
REQUEST_TIMEOUT = 10.0

# Tool limits
DEFAULT_RECOMMENDATION_LIMIT = 10
MAX_RECOMMENDATION_LIMIT = 50
MATERIAL_SEARCH_LIMIT = 20  # Matches the selector's dropdown size
MAX_MATERIAL_SEARCH_LIMIT = 100
MAX_QUERY_LENGTH = 500
