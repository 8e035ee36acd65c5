"""Read-only material and etchant catalog.

Records come either from a local JSON file or from a hosted PostgREST-style
REST API. Either way they are normalized into plain dicts before matching.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import httpx

from .config import (
    CATALOG_API_KEY,
    CATALOG_CACHE_TTL,
    CATALOG_ETCHANTS_TABLE,
    CATALOG_MATERIALS_TABLE,
    CATALOG_PAGE_SIZE,
    CATALOG_URL,
    REQUEST_TIMEOUT,
)
from .materials import resolve_material

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Catalog could not be loaded."""


_MATERIAL_LIST_FIELDS = ("alternative_names", "tags", "common_etchants")
_ETCHANT_LIST_FIELDS = ("compatible_materials", "incompatible_materials", "related_material_ids")


def _as_list(value: Any) -> list[Any]:
    """Coerce a possibly-missing list field. Strings become single-item lists."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, (tuple, set)):
        return list(value)
    if isinstance(value, str):
        return [value] if value.strip() else []
    return [value]


def _normalize_material(record: dict[str, Any]) -> dict[str, Any]:
    """Normalize a raw material row into our standard format."""
    material = dict(record)
    material["name"] = record.get("name") or ""
    material["category"] = record.get("category") or ""
    for key in _MATERIAL_LIST_FIELDS:
        material[key] = _as_list(record.get(key))
    material["featured"] = bool(record.get("featured"))
    return material


def _normalize_etchant(record: dict[str, Any]) -> dict[str, Any]:
    """Normalize a raw etchant row into our standard format."""
    etchant = dict(record)
    etchant["name"] = record.get("name") or ""
    for key in _ETCHANT_LIST_FIELDS:
        etchant[key] = _as_list(record.get(key))
    etchant["featured"] = bool(record.get("featured"))
    etchant["pace_product_available"] = bool(record.get("pace_product_available"))
    return etchant


def _normalize_records(
    rows: Any, kind: str, normalize: Callable[[dict[str, Any]], dict[str, Any]]
) -> list[dict[str, Any]]:
    if not isinstance(rows, list):
        raise CatalogError(f"Expected a list of {kind}, got {type(rows).__name__}")
    records = []
    for i, row in enumerate(rows):
        if not isinstance(row, dict):
            logger.warning(f"Skipping {kind} row {i}: not an object")
            continue
        records.append(normalize(row))
    return records


@dataclass
class Catalog:
    """In-memory snapshot of materials and etchants."""

    materials: list[dict[str, Any]] = field(default_factory=list)
    etchants: list[dict[str, Any]] = field(default_factory=list)
    source: str = "memory"

    @classmethod
    def from_records(
        cls,
        materials: Any,
        etchants: Any,
        source: str = "memory",
    ) -> Catalog:
        return cls(
            materials=_normalize_records(materials, "materials", _normalize_material),
            etchants=_normalize_records(etchants, "etchants", _normalize_etchant),
            source=source,
        )

    def get_material(self, key: str | int | None) -> dict[str, Any] | None:
        """Resolve a material by id, slug, or name."""
        return resolve_material(self.materials, key)

    def get_stats(self) -> dict[str, Any]:
        return {
            "materials": len(self.materials),
            "etchants": len(self.etchants),
            "source": self.source,
        }


def load_catalog_file(path: Path) -> Catalog:
    """Load a catalog from a JSON file shaped {"materials": [...], "etchants": [...]}.

    Raises:
        CatalogError: If the file is missing, unreadable, or malformed.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CatalogError(f"Cannot read catalog file {path}: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CatalogError(f"Catalog file {path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise CatalogError(f"Catalog file {path} must contain a JSON object")

    catalog = Catalog.from_records(
        data.get("materials", []),
        data.get("etchants", []),
        source=str(path),
    )
    logger.info(
        f"Loaded catalog from {path}: {len(catalog.materials)} materials, "
        f"{len(catalog.etchants)} etchants"
    )
    return catalog


class CatalogClient:
    """Async client for a hosted catalog exposing PostgREST tables."""

    def __init__(
        self,
        base_url: str = CATALOG_URL,
        api_key: str = CATALOG_API_KEY,
        cache_ttl: float = CATALOG_CACHE_TTL,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client: httpx.AsyncClient | None = None
        self._cache_ttl = cache_ttl
        self._cached: tuple[float, Catalog] | None = None  # (fetched_at, snapshot)
        self._refresh_lock: asyncio.Lock | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=REQUEST_TIMEOUT,
                headers={
                    "apikey": self._api_key,
                    "Authorization": f"Bearer {self._api_key}",
                    "Accept": "application/json",
                },
            )
        return self._client

    def _get_refresh_lock(self) -> asyncio.Lock:
        # Created on first use so it binds to the running loop
        if self._refresh_lock is None:
            self._refresh_lock = asyncio.Lock()
        return self._refresh_lock

    async def _get_table(self, table: str) -> list[dict[str, Any]]:
        """Fetch every row of a table, paging by CATALOG_PAGE_SIZE."""
        url = f"{self._base_url}/rest/v1/{table}"
        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            params = {"select": "*", "limit": CATALOG_PAGE_SIZE, "offset": offset}
            try:
                response = await self._get_client().get(url, params=params)
            except httpx.HTTPError as e:
                # Sanitize: don't echo request details that carry the key
                raise CatalogError(
                    f"Catalog request for '{table}' failed ({type(e).__name__})"
                ) from None
            if response.status_code >= 400:
                raise CatalogError(
                    f"Catalog API returned HTTP {response.status_code} for '{table}'"
                )
            try:
                page = response.json()
            except ValueError:
                raise CatalogError(f"Catalog API returned invalid JSON for '{table}'") from None
            if not isinstance(page, list):
                raise CatalogError(f"Catalog API returned a non-list for '{table}'")

            rows.extend(page)
            if len(page) < CATALOG_PAGE_SIZE:
                return rows
            offset += CATALOG_PAGE_SIZE

    def _fresh_snapshot(self) -> Catalog | None:
        if self._cached is None:
            return None
        fetched_at, catalog = self._cached
        if time.monotonic() - fetched_at < self._cache_ttl:
            return catalog
        return None

    async def get_catalog(self, refresh: bool = False) -> Catalog:
        """Fetch materials and etchants, reusing the last snapshot within the TTL.

        Concurrent callers share one refresh: whoever waits on the lock gets
        the snapshot the first caller fetched.
        """
        if not refresh:
            cached = self._fresh_snapshot()
            if cached is not None:
                return cached

        async with self._get_refresh_lock():
            if not refresh:
                cached = self._fresh_snapshot()
                if cached is not None:
                    return cached

            materials = await self._get_table(CATALOG_MATERIALS_TABLE)
            etchants = await self._get_table(CATALOG_ETCHANTS_TABLE)
            catalog = Catalog.from_records(materials, etchants, source=self._base_url)
            self._cached = (time.monotonic(), catalog)

        logger.info(
            f"Fetched catalog: {len(catalog.materials)} materials, "
            f"{len(catalog.etchants)} etchants"
        )
        return catalog

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
