"""Material lookup: free-text search, quick select, and key resolution."""

from typing import Any

from .categories import normalize_category
from .config import MATERIAL_SEARCH_LIMIT

# Quick-select shortcuts shown before the user types anything
COMMON_MATERIALS: tuple[dict[str, str], ...] = (
    {"category": "carbon-steel", "label": "Carbon Steel"},
    {"category": "stainless-steel", "label": "Stainless Steel"},
    {"category": "aluminum", "label": "Aluminum"},
    {"category": "titanium", "label": "Titanium"},
    {"category": "copper-brass", "label": "Copper/Brass"},
    {"category": "nickel-alloys", "label": "Nickel Alloys"},
)


def is_published(material: dict[str, Any]) -> bool:
    """Materials without a status are treated as published."""
    status = material.get("status")
    return not status or status == "published"


def _matches_query(material: dict[str, Any], query: str) -> bool:
    if query in (material.get("name") or "").lower():
        return True
    if query in (material.get("category") or "").lower():
        return True
    if any(query in (alt or "").lower() for alt in material.get("alternative_names") or []):
        return True
    return any(query in (tag or "").lower() for tag in material.get("tags") or [])


def search_materials(
    materials: list[dict[str, Any]],
    query: str | None = None,
    limit: int = MATERIAL_SEARCH_LIMIT,
) -> list[dict[str, Any]]:
    """Search published materials by name, category, alternative names, or tags.

    With a blank query, returns featured materials first, then by sort_order.
    With a query, returns matches in catalog order.

    Args:
        materials: Material records
        query: Case-insensitive substring to look for
        limit: Max materials returned

    Returns:
        Up to ``limit`` material records
    """
    published = [m for m in materials if is_published(m)]

    if not query or not query.strip():
        ordered = sorted(
            published,
            key=lambda m: (not m.get("featured"), m.get("sort_order") or 0),
        )
        return ordered[:limit]

    needle = query.strip().lower()
    return [m for m in published if _matches_query(m, needle)][:limit]


def find_by_category(
    materials: list[dict[str, Any]], category: str
) -> dict[str, Any] | None:
    """First material whose normalized category equals ``category``."""
    return next((m for m in materials if normalize_category(m) == category), None)


def quick_select(materials: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Resolve COMMON_MATERIALS to representative materials, skipping misses."""
    entries = []
    for common in COMMON_MATERIALS:
        material = find_by_category(materials, common["category"])
        if material is None:
            continue
        entries.append({
            "category": common["category"],
            "label": common["label"],
            "material_id": material.get("id"),
            "material_name": material.get("name"),
        })
    return entries


def resolve_material(
    materials: list[dict[str, Any]], key: str | int | None
) -> dict[str, Any] | None:
    """Find a material by id, slug, or name.

    Priority:
    1. Exact id (string comparison so "12" finds id 12)
    2. Exact slug
    3. Case-insensitive exact name or alternative name
    4. Unique case-insensitive partial name match

    Integer keys are ids only and never fall through to name matching.

    Returns:
        The material, or None if not found or the partial match is ambiguous.
    """
    if key is None:
        return None
    key_str = str(key).strip()
    if not key_str:
        return None
    key_lower = key_str.lower()

    for m in materials:
        if m.get("id") is not None and str(m["id"]) == key_str:
            return m
    if isinstance(key, int):
        return None

    for m in materials:
        if m.get("slug") and m["slug"].lower() == key_lower:
            return m
    for m in materials:
        names = [m.get("name") or ""] + list(m.get("alternative_names") or [])
        if any(n.lower() == key_lower for n in names if n):
            return m

    partial = [m for m in materials if key_lower in (m.get("name") or "").lower()]
    if len(partial) == 1:
        return partial[0]
    return None
