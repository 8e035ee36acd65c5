"""Material category normalization for etchant compatibility lookups.

Material records carry a free-text ``category`` while etchant records list
compatible/incompatible materials using a controlled vocabulary. The join key
is derived here by substring matching on every call.
"""

from typing import Any

# Priority-ordered rules: (token, category substrings, name substrings).
# First matching rule wins, so order is the tie-break for names like
# "Cast Titanium" that could hit more than one rule.
CATEGORY_RULES: tuple[tuple[str, tuple[str, ...], tuple[str, ...]], ...] = (
    ("carbon-steel", ("carbon", "low alloy"), ("carbon steel",)),
    ("stainless-steel", ("stainless",), ("stainless",)),
    ("aluminum", ("aluminum",), ("aluminum", "aluminium")),
    ("copper-brass", ("copper", "brass"), ("copper", "brass")),
    ("titanium", ("titanium",), ("titanium",)),
    ("nickel-alloys", ("nickel",), ("nickel", "inconel")),
    ("cast-iron", ("cast iron",), ("cast iron",)),
    ("tool-steel", ("tool steel",), ("tool steel",)),
)

MATERIAL_CATEGORIES: tuple[str, ...] = tuple(token for token, _, _ in CATEGORY_RULES)

CATEGORY_LABELS: dict[str, str] = {
    "carbon-steel": "Carbon Steel",
    "stainless-steel": "Stainless Steel",
    "aluminum": "Aluminum",
    "copper-brass": "Copper/Brass",
    "titanium": "Titanium",
    "nickel-alloys": "Nickel Alloys",
    "cast-iron": "Cast Iron",
    "tool-steel": "Tool Steel",
}


def normalize_category(material: dict[str, Any]) -> str:
    """Map a material's free-text category/name to a compatibility token.

    Args:
        material: Material record with ``name`` and ``category`` fields
            (either may be missing or empty).

    Returns:
        One of MATERIAL_CATEGORIES, or the lowercased raw category when no
        rule matches (possibly an empty string).
    """
    category = (material.get("category") or "").lower()
    name = (material.get("name") or "").lower()

    for token, category_patterns, name_patterns in CATEGORY_RULES:
        if any(p in category for p in category_patterns):
            return token
        if any(p in name for p in name_patterns):
            return token

    return category
