"""Etchant recommendation scoring and ranking.

This module scores every etchant in a catalog against one selected material:
1. Rule-based additive points (compatibility, recommendations, direct links,
   purpose keywords, hardness markers, featured/product bonuses)
2. A hard veto for etchants listing the material's category as incompatible
3. Stable ranking by score, dropping anything that did not score above zero
4. Display helpers mapping a raw score to a percentage and a color band
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable

from .categories import CATEGORY_LABELS, normalize_category

logger = logging.getLogger(__name__)


# =============================================================================
# LOOKUP TABLES
# =============================================================================

# Purpose -> keywords searched in the etchant's reveals/typical_results text.
# "general" has no keywords on purpose: it never adds points.
PURPOSE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "grain-boundaries": ("grain boundary", "grain boundaries", "grain structure"),
    "carbides": ("carbide", "carbides"),
    "phases": ("phase", "phases", "phase structure", "alpha", "beta"),
    "precipitates": ("precipitate", "precipitates", "precipitation"),
    "inclusions": ("inclusion", "inclusions"),
    "twin-boundaries": ("twin", "twins", "twin boundary"),
    "martensite": ("martensite",),
    "pearlite": ("pearlite",),
    "ferrite": ("ferrite",),
    "austenite": ("austenite",),
    "general": (),
}

PURPOSES: tuple[str, ...] = tuple(PURPOSE_KEYWORDS)

PURPOSE_OPTIONS: dict[str, dict[str, str]] = {
    "grain-boundaries": {"label": "Grain Boundaries", "description": "Reveal grain structure and size"},
    "carbides": {"label": "Carbides", "description": "Highlight carbide particles and distribution"},
    "phases": {"label": "Phases", "description": "Distinguish different phases (alpha, beta, etc.)"},
    "precipitates": {"label": "Precipitates", "description": "Show precipitation and intermetallics"},
    "inclusions": {"label": "Inclusions", "description": "Reveal non-metallic inclusions"},
    "twin-boundaries": {"label": "Twin Boundaries", "description": "Show twinning in crystals"},
    "martensite": {"label": "Martensite", "description": "Highlight martensitic structure"},
    "pearlite": {"label": "Pearlite", "description": "Reveal pearlitic structures"},
    "ferrite": {"label": "Ferrite", "description": "Distinguish ferrite phase"},
    "austenite": {"label": "Austenite", "description": "Distinguish austenite phase"},
    "general": {"label": "General Purpose", "description": "General microstructure examination"},
}

# Nital concentration markers matched against the lowercased etchant name.
# The two sets share no marker, so at most one hardness rule fires.
HARD_MARKERS: tuple[str, ...] = ("nital-5", "nital-8", "5% nital", "8% nital")
SOFT_MARKERS: tuple[str, ...] = ("nital-2", "nital-3", "2% nital", "3% nital")

HARD_CATEGORIES = frozenset({"hard", "very-hard"})
SOFT_CATEGORIES = frozenset({"soft", "medium"})

# Rule points
COMPATIBLE_POINTS = 100
RECOMMENDED_POINTS = 80
DIRECT_LINK_POINTS = 70
PURPOSE_POINTS = 50
HARD_MATERIAL_POINTS = 30
SOFT_MATERIAL_POINTS = 20
FEATURED_POINTS = 10
PRODUCT_AVAILABLE_POINTS = 5

# Percentage denominator: compatible + recommended + direct link + hard bonus.
# Featured/product bonuses are not counted, so strong matches cap at 100%.
MAX_SCORE = COMPATIBLE_POINTS + RECOMMENDED_POINTS + DIRECT_LINK_POINTS + HARD_MATERIAL_POINTS

# (minimum percentage, band) checked top-down
SCORE_BANDS: tuple[tuple[int, str], ...] = (
    (80, "strong"),
    (60, "good"),
    (40, "fair"),
)
WEAKEST_BAND = "weak"

# Etchant fields echoed in recommendation output
_ETCHANT_SUMMARY_FIELDS = (
    "id", "name", "composition", "concentration", "application_method",
    "typical_time_seconds", "reveals", "typical_results", "featured",
    "pace_product_available",
)


@dataclass
class MatchResult:
    """One etchant paired with its score for a single query."""

    etchant: dict[str, Any]
    score: int
    match_reasons: list[str] = field(default_factory=list)

    @property
    def percentage(self) -> int:
        return score_percentage(self.score)

    @property
    def band(self) -> str:
        return score_color_band(self.percentage)

    def to_dict(self) -> dict[str, Any]:
        etchant = {k: self.etchant.get(k) for k in _ETCHANT_SUMMARY_FIELDS}
        return {
            **etchant,
            "score": self.score,
            "match_reasons": list(self.match_reasons),
            "percentage": self.percentage,
            "band": self.band,
        }


# =============================================================================
# SCORING
# =============================================================================


def _contains_any(text: str, needles: tuple[str, ...]) -> bool:
    return any(needle in text for needle in needles)


def _is_recommended(material: dict[str, Any], etchant_name: str) -> bool:
    """True if any of the material's common etchants fuzzily names this etchant."""
    for common in material.get("common_etchants") or []:
        common_lower = (common or "").lower()
        if not common_lower:
            continue
        if common_lower in etchant_name or etchant_name in common_lower:
            return True
    return False


def _purpose_label(purpose: str) -> str:
    """'grain-boundaries' -> 'grain boundaries' (first hyphen only)."""
    return purpose.replace("-", " ", 1)


def validate_purpose(purpose: str | None) -> str | None:
    """Return purpose unchanged if known (or None), else raise ValueError."""
    if purpose is None or purpose in PURPOSE_KEYWORDS:
        return purpose
    raise ValueError(
        f"Unknown purpose: {purpose!r}. Expected one of: {', '.join(PURPOSES)}"
    )


def score_etchant(
    material: dict[str, Any],
    etchant: dict[str, Any],
    purpose: str | None = None,
    category: str | None = None,
) -> MatchResult:
    """Score one etchant for a material and optional purpose.

    Rules add points in a fixed order; reasons are appended in that order.
    An etchant listing the material's category as incompatible is vetoed to a
    score of exactly 0 regardless of what fired before.

    Args:
        material: Material record
        etchant: Etchant record
        purpose: Optional purpose from PURPOSES
        category: Pre-computed normalized category (computed if omitted)

    Returns:
        MatchResult, possibly with score 0
    """
    validate_purpose(purpose)
    if category is None:
        category = normalize_category(material)

    score = 0
    reasons: list[str] = []
    etchant_name = (etchant.get("name") or "").lower()

    if category in (etchant.get("compatible_materials") or []):
        score += COMPATIBLE_POINTS
        reasons.append("Compatible")

    if etchant_name and _is_recommended(material, etchant_name):
        score += RECOMMENDED_POINTS
        reasons.append("Recommended")

    material_id = material.get("id")
    if material_id is not None and material_id in (etchant.get("related_material_ids") or []):
        score += DIRECT_LINK_POINTS
        reasons.append("Direct link")

    if purpose:
        reveals = (etchant.get("reveals") or "").lower()
        typical_results = (etchant.get("typical_results") or "").lower()
        search_text = f"{reveals} {typical_results}"
        if _contains_any(search_text, PURPOSE_KEYWORDS[purpose]):
            score += PURPOSE_POINTS
            reasons.append(f"Reveals {_purpose_label(purpose)}")

    hardness = material.get("hardness_category")
    if hardness in HARD_CATEGORIES:
        if _contains_any(etchant_name, HARD_MARKERS):
            score += HARD_MATERIAL_POINTS
            reasons.append("For hard materials")
    elif hardness in SOFT_CATEGORIES:
        if _contains_any(etchant_name, SOFT_MARKERS):
            score += SOFT_MATERIAL_POINTS
            reasons.append("For softer materials")

    if etchant.get("featured"):
        score += FEATURED_POINTS
        reasons.append("Featured")

    if etchant.get("pace_product_available"):
        score += PRODUCT_AVAILABLE_POINTS

    # Veto runs last and zeroes the score outright
    if category in (etchant.get("incompatible_materials") or []):
        score = 0
        reasons.append("Not recommended")

    return MatchResult(etchant=etchant, score=score, match_reasons=reasons)


def match_etchants(
    material: dict[str, Any] | None,
    etchants: Iterable[dict[str, Any]],
    purpose: str | None = None,
) -> list[MatchResult]:
    """Rank all etchants for a material.

    Results with score <= 0 are dropped. Sorting is by score descending and
    stable, so equal scores keep catalog order.

    Raises:
        ValueError: If material is None or purpose is unknown.
    """
    if material is None:
        raise ValueError("A material is required to match etchants")
    validate_purpose(purpose)

    category = normalize_category(material)
    matches = []
    scored = 0
    for etchant in etchants:
        scored += 1
        result = score_etchant(material, etchant, purpose, category=category)
        if result.score > 0:
            matches.append(result)

    matches.sort(key=lambda m: m.score, reverse=True)
    logger.debug(
        f"Matched {len(matches)}/{scored} etchants for "
        f"{material.get('name')!r} (category={category!r}, purpose={purpose!r})"
    )
    return matches


# =============================================================================
# PRESENTATION HELPERS
# =============================================================================


def score_percentage(score: int) -> int:
    """Score as a 0-100 percentage of MAX_SCORE, rounding halves up."""
    return min(100, math.floor(score / MAX_SCORE * 100 + 0.5))


def score_color_band(percentage: int) -> str:
    """Four-bucket band for a percentage: strong, good, fair, weak."""
    for threshold, band in SCORE_BANDS:
        if percentage >= threshold:
            return band
    return WEAKEST_BAND


# =============================================================================
# RESPONSE BUILDING
# =============================================================================


def material_summary(material: dict[str, Any]) -> dict[str, Any]:
    """Compact material dict for tool output."""
    return {
        "id": material.get("id"),
        "name": material.get("name"),
        "category": material.get("category"),
        "composition": material.get("composition"),
        "hardness": material.get("hardness"),
        "hardness_category": material.get("hardness_category"),
    }


def build_recommendation_response(
    material: dict[str, Any],
    matches: list[MatchResult],
    purpose: str | None,
    limit: int,
) -> dict[str, Any]:
    """Build the etchant_recommend response."""
    category = normalize_category(material)
    shown = matches[:limit]

    if not matches:
        message = (
            f"No compatible etchants found for {material.get('name')}. "
            "Try clearing the purpose filter or choosing a related material."
        )
    elif purpose:
        purpose_hits = sum(
            1 for m in matches if f"Reveals {_purpose_label(purpose)}" in m.match_reasons
        )
        message = (
            f"Found {len(matches)} etchant(s), {purpose_hits} reveal "
            f"{_purpose_label(purpose)}"
        )
    else:
        message = f"Found {len(matches)} etchant(s)"

    return {
        "material": {
            **material_summary(material),
            "normalized_category": category,
            "category_label": CATEGORY_LABELS.get(category),
        },
        "purpose": purpose,
        "recommendations": [m.to_dict() for m in shown],
        "total": len(matches),
        "summary": {
            "message": message,
            "best": shown[0].etchant.get("name") if shown else None,
            "score_note": f"Percentages are relative to {MAX_SCORE} points; bonuses can cap at 100%",
        },
    }
