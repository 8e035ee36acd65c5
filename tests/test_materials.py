"""Tests for material search, quick select and key resolution."""

import pytest

from etchant_mcp.materials import (
    COMMON_MATERIALS,
    find_by_category,
    is_published,
    quick_select,
    resolve_material,
    search_materials,
)

MATERIALS = [
    {"id": 1, "name": "AISI 1045", "category": "Carbon Steel", "tags": ["shafts"], "sort_order": 3},
    {
        "id": 2,
        "name": "304 Stainless Steel",
        "category": "Stainless Steel",
        "alternative_names": ["18-8", "1.4301"],
        "featured": True,
        "sort_order": 5,
    },
    {"id": 3, "name": "6061 Aluminum", "category": "Aluminum Alloys", "status": "draft"},
    {"id": 4, "name": "Ti-6Al-4V", "slug": "ti-6al-4v", "category": "Titanium Alloys", "featured": True, "sort_order": 1},
    {"id": 5, "name": "C36000 Brass", "category": "Copper Alloys", "status": "published", "sort_order": 2},
]


def _ids(materials):
    return [m["id"] for m in materials]


class TestIsPublished:
    @pytest.mark.parametrize("status,expected", [
        (None, True),
        ("", True),
        ("published", True),
        ("draft", False),
        ("archived", False),
    ])
    def test_status(self, status, expected):
        assert is_published({"status": status}) is expected

    def test_missing_status(self):
        assert is_published({}) is True


class TestSearchMaterials:
    """Test free-text material search."""

    def test_blank_query_featured_first_then_sort_order(self):
        assert _ids(search_materials(MATERIALS)) == [4, 2, 5, 1]
        assert _ids(search_materials(MATERIALS, "   ")) == [4, 2, 5, 1]

    def test_query_matches_category(self):
        assert _ids(search_materials(MATERIALS, "steel")) == [1, 2]

    def test_query_matches_alternative_name(self):
        assert _ids(search_materials(MATERIALS, "18-8")) == [2]

    def test_query_matches_tag(self):
        assert _ids(search_materials(MATERIALS, "SHAFTS")) == [1]

    def test_query_is_trimmed_and_case_insensitive(self):
        assert _ids(search_materials(MATERIALS, "  ti-6al  ")) == [4]

    def test_unpublished_excluded(self):
        assert search_materials(MATERIALS, "aluminum") == []

    def test_limit(self):
        assert len(search_materials(MATERIALS, limit=2)) == 2
        assert _ids(search_materials(MATERIALS, "s", limit=1)) == [1]

    def test_no_match(self):
        assert search_materials(MATERIALS, "unobtainium") == []

    def test_tolerates_missing_fields(self):
        materials = [{"id": 1}, {"id": 2, "name": None, "tags": None, "alternative_names": [None]}]
        assert search_materials(materials, "x") == []
        assert _ids(search_materials(materials)) == [1, 2]


class TestQuickSelect:
    def test_find_by_category_ignores_status(self):
        material = find_by_category(MATERIALS, "aluminum")
        assert material["id"] == 3

    def test_find_by_category_first_wins(self):
        materials = [
            {"id": 10, "name": "AISI 1018", "category": "Carbon Steel"},
            {"id": 11, "name": "AISI 1045", "category": "Carbon Steel"},
        ]
        assert find_by_category(materials, "carbon-steel")["id"] == 10

    def test_find_by_category_missing(self):
        assert find_by_category(MATERIALS, "nickel-alloys") is None

    def test_quick_select_skips_missing_categories(self):
        entries = quick_select(MATERIALS)
        assert [e["category"] for e in entries] == [
            "carbon-steel", "stainless-steel", "aluminum", "titanium", "copper-brass",
        ]
        assert entries[0] == {
            "category": "carbon-steel",
            "label": "Carbon Steel",
            "material_id": 1,
            "material_name": "AISI 1045",
        }

    def test_common_materials_order(self):
        assert [c["category"] for c in COMMON_MATERIALS] == [
            "carbon-steel", "stainless-steel", "aluminum", "titanium", "copper-brass", "nickel-alloys",
        ]

    def test_quick_select_empty(self):
        assert quick_select([]) == []


class TestResolveMaterial:
    """Test id/slug/name resolution priority."""

    @pytest.mark.parametrize("key,expected_id", [
        (4, 4),
        ("4", 4),
        ("ti-6al-4v", 4),
        ("TI-6AL-4V", 4),
        ("304 stainless steel", 2),
        ("18-8", 2),
        ("c36000", 5),
        ("1045", 1),
    ])
    def test_found(self, key, expected_id):
        assert resolve_material(MATERIALS, key)["id"] == expected_id

    @pytest.mark.parametrize("key", [None, "", "   ", "unobtainium", "a"])
    def test_not_found_or_ambiguous(self, key):
        assert resolve_material(MATERIALS, key) is None

    @pytest.mark.parametrize("key", [6, 1045, 36000])
    def test_missing_int_id_does_not_match_names(self, key):
        """1045 and 36000 appear in names but are not ids."""
        assert resolve_material(MATERIALS, key) is None

    def test_digit_string_still_matches_names(self):
        assert resolve_material(MATERIALS, "36000")["id"] == 5

    def test_id_beats_name(self):
        materials = [
            {"id": 1, "name": "2"},
            {"id": 2, "name": "Other"},
        ]
        assert resolve_material(materials, "2")["id"] == 2

    def test_exact_name_beats_partial(self):
        materials = [
            {"id": 1, "name": "Brass"},
            {"id": 2, "name": "Naval Brass"},
        ]
        assert resolve_material(materials, "brass")["id"] == 1
