"""Tests for catalog loading (local file and hosted REST API)."""

import asyncio
import json
import time
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from etchant_mcp.catalog import Catalog, CatalogClient, CatalogError, load_catalog_file

CATALOG_FILE = Path(__file__).parent.parent / "data" / "catalog.json"


def _response(payload, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    return response


class TestCatalogRecords:
    """Test record normalization."""

    def test_list_fields_coerced(self):
        catalog = Catalog.from_records(
            [{"id": 1, "name": "AISI 1045", "tags": None, "common_etchants": "2% Nital"}],
            [{"id": 10, "name": "Picral", "compatible_materials": None, "incompatible_materials": ("aluminum",)}],
        )
        material = catalog.materials[0]
        etchant = catalog.etchants[0]
        assert material["tags"] == []
        assert material["alternative_names"] == []
        assert material["common_etchants"] == ["2% Nital"]
        assert material["category"] == ""
        assert material["featured"] is False
        assert etchant["compatible_materials"] == []
        assert etchant["incompatible_materials"] == ["aluminum"]
        assert etchant["related_material_ids"] == []
        assert etchant["pace_product_available"] is False

    def test_blank_string_list_field(self):
        catalog = Catalog.from_records([{"id": 1, "name": "x", "tags": "  "}], [])
        assert catalog.materials[0]["tags"] == []

    def test_extra_fields_preserved(self):
        catalog = Catalog.from_records([{"id": 1, "name": "x", "preparation_notes": "Etch"}], [])
        assert catalog.materials[0]["preparation_notes"] == "Etch"

    def test_does_not_mutate_input(self):
        raw = {"id": 1, "name": "x", "tags": None}
        Catalog.from_records([raw], [])
        assert raw == {"id": 1, "name": "x", "tags": None}

    def test_non_dict_rows_skipped(self):
        catalog = Catalog.from_records([{"id": 1, "name": "x"}, "junk", None], [42])
        assert len(catalog.materials) == 1
        assert catalog.etchants == []

    def test_non_list_rejected(self):
        with pytest.raises(CatalogError, match="materials"):
            Catalog.from_records({"id": 1}, [])

    def test_get_material_and_stats(self):
        catalog = Catalog.from_records(
            [{"id": 7, "slug": "inconel-718", "name": "Inconel 718"}], [], source="test"
        )
        assert catalog.get_material("inconel-718")["id"] == 7
        assert catalog.get_material(8) is None
        assert catalog.get_stats() == {"materials": 1, "etchants": 0, "source": "test"}


class TestLoadCatalogFile:
    def test_bundled_catalog(self):
        catalog = load_catalog_file(CATALOG_FILE)
        assert len(catalog.materials) == 9
        assert len(catalog.etchants) == 11
        assert catalog.source == str(CATALOG_FILE)

    def test_bundled_catalog_ids_unique(self):
        catalog = load_catalog_file(CATALOG_FILE)
        material_ids = [m["id"] for m in catalog.materials]
        etchant_ids = [e["id"] for e in catalog.etchants]
        assert len(material_ids) == len(set(material_ids))
        assert len(etchant_ids) == len(set(etchant_ids))

    def test_roundtrip_tmp_file(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps({
            "materials": [{"id": 1, "name": "Ti-6Al-4V", "category": "Titanium Alloys"}],
            "etchants": [{"id": 2, "name": "Kroll's Reagent", "compatible_materials": ["titanium"]}],
        }))
        catalog = load_catalog_file(path)
        assert catalog.get_material("Ti-6Al-4V")["id"] == 1
        assert catalog.etchants[0]["compatible_materials"] == ["titanium"]

    def test_missing_sections_default_empty(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text("{}")
        catalog = load_catalog_file(path)
        assert catalog.materials == []
        assert catalog.etchants == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(CatalogError, match="Cannot read"):
            load_catalog_file(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text("{not json")
        with pytest.raises(CatalogError, match="not valid JSON"):
            load_catalog_file(path)

    def test_top_level_must_be_object(self, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text("[]")
        with pytest.raises(CatalogError, match="JSON object"):
            load_catalog_file(path)


class TestCatalogClient:
    """Test the hosted catalog client with a mocked HTTP layer."""

    @pytest.fixture
    def client(self):
        c = CatalogClient(base_url="https://catalog.example.com/", api_key="secret-key", cache_ttl=60)
        c._get_client()  # Eagerly init for patching in tests
        return c

    def test_auth_headers(self, client):
        assert client._client.headers["apikey"] == "secret-key"
        assert client._client.headers["authorization"] == "Bearer secret-key"

    @pytest.mark.asyncio
    async def test_get_catalog(self, client):
        responses = [
            _response([{"id": 1, "name": "AISI 1045", "category": "Carbon Steel"}]),
            _response([{"id": 10, "name": "Picral", "compatible_materials": ["carbon-steel"]}]),
        ]
        with patch.object(client._client, "get", new_callable=AsyncMock, side_effect=responses) as mock_get:
            catalog = await client.get_catalog()

        assert catalog.get_stats() == {
            "materials": 1,
            "etchants": 1,
            "source": "https://catalog.example.com",
        }
        url = mock_get.call_args_list[0].args[0]
        assert url.startswith("https://catalog.example.com/rest/v1/")
        params = mock_get.call_args_list[0].kwargs["params"]
        assert params["select"] == "*"
        assert params["offset"] == 0

    @pytest.mark.asyncio
    async def test_paging(self, client):
        responses = [
            _response([{"id": 1, "name": "A"}, {"id": 2, "name": "B"}]),
            _response([{"id": 3, "name": "C"}]),
            _response([]),
        ]
        with patch("etchant_mcp.catalog.CATALOG_PAGE_SIZE", 2):
            with patch.object(client._client, "get", new_callable=AsyncMock, side_effect=responses) as mock_get:
                catalog = await client.get_catalog()

        assert [m["id"] for m in catalog.materials] == [1, 2, 3]
        assert catalog.etchants == []
        offsets = [call.kwargs["params"]["offset"] for call in mock_get.call_args_list]
        assert offsets == [0, 2, 0]

    @pytest.mark.asyncio
    async def test_cached_within_ttl(self, client):
        with patch.object(
            client._client, "get", new_callable=AsyncMock, return_value=_response([])
        ) as mock_get:
            first = await client.get_catalog()
            second = await client.get_catalog()
            assert first is second
            assert mock_get.call_count == 2

            await client.get_catalog(refresh=True)
            assert mock_get.call_count == 4

    @pytest.mark.asyncio
    async def test_expired_snapshot_refetched(self, client):
        stale = Catalog(source="stale")
        client._cached = (time.monotonic() - 120, stale)
        with patch.object(
            client._client, "get", new_callable=AsyncMock, return_value=_response([])
        ) as mock_get:
            catalog = await client.get_catalog()
        assert catalog is not stale
        assert mock_get.call_count == 2

    @pytest.mark.asyncio
    async def test_fresh_snapshot_reused(self, client):
        snapshot = Catalog(source="snapshot")
        client._cached = (time.monotonic(), snapshot)
        with patch.object(client._client, "get", new_callable=AsyncMock) as mock_get:
            assert await client.get_catalog() is snapshot
        mock_get.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_fetch(self, client):
        async def slow_get(url, params=None):
            await asyncio.sleep(0)
            return _response([])

        client._cached = (time.monotonic() - 120, Catalog(source="stale"))
        with patch.object(client._client, "get", new_callable=AsyncMock, side_effect=slow_get) as mock_get:
            results = await asyncio.gather(*(client.get_catalog() for _ in range(3)))

        # One materials page plus one etchants page
        assert mock_get.call_count == 2
        assert results[0] is results[1] is results[2]

    @pytest.mark.asyncio
    async def test_http_error_status(self, client):
        with patch.object(
            client._client, "get", new_callable=AsyncMock, return_value=_response({}, status_code=500)
        ):
            with pytest.raises(CatalogError, match="HTTP 500"):
                await client.get_catalog()

    @pytest.mark.asyncio
    async def test_transport_error_sanitized(self, client):
        error = httpx.ConnectError("connect failed apikey=secret-key")
        with patch.object(client._client, "get", new_callable=AsyncMock, side_effect=error):
            with pytest.raises(CatalogError) as exc_info:
                await client.get_catalog()
        assert "ConnectError" in str(exc_info.value)
        assert "secret-key" not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_invalid_json(self, client):
        response = _response(None)
        response.json.side_effect = ValueError("bad json")
        with patch.object(client._client, "get", new_callable=AsyncMock, return_value=response):
            with pytest.raises(CatalogError, match="invalid JSON"):
                await client.get_catalog()

    @pytest.mark.asyncio
    async def test_non_list_payload(self, client):
        with patch.object(
            client._client, "get", new_callable=AsyncMock, return_value=_response({"message": "denied"})
        ):
            with pytest.raises(CatalogError, match="non-list"):
                await client.get_catalog()

    @pytest.mark.asyncio
    async def test_failed_fetch_not_cached(self, client):
        with patch.object(
            client._client, "get", new_callable=AsyncMock, return_value=_response({}, status_code=503)
        ):
            with pytest.raises(CatalogError):
                await client.get_catalog()
        with patch.object(client._client, "get", new_callable=AsyncMock, return_value=_response([])):
            catalog = await client.get_catalog()
        assert catalog.materials == []

    @pytest.mark.asyncio
    async def test_close(self, client):
        await client.close()
        assert client._client is None
        await client.close()
