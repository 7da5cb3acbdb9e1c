"""Tests for the set browsing endpoints."""
import httpx
import pytest

from conftest import TCGDEX


class TestSetsEndpoints:
    """Tests for GET /api/sets/{language} and /api/sets/{language}/{set_id}."""

    @pytest.mark.asyncio
    async def test_lists_sets_without_pocket(self, api_client):
        response = await api_client.get("/api/sets/en")

        assert response.status_code == 200
        ids = [s["id"] for s in response.json()]
        assert ids == ["swsh12pt5", "swsh3"]

    @pytest.mark.asyncio
    async def test_invalid_language(self, api_client):
        response = await api_client.get("/api/sets/xx")

        assert response.status_code == 400
        assert "Invalid language" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_catalog_down(self, api_client, upstream):
        upstream.get(f"{TCGDEX}/v2/en/sets", httpx.Response(503))

        response = await api_client.get("/api/sets/en")

        assert response.status_code == 502

    @pytest.mark.asyncio
    async def test_set_details(self, api_client, upstream):
        upstream.get(
            f"{TCGDEX}/v2/en/sets/swsh3",
            {"id": "swsh3", "name": "Darkness Ablaze", "cards": [{"id": "swsh3-020", "name": "Charizard VMAX"}]},
        )

        response = await api_client.get("/api/sets/en/swsh3")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Darkness Ablaze"
        assert data["cards"][0]["id"] == "swsh3-020"

    @pytest.mark.asyncio
    async def test_unknown_set(self, api_client):
        response = await api_client.get("/api/sets/en/nope")

        assert response.status_code == 404
        assert response.json()["detail"] == "Set not found"
