"""Tests for practitioner resolution."""

from conftest import API_KEY, OWNER
from scribe_os.core.auth import create_access_token, decode_token
from scribe_os.core.repository import ProviderRepository


class TestAuthentication:
    async def test_missing_credentials(self, client):
        response = await client.get("/api/v1/sessions")
        assert response.status_code == 401

    async def test_wrong_api_key(self, client):
        response = await client.get(
            "/api/v1/sessions", headers={"X-API-Key": "wrong", "X-Practitioner-Id": OWNER}
        )
        assert response.status_code == 401

    async def test_api_key_requires_practitioner_header(self, client):
        response = await client.get("/api/v1/sessions", headers={"X-API-Key": API_KEY})
        assert response.status_code == 400

    async def test_api_key_as_bearer(self, client):
        response = await client.get(
            "/api/v1/sessions",
            headers={"Authorization": f"Bearer {API_KEY}", "X-Practitioner-Id": OWNER},
        )
        assert response.status_code == 200

    async def test_jwt(self, client, api_settings):
        token = create_access_token(OWNER, first_name="Claire", last_name="Martin", specialty="CARDIOLOGY")
        assert decode_token(token)["sub"] == OWNER

        response = await client.post(
            "/api/v1/sessions",
            json={"title": "JWT visit"},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 201
        assert response.json()["specialty"] == "CARDIOLOGY"

    async def test_expired_jwt(self, client, api_settings):
        token = create_access_token(OWNER, expires_minutes=-1)
        response = await client.get("/api/v1/sessions", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_provider_row_fills_specialty(self, client, owner_headers, session_factory):
        async with session_factory() as db:
            await ProviderRepository(db).create(
                id=OWNER, first_name="Claire", last_name="Martin", specialty="NEUROLOGY"
            )
            await db.commit()

        response = await client.post("/api/v1/sessions", json={"title": "Visit"}, headers=owner_headers)
        assert response.json()["specialty"] == "NEUROLOGY"
