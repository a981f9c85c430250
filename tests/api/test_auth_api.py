"""
Tests for the HubSpot connection endpoints (/auth).
"""
from urllib.parse import parse_qs, urlparse

import pytest
from jose import jwt

from invoice_manager.api.deps import create_session_token, read_session_token
from invoice_manager.config import settings

from conftest import PORTAL_ID

COOKIE = settings.SESSION_COOKIE_NAME


async def start_flow(client) -> str:
    """Begin the OAuth flow and return the issued state."""
    response = await client.get("/auth/start")
    assert response.status_code == 302
    return parse_qs(urlparse(response.headers["location"]).query)["state"][0]


def session_cookie(response) -> str:
    header = response.headers["set-cookie"]
    assert header.startswith(f"{COOKIE}=")
    return header.split(";", 1)[0].split("=", 1)[1]


class TestStart:
    @pytest.mark.asyncio
    async def test_redirects_to_hubspot(self, client, state_registry):
        response = await client.get("/auth/start")

        assert response.status_code == 302
        location = urlparse(response.headers["location"])
        assert location.netloc == "app.hubspot.com"
        assert parse_qs(location.query)["client_id"] == ["client-id"]
        assert len(state_registry) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("settings_overrides", [{"HUBSPOT_CLIENT_ID": None}])
    async def test_missing_configuration_is_500(self, client):
        response = await client.get("/auth/start")

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "SRV_002"
        assert "HUBSPOT_CLIENT_ID" in body["detail"]
        assert response.headers["content-type"].startswith("application/problem+json")


class TestCallback:
    @pytest.mark.asyncio
    async def test_connects_portal_and_sets_cookie(self, client, token_store):
        state = await start_flow(client)

        response = await client.get("/auth/callback", params={"code": "auth-code", "state": state})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["portalId"] == PORTAL_ID
        assert data["hubDomain"] == "acme.hubspot.com"
        assert "httponly" in response.headers["set-cookie"].lower()
        assert read_session_token(session_cookie(response)) == PORTAL_ID
        assert await token_store.get(PORTAL_ID) is not None

    @pytest.mark.asyncio
    async def test_session_cookie_identifies_portal(self, client):
        state = await start_flow(client)
        callback = await client.get("/auth/callback", params={"code": "auth-code", "state": state})
        token = session_cookie(callback)
        client.cookies.clear()

        response = await client.get("/auth/status", headers={"Cookie": f"{COOKIE}={token}"})

        assert response.status_code == 200
        assert response.json()["portalId"] == PORTAL_ID
        assert response.json()["connected"] is True

    @pytest.mark.asyncio
    async def test_invalid_state_rejected(self, client, fake_hubspot):
        await start_flow(client)

        response = await client.get("/auth/callback", params={"code": "auth-code", "state": "forged"})

        assert response.status_code == 400
        assert response.json()["code"] == "AUTH_004"
        assert fake_hubspot.calls == []

    @pytest.mark.asyncio
    async def test_missing_code(self, client):
        state = await start_flow(client)

        response = await client.get("/auth/callback", params={"state": state})

        assert response.status_code == 400
        assert response.json()["code"] == "VAL_003"

    @pytest.mark.asyncio
    async def test_denied_consent(self, client, state_registry, fake_hubspot):
        state = await start_flow(client)

        response = await client.get(
            "/auth/callback",
            params={"error": "access_denied", "error_description": "User denied access", "state": state},
        )

        assert response.status_code == 400
        assert "User denied access" in response.json()["detail"]
        assert len(state_registry) == 0
        assert fake_hubspot.calls == []

    @pytest.mark.asyncio
    async def test_rejected_code_is_provider_error(self, client, fake_hubspot, token_store):
        fake_hubspot.queue_token_response(400, status="BAD_AUTH_CODE", message="auth code not found")
        state = await start_flow(client)

        response = await client.get("/auth/callback", params={"code": "used", "state": state})

        assert response.status_code == 500
        assert response.json()["code"] == "EXT_002"
        assert await token_store.get(PORTAL_ID) is None


class TestStatus:
    @pytest.mark.asyncio
    async def test_requires_portal(self, client):
        response = await client.get("/auth/status")

        assert response.status_code == 400
        assert response.json()["code"] == "VAL_003"

    @pytest.mark.asyncio
    async def test_not_connected(self, client):
        response = await client.get("/auth/status", params={"portalId": "99999"})

        assert response.status_code == 200
        assert response.json()["connected"] is False

    @pytest.mark.asyncio
    async def test_connected(self, client, connected):
        response = await client.get("/auth/status", params={"portalId": PORTAL_ID})

        data = response.json()
        assert data["connected"] is True
        assert data["expiresAt"] == connected.expires_at
        assert data["needsRefresh"] is False

    @pytest.mark.asyncio
    async def test_non_numeric_portal_rejected(self, client):
        response = await client.get("/auth/status", params={"portalId": "abc"})

        assert response.status_code == 400
        assert response.json()["code"] == "VAL_001"

    @pytest.mark.asyncio
    async def test_forged_cookie_ignored(self, client):
        forged = jwt.encode({"sub": PORTAL_ID}, "not-the-secret", algorithm=settings.ALGORITHM)

        response = await client.get("/auth/status", headers={"Cookie": f"{COOKIE}={forged}"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_valid_cookie_accepted(self, client, connected):
        token = create_session_token(PORTAL_ID)

        response = await client.get("/auth/status", headers={"Cookie": f"{COOKIE}={token}"})

        assert response.json()["connected"] is True


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_disconnect_twice_succeeds(self, client, connected, token_store):
        first = await client.post("/auth/disconnect", params={"portalId": PORTAL_ID})
        second = await client.post("/auth/disconnect", params={"portalId": PORTAL_ID})

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["success"] is True
        assert await token_store.get(PORTAL_ID) is None

    @pytest.mark.asyncio
    async def test_requires_portal(self, client):
        response = await client.post("/auth/disconnect")

        assert response.status_code == 400
        assert response.json()["code"] == "VAL_003"


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_makes_no_hubspot_calls(self, client, fake_hubspot):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert "oauthConfigured" in data
        assert fake_hubspot.calls == []
