import base64
from urllib.parse import parse_qs

import httpx
import pytest

from app.core.config import settings
from app.main import app
from app.services.oauth_service import (
    DROPBOX,
    GOOGLE_DRIVE,
    OAuthService,
    get_drive_oauth_service,
    get_dropbox_oauth_service,
)


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setattr(settings, "google_drive_client_id", "gid")
    monkeypatch.setattr(settings, "google_drive_client_secret", "gsecret")
    monkeypatch.setattr(settings, "dropbox_app_key", "dkey")
    monkeypatch.setattr(settings, "dropbox_app_secret", "dsecret")
    monkeypatch.setattr(settings, "app_url", None)


@pytest.fixture
def token_endpoint(client):
    requests = []
    state = {"status": 200}

    def handler(request):
        requests.append(request)
        if state["status"] >= 400:
            return httpx.Response(state["status"], text="invalid_grant")
        return httpx.Response(200, json={"access_token": "at", "refresh_token": "rt", "expires_in": 3600})

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    app.dependency_overrides[get_drive_oauth_service] = lambda: OAuthService(GOOGLE_DRIVE, http_client)
    app.dependency_overrides[get_dropbox_oauth_service] = lambda: OAuthService(DROPBOX, http_client)
    return requests, state


def test_not_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "google_drive_client_id", None)
    response = client.post("/api/auth/drive/exchange", json={"code": "abc"})
    assert response.status_code == 503
    assert response.json() == {"error": "Google Drive OAuth not configured"}


def test_drive_exchange_posts_client_credentials(client, configured, token_endpoint):
    requests, _ = token_endpoint
    response = client.post("/api/auth/drive/exchange", json={"code": "abc"},
                           headers={"Origin": "http://localhost:3000"})
    assert response.json() == {"access_token": "at", "refresh_token": "rt", "expires_in": 3600}

    form = parse_qs(requests[0].content.decode())
    assert form["client_id"] == ["gid"]
    assert form["grant_type"] == ["authorization_code"]
    assert form["redirect_uri"] == ["http://localhost:3000/auth/drive/callback"]


def test_dropbox_refresh_uses_basic_auth(client, configured, token_endpoint):
    requests, _ = token_endpoint
    response = client.post("/api/auth/dropbox/refresh", json={"refresh_token": "rt"})
    assert response.json() == {"access_token": "at", "expires_in": 3600}

    expected = base64.b64encode(b"dkey:dsecret").decode()
    assert requests[0].headers["Authorization"] == f"Basic {expected}"
    assert "client_secret" not in requests[0].content.decode()


def test_missing_code(client, configured, token_endpoint):
    response = client.post("/api/auth/dropbox/exchange", json={})
    assert response.status_code == 400
    assert response.json() == {"error": "Missing code"}


def test_upstream_failure_includes_details(client, configured, token_endpoint):
    _, state = token_endpoint
    state["status"] = 400
    response = client.post("/api/auth/drive/refresh", json={"refresh_token": "rt"})
    assert response.status_code == 502
    assert response.json() == {"error": "Refresh failed", "details": "invalid_grant"}


def test_redirect_uri_prefers_app_url(configured, monkeypatch):
    monkeypatch.setattr(settings, "app_url", "https://app.example/callback")
    assert OAuthService(DROPBOX).redirect_uri("http://localhost:3000") == "https://app.example/callback"
