import json

import httpx
import pytest

from app.main import app
from app.services.proxy_service import ProxyService, get_proxy_service, is_allowed_host, is_local_api


@pytest.fixture
def upstream(client):
    state = {"handler": None, "requests": []}

    def handler(request):
        state["requests"].append(request)
        return state["handler"](request)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    app.dependency_overrides[get_proxy_service] = lambda: ProxyService(http_client)
    return state


def test_allowed_hosts_include_subdomains():
    assert is_allowed_host("api.bybit.com")
    assert is_allowed_host("eu.api.bybit.com")
    assert not is_allowed_host("evilapi.bybit.com.example")
    assert not is_allowed_host(None)


def test_local_api_detection():
    assert is_local_api("http://127.0.0.1:35821/api/health")
    assert is_local_api("http://localhost:35821/")
    assert not is_local_api("http://localhost:3000/")


def test_forward_relays_status_body_and_content_type(client, upstream):
    upstream["handler"] = lambda request: httpx.Response(
        201, text="<ok/>", headers={"content-type": "application/xml"}
    )
    response = client.post("/api/proxy", json={
        "url": "https://api.example.com/orders", "method": "POST",
        "headers": {"X-Token": "t"}, "body": {"a": 1},
    })
    assert response.status_code == 201
    assert response.text == "<ok/>"
    assert response.headers["content-type"].startswith("application/xml")

    sent = upstream["requests"][0]
    assert sent.method == "POST"
    assert sent.headers["X-Token"] == "t"
    assert json.loads(sent.content) == {"a": 1}


def test_forward_requires_url(client, upstream):
    response = client.post("/api/proxy", json={"method": "GET"})
    assert response.status_code == 400
    assert response.json() == {"error": "Missing URL"}


def test_local_api_unreachable_is_503(client, upstream):
    def refuse(request):
        raise httpx.ConnectError("Connection refused", request=request)

    upstream["handler"] = refuse
    response = client.post("/api/proxy", json={"url": "http://127.0.0.1:35821/api/health"})
    assert response.status_code == 503
    body = response.json()
    assert body["error"] == "API Server Unreachable"
    assert "hint" in body


def test_other_failures_are_500(client, upstream):
    def refuse(request):
        raise httpx.ConnectError("Connection refused", request=request)

    upstream["handler"] = refuse
    response = client.post("/api/proxy", json={"url": "https://api.example.com/"})
    assert response.status_code == 500


def test_ping(client, upstream):
    upstream["handler"] = lambda request: httpx.Response(204)
    assert client.get("/api/proxy/ping", params={"url": "https://api.bybit.com/v5/market/time"}).json() == {
        "success": True, "status": 204,
    }


def test_ping_validation(client, upstream):
    assert client.get("/api/proxy/ping").json() == {"error": "Missing url param"}
    response = client.get("/api/proxy/ping", params={"url": "ftp://files.example.com/x"})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid protocol"}


def test_ping_fetch_failure(client, upstream):
    def timeout(request):
        raise httpx.ReadTimeout("timed out", request=request)

    upstream["handler"] = timeout
    response = client.get("/api/proxy/ping", params={"url": "https://example.com"})
    assert response.status_code == 500
    assert response.json() == {"error": "Fetch failed", "details": "timed out"}
