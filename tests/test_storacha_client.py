import json
import httpx
import pytest

from core.config import settings
from core.exceptions import ProviderError
from core.models import AccountSummary, Space
from core.storacha_client import StorachaClient, create_storacha_client

AGENT = "did:key:agent"


class BridgeStub:
    """Records requests and answers them from a route table keyed by (method, path)."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"error": "no such route"})
        return handler(request) if callable(handler) else handler

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def bridge_client(routes) -> "tuple[StorachaClient, BridgeStub]":
    stub = BridgeStub(routes)
    http_client = httpx.AsyncClient(base_url="http://bridge.test", transport=stub.transport)
    return StorachaClient(AGENT, http_client), stub


# --- Agent creation ---
@pytest.mark.asyncio
async def test_create_client_provisions_agent(monkeypatch):
    monkeypatch.setattr(settings, "STORACHA_BRIDGE_URL", "http://bridge.test")
    monkeypatch.setattr(settings, "STORACHA_BRIDGE_TOKEN", "s3cret")
    stub = BridgeStub({("POST", "/agents"): httpx.Response(201, json={"did": AGENT})})

    client = await create_storacha_client(transport=stub.transport)

    assert isinstance(client, StorachaClient)
    assert client.agent_did == AGENT
    assert stub.requests[0].headers["Authorization"] == "Bearer s3cret"
    await client.aclose()

@pytest.mark.asyncio
async def test_create_client_without_token_sends_no_auth_header(monkeypatch):
    monkeypatch.setattr(settings, "STORACHA_BRIDGE_URL", "http://bridge.test")
    monkeypatch.setattr(settings, "STORACHA_BRIDGE_TOKEN", None)
    stub = BridgeStub({("POST", "/agents"): httpx.Response(201, json={"did": AGENT})})

    client = await create_storacha_client(transport=stub.transport)

    assert "Authorization" not in stub.requests[0].headers
    await client.aclose()

@pytest.mark.asyncio
async def test_create_client_requires_agent_did(monkeypatch):
    monkeypatch.setattr(settings, "STORACHA_BRIDGE_URL", "http://bridge.test")
    stub = BridgeStub({("POST", "/agents"): httpx.Response(201, json={})})

    with pytest.raises(ProviderError, match="agent DID"):
        await create_storacha_client(transport=stub.transport)

@pytest.mark.asyncio
async def test_create_client_without_bridge_url(monkeypatch):
    monkeypatch.setattr(settings, "STORACHA_BRIDGE_URL", "")
    with pytest.raises(ProviderError, match="not configured"):
        await create_storacha_client()

@pytest.mark.asyncio
async def test_create_client_bridge_unreachable(monkeypatch):
    monkeypatch.setattr(settings, "STORACHA_BRIDGE_URL", "http://bridge.test")

    def refuse(request):
        raise httpx.ConnectError("Connection refused", request=request)

    with pytest.raises(ProviderError, match="unavailable"):
        await create_storacha_client(transport=httpx.MockTransport(refuse))


# --- Agent operations ---
@pytest.mark.asyncio
async def test_login_returns_account():
    client, stub = bridge_client({("POST", f"/agents/{AGENT}/login"): httpx.Response(200, json={"did": "did:mailto:x.com:u"})})

    account = await client.login("u@x.com")

    assert account == AccountSummary(did="did:mailto:x.com:u")
    assert json.loads(stub.requests[0].content) == {"email": "u@x.com"}
    await client.aclose()

@pytest.mark.asyncio
async def test_login_rejects_response_without_account():
    client, _ = bridge_client({("POST", f"/agents/{AGENT}/login"): httpx.Response(200, json={"status": "ok"})})
    with pytest.raises(ProviderError, match="invalid account"):
        await client.login("u@x.com")
    await client.aclose()

@pytest.mark.asyncio
async def test_spaces_parses_list():
    client, _ = bridge_client({
        ("GET", f"/agents/{AGENT}/spaces"): httpx.Response(200, json={"spaces": [
            {"name": "Home", "did": "did:space:1"},
            {"did": "did:space:2"},
        ]}),
    })

    spaces = await client.spaces()

    assert spaces == [Space(name="Home", did="did:space:1"), Space(name=None, did="did:space:2")]
    await client.aclose()

@pytest.mark.asyncio
async def test_spaces_rejects_entries_without_did():
    client, _ = bridge_client({("GET", f"/agents/{AGENT}/spaces"): httpx.Response(200, json={"spaces": [{"name": "Home"}]})})
    with pytest.raises(ProviderError, match="invalid space list"):
        await client.spaces()
    await client.aclose()

@pytest.mark.asyncio
async def test_create_space_falls_back_to_requested_name():
    client, stub = bridge_client({("POST", f"/agents/{AGENT}/spaces"): httpx.Response(201, json={"did": "did:space:7"})})

    space = await client.create_space("Photos")

    assert space == Space(name="Photos", did="did:space:7")
    assert json.loads(stub.requests[0].content) == {"name": "Photos"}
    await client.aclose()

@pytest.mark.asyncio
async def test_set_current_space_accepts_empty_response():
    client, stub = bridge_client({("PUT", f"/agents/{AGENT}/current-space"): httpx.Response(204)})

    assert await client.set_current_space("did:space:1") is None
    assert json.loads(stub.requests[0].content) == {"did": "did:space:1"}
    await client.aclose()

@pytest.mark.asyncio
async def test_upload_sends_multipart_and_returns_cid():
    client, stub = bridge_client({("POST", f"/agents/{AGENT}/uploads"): httpx.Response(200, json={"cid": "bafy-cid"})})

    cid = await client.upload_file(b"\x89PNG", "pic.png", "image/png")

    assert cid == "bafy-cid"
    request = stub.requests[0]
    assert request.headers["Content-Type"].startswith("multipart/form-data")
    assert b'filename="pic.png"' in request.content
    await client.aclose()


# --- Error translation ---
@pytest.mark.asyncio
async def test_bridge_error_status_becomes_provider_error():
    client, _ = bridge_client({("GET", f"/agents/{AGENT}/spaces"): httpx.Response(500, json={"error": "quota exceeded"})})

    with pytest.raises(ProviderError) as exc_info:
        await client.spaces()

    assert exc_info.value.status_code == 500
    assert "quota exceeded" in str(exc_info.value)
    await client.aclose()

@pytest.mark.asyncio
async def test_malformed_json_becomes_provider_error():
    client, _ = bridge_client({("GET", f"/agents/{AGENT}/spaces"): httpx.Response(200, content=b"<html>oops</html>")})
    with pytest.raises(ProviderError, match="malformed"):
        await client.spaces()
    await client.aclose()

@pytest.mark.asyncio
async def test_timeout_becomes_provider_error():
    def slow(request):
        raise httpx.ReadTimeout("timed out", request=request)

    http_client = httpx.AsyncClient(base_url="http://bridge.test", transport=httpx.MockTransport(slow))
    client = StorachaClient(AGENT, http_client)

    with pytest.raises(ProviderError, match="unavailable"):
        await client.create_space("Photos")
    await client.aclose()
