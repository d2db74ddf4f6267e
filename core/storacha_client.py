# core/storacha_client.py
import httpx
from typing import Any, List, Optional, Protocol
from pydantic import ValidationError

from core.config import settings, logger as core_logger
from core.exceptions import ProviderError
from core.models import AccountSummary, Space

logger = core_logger.getChild("StorachaClient")


class StorageProviderClient(Protocol):
    """
    Narrow capability surface of a provider client.

    The session layer owns a client per identity but never inspects it beyond these calls.
    Every call may fail with ProviderError; none of them is retried.
    """

    async def login(self, email: str) -> AccountSummary: ...

    async def spaces(self) -> List[Space]: ...

    async def create_space(self, name: str) -> Space: ...

    async def set_current_space(self, did: str) -> None: ...

    async def upload_file(self, content: bytes, filename: str, content_type: Optional[str] = None) -> str: ...

    async def aclose(self) -> None: ...


async def _send(http_client: httpx.AsyncClient, method: str, path: str, **kwargs) -> Any:
    """Calls the bridge and translates transport/status failures into ProviderError."""
    try:
        response = await http_client.request(method, path, **kwargs)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        try:
            body = e.response.json()
            downstream_error = body.get('error', e.response.text) if isinstance(body, dict) else e.response.text
        except Exception:
            downstream_error = e.response.text
        logger.error(f"Storacha bridge error ({e.response.status_code}) on {method} {path}: {downstream_error}")
        raise ProviderError(f"Storage provider error ({e.response.status_code}): {downstream_error}", status_code=e.response.status_code) from e
    except httpx.RequestError as e:
        logger.error(f"Could not reach Storacha bridge for {method} {path}: {e}")
        raise ProviderError(f"Storage provider unavailable: {e}") from e

    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as e:
        raise ProviderError(f"Storage provider returned a malformed response for {method} {path}") from e


class StorachaClient:
    """
    Provider client backed by one agent on the Storacha bridge.

    Each instance owns its own HTTP connection pool and agent; it is created for a single
    login handshake and must not be shared across identities.
    """

    def __init__(self, agent_did: str, http_client: httpx.AsyncClient):
        self.agent_did = agent_did
        self._http = http_client
        self._prefix = f"/agents/{agent_did}"

    async def login(self, email: str) -> AccountSummary:
        # Resolves only once the user clicks the emailed link.
        login_timeout = httpx.Timeout(settings.PROVIDER_REQUEST_TIMEOUT, read=settings.PROVIDER_LOGIN_TIMEOUT)
        logger.info(f"[{self.agent_did}] Requesting login link for {email}")
        data = await _send(self._http, "POST", f"{self._prefix}/login", json={"email": email}, timeout=login_timeout)
        try:
            return AccountSummary(**(data or {}))
        except (ValidationError, TypeError) as e:
            raise ProviderError(f"Storage provider returned an invalid account: {data}") from e

    async def spaces(self) -> List[Space]:
        data = await _send(self._http, "GET", f"{self._prefix}/spaces")
        items = data.get("spaces", []) if isinstance(data, dict) else (data or [])
        try:
            return [Space(**item) for item in items]
        except (ValidationError, TypeError) as e:
            raise ProviderError("Storage provider returned an invalid space list") from e

    async def create_space(self, name: str) -> Space:
        data = await _send(self._http, "POST", f"{self._prefix}/spaces", json={"name": name})
        if not isinstance(data, dict) or not data.get("did"):
            raise ProviderError(f"Storage provider did not return a DID for new space '{name}'")
        return Space(name=data.get("name") or name, did=data["did"])

    async def set_current_space(self, did: str) -> None:
        await _send(self._http, "PUT", f"{self._prefix}/current-space", json={"did": did})

    async def upload_file(self, content: bytes, filename: str, content_type: Optional[str] = None) -> str:
        files = {"file": (filename, content, content_type or "application/octet-stream")}
        data = await _send(self._http, "POST", f"{self._prefix}/uploads", files=files)
        if not isinstance(data, dict) or not data.get("cid"):
            raise ProviderError("Storage provider did not return a CID for the upload")
        return str(data["cid"])

    async def aclose(self) -> None:
        await self._http.aclose()


async def create_storacha_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> StorachaClient:
    """
    Provisions a fresh agent on the bridge and returns a client bound to it.
    Raises ProviderError when the bridge is not configured or the agent cannot be created.
    """
    url = settings.STORACHA_BRIDGE_URL
    if not url:
        logger.error("Storacha bridge URL not configured. Cannot create client.")
        raise ProviderError("Storage provider not configured")

    headers = {"Authorization": f"Bearer {settings.STORACHA_BRIDGE_TOKEN}"} if settings.STORACHA_BRIDGE_TOKEN else {}
    http_client = httpx.AsyncClient(base_url=url, headers=headers, timeout=settings.PROVIDER_REQUEST_TIMEOUT, transport=transport)
    try:
        data = await _send(http_client, "POST", "/agents")
        if not isinstance(data, dict) or not data.get("did"):
            raise ProviderError("Storage provider did not return an agent DID")
    except ProviderError:
        await http_client.aclose()
        raise

    logger.info(f"Created Storacha agent {data['did']}")
    return StorachaClient(data["did"], http_client)
