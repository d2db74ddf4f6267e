# core/storage_link_client.py
"""
Async client for the Storage Link routes, for callers that drive the verification flow
(UIs, scripts, other services).

`wait_for_verification` is the caller-side polling loop: it owns the wall-clock ceiling.
Giving up does not cancel anything on the server; the handshake stays pending there until
it resolves or the identity is reset.
"""
import asyncio
import time
from typing import List, Optional

import httpx

from core.config import settings, logger as core_logger
from core.exceptions import (
    HandshakeFailure, InputValidationError, NotVerifiedError, ProviderError,
    SpaceNotFoundError, StorageLinkError, VerificationTimeoutError
)
from core.identity import normalize_email
from core.models import (
    ActiveSpaceResponse, CreateSpaceResponse, LinkResponse, Space,
    SpacesResponse, UploadResponse, VerificationResponse
)

logger = core_logger.getChild("StorageLinkClient")

API_PREFIX = "/storage/storacha"


class StorageLinkClient:
    def __init__(self, base_url: str = settings.STORAGE_LINK_URL, timeout: float = 60.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._http = httpx.AsyncClient(base_url=f"{base_url.rstrip('/')}{API_PREFIX}", timeout=timeout, transport=transport)

    async def __aenter__(self) -> "StorageLinkClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, endpoint: str, email: str, space_did: Optional[str] = None, **kwargs) -> httpx.Response:
        """Calls a route and maps error statuses back onto the domain exceptions."""
        try:
            response = await self._http.request(method, endpoint, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            try: detail = e.response.json().get('detail', e.response.text)
            except Exception: detail = e.response.text
            logger.error(f"Storage Link error ({status_code}) at {endpoint}: {detail}")
            if status_code in (400, 422):
                raise InputValidationError(str(detail)) from e
            if status_code == 401:
                raise NotVerifiedError(normalize_email(email)) from e
            if status_code == 404 and space_did:
                raise SpaceNotFoundError(space_did) from e
            if status_code == 502:
                raise ProviderError(str(detail), status_code=status_code) from e
            raise StorageLinkError(f"Storage Link error ({status_code}): {detail}") from e
        except httpx.RequestError as e:
            logger.error(f"Network error calling Storage Link endpoint {endpoint}: {e}")
            raise StorageLinkError(f"Cannot reach Storage Link at {self._http.base_url}") from e

    # --- Verification ---

    async def login(self, email: str) -> LinkResponse:
        response = await self._request("POST", "/login", email, json={"email": email})
        return LinkResponse(**response.json())

    async def check_verification(self, email: str) -> VerificationResponse:
        response = await self._request("POST", "/check-verification", email, json={"email": email})
        return VerificationResponse(**response.json())

    async def resend_verification(self, email: str) -> LinkResponse:
        response = await self._request("POST", "/resend-verification", email, json={"email": email})
        return LinkResponse(**response.json())

    async def wait_for_verification(self, email: str, interval: Optional[float] = None, timeout: Optional[float] = None) -> VerificationResponse:
        """
        Polls check-verification until the identity is verified.

        Raises VerificationTimeoutError once `timeout` seconds have passed, and
        HandshakeFailure when a previously pending identity falls back to unknown (the
        server drops failed handshakes without telling anyone).
        """
        interval = interval if interval is not None else settings.VERIFICATION_POLL_INTERVAL
        timeout = timeout if timeout is not None else settings.VERIFICATION_POLL_TIMEOUT
        deadline = time.monotonic() + timeout
        seen_pending = False

        while True:
            status = await self.check_verification(email)
            if status.verified:
                logger.info(f"Verification confirmed for {email.strip()}")
                return status
            if status.pending:
                seen_pending = True
            elif seen_pending:
                raise HandshakeFailure(normalize_email(email), status.message or "verification no longer pending")

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise VerificationTimeoutError(f"Verification timeout for {email.strip()} after {timeout:.0f}s. Please try again.")
            await asyncio.sleep(min(interval, remaining))

    # --- Spaces ---

    async def list_spaces(self, email: str) -> List[Space]:
        response = await self._request("GET", "/spaces", email, params={"email": email})
        if response.status_code == 202:
            raise NotVerifiedError(normalize_email(email), pending=True)
        return SpacesResponse(**response.json()).spaces

    async def set_active_space(self, email: str, space_did: str) -> Space:
        response = await self._request("POST", "/spaces", email, space_did=space_did, json={"email": email, "spaceDid": space_did})
        return ActiveSpaceResponse(**response.json()).active_space

    async def create_space(self, email: str, name: str) -> Space:
        response = await self._request("POST", "/create-space", email, json={"email": email, "name": name})
        return CreateSpaceResponse(**response.json()).space

    async def upload_file(self, email: str, content: bytes, filename: str, content_type: str, space_did: Optional[str] = None) -> str:
        data = {"email": email}
        if space_did:
            data["spaceDid"] = space_did
        response = await self._request("POST", "/upload", email, space_did=space_did, data=data, files={"file": (filename, content, content_type)})
        return UploadResponse(**response.json()).cid
