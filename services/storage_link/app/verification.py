# services/storage_link/app/verification.py
import asyncio
import threading
from typing import Awaitable, Callable, Dict, Optional, Set

from core.config import logger as core_logger
from core.exceptions import HandshakeFailure
from core.identity import normalize_email
from core.models import LoginOutcome, LoginResult
from core.sessions import PendingSession, SessionStore, VerifiedSession
from core.storacha_client import StorageProviderClient, create_storacha_client

logger = core_logger.getChild("StorageLink").getChild("Orchestrator")

ClientFactory = Callable[[], Awaitable[StorageProviderClient]]


class VerificationOrchestrator:
    """
    Drives the email login handshake for each identity.

    start_login returns as soon as the provider has been asked to send the login email. The
    handshake itself runs as a background task whose continuation writes the outcome back
    into the SessionStore, but only if the PendingSession it was started for is still the
    one stored for that identity. Resetting an identity cancels its handshake and closes the
    client.
    """

    def __init__(self, store: SessionStore, client_factory: ClientFactory = create_storacha_client):
        self.store = store
        self._client_factory = client_factory
        self._handshakes: Set["asyncio.Task[None]"] = set()
        self._failures: Dict[str, HandshakeFailure] = {}
        self._failures_lock = threading.Lock()

    async def start_login(self, raw_email: str) -> LoginResult:
        key = normalize_email(raw_email)
        pending = PendingSession(email=raw_email.strip())

        existing = self.store.reserve_pending(key, pending)
        if isinstance(existing, VerifiedSession):
            logger.info(f"[{key}] Login requested for an already verified identity.")
            return LoginResult(outcome=LoginOutcome.ALREADY_VERIFIED)
        if isinstance(existing, PendingSession):
            logger.info(f"[{key}] Login requested while verification is already in progress.")
            return LoginResult(outcome=LoginOutcome.ALREADY_PENDING)

        try:
            client = await self._client_factory()
        except asyncio.CancelledError:
            self.store.discard_pending(key, pending)
            raise
        except Exception as e:
            self.store.discard_pending(key, pending)
            logger.error(f"[{key}] Failed to create storage provider client: {e}", exc_info=True)
            return LoginResult(outcome=LoginOutcome.FAILED, reason=str(e) or type(e).__name__)

        if not self.store.update_if_current(key, pending, client=client):
            # Reset while the client was being created
            logger.warning(f"[{key}] Login was reset before the handshake started. Dropping new client.")
            await self._close_client(key, client)
            return LoginResult(outcome=LoginOutcome.FAILED, reason="Login was reset before verification could start")

        task = asyncio.create_task(self._complete_handshake(key, pending), name=f"storacha-login:{key}")
        self._handshakes.add(task)
        task.add_done_callback(self._handshakes.discard)
        self.store.update_if_current(key, pending, handshake=task)

        logger.info(f"[{key}] Login initiated. Waiting for the user to confirm the emailed link.")
        return LoginResult(outcome=LoginOutcome.INITIATED)

    async def _complete_handshake(self, key: str, pending: PendingSession) -> None:
        client = pending.client
        try:
            account = await client.login(pending.email)
        except asyncio.CancelledError:
            # The canceller closes the client (see _cancel_handshake)
            self.store.discard_pending(key, pending)
            raise
        except Exception as e:
            failure = HandshakeFailure(key, str(e) or type(e).__name__)
            if self.store.discard_pending(key, pending):
                with self._failures_lock:
                    self._failures[key] = failure
                logger.error(f"[{key}] {failure}")
            else:
                logger.warning(f"[{key}] Ignoring failure of a handshake that was already reset: {failure.reason}")
            await self._close_client(key, client)
            return

        verified = VerifiedSession(account=account, client=client)
        if self.store.promote(key, pending, verified):
            with self._failures_lock:
                self._failures.pop(key, None)
            logger.info(f"[{key}] Login successful. Account {account.did} verified.")
        else:
            logger.warning(f"[{key}] Discarding login result for account {account.did}: session was reset meanwhile.")
            await self._close_client(key, client)

    async def reset(self, raw_email: str) -> bool:
        """Forgets everything about the identity. Returns True if a session was removed."""
        key = normalize_email(raw_email)
        removed = self.store.remove(key)
        with self._failures_lock:
            self._failures.pop(key, None)

        if isinstance(removed, VerifiedSession):
            logger.info(f"[{key}] Reset removed verified session for account {removed.account.did}.")
            await self._close_client(key, removed.client)
        elif isinstance(removed, PendingSession):
            logger.info(f"[{key}] Reset removed pending verification started at {removed.created_at.isoformat()}.")
            await self._cancel_handshake(key, removed)
        else:
            logger.info(f"[{key}] Reset requested but no session was stored.")
        return removed is not None

    async def resend_verification(self, raw_email: str) -> LoginResult:
        await self.reset(raw_email)
        return await self.start_login(raw_email)

    def last_failure(self, raw_email: str) -> Optional[HandshakeFailure]:
        key = normalize_email(raw_email)
        with self._failures_lock:
            return self._failures.get(key)

    async def aclose(self) -> None:
        """Cancels outstanding handshakes and closes every provider client still owned by a session."""
        cancelled = 0
        for key, session in self.store.items():
            if isinstance(session, VerifiedSession):
                await self._close_client(key, session.client)
            elif isinstance(session, PendingSession) and self.store.discard_pending(key, session):
                if await self._cancel_handshake(key, session):
                    cancelled += 1

        # Handshakes no longer attached to a stored session
        leftovers = list(self._handshakes)
        for task in leftovers:
            task.cancel()
        if leftovers:
            await asyncio.gather(*leftovers, return_exceptions=True)
        if cancelled or leftovers:
            logger.info(f"Cancelled {cancelled + len(leftovers)} outstanding login handshake(s).")

    async def _cancel_handshake(self, key: str, pending: PendingSession) -> bool:
        """
        Stops the handshake of a pending session that was just removed from the store and
        closes its client. A task that is cancelled before its first step never runs its own
        cleanup, so the client is closed here rather than in the continuation.
        """
        task = pending.handshake
        if task is None or not task.cancel():
            # Still constructing the client (start_login closes it), or already resolved
            return False
        await asyncio.gather(task, return_exceptions=True)
        await self._close_client(key, pending.client)
        return True

    async def _close_client(self, key: str, client: Optional[StorageProviderClient]) -> None:
        if client is None:
            return
        try:
            await client.aclose()
        except Exception as e:
            logger.warning(f"[{key}] Error while closing storage provider client: {e}")
