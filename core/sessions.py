# core/sessions.py
"""
Per-identity session state for linked storage accounts.

An identity key maps to at most one session: a PendingSession while the emailed login
link has not been clicked, or a VerifiedSession afterwards. All reads and writes go
through SessionStore, whose lock is the only synchronization point shared by request
handlers and the background handshake continuations. The lock is a threading lock so the
store stays correct even when handlers run on worker threads, and it is never held across
an await.
"""
import asyncio
import datetime
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar, Union

from core.config import logger as core_logger
from core.models import AccountSummary, Space
from core.storacha_client import StorageProviderClient

logger = core_logger.getChild("SessionStore")

T = TypeVar("T")


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(eq=False)
class PendingSession:
    """
    A login handshake in flight.

    `client` is None only while the provider client is still being constructed; the slot is
    reserved first so a concurrent login for the same identity sees it and backs off.
    """
    email: str
    client: Optional[StorageProviderClient] = None
    handshake: Optional["asyncio.Task[Any]"] = None
    created_at: datetime.datetime = field(default_factory=_utcnow)


@dataclass(eq=False)
class VerifiedSession:
    account: AccountSummary
    client: StorageProviderClient
    has_payment_plan: bool = False
    active_space: Optional[Space] = None
    available_spaces: Optional[List[Space]] = None
    verified_at: datetime.datetime = field(default_factory=_utcnow)


Session = Union[PendingSession, VerifiedSession]


class SessionStore:
    """Process-wide, lock-guarded mapping from identity key to its single session."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    # --- Basic operations ---

    def get(self, key: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(key)

    def put(self, key: str, session: Session) -> None:
        with self._lock:
            self._sessions[key] = session

    def remove(self, key: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.pop(key, None)

    def inspect(self, key: str, reader: Callable[[Optional[Session]], T]) -> T:
        """Runs `reader` on the current session while holding the lock, so it never sees a half-applied update."""
        with self._lock:
            return reader(self._sessions.get(key))

    def items(self) -> List[Tuple[str, Session]]:
        """Snapshot of (key, session) pairs."""
        with self._lock:
            return list(self._sessions.items())

    # --- Conditional compound operations ---

    def reserve_pending(self, key: str, pending: PendingSession) -> Optional[Session]:
        """
        Inserts `pending` if the key is free.
        Returns the session already occupying the key, or None when the reservation succeeded.
        """
        with self._lock:
            existing = self._sessions.get(key)
            if existing is not None:
                return existing
            self._sessions[key] = pending
            return None

    def promote(self, key: str, pending: PendingSession, verified: VerifiedSession) -> bool:
        """Replaces `pending` with `verified` only if that exact pending session is still stored."""
        with self._lock:
            if self._sessions.get(key) is not pending:
                return False
            self._sessions[key] = verified
            return True

    def discard_pending(self, key: str, pending: PendingSession) -> bool:
        """Removes `pending` only if that exact pending session is still stored."""
        with self._lock:
            if self._sessions.get(key) is not pending:
                return False
            del self._sessions[key]
            return True

    def update_if_current(self, key: str, session: Session, **changes: Any) -> bool:
        """
        Applies attribute changes to `session` in place, provided it is still the session
        stored under `key`. A session removed or replaced meanwhile is left untouched.
        """
        with self._lock:
            if self._sessions.get(key) is not session:
                logger.debug(f"[{key}] Skipping update of a session that is no longer current.")
                return False
            unknown = [name for name in changes if not hasattr(session, name)]
            if unknown:
                raise AttributeError(f"{type(session).__name__} has no field(s) {unknown}")
            for name, value in changes.items():
                setattr(session, name, value)
            return True
