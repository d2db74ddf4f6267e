# services/storage_link/app/polling.py
from typing import Optional

from core.identity import normalize_email
from core.models import VerificationState, VerificationStatus
from core.sessions import PendingSession, Session, SessionStore, VerifiedSession


def _describe(session: Optional[Session]) -> VerificationStatus:
    if isinstance(session, VerifiedSession):
        return VerificationStatus(
            state=VerificationState.VERIFIED,
            needs_payment_plan=not session.has_payment_plan,
            account=session.account,
        )
    if isinstance(session, PendingSession):
        return VerificationStatus(state=VerificationState.PENDING)
    return VerificationStatus(state=VerificationState.UNKNOWN)


def verification_status(store: SessionStore, raw_email: str) -> VerificationStatus:
    """
    Read-only answer to "where is this identity in the login flow?".

    Safe to call as often as a client timer likes. Enforces no timeout; a handshake that
    just succeeded may still read as PENDING until its continuation has run.
    """
    key = normalize_email(raw_email)
    return store.inspect(key, _describe)
