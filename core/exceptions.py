# core/exceptions.py
"""
Error taxonomy for the Storacha link flow.

Every error is scoped to a single request or identity; none of them should take the
process down. Routes translate these into HTTP status codes.
"""
from typing import Optional


class StorageLinkError(Exception):
    """Base class for all storage link errors."""
    pass


class InputValidationError(StorageLinkError):
    """Malformed or missing identity/parameters. Raised before the session store is touched."""
    pass


class NotVerifiedError(StorageLinkError):
    """A space operation was attempted for an identity without a verified session."""

    def __init__(self, identity_key: str, pending: bool = False):
        self.identity_key = identity_key
        self.pending = pending
        state = "verification still pending" if pending else "not verified"
        super().__init__(f"Identity '{identity_key}' is {state}. Please login first.")


class SpaceNotFoundError(StorageLinkError):
    """The referenced space DID is not in the provider's current space list."""

    def __init__(self, space_did: str):
        self.space_did = space_did
        super().__init__(f"Space with DID '{space_did}' not found")


class ProviderError(StorageLinkError):
    """A call to the storage provider failed (network, account or quota issue)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class HandshakeFailure(StorageLinkError):
    """
    The asynchronous login handshake resolved to failure.

    Never raised by the orchestrator: it records instances, and the identity reverts to
    'unknown' on the next poll. The polling client raises one when a pending identity
    turns into unknown.
    """

    def __init__(self, identity_key: str, reason: str):
        self.identity_key = identity_key
        self.reason = reason
        super().__init__(f"Login handshake for '{identity_key}' failed: {reason}")


class VerificationTimeoutError(StorageLinkError):
    """Caller-side polling gave up before the identity became verified."""
    pass
