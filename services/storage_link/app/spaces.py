# services/storage_link/app/spaces.py
from typing import Awaitable, List, Optional, Tuple, TypeVar

from core.config import logger as core_logger
from core.exceptions import InputValidationError, NotVerifiedError, ProviderError, SpaceNotFoundError
from core.identity import normalize_email
from core.models import Space
from core.sessions import PendingSession, SessionStore, VerifiedSession

logger = core_logger.getChild("StorageLink").getChild("SpaceDirectory")

T = TypeVar("T")


class SpaceDirectory:
    """
    Space operations for verified identities.

    Provider calls run without the store lock; cached fields on the VerifiedSession are only
    written afterwards, and only if that session was not reset in the meantime. A failed
    provider call never touches the cache.
    """

    def __init__(self, store: SessionStore):
        self.store = store

    def _require_verified(self, raw_email: str) -> Tuple[str, VerifiedSession]:
        key = normalize_email(raw_email)
        session = self.store.get(key)
        if isinstance(session, VerifiedSession):
            return key, session
        raise NotVerifiedError(key, pending=isinstance(session, PendingSession))

    async def _provider_call(self, key: str, action: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except ProviderError as e:
            logger.error(f"[{key}] Storage provider failed to {action}: {e}")
            raise
        except Exception as e:
            logger.error(f"[{key}] Unexpected error while trying to {action}: {e}", exc_info=True)
            raise ProviderError(f"Failed to {action}: {e}") from e

    async def _find_space(self, key: str, session: VerifiedSession, space_did: str) -> Space:
        spaces = await self._provider_call(key, "list spaces", session.client.spaces())
        match = next((space for space in spaces if space.did == space_did), None)
        if match is None:
            logger.warning(f"[{key}] Space {space_did} not found among {len(spaces)} provider space(s).")
            raise SpaceNotFoundError(space_did)
        return match

    async def list_spaces(self, raw_email: str) -> List[Space]:
        key, session = self._require_verified(raw_email)
        spaces = list(await self._provider_call(key, "list spaces", session.client.spaces()))
        if not self.store.update_if_current(key, session, available_spaces=spaces):
            logger.info(f"[{key}] Session changed while listing spaces; cache not updated.")
        logger.info(f"[{key}] Listed {len(spaces)} space(s).")
        return spaces

    async def create_space(self, raw_email: str, name: str) -> Space:
        if not isinstance(name, str) or not name.strip():
            raise InputValidationError("Space name is required and must be a string")
        key, session = self._require_verified(raw_email)
        space = await self._provider_call(key, f"create space '{name}'", session.client.create_space(name))
        logger.info(f"[{key}] Created space '{space.name}' ({space.did}).")
        return space

    async def set_active_space(self, raw_email: str, space_did: str) -> Space:
        if not isinstance(space_did, str) or not space_did.strip():
            raise InputValidationError("Space DID is required and must be a string")
        key, session = self._require_verified(raw_email)
        match = await self._find_space(key, session, space_did)
        await self._provider_call(key, "set current space", session.client.set_current_space(space_did))

        active = Space(name=match.name, did=match.did)
        if not self.store.update_if_current(key, session, active_space=active):
            logger.info(f"[{key}] Session changed while selecting space {space_did}; selection not cached.")
        logger.info(f"[{key}] Active space set to '{active.name}' ({active.did}).")
        return active

    async def upload_file(
        self,
        raw_email: str,
        content: bytes,
        filename: str,
        content_type: Optional[str] = None,
        space_did: Optional[str] = None,
    ) -> str:
        """Uploads into `space_did` when given (made current first), otherwise into the provider's current space."""
        key, session = self._require_verified(raw_email)
        if space_did:
            await self._find_space(key, session, space_did)
            await self._provider_call(key, "set current space", session.client.set_current_space(space_did))

        cid = await self._provider_call(key, f"upload '{filename}'", session.client.upload_file(content, filename, content_type))
        logger.info(f"[{key}] Uploaded '{filename}' ({len(content)} bytes) as {cid}.")
        return cid
