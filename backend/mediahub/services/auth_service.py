from typing import Any, Tuple
import logging

from mediahub.core.errors import AppError, ErrorKind
from mediahub.core.security import CredentialStore
from mediahub.schemas.user_schema import Identity, LoginResult, TokenPair
from mediahub.services.identity_service import IdentityService
from mediahub.services.session_registry import SessionRegistry
from mediahub.utils.timing import timeit

logger = logging.getLogger(__name__)


class AuthService:
    """Login / refresh / logout on top of the credential, token and session components."""

    def __init__(self, identities: IdentityService, credentials: CredentialStore, sessions: SessionRegistry):
        self.identities = identities
        self.credentials = credentials
        self.sessions = sessions

    @timeit("login")
    async def login(self, identifier: str, password: str) -> LoginResult:
        """Verify credentials and open a session.

        Unknown identifier and wrong password raise the same AUTHENTICATION
        error; an unknown identifier still pays for a hash check so timing
        does not reveal which accounts exist.
        """
        doc = await self.identities.find_by_identifier(identifier)
        if doc is None:
            await self.credentials.dummy_verify_async()
            raise AppError(ErrorKind.AUTHENTICATION, f"Login for unknown identifier {identifier!r}")
        if not await self.credentials.verify_async(password, doc.get("credential_hash")):
            raise AppError(ErrorKind.AUTHENTICATION, f"Wrong password for user {doc['_id']}")

        tokens = await self.sessions.open(doc)
        logger.info(f"User {doc['_id']} logged in")
        return LoginResult(user=Identity.from_doc(doc), tokens=tokens)

    @timeit("refresh")
    async def refresh(self, refresh_token: str) -> Tuple[Identity, TokenPair]:
        if not refresh_token:
            raise AppError(ErrorKind.TOKEN_INVALID, "Refresh token required")
        identity, tokens = await self.sessions.rotate(refresh_token)
        return Identity.from_doc(identity), tokens

    async def logout(self, user_id: Any) -> None:
        await self.sessions.revoke(user_id)
        logger.info(f"User {user_id} logged out")
