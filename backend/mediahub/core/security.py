from typing import Any, Dict, Optional
from passlib.context import CryptContext
from fastapi.security import OAuth2PasswordBearer
from starlette.concurrency import run_in_threadpool
from pydantic import BaseModel
from mediahub.core.config import settings
from mediahub.core.errors import AppError, ErrorKind
import logging

logger = logging.getLogger(__name__)

# OAuth2 scheme (used by OpenAPI 'Authorize' button)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login", auto_error=False)


class CredentialStore:
    """Salted, adaptive password hashing.

    ``verify`` never fails open: anything that goes wrong while checking a
    hash is reported as "not verified". A stored hash is only ever replaced
    through ``credential_update``, which hashes the explicit ``password``.
    """

    def __init__(self, rounds: int = settings.BCRYPT_ROUNDS):
        self.rounds = rounds
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, plaintext: str) -> str:
        """Generate a new salted hash for ``plaintext``"""
        if not isinstance(plaintext, str) or not plaintext:
            raise AppError(ErrorKind.VALIDATION, "Password is required")
        return self._context.hash(plaintext)

    def verify(self, plaintext: str, hashed: Optional[str]) -> bool:
        """Verify a password against its hash"""
        if not plaintext or not hashed:
            return False
        try:
            return bool(self._context.verify(plaintext, hashed))
        except Exception as e:
            logger.warning(f"Password verification failed closed: {type(e).__name__}")
            return False

    def dummy_verify(self) -> bool:
        """Spend the time of a real verification; always False."""
        try:
            self._context.dummy_verify()
        except Exception as e:
            logger.warning(f"Dummy verification failed: {type(e).__name__}")
        return False

    async def hash_async(self, plaintext: str) -> str:
        return await run_in_threadpool(self.hash, plaintext)

    async def verify_async(self, plaintext: str, hashed: Optional[str]) -> bool:
        return await run_in_threadpool(self.verify, plaintext, hashed)

    async def dummy_verify_async(self) -> bool:
        return await run_in_threadpool(self.dummy_verify)

    async def credential_update(self, changes: BaseModel) -> Dict[str, Any]:
        """Return the ``credential_hash`` write for an identity update.

        The hash is only recomputed when the caller explicitly set
        ``password`` on the update model; any other update yields ``{}`` and
        leaves the stored hash untouched.
        """
        if "password" not in changes.model_fields_set:
            return {}
        password = getattr(changes, "password", None)
        if password is None:
            raise AppError(ErrorKind.VALIDATION, "Password cannot be empty")
        if hasattr(password, "get_secret_value"):
            password = password.get_secret_value()
        return {"credential_hash": await self.hash_async(password)}


credential_store = CredentialStore()
