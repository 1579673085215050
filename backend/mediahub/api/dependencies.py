from typing import Optional
from fastapi import Depends, Request
from mediahub.core.errors import AppError, ErrorKind
from mediahub.core.security import credential_store, oauth2_scheme
from mediahub.core.tokens import ACCESS, token_issuer
from mediahub.db.mongodb import get_mongo_db
from mediahub.schemas.user_schema import Identity
from mediahub.services.auth_service import AuthService
from mediahub.services.identity_service import IdentityService
from mediahub.services.pagination import paginator
from mediahub.services.session_registry import SessionRegistry
from mediahub.services.video_service import VideoService
import logging

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"
# Token failures that downgrade an optional caller to anonymous
ANONYMOUS_ON = (ErrorKind.TOKEN_EXPIRED, ErrorKind.TOKEN_INVALID, ErrorKind.TOKEN_KIND_MISMATCH)


async def get_db():
    db = get_mongo_db()
    if db is None:
        raise AppError(ErrorKind.INTERNAL, "Mongo not available")
    return db


def get_session_registry(db=Depends(get_db)) -> SessionRegistry:
    return SessionRegistry(db, token_issuer)


def get_identity_service(db=Depends(get_db), sessions: SessionRegistry = Depends(get_session_registry)) -> IdentityService:
    return IdentityService(db, credential_store, sessions)


def get_auth_service(
    identities: IdentityService = Depends(get_identity_service),
    sessions: SessionRegistry = Depends(get_session_registry),
) -> AuthService:
    return AuthService(identities, credential_store, sessions)


def get_video_service(db=Depends(get_db)) -> VideoService:
    return VideoService(db, paginator)


def _access_token(request: Request, bearer: Optional[str]) -> Optional[str]:
    return bearer or request.cookies.get(ACCESS_COOKIE)


async def get_current_user(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> Identity:
    """Build the caller's identity from a verified access token.

    Claims are trusted as-is to avoid a store round-trip on every request;
    handlers that need fresh data load it through the identity service.
    """
    raw = _access_token(request, token)
    if not raw:
        raise AppError(ErrorKind.TOKEN_INVALID, "Access token required")
    claims = token_issuer.verify(raw, ACCESS)
    return Identity(
        id=claims["sub"],
        username=claims.get("username", ""),
        email=claims.get("email", ""),
        full_name=claims.get("full_name", ""),
    )


async def get_optional_user(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> Optional[Identity]:
    """Like ``get_current_user`` but anonymous callers get ``None``.

    A stale or unusable token is treated as no token, so public views keep
    working after the access token expires.
    """
    if not _access_token(request, token):
        return None
    try:
        return await get_current_user(request, token)
    except AppError as e:
        if e.kind not in ANONYMOUS_ON:
            raise
        logger.info(f"Ignoring unusable access token on public route: {e.kind.code}")
        return None
