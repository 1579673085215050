"""
Single-active-session refresh token registry.

Each identity document carries ``refresh_token_hash``: the SHA-256 of the one
refresh token currently allowed to be exchanged (``None`` = no session).

    NoSession --login--> Active --refresh--> Active (hash replaced)
    Active --logout--> NoSession
    Active --superseded token presented--> NoSession + SESSION_COMPROMISED

Rotation is one conditional ``find_one_and_update`` that only matches while
the stored hash still equals the presented token's hash, so two concurrent
refreshes with the same token cannot both succeed.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Tuple
import hashlib
import logging

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from mediahub.core.errors import AppError, ErrorKind
from mediahub.core.tokens import REFRESH, TokenIssuer
from mediahub.schemas.user_schema import TokenPair
from mediahub.utils.logging_config import SECURITY_LOGGER

logger = logging.getLogger(__name__)
security_logger = logging.getLogger(SECURITY_LOGGER)


def hash_refresh_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def to_object_id(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise AppError(ErrorKind.TOKEN_INVALID, f"Token subject {value!r} is not an identity id")


class SessionRegistry:
    def __init__(self, db, issuer: TokenIssuer):
        self.users = db.users
        self.issuer = issuer

    def _issue_pair(self, identity: Dict[str, Any]) -> Tuple[TokenPair, str]:
        refresh_token = self.issuer.issue_refresh(identity)
        pair = TokenPair(access_token=self.issuer.issue_access(identity), refresh_token=refresh_token)
        return pair, hash_refresh_token(refresh_token)

    async def open(self, identity: Dict[str, Any]) -> TokenPair:
        """Start (or replace) the identity's session and return a fresh token pair."""
        pair, token_hash = self._issue_pair(identity)
        try:
            result = await self.users.update_one(
                {"_id": identity["_id"]},
                {"$set": {"refresh_token_hash": token_hash, "updated_at": datetime.now(timezone.utc)}},
            )
        except PyMongoError as e:
            logger.error(f"Failed to store session for {identity['_id']}: {e}")
            raise AppError(ErrorKind.INTERNAL, "Could not open session")
        if result.matched_count == 0:
            raise AppError(ErrorKind.NOT_FOUND, "User does not exist")
        logger.info(f"Session opened for user {identity['_id']}")
        return pair

    async def rotate(self, refresh_token: str) -> Tuple[Dict[str, Any], TokenPair]:
        """Exchange the current refresh token for a new pair.

        Raises TOKEN_EXPIRED / TOKEN_INVALID / TOKEN_KIND_MISMATCH from
        verification, and SESSION_COMPROMISED when a validly signed but
        superseded token is presented; in that case the session is revoked.
        """
        claims = self.issuer.verify(refresh_token, REFRESH)
        user_id = to_object_id(claims["sub"])
        presented_hash = hash_refresh_token(refresh_token)

        new_refresh = self.issuer.issue_refresh({"_id": user_id})
        new_hash = hash_refresh_token(new_refresh)
        try:
            identity = await self.users.find_one_and_update(
                {"_id": user_id, "refresh_token_hash": presented_hash},
                {"$set": {"refresh_token_hash": new_hash, "updated_at": datetime.now(timezone.utc)}},
                return_document=ReturnDocument.AFTER,
            )
            if identity is None:
                exists = await self.users.find_one({"_id": user_id}, {"_id": 1})
        except PyMongoError as e:
            logger.error(f"Session rotation failed for {user_id}: {e}")
            raise AppError(ErrorKind.INTERNAL, "Could not rotate session")

        if identity is None:
            if exists is None:
                raise AppError(ErrorKind.TOKEN_INVALID, "Refresh token subject no longer exists")
            security_logger.warning(f"Refresh token reuse detected for user {user_id}; revoking session")
            await self.revoke(user_id)
            raise AppError(ErrorKind.SESSION_COMPROMISED, f"Superseded refresh token presented for {user_id}")

        pair = TokenPair(access_token=self.issuer.issue_access(identity), refresh_token=new_refresh)
        logger.info(f"Session rotated for user {user_id}")
        return identity, pair

    async def revoke(self, user_id: Any) -> None:
        """Clear the stored hash; a no-op when there is no session."""
        try:
            await self.users.update_one(
                {"_id": to_object_id(user_id), "refresh_token_hash": {"$ne": None}},
                {"$set": {"refresh_token_hash": None, "updated_at": datetime.now(timezone.utc)}},
            )
        except PyMongoError as e:
            logger.error(f"Failed to revoke session for {user_id}: {e}")
            raise AppError(ErrorKind.INTERNAL, "Could not revoke session")
