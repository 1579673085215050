from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from mediahub.core.errors import AppError, ErrorKind
from mediahub.core.security import CredentialStore
from mediahub.schemas.user_schema import ChannelProfile, Identity, IdentityCreate, IdentityUpdate
from mediahub.services.session_registry import SessionRegistry, to_object_id

logger = logging.getLogger(__name__)

# Fields that never leave the service layer
PRIVATE_FIELDS = {"credential_hash": 0, "refresh_token_hash": 0}


def normalize_username(username: str) -> str:
    return (username or "").strip().lower()


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _duplicate_field(exc: DuplicateKeyError) -> str:
    details = exc.details or {}
    key_pattern = details.get("keyPattern") or details.get("keyValue") or {}
    if key_pattern:
        return next(iter(key_pattern))
    return "email" if "email" in str(exc) else "username"


class IdentityService:
    def __init__(self, db, credentials: CredentialStore, sessions: SessionRegistry):
        self.db = db
        self.users = db.users
        self.credentials = credentials
        self.sessions = sessions

    async def register(self, data: IdentityCreate) -> Identity:
        """Create a new identity; duplicate username or email is a CONFLICT."""
        username = normalize_username(data.username)
        email = normalize_email(data.email)
        full_name = data.full_name.strip()
        if not username or not email or not full_name:
            raise AppError(ErrorKind.VALIDATION, "All fields are required")

        try:
            if await self.users.find_one({"username": username}, {"_id": 1}):
                raise AppError(ErrorKind.CONFLICT, "Username already registered")
            if await self.users.find_one({"email": email}, {"_id": 1}):
                raise AppError(ErrorKind.CONFLICT, "Email already registered")

            now = datetime.now(timezone.utc)
            doc = {
                "username": username,
                "email": email,
                "full_name": full_name,
                "credential_hash": await self.credentials.hash_async(data.password),
                "refresh_token_hash": None,
                "created_at": now,
                "updated_at": now,
            }
            result = await self.users.insert_one(doc)
        except DuplicateKeyError as e:
            # Lost a race against a concurrent signup; the unique index decides
            field = _duplicate_field(e)
            raise AppError(ErrorKind.CONFLICT, f"{field.capitalize()} already registered")
        except PyMongoError as e:
            logger.error(f"Error creating user: {e}")
            raise AppError(ErrorKind.INTERNAL, "Could not create user")

        doc["_id"] = result.inserted_id
        logger.info(f"User {username} registered")
        return Identity.from_doc(doc)

    async def find_by_identifier(self, identifier: str) -> Optional[Dict[str, Any]]:
        """Look up a full identity document (hash included) by username or email."""
        value = (identifier or "").strip()
        if not value:
            return None
        query = {"$or": [{"username": normalize_username(value)}, {"email": normalize_email(value)}]}
        try:
            return await self.users.find_one(query)
        except PyMongoError as e:
            logger.error(f"Error looking up user: {e}")
            raise AppError(ErrorKind.INTERNAL, "Could not look up user")

    async def get_identity(self, user_id: Any) -> Identity:
        try:
            doc = await self.users.find_one({"_id": self._object_id(user_id)}, PRIVATE_FIELDS)
        except PyMongoError as e:
            logger.error(f"Error fetching user {user_id}: {e}")
            raise AppError(ErrorKind.INTERNAL, "Could not fetch user")
        if not doc:
            raise AppError(ErrorKind.NOT_FOUND, "User does not exist")
        return Identity.from_doc(doc)

    async def update_identity(self, user_id: Any, changes: IdentityUpdate) -> Identity:
        """Persist an identity update.

        Only fields the caller explicitly set are written. The credential
        hash is recomputed solely when ``changes.password`` was set; every
        other update leaves ``credential_hash`` as it is.
        """
        update: Dict[str, Any] = {}
        fields_set = changes.model_fields_set
        if "email" in fields_set:
            if changes.email is None:
                raise AppError(ErrorKind.VALIDATION, "Email cannot be empty")
            update["email"] = normalize_email(changes.email)
        if "full_name" in fields_set:
            full_name = (changes.full_name or "").strip()
            if not full_name:
                raise AppError(ErrorKind.VALIDATION, "Full name cannot be empty")
            update["full_name"] = full_name
        update.update(await self.credentials.credential_update(changes))
        update["updated_at"] = datetime.now(timezone.utc)

        try:
            doc = await self.users.find_one_and_update(
                {"_id": self._object_id(user_id)},
                {"$set": update},
                projection=PRIVATE_FIELDS,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise AppError(ErrorKind.CONFLICT, "Email already registered")
        except PyMongoError as e:
            logger.error(f"Error updating user {user_id}: {e}")
            raise AppError(ErrorKind.INTERNAL, "Could not update user")
        if not doc:
            raise AppError(ErrorKind.NOT_FOUND, "User does not exist")
        return Identity.from_doc(doc)

    async def change_password(self, user_id: Any, current_password: str, new_password: str) -> Identity:
        """Replace the credential after checking the current one; ends the session."""
        try:
            doc = await self.users.find_one({"_id": self._object_id(user_id)}, {"credential_hash": 1})
        except PyMongoError as e:
            logger.error(f"Error fetching user {user_id}: {e}")
            raise AppError(ErrorKind.INTERNAL, "Could not fetch user")
        if not doc:
            raise AppError(ErrorKind.NOT_FOUND, "User does not exist")
        if not await self.credentials.verify_async(current_password, doc.get("credential_hash")):
            raise AppError(ErrorKind.AUTHENTICATION, f"Wrong current password for user {user_id}")

        identity = await self.update_identity(user_id, IdentityUpdate(password=new_password))
        await self.sessions.revoke(user_id)
        logger.info(f"Password changed for user {user_id}")
        return identity

    async def get_channel_profile(self, username: str, viewer_id: Optional[Any] = None) -> ChannelProfile:
        """Public channel view with subscriber counts, built in one aggregation."""
        viewer = self._object_id(viewer_id) if viewer_id is not None else None
        pipeline = [
            {"$match": {"username": normalize_username(username)}},
            {"$lookup": {"from": "subscriptions", "localField": "_id", "foreignField": "channel", "as": "subscribers"}},
            {"$lookup": {"from": "subscriptions", "localField": "_id", "foreignField": "subscriber", "as": "subscribed_to"}},
            {
                "$addFields": {
                    "subscribers_count": {"$size": "$subscribers"},
                    "channels_subscribed_to_count": {"$size": "$subscribed_to"},
                    "is_subscribed": {"$in": [viewer, "$subscribers.subscriber"]},
                }
            },
            {
                "$project": {
                    "username": 1,
                    "full_name": 1,
                    "email": 1,
                    "created_at": 1,
                    "subscribers_count": 1,
                    "channels_subscribed_to_count": 1,
                    "is_subscribed": 1,
                }
            },
        ]
        try:
            rows = await self.users.aggregate(pipeline).to_list(length=1)
        except PyMongoError as e:
            logger.error(f"Error building channel profile for {username}: {e}")
            raise AppError(ErrorKind.INTERNAL, "Could not load channel")
        if not rows:
            raise AppError(ErrorKind.NOT_FOUND, "Channel does not exist")
        row = rows[0]
        return ChannelProfile(
            id=str(row["_id"]),
            username=row.get("username", ""),
            full_name=row.get("full_name", ""),
            email=row.get("email", ""),
            subscribers_count=int(row.get("subscribers_count", 0)),
            channels_subscribed_to_count=int(row.get("channels_subscribed_to_count", 0)),
            is_subscribed=bool(row.get("is_subscribed", False)),
            created_at=row.get("created_at"),
        )

    @staticmethod
    def _object_id(user_id: Any) -> ObjectId:
        try:
            return to_object_id(user_id)
        except AppError:
            raise AppError(ErrorKind.NOT_FOUND, "User does not exist")
