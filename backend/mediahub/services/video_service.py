from typing import Any, Dict, List, Optional
import logging
import re

from pymongo.errors import PyMongoError

from mediahub.core.errors import AppError, ErrorKind
from mediahub.schemas.pagination_schema import PaginatedResult
from mediahub.services.identity_service import normalize_username
from mediahub.services.pagination import AggregationPaginator
from mediahub.services.session_registry import to_object_id

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = ("created_at", "views", "duration", "title")
OWNER_PUBLIC_FIELDS = {"_id": 1, "username": 1, "full_name": 1}


def sort_direction(sort_type: Optional[str]) -> int:
    value = (sort_type or "desc").strip().lower()
    if value in ("asc", "1"):
        return 1
    if value in ("desc", "-1"):
        return -1
    raise AppError(ErrorKind.VALIDATION, "sort_type must be 'asc' or 'desc'")


class VideoService:
    """Read side of the video feed; every listing is a paginated aggregation."""

    def __init__(self, db, paginator: AggregationPaginator):
        self.videos = db.videos
        self.users = db.users
        self.paginator = paginator

    def build_feed_pipeline(self, query: Optional[str] = None, owner_id: Optional[Any] = None) -> List[Dict[str, Any]]:
        match: Dict[str, Any] = {"is_published": True}
        if owner_id is not None:
            try:
                match["owner"] = to_object_id(owner_id)
            except AppError:
                raise AppError(ErrorKind.VALIDATION, "user_id is not a valid id")
        if query and query.strip():
            rx = {"$regex": re.escape(query.strip()), "$options": "i"}
            match["$or"] = [{"title": rx}, {"description": rx}]

        return [
            {"$match": match},
            {
                "$lookup": {
                    "from": "users",
                    "localField": "owner",
                    "foreignField": "_id",
                    "as": "owner_details",
                }
            },
            {"$unwind": {"path": "$owner_details", "preserveNullAndEmptyArrays": True}},
            {
                "$project": {
                    "title": 1,
                    "description": 1,
                    "thumbnail": 1,
                    "video_file": 1,
                    "duration": 1,
                    "views": 1,
                    "created_at": 1,
                    "owner": 1,
                    "owner_details._id": 1,
                    "owner_details.username": 1,
                    "owner_details.full_name": 1,
                }
            },
        ]

    async def list_videos(
        self,
        query: Optional[str] = None,
        page: int = 1,
        page_size: Optional[int] = None,
        sort_by: str = "created_at",
        sort_type: str = "desc",
        user_id: Optional[Any] = None,
    ) -> PaginatedResult:
        if sort_by not in SORTABLE_FIELDS:
            raise AppError(ErrorKind.VALIDATION, f"sort_by must be one of {', '.join(SORTABLE_FIELDS)}")
        pipeline = self.build_feed_pipeline(query=query, owner_id=user_id)
        return await self.paginator.paginate(
            self.videos,
            pipeline,
            page=page,
            page_size=page_size,
            sort={sort_by: sort_direction(sort_type)},
        )

    async def list_channel_videos(self, username: str, **kwargs) -> PaginatedResult:
        try:
            owner = await self.users.find_one({"username": normalize_username(username)}, {"_id": 1})
        except PyMongoError as e:
            logger.error(f"Error resolving channel {username}: {e}")
            raise AppError(ErrorKind.INTERNAL, "Could not load channel")
        if not owner:
            raise AppError(ErrorKind.NOT_FOUND, "Channel does not exist")
        return await self.list_videos(user_id=owner["_id"], **kwargs)
