from typing import Optional
from fastapi import APIRouter, Depends, Query
from mediahub.api.dependencies import get_current_user, get_video_service
from mediahub.schemas.user_schema import Identity
from mediahub.services.video_service import VideoService
from mediahub.utils.responses import success_response
from mediahub.utils.timing import timeit

router = APIRouter(prefix="/videos")


@router.get(
    "",
    description=(
        "Paginated feed of published videos. Each page is computed from its own "
        "snapshot, so totalDocs may shift between page requests while videos are "
        "being published."
    ),
)
@timeit("api.list_videos")
async def list_videos(
    query: Optional[str] = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, description="Clamped to the configured bounds"),
    sort_by: str = Query("created_at"),
    sort_type: str = Query("desc"),
    user_id: Optional[str] = Query(None),
    current_user: Identity = Depends(get_current_user),
    videos: VideoService = Depends(get_video_service),
):
    result = await videos.list_videos(
        query=query,
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_type=sort_type,
        user_id=user_id,
    )
    return success_response(result, message="Videos fetched")
