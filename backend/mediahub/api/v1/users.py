from typing import Optional
from fastapi import APIRouter, Depends, Query
from mediahub.api.dependencies import (
    get_current_user,
    get_identity_service,
    get_optional_user,
    get_video_service,
)
from mediahub.schemas.user_schema import (
    AccountDetailsUpdate,
    ChangePasswordRequest,
    Identity,
    IdentityCreate,
    IdentityUpdate,
)
from mediahub.services.identity_service import IdentityService
from mediahub.services.video_service import VideoService
from mediahub.utils.responses import success_response
from mediahub.utils.timing import timeit

router = APIRouter(prefix="/users")


@router.post("/register")
@timeit("api.register")
async def register(user: IdentityCreate, identities: IdentityService = Depends(get_identity_service)):
    created = await identities.register(user)
    return success_response(created, message="User registered successfully", status_code=201)


@router.get("/me")
async def read_users_me(current_user: Identity = Depends(get_current_user), identities: IdentityService = Depends(get_identity_service)):
    return success_response(await identities.get_identity(current_user.id), message="Current user fetched")


@router.patch("/me")
async def update_account_details(
    data: AccountDetailsUpdate,
    current_user: Identity = Depends(get_current_user),
    identities: IdentityService = Depends(get_identity_service),
):
    # Rebuild with exclude_unset so only the fields the client sent count as changed
    changes = IdentityUpdate(**data.model_dump(exclude_unset=True))
    updated = await identities.update_identity(current_user.id, changes)
    return success_response(updated, message="Account details updated")


@router.post("/change-password")
@timeit("api.change_password")
async def change_password(
    data: ChangePasswordRequest,
    current_user: Identity = Depends(get_current_user),
    identities: IdentityService = Depends(get_identity_service),
):
    await identities.change_password(current_user.id, data.current_password, data.new_password)
    return success_response({}, message="Password changed successfully; please log in again")


@router.get("/c/{username}")
async def channel_profile(
    username: str,
    viewer: Optional[Identity] = Depends(get_optional_user),
    identities: IdentityService = Depends(get_identity_service),
):
    profile = await identities.get_channel_profile(username, viewer.id if viewer else None)
    return success_response(profile, message="Channel fetched")


@router.get("/c/{username}/videos")
async def channel_videos(
    username: str,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None),
    sort_by: str = Query("created_at"),
    sort_type: str = Query("desc"),
    videos: VideoService = Depends(get_video_service),
):
    result = await videos.list_channel_videos(
        username, page=page, page_size=page_size, sort_by=sort_by, sort_type=sort_type
    )
    return success_response(result, message="Channel videos fetched")
