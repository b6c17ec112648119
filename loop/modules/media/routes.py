from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from loop.core.dependencies import get_current_user_id, get_media_service, require_group_member
from loop.modules.media.schemas import MediaResponse, MediaType, LikeState
from loop.modules.media.service import MediaService
from typing import List, Optional
import os

router = APIRouter(tags=["media"])


@router.post("/groups/{group_id}/media", response_model=MediaResponse, status_code=201)
async def upload_media(
    group_id: int,
    file: UploadFile = File(...),
    media_type: MediaType = Form(...),
    caption: Optional[str] = Form(None),
    thumbnail: Optional[UploadFile] = File(None),
    user_id: str = Depends(get_current_user_id),
    service: MediaService = Depends(get_media_service)
):
    """Upload an image, video or audio clip to the group feed (members only)"""
    file_extension = os.path.splitext(file.filename or "")[1]
    data = await file.read()
    thumbnail_data = await thumbnail.read() if thumbnail is not None else None
    return service.upload_media(
        group_id,
        user_id,
        data,
        file_extension,
        media_type,
        caption=caption,
        thumbnail_data=thumbnail_data,
    )


@router.get("/groups/{group_id}/media", response_model=List[MediaResponse])
async def list_media(
    group_id: int,
    limit: Optional[int] = Query(None, ge=1),
    user_id: str = Depends(require_group_member),
    service: MediaService = Depends(get_media_service)
):
    """Most recent media in the group feed (members only)"""
    return service.fetch_media(group_id, limit)


@router.post("/media/{media_id}/like", response_model=LikeState)
async def toggle_like(
    media_id: int,
    user_id: str = Depends(get_current_user_id),
    service: MediaService = Depends(get_media_service)
):
    """Like the media item, or remove the like if the caller already liked it"""
    return service.toggle_like(media_id, user_id)


@router.get("/media/{media_id}/likes", response_model=LikeState)
async def get_likes(
    media_id: int,
    user_id: str = Depends(get_current_user_id),
    service: MediaService = Depends(get_media_service)
):
    """Like count and whether the caller has liked the item"""
    return service.get_like_state(media_id, user_id)
