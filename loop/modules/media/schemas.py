from pydantic import BaseModel
from typing import Literal, Optional
from datetime import datetime

MediaType = Literal["image", "video", "audio", "music"]


class MediaResponse(BaseModel):
    id: int
    group_id: int
    user_id: str
    storage_path: str
    media_type: MediaType
    thumbnail_path: Optional[str] = None
    caption: Optional[str] = None
    created_at: datetime
    public_url: Optional[str] = None
    thumbnail_url: Optional[str] = None

    class Config:
        from_attributes = True


class LikeState(BaseModel):
    media_id: int
    liked: bool
    like_count: int
