from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class GroupCreate(BaseModel):
    name: str
    avatar_url: Optional[str] = None
    max_members: Optional[int] = Field(default=None, ge=1)


class GroupUpdate(BaseModel):
    name: str


class GroupJoinByCode(BaseModel):
    group_code: str


class GroupResponse(BaseModel):
    id: int
    name: str
    group_code: str
    avatar_url: Optional[str] = None
    created_by: str
    max_members: int
    is_active: bool = True
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GroupAvatarResponse(BaseModel):
    group_id: int
    avatar_url: str
    public_url: str
