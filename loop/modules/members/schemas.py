from pydantic import BaseModel
from typing import Literal, Optional
from datetime import datetime
from loop.modules.profiles.schemas import ProfileResponse

Role = Literal["admin", "member"]


class MembershipResponse(BaseModel):
    id: int
    group_id: int
    user_id: str
    role: Role
    is_active: bool = True
    joined_at: datetime

    class Config:
        from_attributes = True


class MemberWithProfileResponse(MembershipResponse):
    profile: Optional[ProfileResponse] = None


class MemberCountResponse(BaseModel):
    group_id: int
    member_count: int
    max_members: int


class MemberRoleUpdate(BaseModel):
    role: Role
