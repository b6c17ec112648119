from fastapi import APIRouter, Depends
from loop.core.dependencies import get_current_user_id, get_group_service, get_membership_service, require_group_member
from loop.modules.groups.schemas import GroupJoinByCode
from loop.modules.groups.service import GroupService
from loop.modules.members.schemas import (
    MembershipResponse, MemberWithProfileResponse, MemberCountResponse, MemberRoleUpdate
)
from loop.modules.members.service import MembershipService
from typing import List

router = APIRouter(prefix="/groups", tags=["members"])


@router.post("/join", response_model=MembershipResponse, status_code=201)
async def join_by_code(
    join_data: GroupJoinByCode,
    user_id: str = Depends(get_current_user_id),
    service: MembershipService = Depends(get_membership_service)
):
    """Join an active group using its 4-digit code"""
    return service.join_by_code(join_data.group_code, user_id)


@router.get("/{group_id}/members", response_model=List[MemberWithProfileResponse])
async def list_members(
    group_id: int,
    user_id: str = Depends(require_group_member),
    service: MembershipService = Depends(get_membership_service)
):
    """List active members with profiles, oldest first (members only)"""
    return service.list_members_with_profiles(group_id)


@router.get("/{group_id}/members/count", response_model=MemberCountResponse)
async def member_count(
    group_id: int,
    user_id: str = Depends(get_current_user_id),
    service: MembershipService = Depends(get_membership_service),
    groups: GroupService = Depends(get_group_service)
):
    """Active member count against the group's capacity"""
    group = groups.get_group(group_id)
    return MemberCountResponse(
        group_id=group_id,
        member_count=service.get_member_count(group_id),
        max_members=group.max_members,
    )


@router.delete("/{group_id}/members/me", response_model=MembershipResponse)
async def leave_group(
    group_id: int,
    user_id: str = Depends(get_current_user_id),
    service: MembershipService = Depends(get_membership_service)
):
    """Leave a group; the oldest member is promoted if the last admin leaves"""
    return service.leave(group_id, user_id)


@router.patch("/{group_id}/members/{member_user_id}", response_model=MembershipResponse)
async def change_member_role(
    group_id: int,
    member_user_id: str,
    role_data: MemberRoleUpdate,
    user_id: str = Depends(get_current_user_id),
    service: MembershipService = Depends(get_membership_service)
):
    """Promote or demote a member (admin only)"""
    return service.change_role(group_id, user_id, member_user_id, role_data.role)
