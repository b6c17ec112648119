from fastapi import APIRouter, Depends, File, UploadFile
from loop.core.dependencies import get_current_user_id, get_group_service, require_group_member
from loop.modules.groups.schemas import GroupCreate, GroupUpdate, GroupResponse, GroupAvatarResponse
from loop.modules.groups.service import GroupService
from typing import List
import os

router = APIRouter(prefix="/groups", tags=["groups"])


@router.post("", response_model=GroupResponse, status_code=201)
async def create_group(
    group_data: GroupCreate,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Create a new group; the caller becomes its first admin"""
    return service.create_group(
        group_data.name,
        user_id,
        avatar_url=group_data.avatar_url,
        max_members=group_data.max_members,
    )


@router.get("", response_model=List[GroupResponse])
async def list_my_groups(
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """List active groups the caller belongs to"""
    return service.list_user_groups(user_id)


@router.get("/code/{group_code}", response_model=GroupResponse)
async def find_group_by_code(
    group_code: str,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Look up an active group by its 4-digit join code (shown before joining)"""
    return service.find_group_by_code(group_code)


@router.get("/{group_id}", response_model=GroupResponse)
async def get_group(
    group_id: int,
    user_id: str = Depends(require_group_member),
    service: GroupService = Depends(get_group_service)
):
    """Get group by ID (only if user is a member)"""
    return service.get_group(group_id)


@router.patch("/{group_id}", response_model=GroupResponse)
async def rename_group(
    group_id: int,
    group_data: GroupUpdate,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Rename a group (members only)"""
    return service.rename_group(group_id, user_id, group_data.name)


@router.put("/{group_id}/avatar", response_model=GroupAvatarResponse)
async def update_group_avatar(
    group_id: int,
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Upload a new group avatar image (members only)"""
    file_extension = os.path.splitext(file.filename or "")[1] or ".jpeg"
    image_data = await file.read()
    return service.update_avatar(group_id, user_id, image_data, file_extension)


@router.delete("/{group_id}", status_code=204)
async def deactivate_group(
    group_id: int,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Soft-delete a group (admin only)"""
    service.deactivate_group(group_id, user_id)
    return None


@router.delete("/{group_id}/purge", status_code=204)
async def purge_group(
    group_id: int,
    user_id: str = Depends(get_current_user_id),
    service: GroupService = Depends(get_group_service)
):
    """Permanently delete a group and its rows (admin or creator only)"""
    service.purge_group(group_id, user_id)
    return None
