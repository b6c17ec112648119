"""
Core dependencies: current user resolution and service construction.

Long-lived collaborators (Supabase client, auth service, roster locks, event
bus) are created once in `loop.main` and kept on `app.state`; services are
cheap per-request objects built from them.
"""

from fastapi import Depends, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from loop.config import Settings
from loop.core.errors import Unauthorized
from loop.core.events import EventBus
from loop.core.locks import GroupLockRegistry
from loop.database.supabase_client import get_supabase
from loop.modules.auth.service import AuthService
from loop.modules.groups.service import GroupService
from loop.modules.media.service import MediaService
from loop.modules.media.storage import MediaStorage
from loop.modules.members.service import MembershipService
from loop.modules.profiles.service import ProfileService
from supabase import Client
from typing import Dict

security = HTTPBearer()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus


def get_group_locks(request: Request) -> GroupLockRegistry:
    return request.app.state.group_locks


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> Dict:
    """Extract current user info from the bearer token"""
    return auth_service.get_current_user(credentials.credentials)


def get_current_user_id(current_user: Dict = Depends(get_current_user)) -> str:
    return current_user["id"]


def get_media_storage(
    supabase: Client = Depends(get_supabase),
    settings: Settings = Depends(get_settings)
) -> MediaStorage:
    return MediaStorage(supabase, settings.media_bucket)


def get_membership_service(
    supabase: Client = Depends(get_supabase),
    locks: GroupLockRegistry = Depends(get_group_locks),
    event_bus: EventBus = Depends(get_event_bus)
) -> MembershipService:
    return MembershipService(supabase, locks, event_bus, ProfileService(supabase))


def get_group_service(
    supabase: Client = Depends(get_supabase),
    members: MembershipService = Depends(get_membership_service),
    storage: MediaStorage = Depends(get_media_storage),
    event_bus: EventBus = Depends(get_event_bus),
    settings: Settings = Depends(get_settings)
) -> GroupService:
    return GroupService(supabase, members, storage, event_bus, settings)


def get_media_service(
    supabase: Client = Depends(get_supabase),
    storage: MediaStorage = Depends(get_media_storage),
    members: MembershipService = Depends(get_membership_service),
    event_bus: EventBus = Depends(get_event_bus),
    settings: Settings = Depends(get_settings)
) -> MediaService:
    return MediaService(supabase, storage, members, event_bus, settings)


def require_group_member(
    group_id: int,
    user_id: str = Depends(get_current_user_id),
    members: MembershipService = Depends(get_membership_service)
) -> str:
    """Dependency for group-scoped reads: caller must hold an active membership."""
    if not members.is_member(user_id, group_id):
        raise Unauthorized("You must be a member of this group")
    return user_id
