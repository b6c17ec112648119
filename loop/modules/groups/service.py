from supabase import Client
from loop.config import Settings
from loop.core import events
from loop.core.errors import (
    CodeSpaceExhausted, GroupNotFound, InvalidInput, LoopError, PartialFailure,
    Unauthorized, UpstreamUnavailable,
)
from loop.core.events import EventBus
from loop.core.store import DuplicateRow, execute, first
from loop.modules.groups.models import GROUPS_TABLE, GROUP_MEMBERS_TABLE, JOIN_CODE_LENGTH, JOIN_CODE_SPACE
from loop.modules.groups.schemas import GroupResponse, GroupAvatarResponse
from loop.modules.media.models import GROUP_MEDIA_TABLE, GROUP_MEDIA_LIKES_TABLE
from loop.modules.media.storage import MediaStorage, content_type_for
from datetime import datetime, timezone
from typing import List, Optional, TYPE_CHECKING
import random
import uuid
import logging

if TYPE_CHECKING:
    from loop.modules.members.service import MembershipService

logger = logging.getLogger(__name__)

CODE_INSERT_RETRIES = 3


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_valid_group_code(code: str) -> bool:
    return len(code) == JOIN_CODE_LENGTH and code.isascii() and code.isdigit()


def fetch_group(supabase: Client, group_id: int, active_only: bool = True) -> GroupResponse:
    """Load a group row; inactive groups count as missing unless active_only is False."""
    query = supabase.table(GROUPS_TABLE).select("*").eq("id", group_id)
    if active_only:
        query = query.eq("is_active", True)
    row = first(execute(query.limit(1), f"load group {group_id}"))
    if not row:
        raise GroupNotFound()
    return GroupResponse(**row)


def fetch_group_by_code(supabase: Client, code: str) -> GroupResponse:
    """Look up an active group by join code; retired groups never match."""
    code = (code or "").strip()
    if not is_valid_group_code(code):
        raise InvalidInput("Group codes are 4 digits")
    row = first(execute(
        supabase.table(GROUPS_TABLE)
            .select("*")
            .eq("group_code", code)
            .eq("is_active", True)
            .limit(1),
        "find group by code",
    ))
    if not row:
        raise GroupNotFound()
    return GroupResponse(**row)


def set_group_active(supabase: Client, group_id: int, is_active: bool) -> GroupResponse:
    rows = execute(
        supabase.table(GROUPS_TABLE)
            .update({"is_active": is_active, "updated_at": utc_now_iso()})
            .eq("id", group_id),
        f"set group {group_id} active={is_active}",
    )
    if not rows:
        raise GroupNotFound()
    return GroupResponse(**rows[0])


def set_group_creator(supabase: Client, group_id: int, user_id: str) -> GroupResponse:
    """Record user_id as the group's owner, e.g. when the creator hands off admin."""
    rows = execute(
        supabase.table(GROUPS_TABLE)
            .update({"created_by": user_id, "updated_at": utc_now_iso()})
            .eq("id", group_id),
        f"set creator of group {group_id}",
    )
    if not rows:
        raise GroupNotFound()
    return GroupResponse(**rows[0])


class GroupService:
    """Group registry: group identity, join codes and capacity settings."""

    def __init__(
        self,
        supabase: Client,
        members: "MembershipService",
        storage: MediaStorage,
        event_bus: EventBus,
        settings: Settings,
        rng: Optional[random.Random] = None,
    ):
        self.supabase = supabase
        self.members = members
        self.storage = storage
        self.events = event_bus
        self.settings = settings
        self._rng = rng or random.SystemRandom()

    # Join codes

    def _draw_code(self) -> str:
        return f"{self._rng.randrange(JOIN_CODE_SPACE):0{JOIN_CODE_LENGTH}d}"

    def _active_code_exists(self, code: str) -> bool:
        rows = execute(
            self.supabase.table(GROUPS_TABLE)
                .select("id")
                .eq("group_code", code)
                .eq("is_active", True)
                .limit(1),
            "check group code",
        )
        return bool(rows)

    def generate_unique_group_code(self) -> str:
        """Draw random 4-digit codes until one is unused by an active group.

        Gives up with CodeSpaceExhausted after `join_code_max_attempts` draws.
        """
        max_attempts = self.settings.join_code_max_attempts
        for attempt in range(1, max_attempts + 1):
            code = self._draw_code()
            if not self._active_code_exists(code):
                return code
            logger.debug(f"Group code collision on attempt {attempt}")
        logger.error(f"Exhausted {max_attempts} attempts generating a group code")
        raise CodeSpaceExhausted(max_attempts)

    # Lookup

    def find_group_by_code(self, code: str) -> GroupResponse:
        return fetch_group_by_code(self.supabase, code)

    def get_group(self, group_id: int, active_only: bool = True) -> GroupResponse:
        return fetch_group(self.supabase, group_id, active_only)

    def list_user_groups(self, user_id: str) -> List[GroupResponse]:
        """Active groups in which the user holds an active membership."""
        memberships = execute(
            self.supabase.table(GROUP_MEMBERS_TABLE)
                .select("group_id")
                .eq("user_id", user_id)
                .eq("is_active", True),
            "list user memberships",
        )
        group_ids = list({m["group_id"] for m in memberships})
        if not group_ids:
            return []
        rows = execute(
            self.supabase.table(GROUPS_TABLE)
                .select("*")
                .in_("id", group_ids)
                .eq("is_active", True)
                .order("created_at", desc=True),
            "list user groups",
        )
        return [GroupResponse(**row) for row in rows]

    # Mutations

    def _clean_name(self, name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise InvalidInput("Group name is required")
        if len(name) > self.settings.group_name_max_length:
            raise InvalidInput(f"Group name must be at most {self.settings.group_name_max_length} characters")
        return name

    def create_group(
        self,
        name: str,
        creator_id: str,
        avatar_url: Optional[str] = None,
        max_members: Optional[int] = None,
    ) -> GroupResponse:
        """Create a group and seed its creator as the first admin.

        There is no multi-row transaction: if the admin membership cannot be
        written the group row is left behind and PartialFailure carries its id
        so the caller can purge it.
        """
        name = self._clean_name(name)
        if max_members is None:
            max_members = self.settings.default_max_members
        if max_members < 1:
            raise InvalidInput("A group must allow at least one member")

        rows = None
        inserts = 0
        for _ in range(CODE_INSERT_RETRIES):
            group_code = self.generate_unique_group_code()
            inserts += 1
            try:
                rows = execute(
                    self.supabase.table(GROUPS_TABLE).insert({
                        "name": name,
                        "group_code": group_code,
                        "avatar_url": avatar_url,
                        "created_by": creator_id,
                        "max_members": max_members,
                        "is_active": True,
                    }),
                    "create group",
                )
                break
            except DuplicateRow:
                # Another writer took the code between the check and the insert.
                logger.info(f"Group code {group_code} was claimed concurrently, drawing again")
        if rows is None:
            logger.error(f"Group code was claimed concurrently on all {inserts} inserts")
            raise CodeSpaceExhausted(
                inserts,
                f"Group code was claimed concurrently on {inserts} insert attempts",
            )
        if not rows:
            raise UpstreamUnavailable("Group insert returned no row")
        group = GroupResponse(**rows[0])

        try:
            self.members.add_admin(group.id, creator_id)
        except LoopError as e:
            logger.error(f"Group {group.id} created but admin membership for {creator_id} failed: {e}")
            raise PartialFailure(
                f"Group {group.id} was created but its admin membership was not",
                group_id=group.id,
            ) from e

        logger.info(f"Created group {group.id} ({group.name}) with code {group.group_code} for {creator_id}")
        self.events.emit(events.GROUP_CREATED, group.id, creator_id, group_code=group.group_code)
        self.events.emit(events.GROUP_ROSTER_CHANGED, group.id, creator_id, action="joined", role="admin")
        return group

    def _require_member(self, group_id: int, user_id: str) -> None:
        if not self.members.is_member(user_id, group_id):
            raise Unauthorized("Only group members can edit the group profile")

    def rename_group(self, group_id: int, acting_user_id: str, name: str) -> GroupResponse:
        name = self._clean_name(name)
        fetch_group(self.supabase, group_id)
        self._require_member(group_id, acting_user_id)
        rows = execute(
            self.supabase.table(GROUPS_TABLE)
                .update({"name": name, "updated_at": utc_now_iso()})
                .eq("id", group_id),
            f"rename group {group_id}",
        )
        if not rows:
            raise GroupNotFound()
        logger.info(f"Group {group_id} renamed by {acting_user_id}")
        self.events.emit(events.GROUP_PROFILE_CHANGED, group_id, acting_user_id, name=name)
        return GroupResponse(**rows[0])

    def update_avatar(
        self,
        group_id: int,
        acting_user_id: str,
        image_data: bytes,
        file_extension: str = "jpeg",
    ) -> GroupAvatarResponse:
        """Store a new avatar image, then point the group row at it."""
        if not image_data:
            raise InvalidInput("Avatar image is empty")
        fetch_group(self.supabase, group_id)
        self._require_member(group_id, acting_user_id)

        extension = file_extension.lower().lstrip(".") or "jpeg"
        storage_path = f"groups/{group_id}/avatar_{uuid.uuid4()}.{extension}"
        self.storage.upload_file(image_data, storage_path, content_type_for(extension))

        try:
            rows = execute(
                self.supabase.table(GROUPS_TABLE)
                    .update({"avatar_url": storage_path, "updated_at": utc_now_iso()})
                    .eq("id", group_id),
                f"set avatar for group {group_id}",
            )
        except LoopError as e:
            raise PartialFailure(
                f"Avatar stored but group {group_id} was not updated",
                group_id=group_id,
                orphaned_paths=[storage_path],
            ) from e
        if not rows:
            raise PartialFailure(
                f"Avatar stored but group {group_id} was not updated",
                group_id=group_id,
                orphaned_paths=[storage_path],
            )

        logger.info(f"Group {group_id} avatar updated by {acting_user_id}: {storage_path}")
        self.events.emit(events.GROUP_PROFILE_CHANGED, group_id, acting_user_id, avatar_url=storage_path)
        return GroupAvatarResponse(
            group_id=group_id,
            avatar_url=storage_path,
            public_url=self.storage.get_public_url(storage_path),
        )

    def update_group_profile(
        self,
        group_id: int,
        acting_user_id: str,
        name: str,
        avatar_data: Optional[bytes] = None,
    ) -> GroupResponse:
        """Upload the avatar (if any) first, then rename."""
        if avatar_data:
            self.update_avatar(group_id, acting_user_id, avatar_data)
        return self.rename_group(group_id, acting_user_id, name)

    def deactivate_group(self, group_id: int, acting_user_id: str) -> GroupResponse:
        """Soft-delete a group. Admin only; memberships and media are kept."""
        fetch_group(self.supabase, group_id)
        if not self.members.is_admin(acting_user_id, group_id):
            raise Unauthorized("Only a group admin can delete the group")
        group = set_group_active(self.supabase, group_id, False)
        logger.info(f"Group {group_id} deactivated by {acting_user_id}")
        self.events.emit(events.GROUP_DEACTIVATED, group_id, acting_user_id)
        return group

    def _has_roster(self, group_id: int) -> bool:
        """True if any membership row, active or not, references the group."""
        rows = execute(
            self.supabase.table(GROUP_MEMBERS_TABLE).select("id").eq("group_id", group_id).limit(1),
            f"check roster of group {group_id}",
        )
        return bool(rows)

    def purge_group(self, group_id: int, acting_user_id: str) -> bool:
        """Hard-delete a group and every row that references it.

        Allowed for an active admin. The recorded creator may also purge a
        group with no membership rows at all, which is what a failed create
        leaves behind. Storage objects are not removed.
        """
        group = fetch_group(self.supabase, group_id, active_only=False)
        if not self.members.is_admin(acting_user_id, group_id):
            if group.created_by != acting_user_id or self._has_roster(group_id):
                raise Unauthorized("Only a group admin can purge the group")

        media_rows = execute(
            self.supabase.table(GROUP_MEDIA_TABLE).select("id").eq("group_id", group_id),
            f"list media for group {group_id}",
        )
        media_ids = [m["id"] for m in media_rows]
        if media_ids:
            execute(
                self.supabase.table(GROUP_MEDIA_LIKES_TABLE).delete().in_("group_media_id", media_ids),
                f"delete likes for group {group_id}",
            )
        execute(
            self.supabase.table(GROUP_MEDIA_TABLE).delete().eq("group_id", group_id),
            f"delete media for group {group_id}",
        )
        execute(
            self.supabase.table(GROUP_MEMBERS_TABLE).delete().eq("group_id", group_id),
            f"delete members for group {group_id}",
        )
        rows = execute(
            self.supabase.table(GROUPS_TABLE).delete().eq("id", group_id),
            f"delete group {group_id}",
        )
        logger.info(f"Group {group_id} purged by {acting_user_id} ({len(media_ids)} media rows)")
        if group.is_active:
            self.events.emit(events.GROUP_DEACTIVATED, group_id, acting_user_id, purged=True)
        return len(rows) > 0
