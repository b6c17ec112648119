from supabase import Client
from loop.core import events
from loop.core.errors import (
    AlreadyMember, GroupFull, InvalidInput, LastAdmin, LoopError, NotMember, PartialFailure,
    Unauthorized, UpstreamUnavailable,
)
from loop.core.events import EventBus
from loop.core.locks import GroupLockRegistry
from loop.core.store import DuplicateRow, execute
from loop.modules.groups.models import GROUPS_TABLE, GROUP_MEMBERS_TABLE, ROLE_ADMIN, ROLE_MEMBER, ROLES
from loop.modules.groups.service import fetch_group, fetch_group_by_code, set_group_active, set_group_creator
from loop.modules.members.schemas import MembershipResponse, MemberWithProfileResponse
from loop.modules.profiles.service import ProfileService
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)


class MembershipService:
    """Roster of (group, user, role, is_active) rows.

    This is the only place that answers "is member" / "is admin". Every
    roster change for a group runs under that group's lock so the
    check-count-insert sequence in `join` cannot over-admit, and a unique
    index on active (group_id, user_id) rejects writers from other processes.
    """

    def __init__(
        self,
        supabase: Client,
        locks: GroupLockRegistry,
        event_bus: EventBus,
        profiles: Optional[ProfileService] = None,
    ):
        self.supabase = supabase
        self.locks = locks
        self.events = event_bus
        self.profiles = profiles or ProfileService(supabase)

    def _active_members(self, group_id: int, user_id: Optional[str] = None, role: Optional[str] = None) -> List[MembershipResponse]:
        query = self.supabase.table(GROUP_MEMBERS_TABLE)\
            .select("*")\
            .eq("group_id", group_id)\
            .eq("is_active", True)
        if user_id is not None:
            query = query.eq("user_id", user_id)
        if role is not None:
            query = query.eq("role", role)
        rows = execute(query.order("joined_at"), f"list members of group {group_id}")
        return [MembershipResponse(**row) for row in rows]

    def _get_membership(self, group_id: int, user_id: str) -> MembershipResponse:
        members = self._active_members(group_id, user_id=user_id)
        if not members:
            raise NotMember()
        return members[0]

    def is_member(self, user_id: str, group_id: int) -> bool:
        return bool(self._active_members(group_id, user_id=user_id))

    def is_admin(self, user_id: str, group_id: int) -> bool:
        return bool(self._active_members(group_id, user_id=user_id, role=ROLE_ADMIN))

    def get_member_count(self, group_id: int) -> int:
        rows = execute(
            self.supabase.table(GROUP_MEMBERS_TABLE)
                .select("id")
                .eq("group_id", group_id)
                .eq("is_active", True),
            f"count members of group {group_id}",
        )
        return len(rows)

    def _insert(self, group_id: int, user_id: str, role: str) -> MembershipResponse:
        try:
            rows = execute(
                self.supabase.table(GROUP_MEMBERS_TABLE).insert({
                    "group_id": group_id,
                    "user_id": user_id,
                    "role": role,
                    "is_active": True,
                }),
                f"add {user_id} to group {group_id}",
            )
        except DuplicateRow as e:
            raise AlreadyMember() from e
        if not rows:
            raise UpstreamUnavailable("Membership insert returned no row")
        return MembershipResponse(**rows[0])

    def _set_role(self, membership: MembershipResponse, role: str) -> MembershipResponse:
        rows = execute(
            self.supabase.table(GROUP_MEMBERS_TABLE)
                .update({"role": role})
                .eq("id", membership.id),
            f"set role {role} for membership {membership.id}",
        )
        if not rows:
            raise NotMember()
        return MembershipResponse(**rows[0])

    def _deactivate(self, membership: MembershipResponse) -> MembershipResponse:
        rows = execute(
            self.supabase.table(GROUP_MEMBERS_TABLE)
                .update({"is_active": False})
                .eq("id", membership.id),
            f"deactivate membership {membership.id}",
        )
        if not rows:
            raise NotMember()
        return MembershipResponse(**rows[0])

    def add_admin(self, group_id: int, user_id: str) -> MembershipResponse:
        """Seed the first admin of a freshly created group."""
        with self.locks.hold(group_id):
            return self._insert(group_id, user_id, ROLE_ADMIN)

    def join(self, group_id: int, user_id: str) -> MembershipResponse:
        """Add user to an active group as a member, respecting max_members."""
        with self.locks.hold(group_id):
            group = fetch_group(self.supabase, group_id)
            if self.is_member(user_id, group_id):
                raise AlreadyMember()
            member_count = self.get_member_count(group_id)
            if member_count >= group.max_members:
                logger.info(f"Rejected join of {user_id}: group {group_id} is full ({member_count}/{group.max_members})")
                raise GroupFull()
            membership = self._insert(group_id, user_id, ROLE_MEMBER)

        logger.info(f"User {user_id} joined group {group_id} ({member_count + 1}/{group.max_members})")
        self.events.emit(events.GROUP_ROSTER_CHANGED, group_id, user_id, action="joined", role=ROLE_MEMBER)
        return membership

    def join_by_code(self, group_code: str, user_id: str) -> MembershipResponse:
        group = fetch_group_by_code(self.supabase, group_code)
        return self.join(group.id, user_id)

    def leave(self, group_id: int, user_id: str) -> MembershipResponse:
        """Deactivate the caller's membership.

        The last admin cannot leave a group without an admin: the oldest
        remaining member is promoted first, and takes over `created_by` when
        the leaver created the group. When the leaver is the only member the
        group is deactivated before the membership.
        """
        promoted: Optional[MembershipResponse] = None
        group_retired = False
        with self.locks.hold(group_id):
            group = fetch_group(self.supabase, group_id)
            roster = self._active_members(group_id)
            leaving = next((m for m in roster if m.user_id == user_id), None)
            if leaving is None:
                raise NotMember()
            others = [m for m in roster if m.user_id != user_id]

            if not others:
                # Retire the group first: an inactive group with a stray active row is harmless.
                set_group_active(self.supabase, group_id, False)
                group_retired = True
                try:
                    left = self._deactivate(leaving)
                except LoopError as e:
                    raise PartialFailure(
                        f"Group {group_id} was retired but {user_id} is still on its roster",
                        group_id=group_id,
                    ) from e
            else:
                if leaving.role == ROLE_ADMIN and not any(m.role == ROLE_ADMIN for m in others):
                    promoted = self._set_role(others[0], ROLE_ADMIN)
                left = self._deactivate(leaving)
                if promoted is not None and group.created_by == user_id:
                    try:
                        set_group_creator(self.supabase, group_id, promoted.user_id)
                    except LoopError as e:
                        raise PartialFailure(
                            f"{user_id} left group {group_id} but ownership was not handed over",
                            group_id=group_id,
                        ) from e

        logger.info(f"User {user_id} left group {group_id}")
        if promoted is not None:
            logger.info(f"Promoted {promoted.user_id} to admin of group {group_id}")
            self.events.emit(events.GROUP_ROSTER_CHANGED, group_id, promoted.user_id, action="promoted", role=ROLE_ADMIN)
        self.events.emit(events.GROUP_ROSTER_CHANGED, group_id, user_id, action="left")
        if group_retired:
            logger.info(f"Group {group_id} deactivated after its last member left")
            self.events.emit(events.GROUP_DEACTIVATED, group_id, user_id)
        return left

    def change_role(self, group_id: int, acting_user_id: str, target_user_id: str, role: str) -> MembershipResponse:
        """Promote or demote a member. Admin only; the last admin cannot be demoted."""
        if role not in ROLES:
            raise InvalidInput(f"Role must be one of {', '.join(ROLES)}")
        with self.locks.hold(group_id):
            fetch_group(self.supabase, group_id)
            if not self.is_admin(acting_user_id, group_id):
                raise Unauthorized("Only a group admin can change member roles")
            target = self._get_membership(group_id, target_user_id)
            if target.role == role:
                return target
            if target.role == ROLE_ADMIN:
                admins = self._active_members(group_id, role=ROLE_ADMIN)
                if len(admins) <= 1:
                    raise LastAdmin()
            updated = self._set_role(target, role)

        logger.info(f"User {acting_user_id} set role of {target_user_id} in group {group_id} to {role}")
        self.events.emit(events.GROUP_ROSTER_CHANGED, group_id, target_user_id, action="role_changed", role=role)
        return updated

    def list_members_with_profiles(self, group_id: int) -> List[MemberWithProfileResponse]:
        """Active members, oldest first, each with its profile when one exists."""
        members = self._active_members(group_id)
        profiles = self.profiles.get_profiles([m.user_id for m in members])
        result = []
        for member in members:
            profile = profiles.get(member.user_id)
            if profile is None:
                logger.warning(f"No profile found for member {member.user_id} of group {group_id}")
            result.append(MemberWithProfileResponse(**member.model_dump(), profile=profile))
        return result

    def repair_admins(self) -> List[int]:
        """Promote the oldest member of every active group that has members but no admin."""
        groups = execute(
            self.supabase.table(GROUPS_TABLE).select("id").eq("is_active", True),
            "list active groups",
        )
        repaired = []
        for group in groups:
            group_id = group["id"]
            with self.locks.hold(group_id):
                roster = self._active_members(group_id)
                if not roster or any(m.role == ROLE_ADMIN for m in roster):
                    continue
                promoted = self._set_role(roster[0], ROLE_ADMIN)
            logger.warning(f"Group {group_id} had no admin; promoted {promoted.user_id}")
            self.events.emit(events.GROUP_ROSTER_CHANGED, group_id, promoted.user_id, action="promoted", role=ROLE_ADMIN)
            repaired.append(group_id)
        return repaired
