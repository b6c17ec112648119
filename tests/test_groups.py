import pytest

from loop.core import events
from loop.core.errors import (
    CodeSpaceExhausted, GroupFull, GroupNotFound, InvalidInput, PartialFailure,
    Unauthorized, UpstreamUnavailable,
)
from loop.modules.groups.service import GroupService
from tests.fakes import api_error


class SequenceRng:
    """Returns the given draws in order, repeating the last one."""

    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    def randrange(self, n):
        value = self.values[min(self.calls, len(self.values) - 1)]
        self.calls += 1
        return value


def make_groups(fake, members, storage, event_bus, settings, *draws):
    return GroupService(fake, members, storage, event_bus, settings, rng=SequenceRng(*draws))


def test_create_group_seeds_creator_as_admin(groups, members, fake, published):
    group = groups.create_group("Road Trip", "user-alice")

    assert len(group.group_code) == 4 and group.group_code.isdigit()
    assert group.max_members == 6
    assert group.created_by == "user-alice"
    assert group.is_active
    assert members.is_admin("user-alice", group.id)
    assert members.get_member_count(group.id) == 1
    assert [e.event_type for e in published] == [events.GROUP_CREATED, events.GROUP_ROSTER_CHANGED]


def test_road_trip_capacity_scenario(groups, members):
    group = groups.create_group("Road Trip", "user-alice", max_members=2)

    bob = members.join_by_code(group.group_code, "user-bob")
    assert bob.role == "member"
    assert members.get_member_count(group.id) == 2

    with pytest.raises(GroupFull):
        members.join_by_code(group.group_code, "user-carol")
    assert members.get_member_count(group.id) == 2
    assert not members.is_member("user-carol", group.id)


def test_create_group_rejects_blank_and_long_names(groups, settings):
    with pytest.raises(InvalidInput):
        groups.create_group("   ", "user-alice")
    with pytest.raises(InvalidInput):
        groups.create_group("x" * (settings.group_name_max_length + 1), "user-alice")


def test_code_generation_skips_active_codes(fake, members, storage, event_bus, settings):
    fake.seed("groups", name="Taken", group_code="0042", created_by="user-dave", is_active=True)
    groups = make_groups(fake, members, storage, event_bus, settings, 42, 42, 7)

    group = groups.create_group("Fresh", "user-alice")

    assert group.group_code == "0007"
    assert groups._rng.calls == 3


def test_code_of_retired_group_can_be_reused(fake, members, storage, event_bus, settings):
    fake.seed("groups", name="Old", group_code="0005", created_by="user-dave", is_active=False)
    groups = make_groups(fake, members, storage, event_bus, settings, 5)

    group = groups.create_group("New", "user-alice")

    assert group.group_code == "0005"


def test_code_generation_gives_up_after_exactly_fifty_attempts(fake, members, storage, event_bus, settings):
    fake.seed("groups", name="Taken", group_code="0005", created_by="user-dave", is_active=True)
    groups = make_groups(fake, members, storage, event_bus, settings, 5)

    with pytest.raises(CodeSpaceExhausted) as exc_info:
        groups.create_group("Unlucky", "user-alice")

    assert exc_info.value.attempts == 50
    assert groups._rng.calls == 50
    assert fake.count_queries("groups", "select", column="group_code") == 50
    assert len(fake.rows("groups")) == 1


def test_codes_are_zero_padded(fake, members, storage, event_bus, settings):
    groups = make_groups(fake, members, storage, event_bus, settings, 0)
    assert groups.generate_unique_group_code() == "0000"


def test_find_group_by_code_only_matches_active_groups(groups, fake):
    group = groups.create_group("Road Trip", "user-alice")
    assert groups.find_group_by_code(group.group_code).id == group.id

    groups.deactivate_group(group.id, "user-alice")
    with pytest.raises(GroupNotFound):
        groups.find_group_by_code(group.group_code)


@pytest.mark.parametrize("code", ["", "123", "12345", "12a4", "１２３４"])
def test_find_group_by_code_rejects_malformed_codes(groups, code):
    with pytest.raises(InvalidInput):
        groups.find_group_by_code(code)


def test_membership_failure_after_group_insert_is_partial(groups, fake):
    fake.fail_next("group_members", "insert")

    with pytest.raises(PartialFailure) as exc_info:
        groups.create_group("Half Made", "user-alice")

    orphan_id = exc_info.value.group_id
    assert orphan_id == fake.rows("groups")[0]["id"]
    assert exc_info.value.diagnostic_code.startswith("LOOP-")
    assert fake.rows("group_members") == []

    # the creator can clean up even without an admin membership
    assert groups.purge_group(orphan_id, "user-alice")
    assert fake.rows("groups") == []


def test_group_insert_failure_is_upstream_error(groups, fake):
    fake.fail_next("groups", "insert")
    with pytest.raises(UpstreamUnavailable):
        groups.create_group("Road Trip", "user-alice")
    assert fake.rows("group_members") == []


def test_rename_group_by_member(groups, members, fake, published):
    group = groups.create_group("Road Trip", "user-alice")
    members.join(group.id, "user-bob")
    before = fake.rows("groups")[0]["updated_at"]

    renamed = groups.rename_group(group.id, "user-bob", "  Beach Trip ")

    assert renamed.name == "Beach Trip"
    assert fake.rows("groups")[0]["updated_at"] != before
    assert published[-1].event_type == events.GROUP_PROFILE_CHANGED


def test_rename_group_requires_membership(groups):
    group = groups.create_group("Road Trip", "user-alice")
    with pytest.raises(Unauthorized):
        groups.rename_group(group.id, "user-carol", "Hijacked")


def test_update_avatar_stores_before_pointing_row(groups, fake):
    group = groups.create_group("Road Trip", "user-alice")

    result = groups.update_avatar(group.id, "user-alice", b"\xff\xd8jpeg", "jpg")

    assert result.avatar_url.startswith(f"groups/{group.id}/avatar_")
    assert result.avatar_url.endswith(".jpg")
    assert fake.rows("groups")[0]["avatar_url"] == result.avatar_url
    stored = fake.storage.objects[("media", result.avatar_url)]
    assert stored["content_type"] == "image/jpeg"
    assert result.public_url.endswith(result.avatar_url)


def test_update_avatar_storage_failure_leaves_row_untouched(groups, fake):
    group = groups.create_group("Road Trip", "user-alice")
    fake.storage.fail_next("avatar_")

    with pytest.raises(UpstreamUnavailable):
        groups.update_avatar(group.id, "user-alice", b"png-bytes", "png")

    assert fake.rows("groups")[0]["avatar_url"] is None


def test_update_avatar_row_failure_reports_orphan(groups, fake):
    group = groups.create_group("Road Trip", "user-alice")
    fake.fail_next("groups", "update")

    with pytest.raises(PartialFailure) as exc_info:
        groups.update_avatar(group.id, "user-alice", b"png-bytes", "png")

    assert exc_info.value.orphaned_paths == fake.storage.paths()


def test_update_group_profile_uploads_then_renames(groups, fake):
    group = groups.create_group("Road Trip", "user-alice")

    updated = groups.update_group_profile(group.id, "user-alice", "Road Trip 2", avatar_data=b"img")

    assert updated.name == "Road Trip 2"
    assert updated.avatar_url in fake.storage.paths()


def test_deactivate_group_requires_admin(groups, members, fake):
    group = groups.create_group("Road Trip", "user-alice")
    members.join(group.id, "user-bob")

    with pytest.raises(Unauthorized):
        groups.deactivate_group(group.id, "user-bob")

    retired = groups.deactivate_group(group.id, "user-alice")

    assert not retired.is_active
    # soft delete keeps the roster for history
    assert len(fake.rows("group_members")) == 2
    with pytest.raises(GroupNotFound):
        groups.get_group(group.id)
    assert groups.get_group(group.id, active_only=False).id == group.id


def test_purge_group_removes_rows(groups, members, media, fake):
    group = groups.create_group("Road Trip", "user-alice")
    members.join(group.id, "user-bob")
    item = media.upload_media(group.id, "user-bob", b"img", "png", "image")
    media.toggle_like(item.id, "user-alice")

    with pytest.raises(Unauthorized):
        groups.purge_group(group.id, "user-bob")

    assert groups.purge_group(group.id, "user-alice")
    for table in ("groups", "group_members", "group_media", "group_media_likes"):
        assert fake.rows(table) == []


def test_list_user_groups_skips_inactive(groups, members):
    first = groups.create_group("One", "user-alice")
    second = groups.create_group("Two", "user-bob")
    members.join(second.id, "user-alice")
    groups.deactivate_group(first.id, "user-alice")

    assert [g.id for g in groups.list_user_groups("user-alice")] == [second.id]
    assert groups.list_user_groups("user-dave") == []


def test_lookup_failure_is_upstream_error(groups, fake):
    fake.fail_next("groups", "select", exc=api_error("57014", "canceling statement due to statement timeout"))
    with pytest.raises(UpstreamUnavailable):
        groups.find_group_by_code("1234")


def test_former_creator_cannot_purge_after_leaving(groups, members, fake):
    group = groups.create_group("Road Trip", "user-alice")
    members.join(group.id, "user-bob")
    members.join(group.id, "user-carol")
    members.leave(group.id, "user-alice")

    assert groups.get_group(group.id).created_by == "user-bob"
    with pytest.raises(Unauthorized):
        groups.purge_group(group.id, "user-alice")
    assert len(fake.rows("groups")) == 1
    assert len(fake.rows("group_members")) == 3

    assert groups.purge_group(group.id, "user-bob")


def test_creator_without_admin_role_cannot_purge_populated_group(groups, members, fake):
    group = groups.create_group("Road Trip", "user-alice")
    members.join(group.id, "user-bob")
    members.change_role(group.id, "user-alice", "user-bob", "admin")
    members.change_role(group.id, "user-bob", "user-alice", "member")

    with pytest.raises(Unauthorized):
        groups.purge_group(group.id, "user-alice")
    assert len(fake.rows("groups")) == 1


def test_repeated_code_races_report_insert_attempts(groups, fake):
    fake.fail_next("groups", "insert", exc=api_error("23505", "duplicate key value"), times=3)

    with pytest.raises(CodeSpaceExhausted) as exc_info:
        groups.create_group("Contested", "user-alice")

    assert exc_info.value.attempts == 3
    assert "concurrently" in exc_info.value.message
    assert fake.rows("groups") == []


def test_code_race_is_retried_with_a_fresh_code(groups, fake):
    fake.fail_next("groups", "insert", exc=api_error("23505", "duplicate key value"))

    group = groups.create_group("Contested", "user-alice")

    assert fake.count_queries("groups", "insert") == 2
    assert fake.rows("groups")[0]["id"] == group.id
