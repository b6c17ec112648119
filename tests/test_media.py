import pytest

from loop.core import events
from loop.core.errors import (
    GroupNotFound, InvalidInput, MediaNotFound, PartialFailure, Unauthorized, UpstreamUnavailable,
)
from loop.modules.media.storage import content_type_for


@pytest.fixture
def road_trip(groups, members):
    group = groups.create_group("Road Trip", "user-alice")
    members.join(group.id, "user-bob")
    return group


def test_upload_appears_first_in_feed(media, road_trip, published):
    media.upload_media(road_trip.id, "user-alice", b"older", "jpg", "image")
    posted = media.upload_media(road_trip.id, "user-bob", b"\x89PNG", "png", "image", caption="sunset")

    feed = media.fetch_media(road_trip.id)

    assert feed[0].id == posted.id
    assert feed[0].caption == "sunset"
    assert feed[0].public_url
    assert feed[0].storage_path.startswith(f"groups/{road_trip.id}/")
    assert feed[0].storage_path.endswith(".png")
    assert published[-1].event_type == events.MEDIA_POSTED
    assert published[-1].data["media_id"] == posted.id


def test_upload_sets_content_type(media, road_trip, fake):
    posted = media.upload_media(road_trip.id, "user-alice", b"movie", ".MOV", "video")

    stored = fake.storage.objects[("media", posted.storage_path)]
    assert stored["content_type"] == "video/quicktime"
    assert stored["data"] == b"movie"


@pytest.mark.parametrize("extension,expected", [
    ("jpg", "image/jpeg"),
    ("JPEG", "image/jpeg"),
    (".png", "image/png"),
    ("gif", "image/gif"),
    ("mp4", "video/mp4"),
    ("m4a", "application/octet-stream"),
])
def test_content_type_for(extension, expected):
    assert content_type_for(extension) == expected


def test_upload_with_thumbnail(media, road_trip, fake):
    posted = media.upload_media(
        road_trip.id, "user-alice", b"movie", "mp4", "video", thumbnail_data=b"thumb",
    )

    assert posted.thumbnail_path.startswith(f"groups/{road_trip.id}/thumb_")
    assert posted.thumbnail_url.endswith(posted.thumbnail_path)
    assert fake.storage.objects[("media", posted.thumbnail_path)]["content_type"] == "image/jpeg"


def test_primary_store_failure_writes_nothing(media, road_trip, fake):
    fake.storage.fail_next()

    with pytest.raises(UpstreamUnavailable):
        media.upload_media(road_trip.id, "user-alice", b"img", "png", "image")

    assert fake.rows("group_media") == []
    assert fake.storage.paths() == []


def test_catalog_failure_reports_orphaned_object(media, road_trip, fake):
    fake.fail_next("group_media", "insert")

    with pytest.raises(PartialFailure) as exc_info:
        media.upload_media(road_trip.id, "user-alice", b"img", "png", "image")

    assert fake.rows("group_media") == []
    assert exc_info.value.orphaned_paths == fake.storage.paths()
    assert len(exc_info.value.orphaned_paths) == 1
    assert exc_info.value.group_id == road_trip.id


def test_thumbnail_failure_reports_primary_object(media, road_trip, fake):
    fake.storage.fail_next("thumb_")

    with pytest.raises(PartialFailure) as exc_info:
        media.upload_media(road_trip.id, "user-alice", b"movie", "mp4", "video", thumbnail_data=b"t")

    assert fake.rows("group_media") == []
    assert exc_info.value.orphaned_paths == fake.storage.paths()


def test_upload_validation(media, road_trip, settings):
    with pytest.raises(InvalidInput):
        media.upload_media(road_trip.id, "user-alice", b"", "png", "image")
    with pytest.raises(InvalidInput):
        media.upload_media(road_trip.id, "user-alice", b"img", "", "image")
    with pytest.raises(InvalidInput):
        media.upload_media(road_trip.id, "user-alice", b"img", "png", "document")
    with pytest.raises(InvalidInput):
        media.upload_media(
            road_trip.id, "user-alice", b"img", "png", "image",
            caption="x" * (settings.caption_max_length + 1),
        )


def test_blank_caption_is_stored_as_none(media, road_trip):
    posted = media.upload_media(road_trip.id, "user-alice", b"img", "png", "image", caption="   ")
    assert posted.caption is None


def test_upload_requires_membership(media, road_trip, fake):
    with pytest.raises(Unauthorized):
        media.upload_media(road_trip.id, "user-carol", b"img", "png", "image")
    with pytest.raises(GroupNotFound):
        media.upload_media(999, "user-alice", b"img", "png", "image")
    assert fake.storage.paths() == []


def test_fetch_media_limits(media, road_trip, settings):
    for i in range(5):
        media.upload_media(road_trip.id, "user-alice", b"img", "png", "image", caption=str(i))

    assert [m.caption for m in media.fetch_media(road_trip.id, limit=2)] == ["4", "3"]
    with pytest.raises(InvalidInput):
        media.fetch_media(road_trip.id, limit=0)


def test_fetch_media_caps_page_size(media, road_trip, fake, settings):
    for _ in range(settings.media_page_max + 5):
        fake.seed(
            "group_media", group_id=road_trip.id, user_id="user-alice",
            storage_path="groups/x/y.png", media_type="image",
        )
    assert len(media.fetch_media(road_trip.id, limit=10_000)) == settings.media_page_max
    assert len(media.fetch_media(road_trip.id)) == settings.media_page_size


def test_fetch_media_is_scoped_to_group(media, groups, road_trip):
    other = groups.create_group("Other", "user-alice")
    media.upload_media(other.id, "user-alice", b"img", "png", "image")

    assert media.fetch_media(road_trip.id) == []


def test_toggle_like_is_its_own_inverse(media, road_trip, published):
    posted = media.upload_media(road_trip.id, "user-alice", b"img", "png", "image")

    liked = media.toggle_like(posted.id, "user-bob")
    assert liked.liked and liked.like_count == 1
    assert media.has_liked(posted.id, "user-bob")

    unliked = media.toggle_like(posted.id, "user-bob")
    assert not unliked.liked and unliked.like_count == 0
    assert not media.has_liked(posted.id, "user-bob")
    assert published[-1].event_type == events.MEDIA_LIKE_CHANGED


def test_like_and_unlike_are_idempotent(media, road_trip, fake):
    posted = media.upload_media(road_trip.id, "user-alice", b"img", "png", "image")

    media.like(posted.id, "user-alice")
    media.like(posted.id, "user-alice")
    media.like(posted.id, "user-bob")
    assert media.like_count(posted.id) == 2
    assert len(fake.rows("group_media_likes")) == 2

    media.unlike(posted.id, "user-alice")
    media.unlike(posted.id, "user-alice")
    state = media.get_like_state(posted.id, "user-alice")
    assert not state.liked
    assert state.like_count == 1


def test_duplicate_like_insert_is_ignored(media, road_trip, fake):
    posted = media.upload_media(road_trip.id, "user-alice", b"img", "png", "image")
    fake.seed("group_media_likes", group_media_id=posted.id, user_id="user-bob")

    media._insert_like(posted.id, "user-bob")

    assert media.like_count(posted.id) == 1


def test_likes_require_membership(media, road_trip):
    posted = media.upload_media(road_trip.id, "user-alice", b"img", "png", "image")

    with pytest.raises(Unauthorized):
        media.toggle_like(posted.id, "user-carol")
    with pytest.raises(Unauthorized):
        media.get_like_state(posted.id, "user-carol")
    with pytest.raises(MediaNotFound):
        media.toggle_like(999, "user-alice")
