from supabase import Client
from loop.config import Settings
from loop.core import events
from loop.core.errors import InvalidInput, LoopError, MediaNotFound, PartialFailure, Unauthorized
from loop.core.events import EventBus
from loop.core.store import DuplicateRow, execute, first
from loop.modules.groups.service import fetch_group
from loop.modules.media.models import GROUP_MEDIA_TABLE, GROUP_MEDIA_LIKES_TABLE, MEDIA_TYPES
from loop.modules.media.schemas import MediaResponse, LikeState
from loop.modules.media.storage import MediaStorage, content_type_for
from loop.modules.members.service import MembershipService
from typing import List, Optional
import uuid
import logging

logger = logging.getLogger(__name__)

THUMBNAIL_EXTENSION = "jpeg"


class MediaService:
    """Media catalog for a group feed: uploads, listing and likes.

    An upload moves through three states: the asset is staged by the caller,
    then stored in the bucket, then committed as a `group_media` row. Objects
    are always stored before the row is inserted.
    """

    def __init__(
        self,
        supabase: Client,
        storage: MediaStorage,
        members: MembershipService,
        event_bus: EventBus,
        settings: Settings,
    ):
        self.supabase = supabase
        self.storage = storage
        self.members = members
        self.events = event_bus
        self.settings = settings

    def _with_urls(self, row: dict) -> MediaResponse:
        media = MediaResponse(**row)
        media.public_url = self.get_public_url(media.storage_path)
        if media.thumbnail_path:
            media.thumbnail_url = self.get_public_url(media.thumbnail_path)
        return media

    def _require_member(self, group_id: int, user_id: str, action: str) -> None:
        if not self.members.is_member(user_id, group_id):
            raise Unauthorized(f"Only group members can {action}")

    def _validate_upload(self, data: bytes, file_extension: str, media_type: str, caption: Optional[str]) -> tuple:
        if not data:
            raise InvalidInput("Media file is empty")
        extension = (file_extension or "").lower().lstrip(".")
        if not extension or not extension.isalnum():
            raise InvalidInput("A file extension is required")
        if media_type not in MEDIA_TYPES:
            raise InvalidInput(f"Media type must be one of {', '.join(MEDIA_TYPES)}")
        if caption is not None:
            caption = caption.strip() or None
        if caption and len(caption) > self.settings.caption_max_length:
            raise InvalidInput(f"Caption must be at most {self.settings.caption_max_length} characters")
        return extension, caption

    def upload_media(
        self,
        group_id: int,
        uploader_id: str,
        data: bytes,
        file_extension: str,
        media_type: str,
        caption: Optional[str] = None,
        thumbnail_data: Optional[bytes] = None,
    ) -> MediaResponse:
        """Store media (and optional thumbnail) then record it in `group_media`."""
        extension, caption = self._validate_upload(data, file_extension, media_type, caption)
        fetch_group(self.supabase, group_id)
        self._require_member(group_id, uploader_id, "post media")

        storage_path = f"groups/{group_id}/{uuid.uuid4()}.{extension}"
        # Nothing is stored yet; a failure here leaves no trace.
        self.storage.upload_file(data, storage_path, content_type_for(extension))
        stored = [storage_path]

        thumbnail_path = None
        try:
            if thumbnail_data:
                thumbnail_path = f"groups/{group_id}/thumb_{uuid.uuid4()}.{THUMBNAIL_EXTENSION}"
                self.storage.upload_file(thumbnail_data, thumbnail_path, content_type_for(THUMBNAIL_EXTENSION))
                stored.append(thumbnail_path)

            rows = execute(
                self.supabase.table(GROUP_MEDIA_TABLE).insert({
                    "group_id": group_id,
                    "user_id": uploader_id,
                    "storage_path": storage_path,
                    "media_type": media_type,
                    "caption": caption,
                    "thumbnail_path": thumbnail_path,
                }),
                f"record media for group {group_id}",
            )
            if not rows:
                raise PartialFailure("Media insert returned no row")
        except LoopError as e:
            logger.error(f"Upload to group {group_id} by {uploader_id} left orphaned objects {stored}: {e}")
            raise PartialFailure(
                "Media was stored but not added to the group feed",
                group_id=group_id,
                orphaned_paths=stored,
            ) from e

        media = self._with_urls(rows[0])
        logger.info(f"User {uploader_id} posted {media_type} {media.id} to group {group_id}")
        self.events.emit(events.MEDIA_POSTED, group_id, uploader_id, media_id=media.id, media_type=media_type)
        return media

    def fetch_media(self, group_id: int, limit: Optional[int] = None) -> List[MediaResponse]:
        """Most recent media first, bounded by the page size."""
        if limit is None:
            limit = self.settings.media_page_size
        if limit < 1:
            raise InvalidInput("Limit must be positive")
        limit = min(limit, self.settings.media_page_max)
        rows = execute(
            self.supabase.table(GROUP_MEDIA_TABLE)
                .select("*")
                .eq("group_id", group_id)
                .order("created_at", desc=True)
                .limit(limit),
            f"fetch media for group {group_id}",
        )
        return [self._with_urls(row) for row in rows]

    def get_public_url(self, storage_path: str) -> str:
        return self.storage.get_public_url(storage_path)

    def get_media(self, media_id: int) -> MediaResponse:
        row = first(execute(
            self.supabase.table(GROUP_MEDIA_TABLE).select("*").eq("id", media_id).limit(1),
            f"load media {media_id}",
        ))
        if not row:
            raise MediaNotFound()
        return self._with_urls(row)

    # Likes

    def _like_rows(self, media_id: int, user_id: Optional[str] = None) -> List[dict]:
        query = self.supabase.table(GROUP_MEDIA_LIKES_TABLE)\
            .select("id")\
            .eq("group_media_id", media_id)
        if user_id is not None:
            query = query.eq("user_id", user_id)
        return execute(query, f"load likes for media {media_id}")

    def _authorize_like(self, media_id: int, user_id: str) -> MediaResponse:
        media = self.get_media(media_id)
        self._require_member(media.group_id, user_id, "like media")
        return media

    def _insert_like(self, media_id: int, user_id: str) -> None:
        try:
            execute(
                self.supabase.table(GROUP_MEDIA_LIKES_TABLE).insert({
                    "group_media_id": media_id,
                    "user_id": user_id,
                }),
                f"like media {media_id}",
            )
        except DuplicateRow:
            # A concurrent request from the same user got there first.
            logger.debug(f"User {user_id} already likes media {media_id}")

    def _delete_like(self, media_id: int, user_id: str) -> None:
        execute(
            self.supabase.table(GROUP_MEDIA_LIKES_TABLE)
                .delete()
                .eq("group_media_id", media_id)
                .eq("user_id", user_id),
            f"unlike media {media_id}",
        )

    def _state(self, media: MediaResponse, user_id: str, liked: bool) -> LikeState:
        state = LikeState(media_id=media.id, liked=liked, like_count=self.like_count(media.id))
        self.events.emit(events.MEDIA_LIKE_CHANGED, media.group_id, user_id, media_id=media.id, liked=liked)
        return state

    def toggle_like(self, media_id: int, user_id: str) -> LikeState:
        """Flip the user's like on a media item and report the new state."""
        media = self._authorize_like(media_id, user_id)
        if self._like_rows(media_id, user_id):
            self._delete_like(media_id, user_id)
            liked = False
        else:
            self._insert_like(media_id, user_id)
            liked = True
        logger.info(f"User {user_id} {'liked' if liked else 'unliked'} media {media_id}")
        return self._state(media, user_id, liked)

    def like(self, media_id: int, user_id: str) -> LikeState:
        media = self._authorize_like(media_id, user_id)
        if not self._like_rows(media_id, user_id):
            self._insert_like(media_id, user_id)
        return self._state(media, user_id, True)

    def unlike(self, media_id: int, user_id: str) -> LikeState:
        media = self._authorize_like(media_id, user_id)
        self._delete_like(media_id, user_id)
        return self._state(media, user_id, False)

    def get_like_state(self, media_id: int, user_id: str) -> LikeState:
        self._authorize_like(media_id, user_id)
        return LikeState(
            media_id=media_id,
            liked=self.has_liked(media_id, user_id),
            like_count=self.like_count(media_id),
        )

    def has_liked(self, media_id: int, user_id: str) -> bool:
        return bool(self._like_rows(media_id, user_id))

    def like_count(self, media_id: int) -> int:
        return len(self._like_rows(media_id))
