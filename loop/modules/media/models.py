# Supabase tables: group_media, group_media_likes
# Storage bucket: media (paths groups/{group_id}/...)

"""
Expected Supabase table structure:

group_media:
- id: bigint (primary key, identity)
- group_id: bigint (foreign key to groups.id, not null)
- user_id: uuid (foreign key to auth.users.id, not null) - uploader
- storage_path: text (not null) - object path in the media bucket
- media_type: text (not null) - values: image, video, audio, music
- thumbnail_path: text (nullable)
- caption: text (nullable)
- created_at: timestamptz (default: now())

group_media_likes:
- id: bigint (primary key, identity)
- group_media_id: bigint (foreign key to group_media.id, not null)
- user_id: uuid (foreign key to auth.users.id, not null)
- created_at: timestamptz (default: now())
- unique constraint on (group_media_id, user_id)

Rows in group_media are only inserted after their objects are stored, so a
catalog row never points at a missing object. Objects whose row insert
failed are orphans nobody can see.
"""

GROUP_MEDIA_TABLE = "group_media"
GROUP_MEDIA_LIKES_TABLE = "group_media_likes"

MEDIA_TYPES = ("image", "video", "audio", "music")
