from supabase import Client
from loop.core.errors import UpstreamUnavailable
import logging

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "mp4": "video/mp4",
    "mov": "video/quicktime",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def content_type_for(file_extension: str) -> str:
    return CONTENT_TYPES.get(file_extension.lower().lstrip("."), DEFAULT_CONTENT_TYPE)


class MediaStorage:
    """Supabase Storage bucket holding group media, thumbnails and avatars."""

    def __init__(self, supabase: Client, bucket_name: str = "media"):
        self.supabase = supabase
        self.bucket_name = bucket_name

    @property
    def bucket(self):
        return self.supabase.storage.from_(self.bucket_name)

    def upload_file(self, file_content: bytes, path: str, content_type: str) -> str:
        """Upload bytes to `path` and return the path."""
        try:
            self.bucket.upload(
                path,
                file_content,
                file_options={"content-type": content_type}
            )
        except Exception as e:
            logger.error(f"Failed to upload {path} to bucket {self.bucket_name}: {str(e)}")
            raise UpstreamUnavailable(f"Failed to upload {path}") from e
        logger.info(f"Uploaded {len(file_content)} bytes to {self.bucket_name}/{path}")
        return path

    def get_public_url(self, path: str) -> str:
        return self.bucket.get_public_url(path)
