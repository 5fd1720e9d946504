import logging
import re
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException

from opendots.core.images import get_image_url
from opendots.modules.profiles.stores import SecondaryProfileStore
from opendots.modules.storage.r2_storage import R2Storage
from opendots.modules.storage.schemas import D1StatusResponse, UploadResponse

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9\-_.]")


def sanitize_filename(filename: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("", filename)


def build_object_key(user_id: str, filename: str) -> str:
    """Per-user key with a short random prefix so re-uploads never collide."""
    return f"{user_id}/{uuid4().hex[:8]}-{sanitize_filename(filename)}"


class ImageUploadService:
    def __init__(self, storage: R2Storage):
        self.storage = storage

    def upload_image(self, user_id: str, filename: str, content: bytes, content_type: Optional[str]) -> UploadResponse:
        key = build_object_key(user_id, filename)
        try:
            self.storage.upload_file(content, key, content_type or "application/octet-stream")
        except Exception as e:
            logger.error(f"Error uploading to R2: {e}")
            raise HTTPException(status_code=500, detail="Failed to upload image")
        return UploadResponse(success=True, url=get_image_url(key), key=key)


def d1_status(store: Optional[SecondaryProfileStore]) -> D1StatusResponse:
    if store is None:
        return D1StatusResponse(
            status="not_available",
            message="D1 database is not available in this environment",
            enabled=False,
        )
    summary = store.status()
    return D1StatusResponse(
        status="available",
        message="D1 database is available",
        enabled=True,
        tables=summary["tables"],
        profile_count=summary["profile_count"],
    )
