"""
Uploaded images (avatars, link thumbnails) kept in GridFS.

Files are served back from /api/files/{file_id}.
"""
import logging
import time

import gridfs
from gridfs.errors import NoFile
from bson import ObjectId
from bson.errors import InvalidId

from .errors import NotFound, ValidationFailed

logger = logging.getLogger(__name__)

UPLOADS_COLLECTION = "uploads"
MAX_UPLOAD_BYTES = 5 * 1024 * 1024


def _bucket(db):
    return gridfs.GridFS(db, collection=UPLOADS_COLLECTION)


def save_image(db, owner_id: str, filename: str, content_type: str, data: bytes, folder: str = "avatars") -> str:
    """Store an image owned by owner_id and return its public URL."""
    if not (content_type or "").startswith("image/"):
        raise ValidationFailed("Please select an image file")
    if len(data) > MAX_UPLOAD_BYTES:
        raise ValidationFailed("Image must be smaller than 5MB")
    if not data:
        raise ValidationFailed("Uploaded file is empty")
    ext = filename.rsplit(".", 1)[-1].lower() if "." in (filename or "") else "png"
    stored_name = f"{folder}/{owner_id}-{int(time.time() * 1000)}.{ext}"
    file_id = _bucket(db).put(
        data,
        filename=stored_name,
        metadata={"owner_id": owner_id, "content_type": content_type, "folder": folder},
    )
    logger.info("Stored upload %s for %s", stored_name, owner_id)
    return f"/api/files/{file_id}"


def open_image(db, file_id: str):
    """Return (bytes, content_type) for a stored upload."""
    try:
        oid = ObjectId(file_id)
    except (InvalidId, TypeError):
        raise NotFound("File not found")
    try:
        grid_out = _bucket(db).get(oid)
    except NoFile:
        raise NotFound("File not found")
    metadata = grid_out.metadata or {}
    return grid_out.read(), metadata.get("content_type", "application/octet-stream")
