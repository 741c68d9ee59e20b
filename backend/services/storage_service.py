"""
Storage service — object storage for payment proofs and product images.

Objects live on local disk under UPLOAD_DIR/<bucket>/<key> and are served
by the static mount at /uploads (see main.py), so every stored object has a
public URL:

    {PUBLIC_BASE_URL}/uploads/<bucket>/<owner_id>/<epoch_ms>.<ext>
"""
import logging
import time
from pathlib import Path
from typing import Optional

from config import settings
from domain.errors import ValidationError
from utils.validators import file_extension, image_content_type

logger = logging.getLogger(__name__)


def bucket_path(bucket: str) -> Path:
    return Path(settings.upload_dir) / bucket


def public_url(bucket: str, key: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/uploads/{bucket}/{key}"


def validate_image(content_type: Optional[str], data: bytes) -> None:
    if image_content_type(content_type) is None:
        raise ValidationError("Only PNG, JPEG, WebP or GIF images are accepted", field="file")
    if len(data) == 0:
        raise ValidationError("File is empty", field="file")
    if len(data) > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes / (1024 * 1024)
        raise ValidationError(f"File must be under {limit_mb:g} MB", field="file")


def save_upload(
    *,
    bucket: str,
    owner_id: int | str,
    filename: Optional[str],
    content_type: Optional[str],
    data: bytes,
) -> dict:
    """
    Validate and store an image.

    Returns:
        dict: {key, path, url, size}
    """
    validate_image(content_type, data)

    ext = file_extension(filename, content_type)
    key = f"{owner_id}/{int(time.time() * 1000)}.{ext}"
    path = bucket_path(bucket) / key
    path.parent.mkdir(parents=True, exist_ok=True)

    # Same millisecond from the same owner: bump the timestamp
    while path.exists():
        stem = int(path.stem) + 1
        key = f"{owner_id}/{stem}.{ext}"
        path = bucket_path(bucket) / key

    path.write_bytes(data)
    logger.info(f"Stored {bucket}/{key} ({len(data)} bytes)")

    return {"key": key, "path": str(path), "url": public_url(bucket, key), "size": len(data)}


def delete_upload(*, bucket: str, key: str) -> bool:
    """Remove a stored object. Returns False when it did not exist."""
    path = bucket_path(bucket) / key
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    logger.info(f"Deleted {bucket}/{key}")
    return True
