"""Local storage for uploaded verification images.

Every upload in a request is validated and read before any of them touches the
disk, so a rejected request never leaves a stored document behind.
"""
import logging
import re
import secrets
import time
from pathlib import Path
from typing import NamedTuple

from fastapi import UploadFile

from app.config import get_settings
from app.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}

URL_PREFIX = "/uploads/"

_STORED_NAME = re.compile(r"^\d+-[0-9a-f]{16}\.(jpg|png|webp|gif)$")


class ImageUpload(NamedTuple):
    ext: str
    data: bytes


def read_image(upload: UploadFile | None) -> ImageUpload | None:
    """Validate type and size and return the bytes in memory, or None if the field was not sent."""
    if upload is None or not upload.filename:
        return None
    settings = get_settings()
    ext = ALLOWED_CONTENT_TYPES.get((upload.content_type or "").lower())
    if ext is None:
        raise ValidationError("Only JPEG, PNG, WebP, and GIF images are allowed")
    data = upload.file.read(settings.upload_max_bytes + 1)
    if len(data) > settings.upload_max_bytes:
        raise ValidationError(f"Images must be at most {settings.upload_max_bytes // (1024 * 1024)} MB")
    if not data:
        raise ValidationError("Uploaded image is empty")
    return ImageUpload(ext, data)


def _store(image: ImageUpload) -> str:
    target_dir = Path(get_settings().upload_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    name = f"{int(time.time() * 1000)}-{secrets.token_hex(8)}{image.ext}"
    (target_dir / name).write_bytes(image.data)
    return URL_PREFIX + name


def save_images(*uploads: UploadFile | None) -> list[str | None]:
    """Store every present upload and return their URLs in order (None for absent fields)."""
    images = [read_image(upload) for upload in uploads]
    urls: list[str | None] = []
    try:
        for image in images:
            urls.append(_store(image) if image is not None else None)
    except OSError:
        discard(urls)
        raise
    return urls


def discard(urls) -> None:
    """Remove stored files for URLs that did not end up referenced by a user."""
    for url in urls:
        if not url:
            continue
        path = Path(get_settings().upload_dir) / url.removeprefix(URL_PREFIX)
        path.unlink(missing_ok=True)
        logger.info("Discarded unreferenced upload %s", path.name)


def stored_path(name: str) -> Path:
    """Resolve a stored file name; anything we did not generate is treated as missing."""
    if not _STORED_NAME.match(name):
        raise NotFoundError("File not found")
    path = Path(get_settings().upload_dir) / name
    if not path.is_file():
        raise NotFoundError("File not found")
    return path
