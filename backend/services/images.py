"""Upload reading and image validation helpers."""

from __future__ import annotations

import asyncio
import re
import secrets
import time
from io import BytesIO

from fastapi import HTTPException, UploadFile, status
from PIL import Image, UnidentifiedImageError

DEFAULT_IMAGE_EXTENSION = "jpg"
READ_CHUNK_SIZE = 1024 * 1024
_EXTENSION_PATTERN = re.compile(r"^[a-z0-9]{1,10}$")


class UploadTooLargeError(ValueError):
    """Raised when an upload exceeds the configured size limit."""


def _format_limit(max_bytes: int) -> str:
    mebibytes = max_bytes / (1024 * 1024)
    if mebibytes.is_integer():
        return f"{int(mebibytes)} MiB"
    return f"{max_bytes} bytes"


async def read_upload_file(upload: UploadFile, max_bytes: int) -> bytes:
    """Read an upload into memory, refusing anything larger than ``max_bytes``."""
    buffer = bytearray()
    while True:
        chunk = await upload.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            raise UploadTooLargeError(
                f"Image must be at most {_format_limit(max_bytes)}"
            )
    await upload.close()
    return bytes(buffer)


def validate_image_content_type(content_type: str | None) -> str:
    """Return the declared MIME type when it is an image type."""
    normalized = (content_type or "").split(";", 1)[0].strip().lower()
    if not normalized.startswith("image/"):
        raise ValueError("File must be an image")
    return normalized


def verify_image_bytes(data: bytes) -> None:
    """Raise ValueError unless Pillow can identify ``data`` as an image."""
    if not data:
        raise ValueError("Image file is empty")
    try:
        with Image.open(BytesIO(data)) as image:
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, EOFError) as exc:
        raise ValueError("Invalid image file") from exc


def file_extension(filename: str | None) -> str:
    """Lower-cased extension of the client filename, ``jpg`` when unusable."""
    if not filename or "." not in filename:
        return DEFAULT_IMAGE_EXTENSION
    extension = filename.rsplit(".", 1)[1].strip().lower()
    if not _EXTENSION_PATTERN.fullmatch(extension):
        return DEFAULT_IMAGE_EXTENSION
    return extension


def build_object_filename(filename: str | None, *, prefix: str = "") -> str:
    """Collision-resistant name: ``{prefix}{epoch_ms}-{random8}.{ext}``."""
    epoch_ms = int(time.time() * 1000)
    suffix = secrets.token_hex(4)
    return f"{prefix}{epoch_ms}-{suffix}.{file_extension(filename)}"


async def load_image_upload(upload: UploadFile | None, max_bytes: int) -> tuple[bytes, str]:
    """Read and validate an uploaded image; any problem is a 400."""
    if upload is None or not upload.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Image is required",
        )
    try:
        content_type = validate_image_content_type(upload.content_type)
        data = await read_upload_file(upload, max_bytes)
        await asyncio.to_thread(verify_image_bytes, data)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return data, content_type
