"""Tests for upload reading and image validation."""

import re
from io import BytesIO

import pytest
from fastapi import HTTPException, UploadFile
from starlette.datastructures import Headers

from services import images


def _upload(data: bytes, filename: str = "photo.png", content_type: str = "image/png") -> UploadFile:
    return UploadFile(
        filename=filename,
        file=BytesIO(data),
        headers=Headers({"content-type": content_type}),
    )


@pytest.mark.asyncio
async def test_read_upload_file_enforces_limit(image_bytes):
    data = image_bytes()
    assert await images.read_upload_file(_upload(data), len(data)) == data

    with pytest.raises(images.UploadTooLargeError) as exc_info:
        await images.read_upload_file(_upload(data), len(data) - 1)
    assert "at most" in str(exc_info.value)


@pytest.mark.asyncio
async def test_read_upload_file_reports_mebibytes():
    with pytest.raises(images.UploadTooLargeError) as exc_info:
        await images.read_upload_file(_upload(b"\0" * (5 * 1024 * 1024 + 1)), 5 * 1024 * 1024)
    assert str(exc_info.value) == "Image must be at most 5 MiB"


@pytest.mark.parametrize("content_type", ["image/png", "IMAGE/JPEG", "image/webp; charset=binary"])
def test_validate_image_content_type_accepts_images(content_type):
    assert images.validate_image_content_type(content_type).startswith("image/")


@pytest.mark.parametrize("content_type", [None, "", "text/plain", "application/octet-stream"])
def test_validate_image_content_type_rejects_others(content_type):
    with pytest.raises(ValueError):
        images.validate_image_content_type(content_type)


def test_verify_image_bytes(image_bytes):
    images.verify_image_bytes(image_bytes("JPEG"))
    with pytest.raises(ValueError):
        images.verify_image_bytes(b"")
    with pytest.raises(ValueError):
        images.verify_image_bytes(b"not an image at all")


@pytest.mark.parametrize(
    ("filename", "extension"),
    [
        ("photo.PNG", "png"),
        ("archive.tar.gz", "gz"),
        ("noextension", "jpg"),
        (None, "jpg"),
        ("weird.p!ng", "jpg"),
    ],
)
def test_file_extension(filename, extension):
    assert images.file_extension(filename) == extension


def test_build_object_filename_is_timestamped_and_random():
    first = images.build_object_filename("cat.webp", prefix="profile-")
    second = images.build_object_filename("cat.webp", prefix="profile-")
    assert re.fullmatch(r"profile-\d{13}-[0-9a-f]{8}\.webp", first)
    assert first != second


@pytest.mark.asyncio
async def test_load_image_upload_maps_failures_to_400(image_bytes):
    data, content_type = await images.load_image_upload(_upload(image_bytes()), 1024 * 1024)
    assert content_type == "image/png"
    assert data

    for upload in (None, _upload(b"text", "notes.txt", "text/plain"), _upload(b"junk")):
        with pytest.raises(HTTPException) as exc_info:
            await images.load_image_upload(upload, 1024 * 1024)
        assert exc_info.value.status_code == 400
