"""Business logic services."""

from .images import (
    UploadTooLargeError,
    load_image_upload,
    build_object_filename,
    read_upload_file,
    validate_image_content_type,
    verify_image_bytes,
)
from .rate_limiter import (
    RateLimitMiddleware,
    RateLimiter,
    get_rate_limiter,
    set_rate_limiter,
)
from .storage import (
    build_public_url,
    delete_object,
    ensure_bucket,
    get_minio_client,
    object_key_from_url,
    upload_object,
)

__all__ = [
    "get_minio_client",
    "ensure_bucket",
    "upload_object",
    "delete_object",
    "build_public_url",
    "object_key_from_url",
    "read_upload_file",
    "validate_image_content_type",
    "verify_image_bytes",
    "build_object_filename",
    "UploadTooLargeError",
    "load_image_upload",
    "RateLimiter",
    "RateLimitMiddleware",
    "get_rate_limiter",
    "set_rate_limiter",
]
