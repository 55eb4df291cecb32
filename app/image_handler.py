"""
Image validation and encoding for vision analysis.
"""
import base64
from typing import Optional

# Magic-byte signatures for the formats LINE and the vision API accept
_SIGNATURES = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)
DEFAULT_MIME_TYPE = "image/jpeg"


class ImageValidationError(Exception):
    """Raised when image validation fails."""
    pass


def detect_mime_type(image: bytes) -> Optional[str]:
    """
    Determine MIME type from magic bytes.

    Returns:
        MIME type string (e.g., 'image/png') or None if unrecognized
    """
    for signature, mime_type in _SIGNATURES:
        if image.startswith(signature):
            return mime_type
    if image[:4] == b"RIFF" and image[8:12] == b"WEBP":
        return "image/webp"
    return None


def validate_image(image: bytes, content_type: Optional[str], max_size: int) -> None:
    """
    Validate an uploaded image.

    Args:
        image: Raw file bytes
        content_type: MIME type declared by the client
        max_size: Maximum allowed size in bytes

    Raises:
        ImageValidationError: If validation fails
    """
    if not image:
        raise ImageValidationError("No image file provided")

    if len(image) > max_size:
        raise ImageValidationError(
            f"File too large. Maximum size: {max_size / 1024 / 1024:g}MB"
        )

    if not (content_type or "").startswith("image/"):
        raise ImageValidationError("Only image files are allowed")


def encode_image_base64(image: bytes) -> str:
    return base64.b64encode(image).decode("utf-8")


def to_data_uri(image: bytes) -> str:
    """Build a data URI for the Vision API; unknown formats are sent as JPEG."""
    mime_type = detect_mime_type(image) or DEFAULT_MIME_TYPE
    return f"data:{mime_type};base64,{encode_image_base64(image)}"
