"""
Image payload parsing for the detection proxy.

Responsibility:
    Turn an untrusted request body into exactly one of a remote URL or
    decoded inline bytes, and enforce the size range the external service
    accepts. Everything here runs before any outbound call.

Policy:
    Exactly one of 'imageUrl' / 'imageData' must be a non-empty string.
    Supplying both is rejected rather than resolved by precedence.
"""

import base64
import binascii
from dataclasses import dataclass
from typing import Any, Optional

from face_detection_app.errors import PayloadValidationError

DEFAULT_MIN_BYTES = 1024
DEFAULT_MAX_BYTES = 6 * 1024 * 1024

_BASE64_MARKER = "base64,"


@dataclass(frozen=True)
class ImagePayload:
    """A validated detection input: either url or data is set, never both."""

    url: Optional[str] = None
    data: Optional[bytes] = None

    @property
    def is_url(self) -> bool:
        return self.url is not None

    def describe(self) -> str:
        """Short description for log lines (never the image bytes)."""
        if self.url is not None:
            return f"url={self.url}"
        size = len(self.data or b"")
        return f"inline image ({size} bytes, {size / 1024 / 1024:.2f} MB)"


def strip_data_url_prefix(image_data: str) -> str:
    """Remove a 'data:<mime>;base64,' prefix if present.

    Example formats:
        - "data:image/jpeg;base64,/9j/4AAQSkZ..."
        - "/9j/4AAQSkZ..." (returned unchanged)
    """
    if _BASE64_MARKER in image_data:
        return image_data.split(_BASE64_MARKER, 1)[1]
    return image_data


def decode_image_data(image_data: str) -> bytes:
    """Decode inline image text into raw bytes.

    Raises:
        PayloadValidationError: If the text is not valid base64.
    """
    encoded = strip_data_url_prefix(image_data).strip()
    try:
        return base64.b64decode(encoded)
    except (binascii.Error, ValueError) as e:
        raise PayloadValidationError(f"imageData is not valid base64: {e}") from e


def check_size(
    data: bytes,
    min_bytes: int = DEFAULT_MIN_BYTES,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> None:
    """Enforce the inclusive [min_bytes, max_bytes] size range.

    Raises:
        PayloadValidationError: If the payload is outside the range.
    """
    size = len(data)
    if size > max_bytes:
        raise PayloadValidationError(
            f"Image too large ({size} bytes). Maximum size is {_human(max_bytes)}."
        )
    if size < min_bytes:
        raise PayloadValidationError(
            f"Image too small or corrupted ({size} bytes). "
            f"Minimum size is {_human(min_bytes)}."
        )


def parse_payload(
    body: Any,
    min_bytes: int = DEFAULT_MIN_BYTES,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> ImagePayload:
    """Validate a request body and return the single image it carries.

    Args:
        body: Decoded JSON body, expected shape {imageUrl?: str, imageData?: str}.
        min_bytes: Smallest accepted decoded inline size.
        max_bytes: Largest accepted decoded inline size.

    Raises:
        PayloadValidationError: On a missing, ambiguous, mistyped,
                                undecodable or out-of-range payload.
    """
    if not isinstance(body, dict):
        raise PayloadValidationError("Request body must be a JSON object.")

    image_url = body.get("imageUrl")
    image_data = body.get("imageData")

    for name, value in (("imageUrl", image_url), ("imageData", image_data)):
        if value is not None and not isinstance(value, str):
            raise PayloadValidationError(
                f"{name} must be a string, got {type(value).__name__}."
            )

    # Empty strings count as absent
    has_url = bool(image_url and image_url.strip())
    has_data = bool(image_data)

    if not has_url and not has_data:
        raise PayloadValidationError("Either imageUrl or imageData is required")
    if has_url and has_data:
        raise PayloadValidationError(
            "Provide only one of imageUrl or imageData, not both"
        )

    if has_url:
        return ImagePayload(url=image_url.strip())

    data = decode_image_data(image_data)
    check_size(data, min_bytes, max_bytes)
    return ImagePayload(data=data)


def _human(num_bytes: int) -> str:
    """Format a byte bound the way error messages quote it (1KB, 6MB)."""
    if num_bytes >= 1024 * 1024 and num_bytes % (1024 * 1024) == 0:
        return f"{num_bytes // (1024 * 1024)}MB"
    if num_bytes >= 1024 and num_bytes % 1024 == 0:
        return f"{num_bytes // 1024}KB"
    return f"{num_bytes} bytes"
