"""
Image conversion helpers for the capture client.

Responsibility:
    Move images between the three forms the client handles: BGR numpy
    frames (OpenCV), raw encoded bytes (JPEG/PNG files), and data URLs
    sent to the proxy as inline payloads.

Non-goals:
    - No drawing or display logic.
    - No network access.
"""

import base64
import mimetypes
from pathlib import Path
from typing import Optional, Union

import cv2
import numpy as np

from face_detection_app.payload import decode_image_data


def mirror(frame: np.ndarray) -> np.ndarray:
    """Return the horizontal (left-right) mirror of a frame."""
    return cv2.flip(frame, 1)


def to_data_url(data: bytes, mime_type: str = "image/jpeg") -> str:
    """Wrap raw encoded image bytes in a base64 data URL."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def encode_frame(frame: np.ndarray, quality: int = 95) -> str:
    """Encode a BGR frame as a JPEG data URL.

    Raises:
        ValueError: If OpenCV cannot encode the frame.
    """
    try:
        ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    except cv2.error as e:
        raise ValueError(f"Failed to encode frame as JPEG: {e}") from e
    if not ok:
        raise ValueError(f"Failed to encode frame with shape {frame.shape} as JPEG")
    return to_data_url(buffer.tobytes(), "image/jpeg")


def file_to_data_url(path: Union[str, Path]) -> str:
    """Read an image file and return it as a data URL.

    Raises:
        FileNotFoundError: If the file does not exist.
        OSError: If the file cannot be read.
    """
    path = Path(path)
    mime_type, _ = mimetypes.guess_type(path.name)
    return to_data_url(path.read_bytes(), mime_type or "application/octet-stream")


def decode_image(source: Union[str, bytes]) -> Optional[np.ndarray]:
    """Decode encoded image bytes or a data URL into a BGR frame.

    Returns:
        The decoded frame, or None if the bytes are not a readable image.
    """
    raw = decode_image_data(source) if isinstance(source, str) else source
    if not raw:
        return None
    return cv2.imdecode(np.frombuffer(raw, np.uint8), cv2.IMREAD_COLOR)
