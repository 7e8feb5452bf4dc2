"""
Live camera acquisition for the capture client.

Responsibility:
    Own one video input device for as long as the user needs a live
    preview, hand out mirrored preview frames, and take one mirrored
    still on capture, releasing the device immediately afterwards.

Non-goals:
    - No detection, drawing, or network access.
    - No automatic reconnection on a dead stream.

Robustness:
    - The device is opened only when not already active.
    - Acquisition failures are classified (see classify_camera_error)
      into a small fixed taxonomy with distinct user-facing messages.
    - The device is released on stop, capture, and in __del__.
"""

import errno
import logging
import os
import sys
from typing import Any, Callable, Optional

import cv2
import numpy as np

from face_detection_app.config import CameraConfig
from face_detection_app.errors import CameraError, CameraErrorKind
from face_detection_app.imaging import mirror

logger = logging.getLogger(__name__)

CAMERA_MESSAGES = {
    CameraErrorKind.PERMISSION_DENIED: "Camera permission denied",
    CameraErrorKind.NOT_FOUND: "No camera device found",
    CameraErrorKind.IN_USE: "Camera is already in use by another application",
    CameraErrorKind.UNSUPPORTED: "Camera API not supported",
}

# Warm-up reads allowed before a device that opened is declared unreadable
_MAX_READ_ATTEMPTS = 5

CaptureFactory = Callable[[int], Any]


def camera_error_message(error: CameraError) -> str:
    """Map a classified camera error to the text shown to the user."""
    if error.kind is CameraErrorKind.UNKNOWN:
        return error.detail or "Unable to access camera"
    return CAMERA_MESSAGES[error.kind]


def classify_camera_error(exc: BaseException) -> CameraError:
    """Classify an exception raised while acquiring the camera."""
    if isinstance(exc, CameraError):
        return exc
    if isinstance(exc, PermissionError):
        return CameraError(CameraErrorKind.PERMISSION_DENIED, str(exc))
    if isinstance(exc, FileNotFoundError):
        return CameraError(CameraErrorKind.NOT_FOUND, str(exc))
    if isinstance(exc, OSError):
        if exc.errno in (errno.EACCES, errno.EPERM):
            return CameraError(CameraErrorKind.PERMISSION_DENIED, str(exc))
        if exc.errno in (errno.ENOENT, errno.ENODEV, errno.ENXIO):
            return CameraError(CameraErrorKind.NOT_FOUND, str(exc))
        if exc.errno == errno.EBUSY:
            return CameraError(CameraErrorKind.IN_USE, str(exc))
    return CameraError(CameraErrorKind.UNKNOWN, str(exc) or type(exc).__name__)


def _probe_device_node(device: int) -> None:
    """Check the V4L2 device node on Linux before handing it to OpenCV.

    OpenCV reports every failure as a closed capture, so the node is
    inspected first to tell a missing device from a permission problem.

    Raises:
        FileNotFoundError: If the device node does not exist.
        PermissionError: If the node is not readable and writable.
    """
    if not sys.platform.startswith("linux"):
        return

    node = f"/dev/video{device}"
    if not os.path.exists(node):
        raise FileNotFoundError(errno.ENOENT, "No such video device", node)
    if not os.access(node, os.R_OK | os.W_OK):
        raise PermissionError(errno.EACCES, "Permission denied", node)


class Camera:
    """Exclusive wrapper around one cv2.VideoCapture device.

    Usage:
        camera = Camera(config.camera)
        camera.start()
        frame = camera.preview_frame()    # mirrored, as the user sees it
        still = camera.capture()          # mirrored still, device released

    A capture_factory may be injected (tests pass a fake); the default
    is cv2.VideoCapture, and device probing only applies to it.
    """

    def __init__(
        self,
        config: Optional[CameraConfig] = None,
        capture_factory: Optional[CaptureFactory] = None,
    ) -> None:
        self._config = config or CameraConfig()
        self._factory = capture_factory
        self._cap: Optional[Any] = None

    @property
    def is_active(self) -> bool:
        return self._cap is not None

    def start(self) -> None:
        """Acquire the device and start streaming.

        Does nothing if the camera is already active.

        Raises:
            CameraError: Classified acquisition failure.
        """
        if self.is_active:
            logger.debug("Camera already active, ignoring start request.")
            return

        device = self._config.device
        factory = self._factory
        probed = False
        try:
            if factory is None:
                if not hasattr(cv2, "VideoCapture"):
                    raise CameraError(CameraErrorKind.UNSUPPORTED, "cv2.VideoCapture unavailable")
                _probe_device_node(device)
                probed = sys.platform.startswith("linux")
                factory = cv2.VideoCapture

            cap = factory(device)
        except Exception as e:
            raise classify_camera_error(e) from e

        if not cap.isOpened():
            cap.release()
            # A probed node exists and is accessible, so another process holds it
            kind = CameraErrorKind.IN_USE if probed else CameraErrorKind.NOT_FOUND
            raise CameraError(kind, f"Failed to open webcam device {device}.")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self._config.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self._config.height)

        self._cap = cap
        logger.info("Camera started: device=%d", device)

    def _read(self) -> np.ndarray:
        """Read one raw frame from the active device."""
        if self._cap is None:
            raise CameraError(CameraErrorKind.UNKNOWN, "Camera is not active")

        for _ in range(_MAX_READ_ATTEMPTS):
            try:
                ret, frame = self._cap.read()
            except cv2.error as e:
                raise classify_camera_error(e) from e
            if ret and frame is not None:
                return frame
            logger.warning("Failed to read frame from webcam, retrying.")

        raise CameraError(
            CameraErrorKind.UNKNOWN,
            f"Webcam produced {_MAX_READ_ATTEMPTS} consecutive failed reads.",
        )

    def preview_frame(self) -> np.ndarray:
        """Return the current frame mirrored, matching a selfie-style preview."""
        return mirror(self._read())

    def capture(self) -> np.ndarray:
        """Take one mirrored still and release the device.

        The device is released even if the read fails.
        """
        try:
            return mirror(self._read())
        finally:
            self.stop()

    def stop(self) -> None:
        """Release the device if held."""
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info("Camera stopped.")

    def __enter__(self) -> "Camera":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def __del__(self) -> None:
        """Safety net: release the device if not explicitly stopped."""
        self.stop()
