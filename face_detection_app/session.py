"""
Client session: the single state holder of the capture & render client.

Responsibility:
    Drive one user session through acquisition (URL, file, or camera),
    submission to the proxy, and result display, and notify observers
    on every change so the rendering layer can redraw.

State machine:
    IDLE → ACQUIRING → PREVIEWING → DETECTING → SHOWING_RESULTS | ERROR

    A new acquisition may start from SHOWING_RESULTS or ERROR; stopping a
    live camera returns to IDLE. Every session operation catches its own
    failures and turns them into session state; none raise to the caller.

Concurrency:
    The busy flag is advisory. A submission while busy is ignored, but
    rapid triggering from several threads is not serialized.
"""

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple, Union

import numpy as np

from face_detection_app.camera import Camera, camera_error_message, classify_camera_error
from face_detection_app.config import AppConfig, load_config
from face_detection_app.errors import (
    CameraError,
    FaceAppError,
    InvalidTransitionError,
    ProxyRequestError,
)
from face_detection_app.face import DetectedFace, parse_faces
from face_detection_app.imaging import decode_image, encode_frame, file_to_data_url
from face_detection_app.proxy_client import ProxyClient
from face_detection_app.renderer import render_faces

logger = logging.getLogger(__name__)

NO_FACES_NOTICE = "No faces detected"


class SessionState(enum.Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    PREVIEWING = "previewing"
    DETECTING = "detecting"
    SHOWING_RESULTS = "showing_results"
    ERROR = "error"


_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.ACQUIRING}),
    SessionState.ACQUIRING: frozenset(
        {SessionState.PREVIEWING, SessionState.ERROR, SessionState.IDLE}
    ),
    SessionState.PREVIEWING: frozenset(
        {SessionState.DETECTING, SessionState.ERROR, SessionState.IDLE}
    ),
    SessionState.DETECTING: frozenset(
        {SessionState.SHOWING_RESULTS, SessionState.ERROR}
    ),
    SessionState.SHOWING_RESULTS: frozenset({SessionState.ACQUIRING, SessionState.IDLE}),
    SessionState.ERROR: frozenset({SessionState.ACQUIRING, SessionState.IDLE}),
}


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of the session handed to observers."""

    state: SessionState
    image_source: Optional[str]
    preview: Optional[np.ndarray]
    faces: Optional[Tuple[DetectedFace, ...]]
    camera_active: bool
    busy: bool
    error: Optional[str]
    notice: Optional[str]


Listener = Callable[[SessionSnapshot], None]


class Session:
    """Transient UI state for one user, destroyed with the process.

    Usage:
        with Session(config) as session:
            session.subscribe(on_change)
            session.submit_url("https://example.com/face.jpg")
            canvas = session.render()

    The proxy client and camera may be injected for tests.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        proxy: Optional[ProxyClient] = None,
        camera: Optional[Camera] = None,
    ) -> None:
        if config is None:
            config = load_config()

        self._config = config
        self._proxy = proxy or ProxyClient(config.client)
        self._camera = camera or Camera(config.camera)
        self._listeners: List[Listener] = []

        self._state = SessionState.IDLE
        self._image_source: Optional[str] = None
        self._preview: Optional[np.ndarray] = None
        self._faces: Optional[List[DetectedFace]] = None
        self._busy = False
        self._error: Optional[str] = None
        self._notice: Optional[str] = None

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def camera_active(self) -> bool:
        return self._camera.is_active

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def notice(self) -> Optional[str]:
        return self._notice

    @property
    def faces(self) -> List[DetectedFace]:
        return list(self._faces or [])

    @property
    def preview(self) -> Optional[np.ndarray]:
        return self._preview

    @property
    def image_source(self) -> Optional[str]:
        return self._image_source

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self._state,
            image_source=self._image_source,
            preview=self._preview,
            faces=tuple(self._faces) if self._faces is not None else None,
            camera_active=self.camera_active,
            busy=self._busy,
            error=self._error,
            notice=self._notice,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Session listener failed")

    def _transition(self, new_state: SessionState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            raise InvalidTransitionError(
                f"Invalid session transition: {self._state.value} -> {new_state.value}"
            )
        logger.debug("Session %s -> %s", self._state.value, new_state.value)
        self._state = new_state
        self._notify()

    def _fail(self, message: str) -> None:
        """Record a user-facing error and clear results."""
        logger.warning("Session error: %s", message)
        self._error = message
        self._faces = []
        self._transition(SessionState.ERROR)

    def _begin_acquisition(self) -> None:
        self._error = None
        self._notice = None
        self._faces = None
        self._image_source = None
        self._preview = None
        self._transition(SessionState.ACQUIRING)

    def _set_preview(self, source: str, preview: Optional[np.ndarray]) -> None:
        self._image_source = source
        self._preview = preview
        self._transition(SessionState.PREVIEWING)

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    def _can_submit(self) -> bool:
        if self._busy:
            logger.warning("Detection already in progress, ignoring submission.")
            return False
        return True

    def submit_url(self, url: str) -> None:
        """Preview and detect a remote image. Blank input is ignored."""
        url = (url or "").strip()
        if not url or not self._can_submit():
            return

        self.stop_camera()
        self._begin_acquisition()
        self._set_preview(url, self._load_remote_preview(url))
        self._detect(image_url=url)

    def submit_file(self, path: Union[str, Path]) -> None:
        """Preview and detect a local image file as inline data."""
        if not self._can_submit():
            return

        self.stop_camera()
        self._begin_acquisition()
        try:
            data_url = file_to_data_url(path)
        except OSError as e:
            self._fail(f"Failed to read image file: {e}")
            return

        preview = decode_image(data_url)
        if preview is None:
            logger.warning("Could not decode %s for preview", path)
        self._set_preview(data_url, preview)
        self._detect(image_data=data_url)

    def start_camera(self) -> None:
        """Acquire the camera for a live preview (no-op if already active)."""
        if self.camera_active or not self._can_submit():
            return

        self._begin_acquisition()
        try:
            self._camera.start()
        except CameraError as e:
            self._fail(camera_error_message(e))
            return
        self._notify()

    def live_frame(self) -> Optional[np.ndarray]:
        """Return the current mirrored preview frame, or None if the camera is off."""
        if not self.camera_active:
            return None
        try:
            return self._camera.preview_frame()
        except CameraError as e:
            self._camera.stop()
            self._fail(camera_error_message(e))
            return None

    def capture_photo(self) -> None:
        """Capture a mirrored still, release the camera, and submit it."""
        if not self.camera_active or not self._can_submit():
            return

        try:
            frame = self._camera.capture()
            data_url = encode_frame(frame, self._config.camera.jpeg_quality)
        except (CameraError, ValueError) as e:
            error = classify_camera_error(e)
            self._camera.stop()
            self._fail(camera_error_message(error) or "Capture failed")
            return

        self._set_preview(data_url, frame)
        self._detect(image_data=data_url)

    def stop_camera(self) -> None:
        """Release the camera. A live session without a capture returns to IDLE."""
        was_active = self.camera_active
        self._camera.stop()
        if was_active and self._state is SessionState.ACQUIRING:
            self._transition(SessionState.IDLE)

    # ------------------------------------------------------------------
    # Detection and rendering
    # ------------------------------------------------------------------

    def _detect(self, *, image_url: Optional[str] = None, image_data: Optional[str] = None) -> None:
        self._busy = True
        self._transition(SessionState.DETECTING)
        try:
            records = self._proxy.detect(image_url=image_url, image_data=image_data)
            faces = parse_faces(records)
        except (ProxyRequestError, ValueError) as e:
            self._busy = False
            self._fail(str(e) or "Detection failed")
            return
        except Exception as e:
            logger.exception("Unexpected error during detection")
            self._busy = False
            self._fail(str(e) or "Detection failed")
            return

        self._busy = False
        self._faces = faces
        self._notice = NO_FACES_NOTICE if not faces else None
        logger.info("Detection finished: %d face(s)", len(faces))
        self._transition(SessionState.SHOWING_RESULTS)

    def _load_remote_preview(self, url: str) -> Optional[np.ndarray]:
        try:
            return decode_image(self._proxy.fetch_image(url))
        except FaceAppError as e:
            logger.warning("Preview unavailable for %s: %s", url, e)
            return None

    def render(self) -> Optional[np.ndarray]:
        """Render the preview with the current results.

        Returns None until both a preview image and a detection response
        (possibly empty, or cleared by an error) are available.
        """
        if self._preview is None or self._faces is None:
            return None
        return render_faces(self._preview, self._faces, self._config.visualization)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release the camera and the proxy client."""
        self.stop_camera()
        self._proxy.close()
        self._listeners.clear()

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
