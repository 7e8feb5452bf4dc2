"""
Tests for the client session.

The proxy is replaced by an httpx.MockTransport and the camera by a fake
capture object, so the full acquire → detect → render cycle runs offline.
"""

import json

import cv2
import httpx
import numpy as np
import pytest

from face_detection_app.camera import Camera
from face_detection_app.config import AppConfig, CameraConfig, ClientConfig, VisualizationConfig
from face_detection_app.errors import CameraError, CameraErrorKind, InvalidTransitionError
from face_detection_app.proxy_client import ProxyClient
from face_detection_app.session import NO_FACES_NOTICE, Session, SessionState

from test_camera import FakeCapture

_COLOR = (0, 255, 0)
_CONFIG = AppConfig(
    client=ClientConfig(proxy_url="http://proxy.test"),
    visualization=VisualizationConfig(box_color=_COLOR, thickness=2),
)
_IMAGE_URL = "https://example.com/face.jpg"
_ONE_FACE = [{"faceRectangle": {"left": 10, "top": 20, "width": 100, "height": 120}}]


def _jpeg(height=200, width=200) -> bytes:
    ok, buffer = cv2.imencode(".jpg", np.zeros((height, width, 3), dtype=np.uint8))
    assert ok
    return buffer.tobytes()


class FakeProxy:
    """Serves the detect endpoint and remote images."""

    def __init__(self, faces=None, status_code=200, error=None):
        self.faces = _ONE_FACE if faces is None else faces
        self.status_code = status_code
        self.error = error
        self.detect_bodies = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, content=_jpeg())
        self.detect_bodies.append(json.loads(request.content))
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": self.error})
        return httpx.Response(200, json=self.faces)


def _session(proxy: FakeProxy, capture=None, camera_factory=None) -> Session:
    http = httpx.Client(transport=httpx.MockTransport(proxy))
    factory = camera_factory or (lambda device: capture or FakeCapture())
    camera = Camera(CameraConfig(), capture_factory=factory)
    return Session(_CONFIG, proxy=ProxyClient(_CONFIG.client, http), camera=camera)


def test_url_scenario_end_to_end():
    """Test URL submission: body unchanged, one rectangle labelled Face 1."""
    proxy = FakeProxy()
    states = []
    session = _session(proxy)
    session.subscribe(lambda snap: states.append(snap.state))

    session.submit_url(_IMAGE_URL)

    assert proxy.detect_bodies == [{"imageUrl": _IMAGE_URL}]
    assert session.state is SessionState.SHOWING_RESULTS
    assert states == [
        SessionState.ACQUIRING,
        SessionState.PREVIEWING,
        SessionState.DETECTING,
        SessionState.SHOWING_RESULTS,
    ]
    assert len(session.faces) == 1
    assert session.faces[0].rectangle.to_dict() == _ONE_FACE[0]["faceRectangle"]

    canvas = session.render()
    assert canvas is not None
    assert tuple(canvas[80, 10]) == _COLOR
    assert tuple(canvas[80, 110]) == _COLOR


def test_blank_url_is_ignored():
    """Test that an empty URL does not start a submission."""
    proxy = FakeProxy()
    session = _session(proxy)
    session.submit_url("   ")

    assert session.state is SessionState.IDLE
    assert proxy.detect_bodies == []


def test_zero_faces_surfaces_notice():
    """Test that an empty response renders the image only with a notice."""
    session = _session(FakeProxy(faces=[]))
    session.submit_url(_IMAGE_URL)

    assert session.state is SessionState.SHOWING_RESULTS
    assert session.notice == NO_FACES_NOTICE
    assert session.faces == []
    assert np.array_equal(session.render(), session.preview)


def test_request_failure_is_caught_and_clears_results():
    """Test that a proxy failure becomes session state, not an exception."""
    session = _session(FakeProxy())
    session.submit_url(_IMAGE_URL)
    assert len(session.faces) == 1

    failing = _session(FakeProxy(status_code=500, error="Face service timed out after 30s"))
    failing.submit_url(_IMAGE_URL)

    assert failing.state is SessionState.ERROR
    assert failing.error == "Face service timed out after 30s"
    assert failing.faces == []
    assert not failing.busy


def test_transport_failure_is_caught():
    """Test that an unreachable proxy is reported as a message."""

    def handler(request):
        raise httpx.ConnectError("connection refused")

    http = httpx.Client(transport=httpx.MockTransport(handler))
    session = Session(_CONFIG, proxy=ProxyClient(_CONFIG.client, http))
    session.submit_url(_IMAGE_URL)

    assert session.state is SessionState.ERROR
    assert "connection refused" in session.error
    assert session.preview is None
    assert session.render() is None


def test_file_submission_sends_data_url(tmp_path):
    """Test that a local file is posted as an inline data URL."""
    image_path = tmp_path / "face.jpg"
    image_path.write_bytes(_jpeg(120, 160))
    proxy = FakeProxy()
    session = _session(proxy)

    session.submit_file(image_path)

    assert session.state is SessionState.SHOWING_RESULTS
    assert proxy.detect_bodies[0]["imageData"].startswith("data:image/jpeg;base64,")
    assert session.preview.shape == (120, 160, 3)


def test_unreadable_file_is_an_error(tmp_path):
    """Test that a missing file is surfaced without a request."""
    proxy = FakeProxy()
    session = _session(proxy)

    session.submit_file(tmp_path / "missing.jpg")

    assert session.state is SessionState.ERROR
    assert "Failed to read image file" in session.error
    assert proxy.detect_bodies == []


def test_camera_capture_submits_mirrored_frame():
    """Test the camera path: mirrored preview, device released, inline submit."""
    capture = FakeCapture()
    proxy = FakeProxy()
    session = _session(proxy, capture=capture)

    session.start_camera()
    assert session.camera_active
    assert session.state is SessionState.ACQUIRING

    session.capture_photo()

    assert capture.released
    assert not session.camera_active
    assert np.array_equal(session.preview, capture.frame[:, ::-1])
    assert proxy.detect_bodies[0]["imageData"].startswith("data:image/jpeg;base64,")
    assert session.state is SessionState.SHOWING_RESULTS


def test_stop_camera_returns_to_idle():
    """Test explicit stop releases the device."""
    capture = FakeCapture()
    session = _session(FakeProxy(), capture=capture)
    session.start_camera()
    session.stop_camera()

    assert capture.released
    assert session.state is SessionState.IDLE


def test_other_acquisition_path_releases_camera():
    """Test that submitting a URL while the camera is live stops it."""
    capture = FakeCapture()
    session = _session(FakeProxy(), capture=capture)
    session.start_camera()

    session.submit_url(_IMAGE_URL)

    assert capture.released
    assert not session.camera_active
    assert session.state is SessionState.SHOWING_RESULTS


def test_close_releases_camera():
    """Test teardown releases the device."""
    capture = FakeCapture()
    with _session(FakeProxy(), capture=capture) as session:
        session.start_camera()
    assert capture.released


class DriverFailureCapture(FakeCapture):
    """A capture whose driver raises from read()."""

    def read(self):
        raise cv2.error("driver failure")


def test_driver_error_during_live_preview_is_caught():
    """Test that an OpenCV read error releases the device and sets ERROR."""
    capture = DriverFailureCapture()
    session = _session(FakeProxy(), capture=capture)
    session.start_camera()

    assert session.live_frame() is None

    assert session.state is SessionState.ERROR
    assert "driver failure" in session.error
    assert capture.released
    assert not session.camera_active


def test_driver_error_during_capture_is_caught():
    """Test that an OpenCV read error on capture never reaches the caller."""
    capture = DriverFailureCapture()
    proxy = FakeProxy()
    session = _session(proxy, capture=capture)
    session.start_camera()

    session.capture_photo()

    assert session.state is SessionState.ERROR
    assert "driver failure" in session.error
    assert capture.released
    assert proxy.detect_bodies == []


def test_camera_permission_denied_message():
    """Test that a classified camera failure becomes a distinct message."""

    def factory(device):
        raise CameraError(CameraErrorKind.PERMISSION_DENIED, "denied")

    session = _session(FakeProxy(), camera_factory=factory)
    session.start_camera()

    assert session.state is SessionState.ERROR
    assert session.error == "Camera permission denied"
    assert not session.camera_active


def test_submission_while_busy_is_ignored():
    """Test the advisory busy flag against a re-entrant submission."""
    proxy = FakeProxy()
    session = _session(proxy)
    busy_while_detecting = []

    def resubmit(snapshot):
        if snapshot.state is SessionState.DETECTING:
            busy_while_detecting.append(snapshot.busy)
            session.submit_url("https://example.com/other.jpg")

    session.subscribe(resubmit)
    session.submit_url(_IMAGE_URL)

    assert busy_while_detecting == [True]
    assert proxy.detect_bodies == [{"imageUrl": _IMAGE_URL}]
    assert not session.busy


def test_invalid_transition_raises():
    """Test that undefined edges of the state machine are rejected."""
    session = _session(FakeProxy())
    with pytest.raises(InvalidTransitionError):
        session._transition(SessionState.SHOWING_RESULTS)
