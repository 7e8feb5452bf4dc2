"""
Face Detection App — a capture & render client and a detection proxy
for a cloud face-detection service.

Public API:
    - create_app: Build the FastAPI detection proxy.
    - Session: The client state holder (acquire, submit, render).
    - DetectedFace: A face record parsed from a detection response.
    - load_config: Layered configuration loader.

Usage:
    from face_detection_app import Session, load_config

    with Session(load_config()) as session:
        session.submit_url("https://example.com/face.jpg")
        canvas = session.render()
"""

from face_detection_app.config import AppConfig, load_config
from face_detection_app.face import DetectedFace
from face_detection_app.server import create_app
from face_detection_app.session import Session, SessionState

__all__ = [
    "AppConfig",
    "DetectedFace",
    "Session",
    "SessionState",
    "create_app",
    "load_config",
]
