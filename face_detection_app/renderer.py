"""
Visualization of detection results.

Responsibility:
    Draw the preview image onto a canvas (optionally scaled by a device
    pixel ratio) and overlay, per detected face, a rectangle, a sequential
    "Face N" label and a marker at each landmark point. This is a pure
    rendering module: it produces an annotated copy and performs no I/O.

Non-goals:
    - No file writing or detection logic.
    - Window management is limited to show_canvas.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import cv2
import numpy as np

from face_detection_app.config import VisualizationConfig
from face_detection_app.face import DetectedFace, FaceRectangle, Point

# Hard-coded rendering constants (cosmetic internals, not user-facing)
_FONT = cv2.FONT_HERSHEY_SIMPLEX
_FONT_THICKNESS = 2
_LABEL_OFFSET_X = 6
_LABEL_OFFSET_Y = 8
_LABEL_MIN_Y = 20

WINDOW_NAME = "Face Detection"


@dataclass(frozen=True)
class OverlayItem:
    """Everything drawn for one face, in source-image pixels."""

    label: str
    rectangle: FaceRectangle
    landmarks: Tuple[Point, ...]


def build_overlay(faces: Sequence[DetectedFace]) -> List[OverlayItem]:
    """Describe the overlay for a result set: one item per face, labelled Face 1..N."""
    return [
        OverlayItem(
            label=f"Face {idx}",
            rectangle=face.rectangle,
            landmarks=tuple(face.landmarks.values()),
        )
        for idx, face in enumerate(faces, start=1)
    ]


def render_faces(
    image: np.ndarray,
    faces: Sequence[DetectedFace],
    config: VisualizationConfig,
) -> np.ndarray:
    """Draw the image and its detection overlay onto a new canvas.

    Args:
        image: Preview BGR image (not modified).
        faces: Detected faces; may be empty (image only).
        config: Visualization parameters (color, thickness, pixel ratio).

    Returns:
        A new BGR canvas of the image's natural size multiplied by
        config.pixel_ratio, with the overlay drawn in scaled coordinates.
    """
    ratio = config.pixel_ratio
    h, w = image.shape[:2]

    if ratio == 1.0:
        canvas = image.copy()
    else:
        canvas = cv2.resize(
            image,
            (round(w * ratio), round(h * ratio)),
            interpolation=cv2.INTER_CUBIC if ratio > 1 else cv2.INTER_AREA,
        )

    def scale(value: float) -> int:
        return int(round(value * ratio))

    thickness = max(1, scale(config.thickness))
    radius = max(1, scale(config.landmark_radius))
    font_scale = config.font_scale * ratio

    for item in build_overlay(faces):
        rect = item.rectangle

        cv2.rectangle(
            canvas,
            (scale(rect.left), scale(rect.top)),
            (scale(rect.right), scale(rect.bottom)),
            color=config.box_color,
            thickness=thickness,
        )

        # Label above the box, pushed down when too close to the top edge
        label_y = max(_LABEL_MIN_Y, rect.top - _LABEL_OFFSET_Y)
        cv2.putText(
            canvas,
            item.label,
            (scale(rect.left + _LABEL_OFFSET_X), scale(label_y)),
            _FONT,
            font_scale,
            config.box_color,
            max(1, scale(_FONT_THICKNESS)),
            cv2.LINE_AA,
        )

        for point in item.landmarks:
            cv2.circle(
                canvas,
                (scale(point.x), scale(point.y)),
                radius,
                config.box_color,
                thickness=cv2.FILLED,
            )

    return canvas


def show_canvas(canvas: np.ndarray, wait_ms: int = 0) -> int:
    """Show a rendered canvas and return the key code pressed (masked to 8 bits)."""
    cv2.imshow(WINDOW_NAME, canvas)
    return cv2.waitKey(wait_ms) & 0xFF
