"""
Detected face data transfer objects.

This module defines the DetectedFace dataclass, the client-side view of
one record returned by the face-detection service. The proxy relays the
service JSON verbatim; these types exist so the renderer works with typed
coordinates instead of nested dicts.

Non-goals:
    - No rendering logic.
    - No identity: faces are scoped to one response and never correlated.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping


@dataclass(frozen=True, slots=True)
class Point:
    """A named landmark coordinate in source-image pixels."""

    x: float
    y: float


@dataclass(frozen=True, slots=True)
class FaceRectangle:
    """Axis-aligned face bounding box in source-image pixels.

    Attributes:
        left: Top-left x coordinate.
        top: Top-left y coordinate.
        width: Box width.
        height: Box height.
    """

    left: int
    top: int
    width: int
    height: int

    @property
    def right(self) -> int:
        """Bottom-right x coordinate."""
        return self.left + self.width

    @property
    def bottom(self) -> int:
        """Bottom-right y coordinate."""
        return self.top + self.height

    def to_dict(self) -> dict:
        """Return a plain dict in the service's field naming."""
        return {
            "left": self.left,
            "top": self.top,
            "width": self.width,
            "height": self.height,
        }


@dataclass(frozen=True, slots=True)
class DetectedFace:
    """A single detected face with its rectangle and optional landmarks."""

    rectangle: FaceRectangle
    landmarks: Dict[str, Point] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "DetectedFace":
        """Parse one service record.

        Raises:
            ValueError: If the record has no usable faceRectangle.
        """
        rect = raw.get("faceRectangle")
        if not isinstance(rect, Mapping):
            raise ValueError(f"Face record has no faceRectangle: {raw!r}")

        try:
            rectangle = FaceRectangle(
                left=int(rect["left"]),
                top=int(rect["top"]),
                width=int(rect["width"]),
                height=int(rect["height"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed faceRectangle {rect!r}: {e}") from e

        landmarks: Dict[str, Point] = {}
        for name, point in (raw.get("faceLandmarks") or {}).items():
            # Partial points are skipped rather than rejected
            if isinstance(point, Mapping) and "x" in point and "y" in point:
                landmarks[name] = Point(x=float(point["x"]), y=float(point["y"]))

        return cls(rectangle=rectangle, landmarks=landmarks)

    def to_dict(self) -> dict:
        """Return a plain dict suitable for JSON serialization."""
        payload: Dict[str, Any] = {"faceRectangle": self.rectangle.to_dict()}
        if self.landmarks:
            payload["faceLandmarks"] = {
                name: {"x": p.x, "y": p.y} for name, p in self.landmarks.items()
            }
        return payload


def parse_faces(records: Any) -> List[DetectedFace]:
    """Parse a detection array into DetectedFace objects.

    Raises:
        ValueError: If records is not a list or a record is malformed.
    """
    if records is None:
        return []
    if not isinstance(records, list):
        raise ValueError(
            f"Expected a list of face records, got {type(records).__name__}."
        )
    return [DetectedFace.from_dict(r) for r in records]
