"""
Serialization of client detection results.

Responsibility:
    Export the faces detected for one image to a JSON file for offline
    inspection. The data is never read back by the app.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Sequence

from face_detection_app.face import DetectedFace

logger = logging.getLogger(__name__)


def save_json(
    faces: Sequence[DetectedFace],
    output_path: str,
    source: Optional[str] = None,
) -> None:
    """Export the faces of one detection response to a JSON file.

    Output schema:
        {
            "source": "https://..." | "inline" | null,
            "faces": [
                {"label": "Face 1", "faceRectangle": {...}, "faceLandmarks": {...}}
            ],
            "total_faces": N
        }

    Inline data URLs are recorded as "inline" rather than embedded.

    Raises:
        OSError: If the output path is not writable.
    """
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)

    if source is not None and source.startswith("data:"):
        source = "inline"

    payload = {
        "source": source,
        "faces": [
            {"label": f"Face {idx}", **face.to_dict()}
            for idx, face in enumerate(faces, start=1)
        ],
        "total_faces": len(faces),
    }

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)

    logger.info("JSON output saved: %s (%d faces)", output_path, len(faces))
