"""
Tests for the serializer module.
"""

import json

from face_detection_app.face import parse_faces
from face_detection_app.serializer import save_json


def test_save_json(tmp_path):
    """Test the exported schema and that inline sources are not embedded."""
    faces = parse_faces([
        {"faceRectangle": {"left": 10, "top": 20, "width": 100, "height": 120}},
        {
            "faceRectangle": {"left": 150, "top": 30, "width": 80, "height": 90},
            "faceLandmarks": {"noseTip": {"x": 190.5, "y": 70.0}},
        },
    ])
    output = tmp_path / "out" / "faces.json"

    save_json(faces, str(output), source="data:image/jpeg;base64,AAAA")

    payload = json.loads(output.read_text(encoding="utf-8"))
    assert payload["source"] == "inline"
    assert payload["total_faces"] == 2
    assert [f["label"] for f in payload["faces"]] == ["Face 1", "Face 2"]
    assert payload["faces"][0]["faceRectangle"] == {"left": 10, "top": 20, "width": 100, "height": 120}
    assert "faceLandmarks" not in payload["faces"][0]
    assert payload["faces"][1]["faceLandmarks"] == {"noseTip": {"x": 190.5, "y": 70.0}}
