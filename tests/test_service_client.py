"""
Tests for the external face service client.
"""

import asyncio

import httpx
import pytest

from face_detection_app.config import ServiceConfig
from face_detection_app.errors import FaceServiceError
from face_detection_app.payload import ImagePayload
from face_detection_app.service_client import FaceServiceClient, suggestion_for

_CONFIG = ServiceConfig(endpoint="https://face.example.com", key="k", timeout_seconds=5)


def _detect(handler, payload=None):
    async def run():
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client = FaceServiceClient(_CONFIG, http)
        try:
            return await client.detect(payload or ImagePayload(url="https://example.com/a.jpg"))
        finally:
            await http.aclose()

    return asyncio.run(run())


def test_suggestions_for_known_codes():
    """Test the fixed suggestion table."""
    assert "invalid or inaccessible" in suggestion_for("InvalidImageUrl")
    assert "JPG, PNG, GIF, or BMP" in suggestion_for("InvalidImageFormat")
    assert "between 1KB and 6MB" in suggestion_for("InvalidImageSize")
    assert "API version" in suggestion_for("InvalidRequest")
    assert "API key" in suggestion_for("Unauthorized")
    assert suggestion_for("SomethingElse") == ""
    assert suggestion_for(None) == ""


def test_timeout_is_reported_as_server_error():
    """Test that a timeout surfaces as a 500 instead of hanging."""

    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(FaceServiceError) as excinfo:
        _detect(handler)

    assert excinfo.value.status_code == 500
    assert "timed out" in excinfo.value.message


def test_error_message_fallbacks():
    """Test message fallback to a top-level 'message' field and code 'Unknown'."""

    def handler(request):
        return httpx.Response(400, json={"message": "Top-level message"})

    with pytest.raises(FaceServiceError) as excinfo:
        _detect(handler)

    assert excinfo.value.status_code == 400
    assert excinfo.value.message == "Top-level message"
    assert excinfo.value.code == "Unknown"


def test_invalid_image_size_from_service():
    """Test that a service-side size rejection keeps its code and suggestion."""

    def handler(request):
        return httpx.Response(
            400, json={"error": {"code": "InvalidImageSize", "message": "Image size is too small."}}
        )

    with pytest.raises(FaceServiceError) as excinfo:
        _detect(handler, ImagePayload(data=b"\x00" * 2048))

    assert excinfo.value.code == "InvalidImageSize"
    assert "1KB and 6MB" in excinfo.value.suggestion


def test_unexpected_response_shape():
    """Test that a non-list success body is rejected as a bad gateway."""

    def handler(request):
        return httpx.Response(200, json={"faces": []})

    with pytest.raises(FaceServiceError) as excinfo:
        _detect(handler)

    assert excinfo.value.status_code == 502
