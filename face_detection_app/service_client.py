"""
Client for the external face-detection service (Azure Face API).

Responsibility:
    Build the outbound detect request for an ImagePayload, attach the
    subscription key, and translate any failure into a FaceServiceError
    carrying the status, message, code and suggestion returned to callers.

Non-goals:
    - No retries. A failed call is reported once.
    - No identity tokens or attribute recognition: both need elevated
      service authorization, so only geometric landmarks are requested.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from face_detection_app.config import ServiceConfig
from face_detection_app.errors import FaceServiceError
from face_detection_app.payload import ImagePayload

logger = logging.getLogger(__name__)

SAMPLE_IMAGE_URL = (
    "https://raw.githubusercontent.com/Azure-Samples/"
    "cognitive-services-sample-data-files/master/Face/images/detection1.jpg"
)

DETECT_PARAMS: Dict[str, str] = {
    "returnFaceId": "false",
    "returnFaceLandmarks": "true",
    "returnRecognitionModel": "false",
}

SUGGESTIONS: Dict[str, str] = {
    "InvalidImageUrl": "The image URL is invalid or inaccessible. Please check the URL.",
    "InvalidImageFormat": "The image format is not supported. Use JPG, PNG, GIF, or BMP.",
    "InvalidImageSize": "The image size is invalid. Image must be between 1KB and 6MB.",
    "InvalidRequest": "The request format is invalid. This might be an API version issue.",
    "Unauthorized": "Invalid API key. Please check your Azure subscription key.",
}

_KEY_HEADER = "Ocp-Apim-Subscription-Key"


def suggestion_for(code: Optional[str]) -> str:
    """Return the caller-facing hint for a service error code ('' if unknown)."""
    return SUGGESTIONS.get(code or "", "")


class FaceServiceClient:
    """Async client for the detect operation of the external service.

    Usage:
        client = FaceServiceClient(config.service)
        faces = await client.detect(payload)
        await client.aclose()

    An httpx.AsyncClient may be injected (tests pass one built on
    httpx.MockTransport); otherwise one is created with the configured
    timeout and owned by this instance.
    """

    def __init__(
        self,
        config: ServiceConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout_seconds)
        )

    @property
    def endpoint(self) -> str:
        return self._config.endpoint

    async def detect(self, payload: ImagePayload) -> List[Any]:
        """Forward one payload and return the service's detection array verbatim.

        Raises:
            FaceServiceError: On any transport or service failure.
        """
        headers = {_KEY_HEADER: self._config.key}

        if payload.is_url:
            logger.info("Detecting faces from URL: %s", payload.url)
            headers["Content-Type"] = "application/json"
            request_kwargs: Dict[str, Any] = {"json": {"url": payload.url}}
        else:
            logger.info("Detecting faces from %s", payload.describe())
            headers["Content-Type"] = "application/octet-stream"
            request_kwargs = {"content": payload.data}

        faces = await self._post(DETECT_PARAMS, headers, **request_kwargs)
        logger.info("Detected %d face(s)", len(faces))
        return faces

    async def check_connection(self) -> int:
        """Run a canned detection on the public sample image.

        Returns:
            Number of faces detected in the sample.

        Raises:
            FaceServiceError: If the service cannot be reached or rejects the key.
        """
        faces = await self.detect(ImagePayload(url=SAMPLE_IMAGE_URL))
        return len(faces)

    async def _post(self, params: Dict[str, str], headers: Dict[str, str], **kwargs) -> List[Any]:
        """POST to the detect URL and normalize every failure."""
        try:
            response = await self._http.post(
                self._config.detect_url, params=params, headers=headers, **kwargs
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise _error_from_response(e.response) from e
        except httpx.TimeoutException as e:
            logger.error("Face service timed out after %.1fs", self._config.timeout_seconds)
            raise FaceServiceError(
                f"Face service timed out after {self._config.timeout_seconds:g}s"
            ) from e
        except httpx.RequestError as e:
            logger.error("Face service unreachable: %s", e)
            raise FaceServiceError(str(e) or "Face detection failed") from e

        try:
            data = response.json()
        except ValueError as e:
            raise FaceServiceError(
                "Face service returned a non-JSON response",
                status_code=502,
                details=response.text[:500],
            ) from e

        if not isinstance(data, list):
            raise FaceServiceError(
                "Face service returned an unexpected response shape",
                status_code=502,
                details=data,
            )
        return data

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._http.aclose()


def _error_from_response(response: httpx.Response) -> FaceServiceError:
    """Build a FaceServiceError from a non-2xx service response."""
    try:
        body = response.json()
    except ValueError:
        body = None

    error_obj = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error_obj, dict):
        error_obj = {}

    message = (
        error_obj.get("message")
        or (body.get("message") if isinstance(body, dict) else None)
        or response.reason_phrase
        or "Face detection failed"
    )
    code = error_obj.get("code") or "Unknown"

    logger.error(
        "Face detection error: status=%s code=%s message=%s",
        response.status_code, code, message,
    )
    return FaceServiceError(
        message=str(message),
        status_code=response.status_code,
        code=str(code),
        suggestion=suggestion_for(code),
        details=body,
    )
