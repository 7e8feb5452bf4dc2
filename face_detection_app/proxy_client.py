"""
Client-side access to the detection proxy.

Posts one image payload to POST /api/detect-faces and returns the face
array, or raises ProxyRequestError carrying the message the proxy put in
its 'error' field. Also fetches remote images for local preview.
"""

import logging
from typing import Any, List, Optional

import httpx

from face_detection_app.config import ClientConfig
from face_detection_app.errors import ProxyRequestError

logger = logging.getLogger(__name__)

DETECT_PATH = "/api/detect-faces"


class ProxyClient:
    """Synchronous client for the detection proxy.

    An httpx.Client may be injected (tests pass one built on
    httpx.MockTransport); otherwise one is created and owned here.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._owns_client = http_client is None
        self._http = http_client or httpx.Client(
            timeout=httpx.Timeout(self._config.timeout_seconds),
            follow_redirects=True,
        )

    def detect(self, *, image_url: Optional[str] = None, image_data: Optional[str] = None) -> List[Any]:
        """Submit one image and return the raw face records.

        Raises:
            ProxyRequestError: On transport failure or a non-2xx response.
        """
        body = {"imageUrl": image_url} if image_url is not None else {"imageData": image_data}
        url = f"{self._config.proxy_url.rstrip('/')}{DETECT_PATH}"

        try:
            response = self._http.post(url, json=body)
        except httpx.RequestError as e:
            logger.error("Proxy request failed: %s", e)
            raise ProxyRequestError(str(e) or "Detection failed") from e

        if response.is_error:
            raise ProxyRequestError(_error_message(response), response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise ProxyRequestError("Proxy returned a non-JSON response", response.status_code) from e
        return data or []

    def fetch_image(self, url: str) -> bytes:
        """Download a remote image for preview.

        Raises:
            ProxyRequestError: If the image cannot be downloaded.
        """
        try:
            response = self._http.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ProxyRequestError(f"Failed to load image preview: {e}") from e
        return response.content

    def close(self) -> None:
        if self._owns_client:
            self._http.close()


def _error_message(response: httpx.Response) -> str:
    """Extract the proxy's error text, falling back to the status line."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and body.get("error"):
        message = str(body["error"])
        if body.get("suggestion"):
            logger.info("Proxy suggestion: %s", body["suggestion"])
        return message

    return f"Detection failed ({response.status_code} {response.reason_phrase})".strip()
