"""
Detection proxy HTTP API.

This module provides the FastAPI application that bridges untrusted
clients to the external face-detection service without exposing the
service key.

Endpoints:
    POST /api/detect-faces  Forward one image (URL or inline data).
    GET  /api/health        Report configuration presence.
    GET  /api/test-azure    Canned detection against a public sample image.

All errors are converted to JSON responses at the request boundary.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from face_detection_app.config import AppConfig, require_service_credentials
from face_detection_app.errors import FaceServiceError, PayloadValidationError
from face_detection_app.payload import parse_payload
from face_detection_app.service_client import FaceServiceClient

logger = logging.getLogger(__name__)

router = APIRouter()


def _service(request: Request) -> FaceServiceClient:
    return request.app.state.service_client


def _format_size(num_bytes: int) -> str:
    if num_bytes % (1024 * 1024) == 0:
        return f"{num_bytes // (1024 * 1024)}MB"
    return f"{num_bytes} bytes"


async def _read_body(request: Request, limit: int) -> Optional[bytes]:
    """Read the request body, or return None once it exceeds limit bytes.

    A declared Content-Length over the limit is rejected before any of
    the body is read.
    """
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > limit:
        return None

    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > limit:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/detect-faces")
async def detect_faces(request: Request) -> Any:
    """Detect faces in one image supplied by URL or as inline base64 data.

    Body:
        {"imageUrl": "..."} or {"imageData": "data:image/jpeg;base64,..."}

    Returns:
        200 with the service's face array verbatim, 400 with {error} for
        invalid input, or the service-derived status with
        {error, code, suggestion, details} on downstream failure.
    """
    config: AppConfig = request.app.state.config

    limit = config.server.max_body_bytes
    body_bytes = await _read_body(request, limit)
    if body_bytes is None:
        logger.warning("Rejected request body over %d bytes", limit)
        return JSONResponse(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            content={"error": f"Request body too large. Maximum size is {_format_size(limit)}."},
        )

    try:
        body = json.loads(body_bytes)
    except ValueError:
        logger.warning("Validation error: request body is not valid JSON")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Request body must be valid JSON."},
        )

    try:
        payload = parse_payload(
            body,
            min_bytes=config.service.min_image_bytes,
            max_bytes=config.service.max_image_bytes,
        )
        return await _service(request).detect(payload)

    except PayloadValidationError as e:
        logger.warning("Validation error: %s", e)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": str(e)},
        )
    except FaceServiceError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_dict())
    except Exception as e:
        logger.exception("Unexpected error during face detection: %s", e)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=FaceServiceError(str(e) or "Face detection failed").to_dict(),
        )


@router.get("/health")
async def health(request: Request) -> dict:
    """Report whether the service endpoint and key are configured."""
    config: AppConfig = request.app.state.config
    return {
        "status": "OK",
        "message": "Face Detection API is running",
        "azureConfigured": config.service.configured,
        "endpoint": config.service.endpoint,
    }


@router.get("/test-azure")
async def test_azure(request: Request) -> Any:
    """Verify connectivity and key validity with a canned detection call."""
    try:
        count = await _service(request).check_connection()
    except FaceServiceError as e:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": e.message,
                "code": e.code,
                "statusCode": e.status_code,
            },
        )

    return {
        "success": True,
        "message": "Azure Face API is working correctly!",
        "facesDetected": count,
    }


def create_app(
    config: AppConfig,
    service_client: Optional[FaceServiceClient] = None,
) -> FastAPI:
    """Build the proxy application.

    Args:
        config: Application configuration. The service endpoint and key
                must be present.
        service_client: Optional pre-built client (tests inject one backed
                        by httpx.MockTransport).

    Raises:
        ConfigurationError: If the service endpoint or key is missing.
    """
    require_service_credentials(config)

    client = service_client or FaceServiceClient(config.service)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Azure endpoint: %s", config.service.endpoint)
        logger.info("Azure key configured (length: %d)", len(config.service.key))
        yield
        await client.aclose()
        logger.info("Face service client closed")

    app = FastAPI(title="Face Detection Proxy", lifespan=lifespan)
    app.state.config = config
    app.state.service_client = client

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.server.cors_origins),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")
    return app
