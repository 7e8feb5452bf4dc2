"""
Configuration management for the face detection app.

Provides a layered configuration system with the following precedence
(highest to lowest):

    CLI arguments > Environment variables > YAML config file > Defaults

Design constraints:
    - The client MUST run with zero configuration (safe defaults only).
    - The proxy additionally requires the service endpoint and key; their
      absence is fatal at startup (see require_service_credentials).
    - Missing or invalid values fail early and loudly.

Non-goals:
    - No dynamic reloading.
    - No database-backed or remote configuration.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

import yaml

from face_detection_app.errors import ConfigurationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Project root resolution
# ---------------------------------------------------------------------------
_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def get_project_root() -> Path:
    """Return the resolved project root directory."""
    return _PROJECT_ROOT


# ---------------------------------------------------------------------------
# Configuration dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServiceConfig:
    """External face-detection service configuration.

    Attributes:
        endpoint: Base URL of the Azure Face resource.
        key: Subscription key sent as Ocp-Apim-Subscription-Key.
        timeout_seconds: Ceiling for a single outbound detection call.
        min_image_bytes: Smallest accepted inline payload (inclusive).
        max_image_bytes: Largest accepted inline payload (inclusive).
    """

    endpoint: str = ""
    key: str = ""
    timeout_seconds: float = 30.0
    min_image_bytes: int = 1024
    max_image_bytes: int = 6 * 1024 * 1024

    @property
    def configured(self) -> bool:
        """True when both endpoint and key are present."""
        return bool(self.endpoint and self.key)

    @property
    def detect_url(self) -> str:
        """Full URL of the detect operation (trailing slash removed)."""
        return f"{self.endpoint.rstrip('/')}/face/v1.0/detect"


@dataclass(frozen=True)
class ServerConfig:
    """Proxy HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 3001
    cors_origins: Tuple[str, ...] = ("*",)
    max_body_bytes: int = 50 * 1024 * 1024


@dataclass(frozen=True)
class ClientConfig:
    """Client-side configuration.

    Attributes:
        proxy_url: Base URL of the detection proxy.
        timeout_seconds: Ceiling for a single call to the proxy.
    """

    proxy_url: str = "http://localhost:3001"
    timeout_seconds: float = 60.0


@dataclass(frozen=True)
class CameraConfig:
    """Live camera configuration.

    Attributes:
        device: Integer device index passed to cv2.VideoCapture.
        width: Requested capture width.
        height: Requested capture height.
        jpeg_quality: JPEG quality (0-100) used when encoding a capture.
    """

    device: int = 0
    width: int = 1280
    height: int = 720
    jpeg_quality: int = 95


@dataclass(frozen=True)
class VisualizationConfig:
    """Rendering parameters for detection overlays.

    Attributes:
        box_color: BGR color for rectangles, labels and landmarks.
        thickness: Rectangle line thickness in pixels.
        landmark_radius: Radius of the landmark markers.
        pixel_ratio: Canvas scale factor for high-density displays.
        font_scale: Label font scale.
    """

    box_color: Tuple[int, int, int] = (166, 249, 126)
    thickness: int = 4
    landmark_radius: int = 3
    pixel_ratio: float = 1.0
    font_scale: float = 0.7


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    service: ServiceConfig = field(default_factory=ServiceConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    camera: CameraConfig = field(default_factory=CameraConfig)
    visualization: VisualizationConfig = field(default_factory=VisualizationConfig)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _validate(config: AppConfig) -> None:
    """Validate configuration values. Raises ValueError on invalid state."""

    if config.service.timeout_seconds <= 0:
        raise ValueError(
            f"service.timeout_seconds must be positive, "
            f"got {config.service.timeout_seconds}."
        )

    if config.service.min_image_bytes <= 0:
        raise ValueError(
            f"service.min_image_bytes must be positive, "
            f"got {config.service.min_image_bytes}."
        )

    if config.service.max_image_bytes < config.service.min_image_bytes:
        raise ValueError(
            f"service.max_image_bytes ({config.service.max_image_bytes}) must not be "
            f"smaller than service.min_image_bytes ({config.service.min_image_bytes})."
        )

    if not (0 < config.server.port < 65536):
        raise ValueError(f"server.port must be in [1, 65535], got {config.server.port}.")

    if config.server.max_body_bytes <= 0:
        raise ValueError(
            f"server.max_body_bytes must be positive, "
            f"got {config.server.max_body_bytes}."
        )

    if config.client.timeout_seconds <= 0:
        raise ValueError(
            f"client.timeout_seconds must be positive, "
            f"got {config.client.timeout_seconds}."
        )

    if not config.client.proxy_url.startswith(("http://", "https://")):
        raise ValueError(
            f"client.proxy_url must be an http(s) URL, got '{config.client.proxy_url}'."
        )

    if config.camera.device < 0:
        raise ValueError(f"camera.device must be >= 0, got {config.camera.device}.")

    if any(d <= 0 for d in (config.camera.width, config.camera.height)):
        raise ValueError(
            f"camera dimensions must be positive, "
            f"got {config.camera.width}x{config.camera.height}."
        )

    if not (0 <= config.camera.jpeg_quality <= 100):
        raise ValueError(
            f"camera.jpeg_quality must be in [0, 100], got {config.camera.jpeg_quality}."
        )

    if config.visualization.pixel_ratio <= 0:
        raise ValueError(
            f"visualization.pixel_ratio must be positive, "
            f"got {config.visualization.pixel_ratio}."
        )

    if config.visualization.thickness <= 0:
        raise ValueError(
            f"visualization.thickness must be positive, "
            f"got {config.visualization.thickness}."
        )


def require_service_credentials(config: AppConfig) -> None:
    """Fail fast if the proxy cannot reach the external service.

    Raises:
        ConfigurationError: If the endpoint or the key is missing.
    """
    missing = []
    if not config.service.endpoint:
        missing.append("AZURE_FACE_ENDPOINT")
    if not config.service.key:
        missing.append("AZURE_FACE_KEY")

    if missing:
        raise ConfigurationError(
            f"Azure credentials not configured: missing {', '.join(missing)}. "
            f"Set them in the environment or in a .env file."
        )


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------

def _parse_tuple(value, expected_len: int, cast_type=float):
    """Convert a list from YAML into a tuple of the expected type and length."""
    if isinstance(value, (list, tuple)):
        if len(value) != expected_len:
            raise ValueError(
                f"Expected {expected_len} values, got {len(value)}: {value}"
            )
        return tuple(cast_type(v) for v in value)
    return value


def _build_service_config(raw: dict) -> ServiceConfig:
    """Build ServiceConfig from a raw YAML dict."""
    kwargs = {}
    if "endpoint" in raw:
        kwargs["endpoint"] = str(raw["endpoint"] or "")
    if "key" in raw:
        kwargs["key"] = str(raw["key"] or "")
    if "timeout_seconds" in raw:
        kwargs["timeout_seconds"] = float(raw["timeout_seconds"])
    if "min_image_bytes" in raw:
        kwargs["min_image_bytes"] = int(raw["min_image_bytes"])
    if "max_image_bytes" in raw:
        kwargs["max_image_bytes"] = int(raw["max_image_bytes"])
    return ServiceConfig(**kwargs)


def _build_server_config(raw: dict) -> ServerConfig:
    """Build ServerConfig from a raw YAML dict."""
    kwargs = {}
    if "host" in raw:
        kwargs["host"] = str(raw["host"])
    if "port" in raw:
        kwargs["port"] = int(raw["port"])
    if "cors_origins" in raw:
        origins = raw["cors_origins"]
        if isinstance(origins, str):
            origins = [o.strip() for o in origins.split(",") if o.strip()]
        kwargs["cors_origins"] = tuple(str(o) for o in origins)
    if "max_body_bytes" in raw:
        kwargs["max_body_bytes"] = int(raw["max_body_bytes"])
    return ServerConfig(**kwargs)


def _build_client_config(raw: dict) -> ClientConfig:
    """Build ClientConfig from a raw YAML dict."""
    kwargs = {}
    if "proxy_url" in raw:
        kwargs["proxy_url"] = str(raw["proxy_url"]).rstrip("/")
    if "timeout_seconds" in raw:
        kwargs["timeout_seconds"] = float(raw["timeout_seconds"])
    return ClientConfig(**kwargs)


def _build_camera_config(raw: dict) -> CameraConfig:
    """Build CameraConfig from a raw YAML dict."""
    kwargs = {}
    for key in ("device", "width", "height", "jpeg_quality"):
        if key in raw:
            kwargs[key] = int(raw[key])
    return CameraConfig(**kwargs)


def _build_visualization_config(raw: dict) -> VisualizationConfig:
    """Build VisualizationConfig from a raw YAML dict."""
    kwargs = {}
    if "box_color" in raw:
        kwargs["box_color"] = _parse_tuple(raw["box_color"], 3, int)
    if "thickness" in raw:
        kwargs["thickness"] = int(raw["thickness"])
    if "landmark_radius" in raw:
        kwargs["landmark_radius"] = int(raw["landmark_radius"])
    if "pixel_ratio" in raw:
        kwargs["pixel_ratio"] = float(raw["pixel_ratio"])
    if "font_scale" in raw:
        kwargs["font_scale"] = float(raw["font_scale"])
    return VisualizationConfig(**kwargs)


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "FACE_APP_"


def _apply_env_overrides(raw: dict) -> dict:
    """Apply environment variable overrides to the raw config dict.

    The Azure variables and PORT keep the names used by the deployed
    service; everything else follows the FACE_APP_<SECTION>_<KEY> pattern:
        FACE_APP_CLIENT_PROXY_URL=http://localhost:3001
        FACE_APP_CAMERA_DEVICE=1
    """
    env_map = {
        "AZURE_FACE_ENDPOINT": ("service", "endpoint"),
        "AZURE_FACE_KEY": ("service", "key"),
        "PORT": ("server", "port"),
        f"{_ENV_PREFIX}SERVICE_TIMEOUT_SECONDS": ("service", "timeout_seconds"),
        f"{_ENV_PREFIX}SERVER_HOST": ("server", "host"),
        f"{_ENV_PREFIX}SERVER_CORS_ORIGINS": ("server", "cors_origins"),
        f"{_ENV_PREFIX}SERVER_MAX_BODY_BYTES": ("server", "max_body_bytes"),
        f"{_ENV_PREFIX}CLIENT_PROXY_URL": ("client", "proxy_url"),
        f"{_ENV_PREFIX}CLIENT_TIMEOUT_SECONDS": ("client", "timeout_seconds"),
        f"{_ENV_PREFIX}CAMERA_DEVICE": ("camera", "device"),
        f"{_ENV_PREFIX}VISUALIZATION_PIXEL_RATIO": ("visualization", "pixel_ratio"),
    }

    for env_var, (section, key) in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            if raw.get(section) is None:
                raw[section] = {}
            raw[section][key] = value
            if key == "key":
                logger.debug("Config override from env: %s=<redacted>", env_var)
            else:
                logger.debug("Config override from env: %s=%s", env_var, value)

    return raw


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------

def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Load and validate application configuration.

    Precedence (highest → lowest):
        Environment variables > YAML file > Hard-coded defaults

    Args:
        config_path: Path to a YAML configuration file. If None,
                     the app runs entirely on defaults plus environment.

    Returns:
        A validated, frozen AppConfig instance.

    Raises:
        FileNotFoundError: If config_path is provided but does not exist.
        ValueError: If any configuration value is invalid.
        yaml.YAMLError: If the YAML file is malformed.
    """
    raw: dict = {}

    # --- Layer 1: YAML file ---
    if config_path is not None:
        resolved = Path(config_path)
        if not resolved.is_absolute():
            resolved = _PROJECT_ROOT / resolved

        if not resolved.is_file():
            raise FileNotFoundError(
                f"Configuration file not found: {resolved}. "
                f"Provide a valid path or omit to use defaults."
            )

        logger.info("Loading config from: %s", resolved)
        with open(resolved, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    # --- Layer 2: Environment variable overrides ---
    raw = _apply_env_overrides(raw)

    # --- Build typed configs ---
    config = AppConfig(
        service=_build_service_config(raw.get("service") or {}),
        server=_build_server_config(raw.get("server") or {}),
        client=_build_client_config(raw.get("client") or {}),
        camera=_build_camera_config(raw.get("camera") or {}),
        visualization=_build_visualization_config(raw.get("visualization") or {}),
    )

    # --- Validate ---
    _validate(config)

    logger.debug("Configuration loaded (service configured=%s)", config.service.configured)
    return config
