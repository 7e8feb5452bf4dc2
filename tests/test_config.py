"""
Tests for the configuration module.
"""

import pytest

from face_detection_app.config import (
    AppConfig,
    CameraConfig,
    ClientConfig,
    ServiceConfig,
    _validate,
    load_config,
    require_service_credentials,
)
from face_detection_app.errors import ConfigurationError

_ENV_VARS = (
    "AZURE_FACE_ENDPOINT",
    "AZURE_FACE_KEY",
    "PORT",
    "FACE_APP_CLIENT_PROXY_URL",
    "FACE_APP_CAMERA_DEVICE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_load_defaults():
    """Test loading configuration without any file."""
    config = load_config(None)
    assert isinstance(config, AppConfig)
    assert config.server.port == 3001
    assert config.service.min_image_bytes == 1024
    assert config.service.max_image_bytes == 6 * 1024 * 1024
    assert not config.service.configured


def test_validation_failure():
    """Test fail-fast validation."""
    bad_config = AppConfig(camera=CameraConfig(jpeg_quality=150))
    with pytest.raises(ValueError, match="jpeg_quality"):
        _validate(bad_config)

    bad_config = AppConfig(client=ClientConfig(proxy_url="localhost:3001"))
    with pytest.raises(ValueError, match="proxy_url"):
        _validate(bad_config)

    bad_config = AppConfig(service=ServiceConfig(min_image_bytes=2048, max_image_bytes=1024))
    with pytest.raises(ValueError, match="max_image_bytes"):
        _validate(bad_config)


def test_env_override(monkeypatch):
    """Test environment variable overrides."""
    monkeypatch.setenv("AZURE_FACE_ENDPOINT", "https://face.example.com/")
    monkeypatch.setenv("AZURE_FACE_KEY", "secret")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("FACE_APP_CAMERA_DEVICE", "2")

    config = load_config(None)

    assert config.service.configured
    assert config.service.detect_url == "https://face.example.com/face/v1.0/detect"
    assert config.server.port == 8080
    assert config.camera.device == 2


def test_yaml_file(tmp_path, monkeypatch):
    """Test loading a YAML file, with environment taking precedence."""
    config_file = tmp_path / "app.yaml"
    config_file.write_text(
        "service:\n"
        "  endpoint: https://yaml.example.com\n"
        "  key: from-yaml\n"
        "visualization:\n"
        "  box_color: [0, 0, 255]\n"
        "  pixel_ratio: 2\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("AZURE_FACE_KEY", "from-env")

    config = load_config(str(config_file))

    assert config.service.endpoint == "https://yaml.example.com"
    assert config.service.key == "from-env"
    assert config.visualization.box_color == (0, 0, 255)
    assert config.visualization.pixel_ratio == 2.0


def test_yaml_empty_sections_use_defaults(tmp_path, monkeypatch):
    """Test that a section header with no keys falls back to defaults."""
    config_file = tmp_path / "app.yaml"
    config_file.write_text(
        "service:\n"
        "server:\n"
        "  port: 4000\n"
        "client:\n"
        "camera:\n"
        "visualization:\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("AZURE_FACE_KEY", "from-env")

    config = load_config(str(config_file))

    assert config.service.key == "from-env"
    assert config.server.port == 4000
    assert config.client == ClientConfig()
    assert config.camera == CameraConfig()


def test_missing_config_file():
    """Test that an explicit but missing file fails loudly."""
    with pytest.raises(FileNotFoundError):
        load_config("/nonexistent/app.yaml")


def test_require_service_credentials():
    """Test that the proxy credentials check names what is missing."""
    with pytest.raises(ConfigurationError, match="AZURE_FACE_KEY"):
        require_service_credentials(
            AppConfig(service=ServiceConfig(endpoint="https://face.example.com"))
        )

    require_service_credentials(
        AppConfig(service=ServiceConfig(endpoint="https://face.example.com", key="k"))
    )
