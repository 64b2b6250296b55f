"""Runtime configuration: defaults plus environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import urlparse

BACKEND_URL_ENV = "POS_BACKEND_URL"
BACKEND_KEY_ENV = "POS_BACKEND_KEY"
REQUEST_TIMEOUT_ENV = "POS_REQUEST_TIMEOUT"
LOG_LEVEL_ENV = "POS_LOG_LEVEL"
LOG_PATH_ENV = "POS_LOG_PATH"
PRINTER_ENABLED_ENV = "POS_PRINTER_ENABLED"

DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_PATH = "/tmp/restaurant-pos.log"

SUPPORTED_URL_SCHEMES = ("http", "https", "sqlite")

# Hosted backend realtime channel.
REALTIME_HEARTBEAT_SECONDS = 25.0
REALTIME_RECONNECT_SECONDS = 2.0

CURRENCY_LABEL = "DH"

PRINTER_USB_VENDOR_ID = 0x28E9
PRINTER_USB_PRODUCT_ID = 0x0289
PRINTER_WIDTH_PX = 384
PRINTER_FONT_SIZE = 28
PRINTER_FONT_PATH = "/System/Library/Fonts/SFNS.ttf"
PRINTER_LEFT_INDENT_PX = 16


class ConfigError(RuntimeError):
    """Raised when the backend connection parameters are missing or invalid."""


@dataclass(frozen=True)
class BackendSettings:
    """Process-wide backend connection parameters."""

    url: str
    key: str
    timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS

    @property
    def scheme(self) -> str:
        return urlparse(self.url).scheme


def load_backend_settings(environ: Mapping[str, str] | None = None) -> BackendSettings:
    """Read backend settings from the environment, refusing incomplete ones."""
    env = os.environ if environ is None else environ

    url = env.get(BACKEND_URL_ENV, "").strip()
    key = env.get(BACKEND_KEY_ENV, "").strip()
    missing = [name for name, value in ((BACKEND_URL_ENV, url), (BACKEND_KEY_ENV, key)) if not value]
    if missing:
        raise ConfigError(f"Missing backend environment variables: {', '.join(missing)}")

    scheme = urlparse(url).scheme
    if scheme not in SUPPORTED_URL_SCHEMES:
        raise ConfigError(
            f"Unsupported backend URL {url!r}; expected one of: "
            + ", ".join(f"{s}://" for s in SUPPORTED_URL_SCHEMES)
        )

    raw_timeout = env.get(REQUEST_TIMEOUT_ENV, "").strip()
    timeout = DEFAULT_REQUEST_TIMEOUT_SECONDS
    if raw_timeout:
        try:
            timeout = float(raw_timeout)
        except ValueError as exc:
            raise ConfigError(f"{REQUEST_TIMEOUT_ENV} must be a number, got {raw_timeout!r}") from exc
        if timeout <= 0:
            raise ConfigError(f"{REQUEST_TIMEOUT_ENV} must be positive")

    return BackendSettings(url=url.rstrip("/"), key=key, timeout=timeout)


def printer_enabled(environ: Mapping[str, str] | None = None) -> bool:
    env = os.environ if environ is None else environ
    return env.get(PRINTER_ENABLED_ENV, "").strip().lower() in {"1", "true", "yes", "on"}
