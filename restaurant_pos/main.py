"""Entry point for the restaurant POS Textual app."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from restaurant_pos.backend import Backend
from restaurant_pos.config import (
    DEFAULT_LOG_LEVEL,
    DEFAULT_LOG_PATH,
    LOG_LEVEL_ENV,
    LOG_PATH_ENV,
    BackendSettings,
    ConfigError,
    load_backend_settings,
    printer_enabled,
)
from restaurant_pos.hosted_backend import HostedBackend
from restaurant_pos.pos_app import PosApp
from restaurant_pos.sqlite_backend import SqliteBackend

logger = logging.getLogger(__name__)


def configure_logging(path: str | None = None, level: str | None = None) -> None:
    """Send logs to a file; the terminal belongs to the UI."""
    log_path = Path(path or os.environ.get(LOG_PATH_ENV) or DEFAULT_LOG_PATH)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=log_path,
        level=(level or os.environ.get(LOG_LEVEL_ENV) or DEFAULT_LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_backend(settings: BackendSettings) -> Backend:
    if settings.scheme == "sqlite":
        try:
            return SqliteBackend.from_url(settings.url, timeout=settings.timeout)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
    return HostedBackend(settings)


def main() -> None:
    """Run the Textual application."""
    configure_logging()
    try:
        settings = load_backend_settings()
        backend = build_backend(settings)
    except ConfigError as exc:
        logger.error("Startup refused: %s", exc)
        print(f"restaurant-pos: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc

    logger.info("Starting with %s backend", settings.scheme)
    PosApp(backend, printer_enabled=printer_enabled(), owns_backend=True).run()


if __name__ == "__main__":
    main()
