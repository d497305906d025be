from __future__ import annotations

import atexit
import logging
from typing import Any

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from farmhub.blueprints.api.devices import devices_api
from farmhub.blueprints.api.health import health_api
from farmhub.config import AppConfig, load_config, setup_logging
from farmhub.extensions import init_extensions, socketio
from farmhub.extensions import socketio as _socketio  # survives the farmhub.socketio subpackage import

__all__ = ["create_app", "socketio"]

API_V1 = "/api/v1"


def create_app(
    config_overrides: dict[str, Any] | None = None,
    *,
    config: AppConfig | None = None,
    bootstrap_runtime: bool = False,
    container_options: dict[str, Any] | None = None,
) -> Flask:
    """Application factory.

    Args:
        config: Ready-made configuration; loaded from the environment otherwise.
        config_overrides: ``AppConfig`` attributes to replace after loading
            from the environment (case-insensitive keys).
        bootstrap_runtime: Start the scheduler (health scan, change feed).
        container_options: Extra keyword arguments for ``ServiceContainer.build``.
    """
    config = config or load_config()
    if config_overrides:
        for key, value in config_overrides.items():
            attr = key if hasattr(config, key) else key.lower()
            if not hasattr(config, attr):
                raise ValueError(f"Unknown configuration key: {key}")
            setattr(config, attr, value)
        config.__post_init__()

    setup_logging(debug=config.DEBUG, log_level=config.log_level, log_file=config.log_file)

    flask_app = Flask(__name__)
    flask_app.config.update(config.as_flask_config())

    # Socket.IO first: the container's EmitterService needs it.
    init_extensions(flask_app, config.socketio_cors_origins)

    from farmhub.services.container import ServiceContainer

    container = ServiceContainer.build(
        config,
        start_background=bootstrap_runtime,
        socketio=_socketio,
        **(container_options or {}),
    )
    flask_app.config["CONTAINER"] = container
    flask_app.teardown_appcontext(container.database.close_db)

    _register_shutdown(container)
    _register_error_handlers(flask_app)

    flask_app.register_blueprint(devices_api, url_prefix=f"{API_V1}/devices")
    flask_app.register_blueprint(health_api, url_prefix=f"{API_V1}/health")

    from farmhub.socketio import register_handlers

    register_handlers()

    for bp_name in flask_app.blueprints:
        logging.info("Registered blueprint: %s", bp_name)

    logging.getLogger(__name__).info(
        "FarmHub initialized (%s devices, channel=%s, background=%s)",
        len(container.device_registry),
        container.command_channel.name,
        bootstrap_runtime,
    )
    return flask_app


def _register_shutdown(container) -> None:
    """Shut the container down at exit; ``container.shutdown`` drops this hook."""
    atexit.register(container.shutdown)


def _register_error_handlers(flask_app: Flask) -> None:
    from farmhub.domain.exceptions import FarmHubError
    from farmhub.utils.http import error_response, safe_error

    @flask_app.errorhandler(Exception)
    def _handle_unhandled(exc):
        if not request.path.startswith("/api/"):
            if isinstance(exc, HTTPException):
                return exc
            raise exc

        if isinstance(exc, HTTPException):
            status = int(exc.code or 500)
            if status >= 500:
                return safe_error(exc, status, context="http-exception")
            return error_response(exc.description or "Request failed", status)

        if isinstance(exc, FarmHubError):
            status = exc.http_status
            if status >= 500:
                return safe_error(exc, status, context=type(exc).__name__)
            return error_response(str(exc) or "Request failed", status, details=exc.detail or None)

        return safe_error(exc, 500, context="unhandled")
