"""Flask extension instances and initialisation."""

import logging
import os

from flask import Flask
from flask_compress import Compress
from flask_socketio import SocketIO

logger = logging.getLogger(__name__)

# gzip/brotli for JSON responses
compress = Compress()


def _socketio_transports() -> list[str]:
    """Return allowed Engine.IO transports.

    Defaults to polling only; override with ``FARMHUB_SOCKETIO_TRANSPORTS``,
    e.g. ``polling,websocket``.
    """
    raw = os.getenv("FARMHUB_SOCKETIO_TRANSPORTS")
    if raw:
        transports = [t.strip() for t in raw.split(",") if t.strip()]
        if transports:
            return transports
    return ["polling"]


# Threading mode: the device services already run on plain threads.
socketio = SocketIO(
    async_mode="threading",
    cors_allowed_origins=[],
    engineio_logger=False,
    ping_timeout=60,
    ping_interval=25,
    transports=_socketio_transports(),
)


def init_extensions(app: Flask, cors_origins: str) -> None:
    """Initialise Flask extension objects."""
    origins = cors_origins if isinstance(cors_origins, str) else "*"

    app.config.setdefault("COMPRESS_MIMETYPES", ["application/json", "text/plain"])
    app.config.setdefault("COMPRESS_MIN_SIZE", 256)
    compress.init_app(app)

    logging.getLogger("engineio").setLevel(logging.WARNING)
    socketio.init_app(app, cors_allowed_origins=origins, logger=logging.getLogger("socketio"), engineio_logger=False)
    logger.info("Socket.IO initialized with CORS origins: %s", origins)
