"""
Socket.IO Event Handlers
========================

Namespaces:
- /devices - device snapshot requests and live device events

Call :func:`register_handlers` after ``socketio.init_app()``.
"""

import logging

logger = logging.getLogger(__name__)


def register_handlers() -> None:
    """Import handler modules so their ``@socketio.on`` decorators run."""
    from . import device_handlers  # noqa: F401

    logger.info("Socket.IO handlers registered (/devices)")
