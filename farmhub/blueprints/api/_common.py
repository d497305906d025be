"""
Blueprint Common Utilities
==========================

Shared helpers for the API blueprints: container access, request parsing
and the response envelope.
"""
from __future__ import annotations

import logging
from typing import Type, TypeVar

from flask import current_app, request
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from farmhub.domain.exceptions import ValidationError
from farmhub.utils.http import success_response

logger = logging.getLogger("api._common")

M = TypeVar("M", bound=BaseModel)


def get_container():
    """
    Get the service container from Flask app config.

    Raises:
        RuntimeError: If container is not configured
    """
    container = current_app.config.get("CONTAINER")
    if not container:
        raise RuntimeError("ServiceContainer not found in app config")
    return container


def get_registry():
    return get_container().device_registry


def get_dispatcher():
    return get_container().command_dispatcher


def get_health_service():
    return get_container().device_health_service


def get_json() -> dict:
    """JSON request body, or an empty dict when absent or not JSON."""
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def parse_body(model: Type[M]) -> M:
    """
    Validate the JSON body against *model*.

    Raises:
        ValidationError: with the pydantic error list under ``errors``
    """
    try:
        return model.model_validate(get_json())
    except PydanticValidationError as ve:
        raise ValidationError(
            f"Invalid {model.__name__} payload",
            detail={"errors": ve.errors(include_url=False, include_context=False)},
        ) from ve


def success(data: dict | list | None = None, status: int = 200, *, message: str | None = None):
    """``{"ok": true, "data": ..., "error": null}``"""
    return success_response(data, status, message=message)
