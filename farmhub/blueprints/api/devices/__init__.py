"""
Device API Blueprint
====================

- crud.py: list, get, register, partial update, demo seeding
- control.py: typed commands, sensor reads, on-demand health scan

All routes are registered under ``/api/v1/devices``.
"""

from __future__ import annotations

import logging

from flask import Blueprint

devices_api = Blueprint("devices_api", __name__)
logger = logging.getLogger("devices_api")

# Import sub-modules to register their routes on devices_api
from . import control, crud  # noqa: E402

_ = (control, crud)

__all__ = ["devices_api"]
