"""Centralized exception hierarchy for FarmHub.

All domain and service exceptions inherit from :class:`FarmHubError` so that
callers can catch a single base class when they need a broad safety net, yet
still match on specific subclasses where narrower handling is appropriate.

Blueprint-level error handling (see ``farmhub/utils/http.safe_route``) maps
these to the correct HTTP status codes automatically.

Hierarchy
---------
::

    FarmHubError (base - maps to 500)
    ├── ValidationError          (400 - bad input from caller)
    ├── NotFoundError            (404 - unknown device id)
    ├── WrongDeviceTypeError     (409 - command targets the wrong device family)
    ├── ServiceError             (500 - business-logic failure)
    │   └── RepositoryError      (500 - database / persistence)
    │       └── PersistenceError (500 - device store write/read failed)
    ├── DeviceError              (503 - device communication)
    │   └── CommandSendError     (503 - outbound command could not be delivered)
    └── ConfigurationError       (500 - missing / invalid config)
"""

from __future__ import annotations


class FarmHubError(Exception):
    """Base exception for all FarmHub application errors.

    Parameters
    ----------
    message:
        Human-readable description (logged server-side, **not** leaked to
        the HTTP client unless the exception class opts in).
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    http_status: int = 500

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


# ── Client errors (4xx) ──────────────────────────────────────────────


class ValidationError(FarmHubError):
    """Caller supplied invalid or incomplete input (HTTP 400)."""

    http_status: int = 400


class NotFoundError(FarmHubError):
    """Requested device does not exist (HTTP 404)."""

    http_status: int = 404


class WrongDeviceTypeError(FarmHubError):
    """A typed command was sent to a device of another family (HTTP 409)."""

    http_status: int = 409

    def __init__(self, device_id: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Device {device_id} is a {actual} device, expected {expected}",
            detail={"device_id": device_id, "expected": expected, "actual": actual},
        )
        self.device_id = device_id
        self.expected = expected
        self.actual = actual


# ── Server errors (5xx) ──────────────────────────────────────────────


class ServiceError(FarmHubError):
    """Business-logic failure in a service method (HTTP 500)."""

    http_status: int = 500


class RepositoryError(ServiceError):
    """Database / persistence layer failure (HTTP 500)."""

    http_status: int = 500


class PersistenceError(RepositoryError):
    """The device document store rejected or failed a write/read."""


class DeviceError(FarmHubError):
    """Hardware communication or device-protocol failure (HTTP 503)."""

    http_status: int = 503


class CommandSendError(DeviceError):
    """The outbound command channel failed to deliver a command."""


class ConfigurationError(FarmHubError):
    """Missing or invalid application configuration (HTTP 500)."""

    http_status: int = 500
