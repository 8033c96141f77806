"""API error types rendered as ``{"success": false, "error": ...}`` envelopes."""

from __future__ import annotations


class ApiError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 400

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message}


class ValidationError(ApiError):
    status_code = 400


class AuthenticationError(ApiError):
    status_code = 401


class PermissionDenied(ApiError):
    status_code = 403


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    """Request conflicts with current state (duplicate, wrong order status)."""

    status_code = 400


class UpstreamError(ApiError):
    """An external service (tracking server, gateway) failed."""

    status_code = 502
