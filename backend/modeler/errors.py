"""
Error taxonomy shared by the graph services and the HTTP layer.

Every error carries the HTTP status it maps to, so services can raise
without knowing about FastAPI and the API layer converts them in one place.
"""

from typing import Any, Optional


class ModelerError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class InvalidRequestError(ModelerError):
    status_code = 400


class AuthenticationError(ModelerError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized", details: Optional[Any] = None):
        super().__init__(message, details)


class PermissionDenied(ModelerError):
    status_code = 403

    def __init__(self, message: str = "Forbidden", details: Optional[Any] = None):
        super().__init__(message, details)


class NotFoundError(ModelerError):
    status_code = 404


class UpstreamError(ModelerError):
    """Storage or external service failure; details are surfaced for operators."""
    status_code = 500
