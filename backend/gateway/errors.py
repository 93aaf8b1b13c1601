from __future__ import annotations

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(GatewayError):
    status_code = 400


class NotFoundError(GatewayError):
    status_code = 404


class SchemaError(GatewayError):
    status_code = 400


class AuthorizationError(GatewayError):
    status_code = 403


class UpstreamError(GatewayError):
    status_code = 500
