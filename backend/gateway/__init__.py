from .errors import (
    AuthorizationError,
    GatewayError,
    NotFoundError,
    SchemaError,
    UpstreamError,
    ValidationError,
)
from .filters import QueryParams
from .service import RecordGateway

__all__ = [
    "AuthorizationError",
    "GatewayError",
    "NotFoundError",
    "QueryParams",
    "RecordGateway",
    "SchemaError",
    "UpstreamError",
    "ValidationError",
]
