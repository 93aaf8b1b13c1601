from .diagnostics import router as diagnostics_router
from .handlers import register_error_handlers
from .records import router as records_router

__all__ = ["diagnostics_router", "records_router", "register_error_handlers"]
