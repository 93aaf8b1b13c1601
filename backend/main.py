import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import diagnostics_router, records_router, register_error_handlers
from gateway import RecordGateway
from runtime_state import SchemaCache
from settings import GatewaySettings
from store import StoreClient

logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"


def _utc_iso_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def build_gateway(settings: GatewaySettings) -> RecordGateway:
    """Gateway with a real store client; the client is None without a token."""
    store: Optional[StoreClient] = None
    if settings.notion_token:
        store = StoreClient(
            settings.notion_token,
            api_base=settings.notion_api_base,
            notion_version=settings.notion_version,
            timeout_sec=settings.store_timeout_sec,
        )
    return RecordGateway(store, settings, SchemaCache(settings.schema_cache_ttl_sec))


def _cors_options(settings: GatewaySettings) -> Dict[str, Any]:
    origins = settings.cors_origins()
    if "*" in origins:
        origins = ["*"]
    elif not origins:
        logger.warning("ALLOWED_ORIGINS is not set; cross-origin requests are refused")
    return {
        "allow_origins": origins,
        "allow_credentials": False,
        "allow_methods": ["GET", "POST", "OPTIONS"],
        "allow_headers": ["Content-Type", "Authorization"],
    }


def create_app(
    gateway: Optional[RecordGateway] = None,
    settings: Optional[GatewaySettings] = None,
) -> FastAPI:
    if settings is None:
        settings = gateway.settings if gateway is not None else GatewaySettings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_gateway = getattr(app.state, "gateway", None) is None
        if owns_gateway:
            print("Record Gateway starting...")
            app.state.gateway = build_gateway(settings)
            missing = settings.missing_settings()
            if missing:
                print(f"Record store not fully configured, missing: {', '.join(missing)}")
        yield
        if owns_gateway:
            print("Closing record store client...")
            store = app.state.gateway.store
            if store is not None:
                await store.close()
            app.state.gateway = None

    app = FastAPI(
        title="Record Gateway API",
        description="Owner-scoped access to records in a hosted workspace database",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.gateway = gateway

    app.add_middleware(CORSMiddleware, **_cors_options(settings))
    register_error_handlers(app)

    app.include_router(records_router)
    app.include_router(diagnostics_router)

    @app.get("/")
    async def root():
        return {
            "message": "Record Gateway API",
            "version": APP_VERSION,
            "docs": "/docs",
        }

    @app.get("/health")
    async def health():
        payload: Dict[str, Any] = {
            "status": "ok",
            "timestamp": _utc_iso_now(),
        }
        current = getattr(app.state, "gateway", None)
        if current is None or not current.settings.store_configured:
            payload["status"] = "degraded"
            payload["missing"] = settings.missing_settings()
        if current is not None:
            payload["schema_cache"] = await current.schema_cache.status()
        return payload

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", 8000)))
