"""
Diagnostics API - operator checks against the record store.

All endpoints require the gateway API key, sent as `X-Gateway-API-Key` or as
a bearer token. Without a configured key they are closed, unless the
insecure local override is on and the request comes from loopback.
"""

import hmac
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from gateway import NotFoundError, RecordGateway
from store import StoreError, normalize_id

from .records import get_gateway

_API_KEY_HEADER = "X-Gateway-API-Key"
_LOOPBACK_CLIENT_HOSTS = {"127.0.0.1", "::1", "localhost"}


def _is_loopback_request(request: Request) -> bool:
    client = getattr(request, "client", None)
    host = str(getattr(client, "host", "") or "").strip().lower()
    return host in _LOOPBACK_CLIENT_HOSTS


def _extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not isinstance(authorization, str):
        return None
    value = authorization.strip()
    if not value:
        return None
    scheme, _, token = value.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token if token else None


async def require_diagnostics_api_key(
    request: Request,
    x_gateway_api_key: Optional[str] = Header(default=None, alias=_API_KEY_HEADER),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
    gateway: RecordGateway = Depends(get_gateway),
) -> None:
    configured = gateway.settings.api_key
    if not configured:
        allow_local = gateway.settings.allow_insecure_local
        if allow_local and _is_loopback_request(request):
            return
        reason = (
            "insecure_local_override_requires_loopback"
            if allow_local
            else "api_key_not_configured"
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "diagnostics_auth_failed", "reason": reason},
            headers={"WWW-Authenticate": "Bearer"},
        )

    provided = str(x_gateway_api_key or "").strip() or _extract_bearer_token(authorization)
    if not provided or not hmac.compare_digest(provided, configured):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "diagnostics_auth_failed",
                "reason": "invalid_or_missing_api_key",
            },
            headers={"WWW-Authenticate": "Bearer"},
        )


router = APIRouter(
    prefix="/api/diagnostics",
    tags=["diagnostics"],
    dependencies=[Depends(require_diagnostics_api_key)],
)


@router.get("/ping")
async def ping(gateway: RecordGateway = Depends(get_gateway)):
    """Check the store token by asking the store who we are."""
    if gateway.store is None:
        return {"ok": False, "error": "store_not_configured"}
    try:
        me = await gateway.store.users_me()
    except StoreError as exc:
        return {"ok": False, "error": exc.to_dict()}
    return {"ok": True, "me": me}


@router.get("/store")
async def store_status(gateway: RecordGateway = Depends(get_gateway)):
    """Configuration presence and whether both collections can be retrieved."""
    settings = gateway.settings
    payload: Dict[str, Any] = {
        "haveToken": bool(settings.notion_token),
        "notionVersion": settings.notion_version,
        "allowedOrigins": list(settings.allowed_origins),
        "missing": settings.missing_settings(),
        "schemaCache": await gateway.schema_cache.status(),
    }
    for key, raw_id in (("owners", settings.owners_db_id), ("records", settings.records_db_id)):
        entry: Dict[str, Any] = {
            "raw": raw_id,
            "id": normalize_id(raw_id) if raw_id else None,
            "retrieveOk": False,
        }
        if entry["id"] and gateway.store is not None:
            try:
                database = await gateway.store.retrieve_database(entry["id"])
                entry["retrieveOk"] = True
                entry["properties"] = sorted((database.get("properties") or {}).keys())
            except StoreError as exc:
                entry["error"] = exc.to_dict()
        payload[key] = entry
    return payload


@router.get("/identity")
async def identity_probe(
    external_id: str = Query("", alias="externalId"),
    gateway: RecordGateway = Depends(get_gateway),
):
    """Run the identity probe chain and report every attempt."""
    gateway.require_store()
    try:
        match = await gateway.resolver.resolve(external_id)
    except NotFoundError as exc:
        details = exc.details if isinstance(exc.details, dict) else {}
        return {"ok": False, "error": exc.message, **details}
    return {"ok": True, **match.to_debug()}
