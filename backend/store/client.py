"""
Async client for the hosted record store (Notion REST API, v1).

Only the five calls the gateway needs are implemented. Every failure is
reported as a `StoreError` so callers can tell structural filter rejections
(`is_validation`) apart from missing objects and transport problems.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

import httpx

_HEX_ID_RE = re.compile(r"[^a-f0-9]", re.IGNORECASE)


def normalize_id(raw: Optional[str]) -> Optional[str]:
    """Return the dashed UUID form of a store id, or None if it is too short.

    Accepts bare 32-char hex ids as well as already dashed ids.
    """
    hex_only = _HEX_ID_RE.sub("", str(raw or "").strip())
    if len(hex_only) < 32:
        return None
    core = hex_only[:32].lower()
    return f"{core[0:8]}-{core[8:12]}-{core[12:16]}-{core[16:20]}-{core[20:]}"


def same_id(left: Optional[str], right: Optional[str]) -> bool:
    a = normalize_id(left)
    b = normalize_id(right)
    if a is None or b is None:
        raw_left = str(left or "").strip()
        return bool(raw_left) and raw_left == str(right or "").strip()
    return a == b


class StoreError(Exception):
    """A failed store call, carrying the store's own error body."""

    def __init__(
        self,
        message: str,
        *,
        status: int = 502,
        code: str = "transport_error",
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.body = body

    @property
    def is_validation(self) -> bool:
        return self.status == 400 and self.code == "validation_error"

    @property
    def is_not_found(self) -> bool:
        return self.status == 404 or self.code == "object_not_found"

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "status": self.status,
            "code": self.code,
            "message": self.message,
        }
        if self.body is not None:
            payload["body"] = self.body
        return payload


class StoreClient:
    """
    Thin async wrapper around the record store HTTP API.

    One instance owns one `httpx.AsyncClient`; pass `transport` to route calls
    somewhere other than the network (tests use `httpx.MockTransport`).
    """

    def __init__(
        self,
        token: str,
        *,
        api_base: str = "https://api.notion.com/v1",
        notion_version: str = "2022-06-28",
        timeout_sec: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_base = api_base.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self._api_base,
            timeout=httpx.Timeout(timeout_sec),
            transport=transport,
            headers={
                "Authorization": f"Bearer {token}",
                "Notion-Version": notion_version,
                "Content-Type": "application/json",
            },
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def _request(
        self, method: str, path: str, payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        try:
            response = await self._http.request(method, path, json=payload)
        except httpx.HTTPError as exc:
            raise StoreError(f"store request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text[:1000]}

        if response.is_error:
            code = "http_error"
            message = f"store returned HTTP {response.status_code}"
            if isinstance(body, dict):
                code = str(body.get("code") or code)
                message = str(body.get("message") or message)
            raise StoreError(
                message, status=response.status_code, code=code, body=body
            )
        if not isinstance(body, dict):
            raise StoreError(
                "store returned a non-object body",
                status=response.status_code,
                code="invalid_body",
                body=body,
            )
        return body

    @staticmethod
    def _object_path(kind: str, object_id: str) -> str:
        normalized = normalize_id(object_id)
        if normalized is None:
            raise StoreError(
                f"invalid {kind} id: {object_id!r}",
                status=400,
                code="invalid_id",
            )
        return normalized

    async def query_database(
        self,
        database_id: str,
        *,
        filter: Optional[Dict[str, Any]] = None,
        sorts: Optional[List[Dict[str, Any]]] = None,
        start_cursor: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if filter:
            payload["filter"] = filter
        if sorts:
            payload["sorts"] = sorts
        if start_cursor:
            payload["start_cursor"] = start_cursor
        if page_size:
            payload["page_size"] = int(page_size)
        db_id = self._object_path("database", database_id)
        return await self._request("POST", f"/databases/{db_id}/query", payload)

    async def retrieve_database(self, database_id: str) -> Dict[str, Any]:
        db_id = self._object_path("database", database_id)
        return await self._request("GET", f"/databases/{db_id}")

    async def retrieve_page(self, page_id: str) -> Dict[str, Any]:
        pid = self._object_path("page", page_id)
        return await self._request("GET", f"/pages/{pid}")

    async def update_page(
        self, page_id: str, properties: Dict[str, Any]
    ) -> Dict[str, Any]:
        pid = self._object_path("page", page_id)
        return await self._request(
            "PATCH", f"/pages/{pid}", {"properties": properties}
        )

    async def users_me(self) -> Dict[str, Any]:
        return await self._request("GET", "/users/me")
