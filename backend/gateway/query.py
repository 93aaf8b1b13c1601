from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from store import StoreError

from .errors import UpstreamError

logger = logging.getLogger(__name__)

ALTERNATE_OWNERSHIP_KIND = {"relation": "rollup", "rollup": "relation"}


@dataclass
class QueryPage:
    records: List[Dict[str, Any]] = field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False
    ownership_kind: str = ""
    retried: bool = False
    filter: Dict[str, Any] = field(default_factory=dict)


class QueryExecutor:
    """
    Runs one filtered query against a collection.

    If the store rejects the filter as structurally invalid, the ownership
    clause is rebuilt in the other shape (relation <-> rollup) and the query
    is sent exactly once more. The schema cache entry is dropped on that
    rejection because it is the usual sign of a re-typed property.
    """

    def __init__(
        self,
        store: Any,
        on_structural_error: Optional[Callable[[str], Awaitable[None]]] = None,
    ) -> None:
        self._store = store
        self._on_structural_error = on_structural_error

    async def execute(
        self,
        collection_id: str,
        build_filter: Callable[[str], Dict[str, Any]],
        ownership_kind: str,
        sorts: Optional[List[Dict[str, Any]]] = None,
        cursor: Optional[str] = None,
        page_size: int = 30,
    ) -> QueryPage:
        query_filter = build_filter(ownership_kind)
        try:
            response = await self._query(collection_id, query_filter, sorts, cursor, page_size)
            return self._page(response, ownership_kind, query_filter, retried=False)
        except StoreError as exc:
            if not exc.is_validation:
                raise UpstreamError("Record query failed", details=exc.to_dict()) from exc
            first_error = exc

        if self._on_structural_error is not None:
            await self._on_structural_error(collection_id)

        alternate = ALTERNATE_OWNERSHIP_KIND.get(ownership_kind)
        if alternate is None:
            raise UpstreamError("Record query failed", details=first_error.to_dict())
        logger.warning(
            "query on %s rejected with %s ownership clause, retrying as %s: %s",
            collection_id,
            ownership_kind,
            alternate,
            first_error.message,
        )

        retry_filter = build_filter(alternate)
        try:
            response = await self._query(collection_id, retry_filter, sorts, cursor, page_size)
        except StoreError as exc:
            raise UpstreamError(
                "Record query failed",
                details={"first": first_error.to_dict(), "retry": exc.to_dict()},
            ) from exc
        return self._page(response, alternate, retry_filter, retried=True)

    async def _query(
        self,
        collection_id: str,
        query_filter: Dict[str, Any],
        sorts: Optional[List[Dict[str, Any]]],
        cursor: Optional[str],
        page_size: int,
    ) -> Dict[str, Any]:
        return await self._store.query_database(
            collection_id,
            filter=query_filter,
            sorts=sorts or None,
            start_cursor=cursor or None,
            page_size=page_size,
        )

    @staticmethod
    def _page(
        response: Dict[str, Any],
        ownership_kind: str,
        query_filter: Dict[str, Any],
        *,
        retried: bool,
    ) -> QueryPage:
        records = [
            record for record in response.get("results") or [] if isinstance(record, dict)
        ]
        return QueryPage(
            records=records,
            next_cursor=response.get("next_cursor") or None,
            has_more=bool(response.get("has_more")),
            ownership_kind=ownership_kind,
            retried=retried,
            filter=query_filter,
        )
