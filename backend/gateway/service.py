"""
RecordGateway ties the components together for the two HTTP operations.

    list_records: identity -> schema roles -> filter -> query -> projection
    apply_update: identity -> record ownership -> allow-listed write
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from runtime_state import SchemaCache
from settings import GatewaySettings

from .errors import UpstreamError, ValidationError
from .filters import (
    QueryParams,
    build_sorts,
    compose_filter,
    parse_availability,
    parse_sort,
)
from .identity import IdentityResolver
from .projection import ResultProjector, SummaryComposer
from .query import QueryExecutor
from .schema import SchemaIntrospector
from .writes import WriteGatekeeper

logger = logging.getLogger(__name__)


class RecordGateway:
    def __init__(
        self,
        store: Any,
        settings: GatewaySettings,
        schema_cache: Optional[SchemaCache] = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.schema_cache = schema_cache or SchemaCache(settings.schema_cache_ttl_sec)
        self.resolver = IdentityResolver(
            store, settings.owners_db_id, settings.identity_property_names
        )
        self.introspector = SchemaIntrospector(
            store, self.schema_cache, settings.owner_name_pattern
        )
        self.executor = QueryExecutor(store, self.introspector.invalidate)
        self.composer = SummaryComposer(
            store,
            min_length=settings.summary_min_length,
            placeholder=settings.summary_placeholder,
            related_summary_property=settings.related_summary_property,
        )
        self.gatekeeper = WriteGatekeeper(
            store,
            self.resolver,
            self.introspector,
            settings.records_db_id,
            blocked_status=settings.blocked_status,
            terminal_statuses=settings.terminal_statuses,
            response_status=settings.response_status,
            comment_max_length=settings.comment_max_length,
        )

    def require_store(self) -> None:
        if self.store is None or not self.settings.store_configured:
            raise UpstreamError(
                "Record store is not configured",
                details={"missing": self.settings.missing_settings()},
            )

    async def list_records(
        self, external_id: str, params: QueryParams, *, debug: bool = False
    ) -> Dict[str, Any]:
        if not str(external_id or "").strip():
            raise ValidationError("Missing externalId")
        parse_sort(params.sort)
        parse_availability(params.availability)
        self.require_store()
        owner = await self.resolver.resolve(external_id)
        collection_id = self.settings.records_db_id
        roles = await self.introspector.introspect(collection_id)
        sorts = build_sorts(params.sort, roles)

        def _build_filter(ownership_kind: str) -> Dict[str, Any]:
            return compose_filter(
                roles,
                owner.record_id,
                params,
                hidden_statuses=self.settings.hidden_statuses,
                ownership_kind=ownership_kind,
            )

        page = await self.executor.execute(
            collection_id,
            _build_filter,
            roles.ownership.kind,
            sorts=sorts,
            cursor=params.cursor,
            page_size=self.settings.page_size,
        )

        projector = ResultProjector(roles, self.composer)
        results = []
        summary_sources = []
        for record in page.records:
            item, source = await projector.project(record)
            results.append(item)
            summary_sources.append({"id": item["id"], "source": source})

        payload: Dict[str, Any] = {
            "results": results,
            "nextCursor": page.next_cursor,
            "hasMore": page.has_more,
        }
        if debug:
            payload["debug"] = {
                "identity": owner.to_debug(),
                "roles": roles.to_debug(),
                "ownershipKind": page.ownership_kind,
                "retried": page.retried,
                "filter": page.filter,
                "sorts": sorts,
                "summarySources": summary_sources,
            }
        return payload

    async def apply_update(
        self, record_id: str, external_id: str, patch: Dict[str, Any]
    ) -> Dict[str, Any]:
        self.require_store()
        result = await self.gatekeeper.apply_update(record_id, external_id, patch)
        logger.info("record %s updated: %s", record_id, result)
        return result
