"""
Write path: owner-checked updates of the few fields a caller may change.

A caller may set availability and comment on records they own. Answering
also moves the record to the response status, except for records that are
already closed, which keep their status. Records still in the blocked
("not yet actionable") status cannot be written at all, and pages outside
the records collection are treated as missing.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from store import StoreError, same_id

from .errors import AuthorizationError, NotFoundError, UpstreamError, ValidationError
from .filters import parse_availability
from .identity import IdentityResolver
from .properties import option_value, property_text, relation_ids, text_value
from .schema import CollectionRoles, SchemaIntrospector

logger = logging.getLogger(__name__)

WRITABLE_FIELDS = ("availability", "comment")


def _casefold_set(values: Iterable[str]) -> set:
    return {str(v).strip().casefold() for v in values if str(v).strip()}


class WriteGatekeeper:
    def __init__(
        self,
        store: Any,
        resolver: IdentityResolver,
        introspector: SchemaIntrospector,
        collection_id: str,
        *,
        blocked_status: str = "Potential",
        terminal_statuses: Iterable[str] = (),
        response_status: str = "Responded",
        comment_max_length: int = 1900,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._introspector = introspector
        self._collection_id = collection_id
        self._blocked_status = blocked_status.strip().casefold()
        self._terminal_statuses = _casefold_set(terminal_statuses)
        self._response_status = response_status
        self._comment_max_length = comment_max_length

    async def _load_record(self, record_id: str) -> Dict[str, Any]:
        try:
            return await self._store.retrieve_page(record_id)
        except StoreError as exc:
            if exc.is_not_found or exc.code == "invalid_id":
                raise NotFoundError(
                    "Record not found", details={"recordId": record_id}
                ) from exc
            raise UpstreamError("Could not load record", details=exc.to_dict()) from exc

    def _check_parent(self, record: Dict[str, Any], record_id: str) -> None:
        parent = record.get("parent")
        parent_id = parent.get("database_id") if isinstance(parent, dict) else None
        if not same_id(parent_id, self._collection_id):
            logger.warning("write to %s refused: not in the records collection", record_id)
            raise NotFoundError("Record not found", details={"recordId": record_id})

    @staticmethod
    def _check_owner(
        roles: CollectionRoles, properties: Dict[str, Any], owner_id: str, record_id: str
    ) -> None:
        related = relation_ids(properties.get(roles.ownership.name))
        if not any(same_id(candidate, owner_id) for candidate in related):
            logger.warning("write to %s refused: caller is not an owner", record_id)
            raise AuthorizationError(
                "Not allowed for this record",
                details={"recordId": record_id, "ownership": roles.ownership.name},
            )

    def _availability_write(
        self, roles: CollectionRoles, value: Any
    ) -> Optional[Dict[str, Any]]:
        if roles.availability is None or not isinstance(value, str):
            return None
        label = parse_availability(value, allow_all=False) if value.strip() else ""
        kind = roles.availability.kind
        if kind in ("select", "status"):
            return option_value(kind, label or "")
        return text_value(kind, label or "")

    def _comment_write(
        self, roles: CollectionRoles, value: Any
    ) -> Optional[Dict[str, Any]]:
        if roles.comment is None or not isinstance(value, str):
            return None
        return text_value(roles.comment.kind, value[: self._comment_max_length])

    async def apply_update(
        self, record_id: str, external_id: str, patch: Dict[str, Any]
    ) -> Dict[str, Any]:
        record_id = str(record_id or "").strip()
        if not record_id:
            raise ValidationError("Missing recordId")
        if not str(external_id or "").strip():
            raise ValidationError("Missing externalId")

        owner = await self._resolver.resolve(external_id)
        record = await self._load_record(record_id)
        properties = record.get("properties")
        if not isinstance(properties, dict):
            properties = {}

        self._check_parent(record, record_id)
        # Same role map as the read path, but never served from the cache.
        roles = await self._introspector.introspect(
            self._collection_id, use_cache=False
        )
        self._check_owner(roles, properties, owner.record_id, record_id)

        current_status = (
            property_text(properties, roles.status.name).strip() if roles.status else ""
        )
        if current_status and current_status.casefold() == self._blocked_status:
            raise AuthorizationError(
                "Record is not open for responses yet",
                details={"recordId": record_id, "status": current_status},
            )

        updates: Dict[str, Any] = {}
        availability = self._availability_write(roles, patch.get("availability"))
        if availability is not None and roles.availability is not None:
            updates[roles.availability.name] = availability
        comment = self._comment_write(roles, patch.get("comment"))
        if comment is not None and roles.comment is not None:
            updates[roles.comment.name] = comment

        if updates and roles.status is not None:
            folded = current_status.casefold()
            if folded in self._terminal_statuses:
                logger.info(
                    "record %s is %r; leaving status unchanged", record_id, current_status
                )
            elif folded != self._response_status.casefold():
                transition = option_value(roles.status.kind, self._response_status)
                if transition is not None:
                    updates[roles.status.name] = transition

        if not updates:
            return {"ok": True, "noChange": True}

        try:
            await self._store.update_page(record_id, updates)
        except StoreError as exc:
            raise UpstreamError("Record update failed", details=exc.to_dict()) from exc
        return {"ok": True}
