"""
Schema introspection for the queryable collection.

Property names are workspace-defined, so roles are assigned by kind and by
name hints rather than by fixed names. The same classification works on a
collection schema and on a single page's typed properties.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern, Tuple

from store import StoreError

from .errors import SchemaError, UpstreamError
from .properties import property_kind

logger = logging.getLogger(__name__)

AVAILABILITY_KINDS = ("select", "status", "rich_text", "formula", "rollup")
COMMENT_KINDS = ("rich_text", "title")
STATUS_KINDS = ("status", "select")
SUMMARY_KINDS = ("rich_text", "title", "formula", "rollup")

_AVAILABILITY_NAME_RE = re.compile(r"availab", re.IGNORECASE)
_SUMMARY_NAME_RE = re.compile(r"summary", re.IGNORECASE)
_COMMENT_NAME_RE = re.compile(r"comment", re.IGNORECASE)


@dataclass(frozen=True)
class PropertyRef:
    name: str
    kind: str

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "kind": self.kind}


@dataclass
class CollectionRoles:
    ownership: PropertyRef
    status: Optional[PropertyRef] = None
    availability: Optional[PropertyRef] = None
    summary: Optional[PropertyRef] = None
    title: Optional[PropertyRef] = None
    comment: Optional[PropertyRef] = None
    other_relations: List[PropertyRef] = field(default_factory=list)
    property_names: List[str] = field(default_factory=list)
    cached: bool = False

    def to_debug(self) -> Dict[str, Any]:
        def _ref(ref: Optional[PropertyRef]) -> Optional[Dict[str, str]]:
            return ref.to_dict() if ref is not None else None

        return {
            "ownership": _ref(self.ownership),
            "status": _ref(self.status),
            "availability": _ref(self.availability),
            "summary": _ref(self.summary),
            "title": _ref(self.title),
            "comment": _ref(self.comment),
            "otherRelations": [ref.name for ref in self.other_relations],
            "schemaCached": self.cached,
        }


def _typed_properties(properties: Any) -> List[Tuple[str, str]]:
    if not isinstance(properties, dict):
        return []
    typed: List[Tuple[str, str]] = []
    for name, spec in properties.items():
        kind = property_kind(spec)
        if isinstance(name, str) and kind:
            typed.append((name, kind))
    return typed


def _pick_by_name(
    typed: List[Tuple[str, str]], kind: str, pattern: Pattern[str]
) -> Optional[PropertyRef]:
    candidates = [name for name, k in typed if k == kind]
    if not candidates:
        return None
    for name in candidates:
        if pattern.search(name):
            return PropertyRef(name, kind)
    return PropertyRef(candidates[0], kind)


def _first_matching(
    typed: List[Tuple[str, str]], pattern: Pattern[str], kinds: Tuple[str, ...]
) -> Optional[PropertyRef]:
    for name, kind in typed:
        if kind in kinds and pattern.search(name):
            return PropertyRef(name, kind)
    return None


def _named(
    typed: List[Tuple[str, str]], name: str, kinds: Tuple[str, ...]
) -> Optional[PropertyRef]:
    for prop_name, kind in typed:
        if prop_name == name and kind in kinds:
            return PropertyRef(prop_name, kind)
    return None


def classify_properties(
    properties: Any, owner_pattern: str = r"owner|artist"
) -> CollectionRoles:
    """Assign roles to a collection's properties.

    Ownership goes to a relation whose name matches `owner_pattern`, else the
    first relation; only when there is no relation at all are rollups
    considered, with the same preference.
    """
    typed = _typed_properties(properties)
    names = [name for name, _ in typed]
    pattern = re.compile(owner_pattern, re.IGNORECASE)

    ownership = _pick_by_name(typed, "relation", pattern) or _pick_by_name(
        typed, "rollup", pattern
    )
    if ownership is None:
        raise SchemaError(
            "No ownership relation or rollup found in collection",
            details={"properties": names},
        )

    status = _named(typed, "Status", STATUS_KINDS)
    if status is None:
        status = next(
            (PropertyRef(n, k) for n, k in typed if k == "status"), None
        )
    summary = _named(typed, "Summary", SUMMARY_KINDS) or _first_matching(
        typed, _SUMMARY_NAME_RE, SUMMARY_KINDS
    )
    title = next((PropertyRef(n, k) for n, k in typed if k == "title"), None)

    return CollectionRoles(
        ownership=ownership,
        status=status,
        availability=_first_matching(typed, _AVAILABILITY_NAME_RE, AVAILABILITY_KINDS),
        summary=summary,
        title=title,
        comment=_first_matching(typed, _COMMENT_NAME_RE, COMMENT_KINDS),
        other_relations=[
            PropertyRef(n, k)
            for n, k in typed
            if k == "relation" and n != ownership.name
        ],
        property_names=names,
    )


class SchemaIntrospector:
    def __init__(
        self,
        store: Any,
        cache: Any = None,
        owner_pattern: str = r"owner|artist",
    ) -> None:
        self._store = store
        self._cache = cache
        self._owner_pattern = owner_pattern

    async def load_schema(
        self, collection_id: str, *, use_cache: bool = True
    ) -> Tuple[Dict[str, Any], bool]:
        """Property map of a collection and whether it came from the cache.

        With `use_cache=False` the schema is always fetched; the cache entry is
        still refreshed.
        """
        if use_cache and self._cache is not None:
            cached = await self._cache.get(collection_id)
            if cached is not None:
                return cached, True
        try:
            database = await self._store.retrieve_database(collection_id)
        except StoreError as exc:
            raise UpstreamError(
                "Could not load collection schema", details=exc.to_dict()
            ) from exc
        properties = database.get("properties")
        if not isinstance(properties, dict):
            properties = {}
        if self._cache is not None and properties:
            await self._cache.put(collection_id, properties)
        return properties, False

    async def introspect(
        self, collection_id: str, *, use_cache: bool = True
    ) -> CollectionRoles:
        properties, cached = await self.load_schema(collection_id, use_cache=use_cache)
        roles = classify_properties(properties, self._owner_pattern)
        roles.cached = cached
        logger.debug(
            "collection %s ownership=%s (%s) cached=%s",
            collection_id,
            roles.ownership.name,
            roles.ownership.kind,
            cached,
        )
        return roles

    async def invalidate(self, collection_id: str) -> None:
        if self._cache is not None:
            await self._cache.invalidate(collection_id)
