"""
Compound filter and sort construction for record queries.

Every clause is shaped after the kind the introspector reported for its
property; a clause is never emitted for a property that was not found.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from .errors import SchemaError, ValidationError
from .schema import CollectionRoles, PropertyRef

AVAILABILITY_LABELS = {"yes": "Yes", "no": "No", "other": "Other"}
ALL_SENTINEL = "all"

SORT_ALIASES = {"gig_asc": "title_asc", "gig_desc": "title_desc"}
SORT_CHOICES = ("title_asc", "title_desc", "recency")


@dataclass
class QueryParams:
    q: str = ""
    status: str = ""
    availability: str = ""
    include_hidden: bool = False
    sort: str = ""
    cursor: Optional[str] = None


def parse_availability(value: Optional[str], *, allow_all: bool = True) -> Optional[str]:
    """Map caller vocabulary (yes/no/other) to the display label.

    Returns None for "no filter" (empty or "all"). Display labels are accepted
    case-insensitively as well.
    """
    raw = str(value or "").strip()
    if not raw:
        return None
    key = raw.lower()
    if allow_all and key == ALL_SENTINEL:
        return None
    label = AVAILABILITY_LABELS.get(key)
    if label is None:
        allowed = sorted(AVAILABILITY_LABELS)
        if allow_all:
            allowed.append(ALL_SENTINEL)
        raise ValidationError(
            f"Invalid availability: {raw!r}", details={"allowed": allowed}
        )
    return label


def ownership_clause(ownership: PropertyRef, owner_id: str, kind: Optional[str] = None) -> Dict[str, Any]:
    shape = kind or ownership.kind
    if shape == "relation":
        return {"property": ownership.name, "relation": {"contains": owner_id}}
    if shape == "rollup":
        return {
            "property": ownership.name,
            "rollup": {"any": {"relation": {"contains": owner_id}}},
        }
    raise SchemaError(
        f"Ownership property {ownership.name!r} has unsupported kind {shape!r}",
        details={"property": ownership.name, "kind": shape},
    )


def _option_clause(prop: PropertyRef, operator: str, value: str) -> Dict[str, Any]:
    # status and select share the equals / does_not_equal vocabulary.
    return {"property": prop.name, prop.kind: {operator: value}}


def _availability_clause(prop: PropertyRef, label: str) -> Dict[str, Any]:
    if prop.kind in ("select", "status", "rich_text"):
        return {"property": prop.name, prop.kind: {"equals": label}}
    if prop.kind == "formula":
        return {"property": prop.name, "formula": {"string": {"equals": label}}}
    if prop.kind == "rollup":
        return {"property": prop.name, "rollup": {"any": {"select": {"equals": label}}}}
    raise SchemaError(
        f"Availability property {prop.name!r} has unsupported kind {prop.kind!r}",
        details=prop.to_dict(),
    )


def _text_contains_clause(prop: PropertyRef, text: str) -> Optional[Dict[str, Any]]:
    # The schema does not report a formula's result type or a rollup's inner
    # kind, so only directly typed text properties are searched.
    if prop.kind in ("title", "rich_text"):
        return {"property": prop.name, prop.kind: {"contains": text}}
    return None


def compose_filter(
    roles: CollectionRoles,
    owner_id: str,
    params: QueryParams,
    hidden_statuses: Iterable[str] = (),
    ownership_kind: Optional[str] = None,
) -> Dict[str, Any]:
    clauses: List[Dict[str, Any]] = [
        ownership_clause(roles.ownership, owner_id, ownership_kind)
    ]

    if not params.include_hidden and roles.status is not None:
        for hidden in hidden_statuses:
            clauses.append(_option_clause(roles.status, "does_not_equal", hidden))

    status = str(params.status or "").strip()
    if status and status.lower() != ALL_SENTINEL:
        if roles.status is None:
            raise SchemaError(
                "Collection has no status property to filter on",
                details={"properties": roles.property_names},
            )
        clauses.append(_option_clause(roles.status, "equals", status))

    label = parse_availability(params.availability)
    if label is not None:
        if roles.availability is None:
            raise SchemaError(
                "Collection has no availability property to filter on",
                details={"properties": roles.property_names},
            )
        clauses.append(_availability_clause(roles.availability, label))

    text = str(params.q or "").strip()
    if text:
        search = [
            clause
            for clause in (
                _text_contains_clause(roles.title, text) if roles.title else None,
                _text_contains_clause(roles.summary, text) if roles.summary else None,
            )
            if clause is not None
        ]
        if len(search) == 1:
            clauses.append(search[0])
        elif search:
            clauses.append({"or": search})

    return {"and": clauses}


def parse_sort(sort: Optional[str]) -> str:
    """Canonical sort key, "" for the store default order."""
    key = str(sort or "").strip().lower()
    if not key:
        return ""
    key = SORT_ALIASES.get(key, key)
    if key not in SORT_CHOICES:
        raise ValidationError(
            f"Invalid sort: {sort!r}", details={"allowed": list(SORT_CHOICES)}
        )
    return key


def build_sorts(sort: Optional[str], roles: CollectionRoles) -> List[Dict[str, Any]]:
    key = parse_sort(sort)
    if not key:
        return []
    if key == "recency":
        return [{"timestamp": "last_edited_time", "direction": "descending"}]
    if roles.title is None:
        return []
    direction = "ascending" if key == "title_asc" else "descending"
    return [{"property": roles.title.name, "direction": direction}]
