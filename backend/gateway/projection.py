"""
Projection of store records into the flat response shape.

The summary field needs care: upstream summaries are often empty or still
hold the "no data" template, depending on how the collection's computed
fields are set up. When that happens the projector looks for a usable
summary on related records and, failing that, writes one from their fields.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from store import StoreError

from .properties import property_text, relation_ids
from .schema import CollectionRoles, PropertyRef

logger = logging.getLogger(__name__)

NOT_SCHEDULED = "not yet scheduled"
EMPTY_FIELD = "/"

# (label, candidate property names, placeholder when absent)
SYNTHESIZED_FIELDS: Tuple[Tuple[str, Tuple[str, ...], str], ...] = (
    ("Date", ("Date", "Event date", "Gig date", "When"), NOT_SCHEDULED),
    ("Location", ("Location", "Venue", "Address", "City"), EMPTY_FIELD),
    ("Links", ("Links", "Link", "URL", "Website"), EMPTY_FIELD),
    ("Description", ("Description", "Details", "Notes"), EMPTY_FIELD),
)

SOURCE_DECLARED = "declared"
SOURCE_SYNTHESIZED = "synthesized"


def _collapse(text: str) -> str:
    return " ".join(text.split())


def synthesize_summary(properties: Any) -> str:
    lines: List[str] = []
    for label, candidates, placeholder in SYNTHESIZED_FIELDS:
        value = ""
        for name in candidates:
            value = property_text(properties, name).strip()
            if value:
                break
        lines.append(f"{label}: {value or placeholder}")
    return "\n".join(lines)


class SummaryComposer:
    def __init__(
        self,
        store: Any,
        *,
        min_length: int = 15,
        placeholder: str = "",
        related_summary_property: str = "Summary",
    ) -> None:
        self._store = store
        self._min_length = min_length
        self._placeholder = _collapse(placeholder)
        self._related_summary_property = related_summary_property

    def is_placeholder(self, text: str) -> bool:
        return bool(self._placeholder) and _collapse(text) == self._placeholder

    def is_substantive(self, text: str) -> bool:
        stripped = (text or "").strip()
        if not stripped or self.is_placeholder(stripped):
            return False
        return len(stripped) >= self._min_length

    async def compose(
        self,
        properties: Dict[str, Any],
        summary: Optional[PropertyRef],
        other_relations: List[PropertyRef],
    ) -> Tuple[str, str]:
        """Return (summary text, source) for one record."""
        declared = property_text(properties, summary.name) if summary else ""
        if self.is_substantive(declared):
            return declared.strip(), SOURCE_DECLARED

        first_related: Optional[Dict[str, Any]] = None
        for relation in other_relations:
            ids = relation_ids(properties.get(relation.name))
            if not ids:
                continue
            try:
                related = await self._store.retrieve_page(ids[0])
            except StoreError as exc:
                logger.info(
                    "summary fallback: could not load %s via %r: %s",
                    ids[0],
                    relation.name,
                    exc.message,
                )
                continue
            related_properties = related.get("properties") or {}
            if first_related is None:
                first_related = related_properties
            text = property_text(related_properties, self._related_summary_property)
            if self.is_substantive(text):
                return text.strip(), f"relation:{relation.name}"

        source = first_related if first_related is not None else properties
        return synthesize_summary(source), SOURCE_SYNTHESIZED


class ResultProjector:
    def __init__(self, roles: CollectionRoles, composer: SummaryComposer) -> None:
        self._roles = roles
        self._composer = composer

    def _text(self, properties: Dict[str, Any], ref: Optional[PropertyRef]) -> str:
        return property_text(properties, ref.name) if ref is not None else ""

    async def project(self, record: Dict[str, Any]) -> Tuple[Dict[str, Any], str]:
        properties = record.get("properties")
        if not isinstance(properties, dict):
            properties = {}
        summary, source = await self._composer.compose(
            properties, self._roles.summary, self._roles.other_relations
        )
        return (
            {
                "id": record.get("id"),
                "title": self._text(properties, self._roles.title),
                "summary": summary,
                "status": self._text(properties, self._roles.status),
                "availability": self._text(properties, self._roles.availability),
                "comment": self._text(properties, self._roles.comment),
                "url": record.get("url") or None,
            },
            source,
        )
