"""
Identity resolution: find the owner record for an external member id.

Which property holds the external id, and what kind it is, drifts between
workspaces. The resolver therefore walks a fixed table of probes
(property name x predicate x kind) and falls back to a bounded in-memory
scan when no probe matches.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from store import StoreError

from .errors import NotFoundError, UpstreamError, ValidationError
from .properties import property_text

logger = logging.getLogger(__name__)

PROBE_PREDICATES: Tuple[str, ...] = ("equals", "contains")
PROBE_KINDS: Tuple[str, ...] = ("rich_text", "title", "formula")
FALLBACK_SCAN_PAGE_SIZE = 50


@dataclass(frozen=True)
class IdentityProbe:
    property_name: str
    kind: str
    predicate: str

    @property
    def label(self) -> str:
        kind = "formula.string" if self.kind == "formula" else self.kind
        return f"{self.property_name} {kind} {self.predicate}"

    def build_filter(self, external_id: str) -> Dict[str, Any]:
        condition = {self.predicate: external_id}
        if self.kind == "formula":
            return {"property": self.property_name, "formula": {"string": condition}}
        return {"property": self.property_name, self.kind: condition}


def build_probe_table(property_names: Iterable[str]) -> List[IdentityProbe]:
    """Probe order: names as configured, then equals before contains,
    then rich_text before title before formula."""
    return [
        IdentityProbe(name, kind, predicate)
        for name in property_names
        for predicate in PROBE_PREDICATES
        for kind in PROBE_KINDS
    ]


@dataclass
class IdentityAttempt:
    label: str
    ok: bool
    count: int = 0
    error: Any = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"try": self.label, "ok": self.ok}
        if self.ok:
            payload["count"] = self.count
        else:
            payload["error"] = self.error
        return payload


@dataclass
class IdentityMatch:
    record: Dict[str, Any]
    matched_by: str
    attempts: List[IdentityAttempt] = field(default_factory=list)
    scanned: bool = False

    @property
    def record_id(self) -> str:
        return str(self.record.get("id") or "")

    def to_debug(self) -> Dict[str, Any]:
        return {
            "ownerId": self.record_id,
            "matchedBy": self.matched_by,
            "scanned": self.scanned,
            "attempts": [attempt.to_dict() for attempt in self.attempts],
        }


class IdentityResolver:
    def __init__(
        self,
        store: Any,
        collection_id: str,
        property_names: Sequence[str],
    ) -> None:
        self._store = store
        self._collection_id = collection_id
        self._property_names = tuple(property_names)
        self.probes = build_probe_table(self._property_names)

    async def resolve(self, external_id: str) -> IdentityMatch:
        wanted = str(external_id or "").strip()
        if not wanted:
            raise ValidationError("Missing externalId")

        attempts: List[IdentityAttempt] = []
        for probe in self.probes:
            try:
                response = await self._store.query_database(
                    self._collection_id,
                    filter=probe.build_filter(wanted),
                    page_size=1,
                )
            except StoreError as exc:
                if not exc.is_validation:
                    raise UpstreamError(
                        "Identity lookup failed", details=exc.to_dict()
                    ) from exc
                # The property is missing or has another kind here; next probe.
                attempts.append(
                    IdentityAttempt(probe.label, ok=False, error=exc.body or exc.message)
                )
                continue

            results = response.get("results") or []
            attempts.append(IdentityAttempt(probe.label, ok=True, count=len(results)))
            if results:
                return IdentityMatch(results[0], probe.label, attempts)

        match = await self._scan_fallback(wanted, attempts)
        if match is not None:
            return match

        logger.info("no owner record for external id %r", wanted)
        raise NotFoundError(
            "Owner not found for given externalId",
            details={
                "externalId": wanted,
                "attempts": [attempt.to_dict() for attempt in attempts],
            },
        )

    async def _scan_fallback(
        self, wanted: str, attempts: List[IdentityAttempt]
    ) -> Optional[IdentityMatch]:
        label = f"scan first {FALLBACK_SCAN_PAGE_SIZE} records"
        try:
            response = await self._store.query_database(
                self._collection_id, page_size=FALLBACK_SCAN_PAGE_SIZE
            )
        except StoreError as exc:
            raise UpstreamError(
                "Identity lookup failed", details=exc.to_dict()
            ) from exc

        records = response.get("results") or []
        attempts.append(IdentityAttempt(label, ok=True, count=len(records)))
        needle = wanted.lower()
        for record in records:
            properties = record.get("properties") if isinstance(record, dict) else None
            for name in self._property_names:
                text = property_text(properties, name).strip().lower()
                if text and needle in text:
                    return IdentityMatch(
                        record, f"{label}: {name}", attempts, scanned=True
                    )
        return None
