"""
Typed property values.

`normalize` is the one place that knows how each property kind reads as
text; everything else in the gateway goes through it. The write builders at
the bottom are the matching per-kind switch for the few values we send back.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

KNOWN_KINDS = (
    "title",
    "rich_text",
    "url",
    "email",
    "phone_number",
    "number",
    "checkbox",
    "status",
    "select",
    "multi_select",
    "date",
    "formula",
    "rollup",
    "relation",
    "people",
    "created_time",
    "last_edited_time",
    "unique_id",
)


def property_kind(value: Any) -> str:
    """Kind tag of a property value; infers it from the payload keys if untagged."""
    if not isinstance(value, dict):
        return ""
    kind = value.get("type")
    if isinstance(kind, str) and kind:
        return kind
    for candidate in KNOWN_KINDS:
        if candidate in value:
            return candidate
    return ""


def _scalar_text(raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bool):
        return "true" if raw else "false"
    if isinstance(raw, int):
        return str(raw)
    if isinstance(raw, float):
        if raw != raw or raw in (float("inf"), float("-inf")):
            return ""
        if raw.is_integer():
            return str(int(raw))
        return format(Decimal(repr(raw)), "f")
    if isinstance(raw, str):
        return raw
    return ""


def _runs_text(runs: Any) -> str:
    if not isinstance(runs, list):
        return ""
    parts: List[str] = []
    for run in runs:
        if not isinstance(run, dict):
            continue
        text = run.get("plain_text")
        if not isinstance(text, str):
            content = run.get("text")
            text = content.get("content") if isinstance(content, dict) else None
        if isinstance(text, str):
            parts.append(text)
    return "".join(parts)


def _option_name(option: Any) -> str:
    if isinstance(option, dict):
        name = option.get("name")
        return name if isinstance(name, str) else ""
    return ""


def _date_start(raw: Any) -> str:
    # End dates are dropped on purpose: one date reads as one value.
    if isinstance(raw, dict):
        start = raw.get("start")
        return start if isinstance(start, str) else ""
    return ""


def _formula_text(raw: Any) -> str:
    if not isinstance(raw, dict):
        return ""
    kind = raw.get("type")
    if kind == "date":
        return _date_start(raw.get("date"))
    if kind in ("string", "number", "boolean"):
        return _scalar_text(raw.get(kind))
    return ""


def _rollup_text(raw: Any) -> str:
    if not isinstance(raw, dict):
        return ""
    kind = raw.get("type")
    if kind == "array":
        items = raw.get("array")
        if not isinstance(items, list):
            return ""
        texts = [normalize(item) for item in items]
        return " ".join(text for text in texts if text).strip()
    if kind == "date":
        return _date_start(raw.get("date"))
    if kind in ("number", "string", "boolean"):
        return _scalar_text(raw.get(kind))
    return ""


def normalize(value: Any) -> str:
    """Canonical text of a typed property value. Never raises."""
    try:
        return _normalize(value)
    except (AttributeError, KeyError, TypeError, ValueError):
        return ""


def _normalize(value: Any) -> str:
    kind = property_kind(value)
    if not kind:
        return ""
    raw = value.get(kind)
    if kind in ("title", "rich_text"):
        return _runs_text(raw)
    if kind in ("url", "email", "phone_number", "created_time", "last_edited_time"):
        return raw if isinstance(raw, str) else ""
    if kind in ("number", "checkbox"):
        return _scalar_text(raw)
    if kind in ("status", "select"):
        return _option_name(raw)
    if kind == "multi_select":
        if not isinstance(raw, list):
            return ""
        return ", ".join(name for name in map(_option_name, raw) if name)
    if kind == "date":
        return _date_start(raw)
    if kind == "formula":
        return _formula_text(raw)
    if kind == "rollup":
        return _rollup_text(raw)
    if kind == "relation":
        return " ".join(relation_ids(value))
    if kind == "people":
        if not isinstance(raw, list):
            return ""
        names = [p.get("name") for p in raw if isinstance(p, dict)]
        return ", ".join(n for n in names if isinstance(n, str) and n)
    if kind == "unique_id":
        if not isinstance(raw, dict) or raw.get("number") is None:
            return ""
        number = _scalar_text(raw.get("number"))
        prefix = raw.get("prefix")
        return f"{prefix}-{number}" if isinstance(prefix, str) and prefix else number
    return ""


def relation_ids(value: Any) -> List[str]:
    """Related record ids of a relation, or of a rollup that aggregates one."""
    kind = property_kind(value)
    if kind == "relation":
        raw = value.get("relation")
        if not isinstance(raw, list):
            return []
        return [
            item["id"]
            for item in raw
            if isinstance(item, dict) and isinstance(item.get("id"), str)
        ]
    if kind == "rollup":
        raw = value.get("rollup")
        if not isinstance(raw, dict) or raw.get("type") != "array":
            return []
        ids: List[str] = []
        for item in raw.get("array") or []:
            for related_id in relation_ids(item):
                if related_id not in ids:
                    ids.append(related_id)
        return ids
    return []


def property_text(properties: Any, name: str) -> str:
    if not isinstance(properties, dict):
        return ""
    return normalize(properties.get(name))


# Write side ------------------------------------------------------------------


def text_value(kind: str, text: str) -> Optional[Dict[str, Any]]:
    """Property payload setting a text-like property; None if the kind is not writable."""
    if kind not in ("rich_text", "title"):
        return None
    runs = [{"type": "text", "text": {"content": text}}] if text else []
    return {kind: runs}


def option_value(kind: str, name: str) -> Optional[Dict[str, Any]]:
    """Property payload choosing a named option; an empty name clears a select."""
    if kind == "select":
        return {"select": {"name": name} if name else None}
    if kind == "status":
        return {"status": {"name": name}} if name else None
    return None
