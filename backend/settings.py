"""
Gateway configuration.

Everything is read from the environment once, at app construction time.
A `.env` file discovered from the working directory is loaded first so local
runs behave like deployed ones.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Tuple

from dotenv import find_dotenv, load_dotenv

_dotenv_path = find_dotenv(usecwd=True)
if _dotenv_path:
    load_dotenv(_dotenv_path)

_TRUTHY_ENV_VALUES = {"1", "true", "yes", "on", "enabled"}

DEFAULT_IDENTITY_PROPERTY_NAMES = (
    "ExternalOwnerID",
    "External Owner ID",
    "External Member ID",
)
DEFAULT_HIDDEN_STATUSES = ("Draft", "Archived")
DEFAULT_TERMINAL_STATUSES = ("Confirmed", "Cancelled", "Done")
DEFAULT_SUMMARY_PLACEHOLDER = (
    "Date: not yet scheduled\n"
    "Location: /\n"
    "Links: /\n"
    "Description: /"
)
MAX_SCHEMA_CACHE_TTL_SEC = 300.0


def _env_str(name: str, default: str = "") -> str:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip()


def _first_env(names: List[str], default: str = "") -> str:
    for name in names:
        value = os.getenv(name)
        if value is None:
            continue
        candidate = value.strip()
        if candidate:
            return candidate
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY_ENV_VALUES


def _env_csv(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    values: List[str] = []
    for part in raw.split(","):
        item = part.strip()
        if item and item not in values:
            values.append(item)
    return tuple(values)


def _env_multiline(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    # Single-line env files carry newlines as literal "\n".
    return raw.replace("\\n", "\n")


@dataclass(frozen=True)
class GatewaySettings:
    notion_token: str = ""
    notion_version: str = "2022-06-28"
    notion_api_base: str = "https://api.notion.com/v1"
    owners_db_id: str = ""
    records_db_id: str = ""
    allowed_origins: Tuple[str, ...] = ()
    hidden_statuses: Tuple[str, ...] = DEFAULT_HIDDEN_STATUSES
    blocked_status: str = "Potential"
    terminal_statuses: Tuple[str, ...] = DEFAULT_TERMINAL_STATUSES
    response_status: str = "Responded"
    identity_property_names: Tuple[str, ...] = DEFAULT_IDENTITY_PROPERTY_NAMES
    owner_name_pattern: str = r"owner|artist"
    summary_min_length: int = 15
    summary_placeholder: str = DEFAULT_SUMMARY_PLACEHOLDER
    related_summary_property: str = "Summary"
    schema_cache_ttl_sec: float = MAX_SCHEMA_CACHE_TTL_SEC
    store_timeout_sec: float = 8.0
    page_size: int = 30
    comment_max_length: int = 1900
    api_key: str = ""
    allow_insecure_local: bool = False

    @classmethod
    def from_env(cls) -> "GatewaySettings":
        return cls(
            notion_token=_env_str("NOTION_TOKEN"),
            notion_version=_env_str("NOTION_VERSION") or "2022-06-28",
            notion_api_base=(
                _env_str("NOTION_API_BASE") or "https://api.notion.com/v1"
            ).rstrip("/"),
            owners_db_id=_first_env(["OWNERS_DB_ID", "ARTISTS_DB_ID"]),
            records_db_id=_first_env(
                ["RECORDS_DB_ID", "BOOKING_DB_ID", "NOTION_DB_ID"]
            ),
            allowed_origins=_env_csv("ALLOWED_ORIGINS", ()),
            hidden_statuses=_env_csv("HIDDEN_STATUSES", DEFAULT_HIDDEN_STATUSES),
            blocked_status=_env_str("BLOCKED_STATUS", "Potential"),
            terminal_statuses=_env_csv(
                "TERMINAL_STATUSES", DEFAULT_TERMINAL_STATUSES
            ),
            response_status=_env_str("RESPONSE_STATUS") or "Responded",
            identity_property_names=_env_csv(
                "IDENTITY_PROPERTY_NAMES", DEFAULT_IDENTITY_PROPERTY_NAMES
            )
            or DEFAULT_IDENTITY_PROPERTY_NAMES,
            owner_name_pattern=_env_str("OWNER_NAME_PATTERN") or r"owner|artist",
            summary_min_length=max(1, _env_int("SUMMARY_MIN_LENGTH", 15)),
            summary_placeholder=_env_multiline(
                "SUMMARY_PLACEHOLDER", DEFAULT_SUMMARY_PLACEHOLDER
            ),
            related_summary_property=_env_str("RELATED_SUMMARY_PROPERTY")
            or "Summary",
            schema_cache_ttl_sec=min(
                MAX_SCHEMA_CACHE_TTL_SEC,
                max(0.0, _env_float("SCHEMA_CACHE_TTL_SEC", MAX_SCHEMA_CACHE_TTL_SEC)),
            ),
            store_timeout_sec=max(1.0, _env_float("STORE_TIMEOUT_SEC", 8.0)),
            page_size=min(100, max(1, _env_int("PAGE_SIZE", 30))),
            comment_max_length=max(1, _env_int("COMMENT_MAX_LENGTH", 1900)),
            api_key=_env_str("GATEWAY_API_KEY"),
            allow_insecure_local=_env_bool(
                "GATEWAY_API_KEY_ALLOW_INSECURE_LOCAL", False
            ),
        )

    @property
    def store_configured(self) -> bool:
        return bool(self.notion_token and self.owners_db_id and self.records_db_id)

    def missing_settings(self) -> List[str]:
        missing: List[str] = []
        if not self.notion_token:
            missing.append("NOTION_TOKEN")
        if not self.owners_db_id:
            missing.append("OWNERS_DB_ID")
        if not self.records_db_id:
            missing.append("RECORDS_DB_ID")
        return missing

    def cors_origins(self) -> List[str]:
        """Origins for the CORS middleware; empty means no cross-origin access."""
        return list(self.allowed_origins)
