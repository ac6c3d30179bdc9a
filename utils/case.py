"""
Wire-format helpers: camelCase keys and ISO-8601 timestamps on the way out,
snake_case keys for intake normalization on the way in.
"""
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic.alias_generators import to_camel, to_snake


def to_camel_key(s: str) -> str:
    return to_camel(s)


def to_snake_key(s: str) -> str:
    return to_snake(s)


def dict_keys_to_camel(obj: Any) -> Any:
    """Recursively convert dict keys from snake_case to camelCase for API responses."""
    if isinstance(obj, dict):
        return {to_camel_key(k): dict_keys_to_camel(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [dict_keys_to_camel(x) for x in obj]
    return obj


def iso(value: Optional[datetime]) -> Optional[str]:
    """ISO timestamp, read as UTC when the driver hands back a naive datetime (SQLite)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()
