"""Decoding helpers shared by the source readers and models."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any

from .errors import DecodeError

_FRACTION = re.compile(r"\.(\d+)")


def decode_json_body(body: str, *, program: str, expect: type) -> Any:
    """Decode CLI output, or return None when the output carries no data.

    Surrounding whitespace is trimmed; an empty body or the literal ``null``
    means "no data". Anything else must decode to an instance of *expect*.
    """
    text = (body or "").strip()
    if not text or text == "null":
        return None
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"parsing {program} output: {exc}") from exc
    if payload is None:
        return None
    if not isinstance(payload, expect):
        raise DecodeError(
            f"parsing {program} output: expected {expect.__name__}, got {type(payload).__name__}"
        )
    return payload


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC 3339 timestamp; naive values are taken as UTC."""
    raw = str(value or "").strip()
    if not raw:
        return None
    raw = raw.replace("Z", "+00:00").replace("z", "+00:00")
    # fromisoformat accepts at most microseconds
    raw = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), raw, count=1)
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def safe_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def safe_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def safe_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list) else []


def safe_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def object_list(value: Any, *, field: str) -> list[dict[str, Any]]:
    """A JSON array of objects; absent or null is empty, any other shape is a DecodeError."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise DecodeError(f"{field}: expected list, got {type(value).__name__}")
    for index, item in enumerate(value):
        if not isinstance(item, dict):
            raise DecodeError(f"{field}[{index}]: expected object, got {type(item).__name__}")
    return value
