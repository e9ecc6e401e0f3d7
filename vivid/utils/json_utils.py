"""
JSON utilities for configuration blobs and tool responses.
"""

import json
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


def parse_json_object(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse a JSON object string, tolerating surrounding quotes.

    Args:
        raw: JSON text (may be None or empty)

    Returns:
        Parsed dict, or None if the text is empty, malformed or not an object
    """
    if raw is None:
        return None

    raw = raw.strip()
    # Shell-exported values sometimes keep their single quotes
    if len(raw) >= 2 and raw[0] == raw[-1] == "'":
        raw = raw[1:-1].strip()

    if not raw:
        return None

    try:
        value = json.loads(raw)
    except ValueError:
        return None

    return value if isinstance(value, dict) else None


def to_jsonable(value: Any) -> Any:
    """Convert records into plain JSON-compatible values.

    Dataclasses become dicts, enums their values, datetimes ISO strings and
    sets sorted lists.
    """
    if is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(asdict(value))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted(to_jsonable(item) for item in value)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value
