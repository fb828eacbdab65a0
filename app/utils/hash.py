import hashlib
import json
from datetime import datetime
from typing import Any

from bson import ObjectId


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(str(item) for item in value)
    raise TypeError(f"Value is not JSON serializable: {type(value).__name__}")


def stable_hash(data: Any) -> str:
    """sha256 of canonical JSON, so equal payloads hash equal regardless of key order."""
    payload = json.dumps(data, sort_keys=True, separators=(",", ":"), default=_json_default, ensure_ascii=True)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
