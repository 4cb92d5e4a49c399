import base64
import json
from datetime import datetime
from typing import Any, Dict, Optional

from bson import ObjectId


def to_json_compatible(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_json_compatible(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_compatible(v) for v in value]
    return value


def normalize_mongo_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    normalized = {k: _as_id(v) if k.endswith("_id") or k == "_id" else v for k, v in doc.items()}
    if "_id" in normalized:
        normalized["id"] = normalized.pop("_id")
    return normalized


def encode_cursor(data: Dict[str, Any]) -> str:
    raw = json.dumps(to_json_compatible(data), separators=(",", ":"), sort_keys=True)
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(cursor: Optional[str]) -> Optional[Dict[str, Any]]:
    if not cursor:
        return None
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _as_id(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    return value
