import datetime
import json
from decimal import Decimal

_MAX_DEPTH = 8


def to_jsonable(value, _depth=0):
    """Convert a sandbox value into something `json.dumps` accepts, falling back to repr."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if _depth >= _MAX_DEPTH:
        return repr(value)
    if isinstance(value, dict):
        return {str(k): to_jsonable(v, _depth + 1) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v, _depth + 1) for v in value]
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        pass
    try:
        return repr(value)
    except Exception:
        return "<unserializable>"


def format_log_args(args) -> str:
    parts = []
    for arg in args:
        if isinstance(arg, (dict, list, tuple)):
            parts.append(json.dumps(to_jsonable(arg), indent=2))
        else:
            parts.append(str(arg))
    return " ".join(parts)
