"""
TrustWrapper Canonical JSON

Deterministic byte form used for every hash and signature in the engine.
Identical values always produce identical bytes, regardless of dict
insertion order.
"""

import json
from enum import Enum
from typing import Any, Dict, List, Union


def canonicalize(obj: Any) -> bytes:
    """
    Convert an object to canonical JSON bytes.

    Rules:
    - Object keys sorted lexicographically
    - Compact separators, no whitespace
    - UTF-8 encoding
    - Enums encoded by value, tuples as arrays
    - Integral floats collapsed to ints so 70.0 and 70 hash alike

    Returns:
        UTF-8 encoded bytes of canonical JSON
    """
    canonical = _canonicalize_value(obj)
    return json.dumps(canonical, separators=(',', ':'), ensure_ascii=False).encode('utf-8')


def canonicalize_str(obj: Any) -> str:
    """Return canonical JSON as string."""
    return canonicalize(obj).decode('utf-8')


def _canonicalize_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return _canonicalize_value(value.value)
    elif value is None or isinstance(value, (bool, str)):
        return value
    elif isinstance(value, int):
        return value
    elif isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            raise ValueError("Cannot canonicalize non-finite float")
        return int(value) if value.is_integer() else value
    elif isinstance(value, dict):
        return _canonicalize_object(value)
    elif isinstance(value, (list, tuple)):
        return _canonicalize_array(value)
    else:
        raise ValueError(f"Cannot canonicalize type: {type(value)}")


def _canonicalize_object(obj: Dict[str, Any]) -> Dict[str, Any]:
    return {str(k): _canonicalize_value(obj[k]) for k in sorted(obj.keys(), key=str)}


def _canonicalize_array(arr: Union[List, tuple]) -> List:
    return [_canonicalize_value(item) for item in arr]
