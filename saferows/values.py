from __future__ import annotations

import json
import math
from typing import Any, Dict, List, Union

from .errors import ValidationError

# JSON-derived value as it flows through the engine. Scalars keep their native
# Python type all the way into bound SQL parameters.
Value = Union[None, bool, int, float, str, List["Value"], Dict[str, "Value"]]

SCALAR_TYPES = (type(None), bool, int, float, str)


def to_value(obj: Any, path: str = "value") -> Value:
    """
    Convert a decoded JSON object into the Value union, rejecting anything else.

    Tuples are accepted as lists. Non-finite floats and non-string map keys are
    rejected since they have no JSON representation.
    """
    if obj is None or isinstance(obj, (bool, str)):
        return obj
    if isinstance(obj, int):
        return int(obj)
    if isinstance(obj, float):
        if not math.isfinite(obj):
            raise ValidationError(f"{path}: non-finite number is not allowed")
        return obj
    if isinstance(obj, (list, tuple)):
        return [to_value(item, f"{path}[{i}]") for i, item in enumerate(obj)]
    if isinstance(obj, dict):
        out: Dict[str, Value] = {}
        for key, item in obj.items():
            if not isinstance(key, str):
                raise ValidationError(f"{path}: map keys must be strings, got {type(key).__name__}")
            out[key] = to_value(item, f"{path}.{key}")
        return out
    raise ValidationError(f"{path}: unsupported value type {type(obj).__name__}")


def is_scalar(value: Value) -> bool:
    return isinstance(value, SCALAR_TYPES)


def to_param(value: Value) -> Any:
    """Value as a bound SQL parameter; containers become JSON documents."""
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return value


def render(value: Value) -> str:
    """Human-readable rendering used in rule descriptions."""
    if value is None:
        return "NULL"
    if isinstance(value, str):
        return repr(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)
