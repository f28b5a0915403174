"""
Turn JSON-shaped requests into the validated data model.

Update/delete configurations look like::

    {"updateRules": [{"conditions": [{"field": "status", "operator": "=", "value": 1}],
                      "updateValues": {"name": "x"},
                      "maxAffectedRecords": 10}],
     "useTransaction": true, "maxTotalAffectedRecords": 100, "dryRun": false}

Insert specs are either a plain ``{"column": value}`` map or a combination of
``groups``, ``sequences`` and ``fixedValues``.
"""
from __future__ import annotations

import json
import math
from typing import Any, Callable, Dict, List, Mapping, Type, Union

from ..errors import SaferowsError, SynthesisError, ValidationError
from ..values import Value, to_value
from .models import (
    Condition,
    Connector,
    DeleteRequest,
    DeleteRule,
    Group,
    InsertSpec,
    MutationRequest,
    Operator,
    Rule,
    SequenceDef,
    SequenceType,
    UpdateRequest,
    UpdateRule,
)

JsonInput = Union[str, bytes, Mapping[str, Any], None]

_INSERT_CONTROL_KEYS = ("groups", "sequences", "fixedValues")


def _load_object(raw: JsonInput, what: str, error_cls: Type[SaferowsError]) -> Dict[str, Any]:
    if raw is None:
        raise error_cls(f"{what} JSON is required")
    if isinstance(raw, (str, bytes)):
        if not raw.strip():
            raise error_cls(f"{what} JSON is required")
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise error_cls(f"Failed to parse {what} JSON: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise error_cls(f"{what} JSON must be an object")
    return dict(raw)


def _get_int(data: Mapping[str, Any], key: str, default: int, error_cls: Type[SaferowsError]) -> int:
    raw = data.get(key, default)
    if (
        isinstance(raw, bool)
        or not isinstance(raw, (int, float))
        or (isinstance(raw, float) and not math.isfinite(raw))
        or int(raw) != raw
    ):
        raise error_cls(f"'{key}' must be an integer, got {raw!r}")
    return int(raw)


def _get_bool(data: Mapping[str, Any], key: str, default: bool, error_cls: Type[SaferowsError]) -> bool:
    raw = data.get(key, default)
    if not isinstance(raw, bool):
        raise error_cls(f"'{key}' must be a boolean, got {raw!r}")
    return raw


def _get_map(data: Mapping[str, Any], key: str, error_cls: Type[SaferowsError]) -> Dict[str, Value]:
    raw = data.get(key)
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise error_cls(f"'{key}' must be an object")
    try:
        return to_value(dict(raw), key)  # type: ignore[return-value]
    except ValidationError as exc:
        raise error_cls(str(exc)) from None


def _get_list(data: Mapping[str, Any], key: str, error_cls: Type[SaferowsError]) -> List[Any]:
    raw = data.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise error_cls(f"'{key}' must be an array")
    return raw


def parse_condition(data: Any) -> Condition:
    if not isinstance(data, Mapping):
        raise ValidationError("Condition must be an object")
    if "field" not in data or "operator" not in data:
        raise ValidationError("Condition requires 'field' and 'operator'")
    values = data.get("values")
    if values is not None:
        if not isinstance(values, list):
            raise ValidationError("Condition 'values' must be an array")
        values = to_value(values, "values")
    return Condition(
        field=data["field"],
        operator=Operator.parse(data["operator"]),
        value=to_value(data.get("value"), "value"),
        values=values,
        connector=Connector.parse(data.get("connector")),
    )


def _parse_rule_common(data: Mapping[str, Any]) -> Dict[str, Any]:
    conditions = []
    for i, item in enumerate(_get_list(data, "conditions", ValidationError)):
        try:
            conditions.append(parse_condition(item))
        except ValidationError as exc:
            raise ValidationError(f"Condition {i + 1}: {exc}") from None
    description = data.get("description")
    if description is not None and not isinstance(description, str):
        raise ValidationError("'description' must be a string")
    return {
        "conditions": conditions,
        "max_affected_records": _get_int(data, "maxAffectedRecords", 1000, ValidationError),
        "require_conditions": _get_bool(data, "requireConditions", True, ValidationError),
        "description": description,
    }


def parse_update_rule(data: Any) -> UpdateRule:
    if not isinstance(data, Mapping):
        raise ValidationError("Update rule must be an object")
    return UpdateRule(
        set_values=_get_map(data, "updateValues", ValidationError),
        **_parse_rule_common(data),
    )


def parse_delete_rule(data: Any) -> DeleteRule:
    if not isinstance(data, Mapping):
        raise ValidationError("Delete rule must be an object")
    return DeleteRule(**_parse_rule_common(data))


def _parse_request(
    table_name: str,
    raw: JsonInput,
    request_cls: Type[MutationRequest],
    rules_key: str,
    parse_rule: Callable[[Any], Rule],
) -> MutationRequest:
    what = f"{request_cls.operation.value} configuration"
    data = _load_object(raw, what, ValidationError)
    rules = []
    for i, item in enumerate(_get_list(data, rules_key, ValidationError)):
        try:
            rules.append(parse_rule(item))
        except ValidationError as exc:
            raise ValidationError(f"Rule {i + 1}: {exc}") from None
    request = request_cls(
        table_name=table_name,
        rules=rules,
        use_transaction=_get_bool(data, "useTransaction", True, ValidationError),
        max_total_affected_records=_get_int(data, "maxTotalAffectedRecords", 5000, ValidationError),
        dry_run=_get_bool(data, "dryRun", False, ValidationError),
        return_details=_get_bool(data, "returnDetails", True, ValidationError),
    )
    request.validate()
    return request


def parse_update_request(table_name: str, raw: JsonInput) -> UpdateRequest:
    """Parse and validate an ``updateRules`` configuration."""
    return _parse_request(table_name, raw, UpdateRequest, "updateRules", parse_update_rule)  # type: ignore[return-value]


def parse_delete_request(table_name: str, raw: JsonInput) -> DeleteRequest:
    """Parse and validate a ``deleteRules`` configuration."""
    return _parse_request(table_name, raw, DeleteRequest, "deleteRules", parse_delete_rule)  # type: ignore[return-value]


def parse_sequence(column: str, data: Any) -> SequenceDef:
    if not isinstance(data, Mapping):
        raise SynthesisError(f"Sequence for column {column!r} must be an object")
    raw_type = data.get("type")
    try:
        seq_type = SequenceType(str(raw_type).strip().upper())
    except ValueError:
        valid = ", ".join(t.value for t in SequenceType)
        raise SynthesisError(
            f"Unknown sequence type {raw_type!r} for column {column!r}. Valid types are: {valid}"
        ) from None

    custom_values = data.get("customValues")
    if custom_values is not None:
        if not isinstance(custom_values, list):
            raise SynthesisError(f"'customValues' for column {column!r} must be an array")
        try:
            custom_values = to_value(custom_values, "customValues")
        except ValidationError as exc:
            raise SynthesisError(str(exc)) from None
    pattern = data.get("pattern")
    if pattern is not None and not isinstance(pattern, str):
        raise SynthesisError(f"'pattern' for column {column!r} must be a string")

    return SequenceDef(
        type=seq_type,
        start_value=_get_int(data, "startValue", 1, SynthesisError),
        step=_get_int(data, "step", 1, SynthesisError),
        custom_values=custom_values,
        pattern=pattern,
        cycle=_get_bool(data, "cycle", False, SynthesisError),
    )


def parse_group(data: Any) -> Group:
    if not isinstance(data, Mapping):
        raise SynthesisError("Group must be an object")
    if "recordCount" not in data:
        raise SynthesisError("Group requires 'recordCount'")
    description = data.get("description")
    return Group(
        record_count=_get_int(data, "recordCount", 0, SynthesisError),
        fixed_values=_get_map(data, "fixedValues", SynthesisError),
        description=description if isinstance(description, str) else None,
    )


def parse_insert_spec(table_name: str, record_count: int = 1, raw: JsonInput = None) -> InsertSpec:
    """
    Parse an insert generation spec.

    ``raw`` may be omitted for purely random rows. A map without any of
    ``groups``, ``sequences`` or ``fixedValues`` is taken as plain fixed values.
    """
    spec = InsertSpec(table_name=table_name, record_count=record_count)
    if raw is None or (isinstance(raw, (str, bytes)) and not raw.strip()):
        spec.validate()
        return spec

    data = _load_object(raw, "generation spec", SynthesisError)
    if not any(key in data for key in _INSERT_CONTROL_KEYS):
        try:
            spec.fixed_values = to_value(data, "fixedValues")  # type: ignore[assignment]
        except ValidationError as exc:
            raise SynthesisError(str(exc)) from None
    else:
        spec.fixed_values = _get_map(data, "fixedValues", SynthesisError)
        spec.groups = [parse_group(item) for item in _get_list(data, "groups", SynthesisError)]
        sequences = data.get("sequences") or {}
        if not isinstance(sequences, Mapping):
            raise SynthesisError("'sequences' must be an object")
        spec.sequences = {column: parse_sequence(column, item) for column, item in sequences.items()}

    spec.validate()
    return spec


def insert_spec_columns(spec: InsertSpec) -> List[str]:
    """Every column named explicitly anywhere in the insert spec, in first-seen order."""
    seen: Dict[str, None] = {}
    for column in spec.fixed_values:
        seen.setdefault(column)
    for group in spec.groups:
        for column in group.fixed_values:
            seen.setdefault(column)
    for column in spec.sequences:
        seen.setdefault(column)
    return list(seen)
