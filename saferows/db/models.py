from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Dict, List, Optional

from ..errors import SynthesisError, ValidationError
from ..security import contains_injection_pattern, identifier_error
from ..values import Value, is_scalar, render


class OperationType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class Operator(str, Enum):
    EQ = "="
    NE = "!="
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    IN = "IN"
    NOT_IN = "NOT IN"
    LIKE = "LIKE"
    NOT_LIKE = "NOT LIKE"

    @property
    def takes_list(self) -> bool:
        return self in (Operator.IN, Operator.NOT_IN)

    @classmethod
    def parse(cls, raw: object) -> "Operator":
        if not isinstance(raw, str) or not raw.strip():
            raise ValidationError("Operator cannot be null or empty")
        normalized = re.sub(r"\s+", " ", raw.strip().upper())
        try:
            return cls(normalized)
        except ValueError:
            valid = ", ".join(op.value for op in cls)
            raise ValidationError(f"Invalid operator: {raw}. Valid operators are: {valid}") from None


class Connector(str, Enum):
    AND = "AND"
    OR = "OR"

    @classmethod
    def parse(cls, raw: object) -> "Connector":
        if raw is None:
            return cls.AND
        if isinstance(raw, str):
            try:
                return cls(raw.strip().upper())
            except ValueError:
                pass
        raise ValidationError(f"Invalid connector: {raw!r}. Valid connectors are: AND, OR")


def _check_text(value: Value, what: str) -> None:
    if isinstance(value, str) and contains_injection_pattern(value):
        raise ValidationError(f"{what} contains potentially dangerous SQL patterns: {value}")


@dataclass
class Condition:
    """
    One WHERE predicate.

    ``connector`` joins this condition to the previous one; it is ignored on
    the first condition of a rule.
    """

    field: str
    operator: Operator
    value: Value = None
    values: Optional[List[Value]] = None
    connector: Connector = Connector.AND

    def validate(self) -> None:
        error = identifier_error(self.field, "field name")
        if error is not None:
            raise ValidationError(error)

        if self.operator.takes_list:
            if self.value is not None:
                raise ValidationError(
                    f"Operator {self.operator.value} takes 'values', not 'value'"
                )
            if not self.values:
                raise ValidationError("IN/NOT IN operators require a non-empty 'values' list")
            for item in self.values:
                if not is_scalar(item) or item is None:
                    raise ValidationError(
                        f"IN/NOT IN values must be non-null scalars, got {render(item)}"
                    )
                _check_text(item, "Condition value")
        else:
            if self.values is not None:
                raise ValidationError(
                    f"Operator {self.operator.value} takes a single 'value', not 'values'"
                )
            if self.value is None:
                raise ValidationError(f"Operator {self.operator.value} requires a value")
            if not is_scalar(self.value):
                raise ValidationError(
                    f"Operator {self.operator.value} requires a scalar value; use IN for lists"
                )
            _check_text(self.value, "Condition value")

    def bound_values(self) -> List[Value]:
        if self.operator.takes_list:
            return list(self.values or [])
        return [self.value]

    def describe(self) -> str:
        if self.operator.takes_list:
            rendered = ", ".join(render(v) for v in self.values or [])
            return f"{self.field} {self.operator.value} ({rendered})"
        return f"{self.field} {self.operator.value} {render(self.value)}"


@dataclass
class Rule:
    """Conditions plus per-rule safety settings shared by update and delete rules."""

    conditions: List[Condition] = field(default_factory=list)
    max_affected_records: int = 1000
    require_conditions: bool = True
    description: Optional[str] = None

    kind: ClassVar[str] = "rule"
    max_affected_cap: ClassVar[Optional[int]] = None

    @property
    def has_conditions(self) -> bool:
        return bool(self.conditions)

    def validate(self) -> None:
        label = self.kind.capitalize()
        if self.require_conditions and not self.has_conditions:
            raise ValidationError(f"{label} rule requires at least one condition for safety")
        if self.max_affected_records <= 0:
            raise ValidationError("Maximum affected records must be positive")
        if self.max_affected_cap is not None and self.max_affected_records > self.max_affected_cap:
            raise ValidationError(
                f"Maximum affected records cannot exceed {self.max_affected_cap} for safety"
            )
        for i, condition in enumerate(self.conditions):
            try:
                condition.validate()
            except ValidationError as exc:
                raise ValidationError(f"Condition {i + 1} is invalid: {exc}") from None

    def where_description(self) -> str:
        if not self.has_conditions:
            return "No conditions (affects all records)"
        parts = []
        for i, condition in enumerate(self.conditions):
            if i > 0:
                parts.append(condition.connector.value)
            parts.append(condition.describe())
        return "WHERE " + " ".join(parts)


@dataclass
class UpdateRule(Rule):
    set_values: Dict[str, Value] = field(default_factory=dict)

    kind: ClassVar[str] = "update"

    def validate(self) -> None:
        super().validate()
        if not self.set_values:
            raise ValidationError("Update rule must have at least one update value")
        for column, value in self.set_values.items():
            error = identifier_error(column, "update field name")
            if error is not None:
                raise ValidationError(error)
            _check_text(value, "Update value")

    def describe(self) -> str:
        if self.description:
            return self.description
        assignments = ", ".join(f"{col}={render(val)}" for col, val in self.set_values.items())
        return f"Update rule: {self.where_description()} SET {assignments}"


@dataclass
class DeleteRule(Rule):
    kind: ClassVar[str] = "delete"
    max_affected_cap: ClassVar[Optional[int]] = 50_000

    def describe(self) -> str:
        if self.description:
            return self.description
        return f"Delete rule: {self.where_description()}"


@dataclass
class MutationRequest:
    """
    A batch of update or delete rules against one table.

    The rules run in declaration order; the request-wide ceiling is checked
    after all of them ran.
    """

    table_name: str
    rules: List[Rule] = field(default_factory=list)
    use_transaction: bool = True
    max_total_affected_records: int = 5000
    dry_run: bool = False
    return_details: bool = True

    operation: ClassVar[OperationType]
    rule_type: ClassVar[type] = Rule
    max_total_cap: ClassVar[Optional[int]] = None

    def validate(self) -> None:
        error = identifier_error(self.table_name, "table name")
        if error is not None:
            raise ValidationError(error)
        if not self.rules:
            raise ValidationError(
                f"{self.operation.value.capitalize()} request must have at least one "
                f"{self.operation.value} rule"
            )
        if self.max_total_affected_records <= 0:
            raise ValidationError("Maximum total affected records must be positive")
        if self.max_total_cap is not None and self.max_total_affected_records > self.max_total_cap:
            raise ValidationError(
                f"Maximum total affected records cannot exceed {self.max_total_cap} for safety"
            )
        for i, rule in enumerate(self.rules):
            if not isinstance(rule, self.rule_type):
                raise ValidationError(
                    f"Rule {i + 1} is a {type(rule).__name__}, expected {self.rule_type.__name__}"
                )
            try:
                rule.validate()
            except ValidationError as exc:
                raise ValidationError(f"Rule {i + 1} is invalid: {exc}") from None

    @property
    def has_unconditional_rules(self) -> bool:
        return any(not rule.has_conditions for rule in self.rules)

    def summary(self) -> str:
        lines = [
            f"{self.operation.value.capitalize()} request for table '{self.table_name}':",
            f"- Rules: {len(self.rules)}",
            f"- Total conditions: {sum(len(r.conditions) for r in self.rules)}",
            f"- Transaction: {self.use_transaction}",
            f"- Max affected records: {self.max_total_affected_records}",
            f"- Dry run: {self.dry_run}",
        ]
        if self.has_unconditional_rules:
            lines.append("- WARNING: Contains unconditional rules (affects all records)")
        return "\n".join(lines)


@dataclass
class UpdateRequest(MutationRequest):
    operation: ClassVar[OperationType] = OperationType.UPDATE
    rule_type: ClassVar[type] = UpdateRule

    def validate(self) -> None:
        super().validate()
        if self.has_unconditional_rules and not self.dry_run:
            raise ValidationError(
                "Unconditional update rules detected. This would update ALL records in the table. "
                "Use dryRun=true to preview or add conditions."
            )


@dataclass
class DeleteRequest(MutationRequest):
    operation: ClassVar[OperationType] = OperationType.DELETE
    rule_type: ClassVar[type] = DeleteRule
    max_total_cap: ClassVar[Optional[int]] = 100_000


class SequenceType(str, Enum):
    INCREMENT = "INCREMENT"
    CUSTOM_VALUES = "CUSTOM_VALUES"
    PATTERN = "PATTERN"


_SEQ_TOKEN_RE = re.compile(r"\{seq(?::[^}]*)?\}")


@dataclass
class SequenceDef:
    type: SequenceType
    start_value: int = 1
    step: int = 1
    custom_values: Optional[List[Value]] = None
    pattern: Optional[str] = None
    cycle: bool = False

    def validate(self) -> None:
        if self.type is SequenceType.CUSTOM_VALUES and not self.custom_values:
            raise SynthesisError("CUSTOM_VALUES sequence requires a non-empty 'customValues' list")
        if self.type is SequenceType.PATTERN:
            if not self.pattern:
                raise SynthesisError("PATTERN sequence requires a non-empty 'pattern'")
            if not _SEQ_TOKEN_RE.search(self.pattern):
                raise SynthesisError(
                    f"PATTERN sequence {self.pattern!r} must contain a {{seq}} or {{seq:<format>}} token"
                )


@dataclass
class Group:
    record_count: int
    fixed_values: Dict[str, Value] = field(default_factory=dict)
    description: Optional[str] = None


MAX_INSERT_RECORDS = 10_000


@dataclass
class InsertSpec:
    table_name: str
    record_count: int = 1
    fixed_values: Dict[str, Value] = field(default_factory=dict)
    groups: List[Group] = field(default_factory=list)
    sequences: Dict[str, SequenceDef] = field(default_factory=dict)

    @property
    def total_record_count(self) -> int:
        if self.groups:
            return sum(group.record_count for group in self.groups)
        return self.record_count

    def validate(self) -> None:
        error = identifier_error(self.table_name, "table name")
        if error is not None:
            raise ValidationError(error)
        for i, group in enumerate(self.groups):
            if group.record_count <= 0:
                raise SynthesisError(f"Group {i + 1} record count must be positive")
        total = self.total_record_count
        if total < 1 or total > MAX_INSERT_RECORDS:
            raise ValidationError(
                f"Invalid total record count: {total} (must be between 1 and {MAX_INSERT_RECORDS})"
            )
        columns = list(self.fixed_values) + list(self.sequences)
        for group in self.groups:
            columns.extend(group.fixed_values)
        for column in columns:
            error = identifier_error(column, "column name")
            if error is not None:
                raise ValidationError(error)
        for column, sequence in self.sequences.items():
            try:
                sequence.validate()
            except SynthesisError as exc:
                raise SynthesisError(f"Sequence for column {column!r} is invalid: {exc}") from None


@dataclass(frozen=True)
class ColumnMeta:
    """Column description as reported by the schema; consumed, never modified."""

    name: str
    sql_type: str
    size: int = 0
    decimal_digits: int = 0
    nullable: bool = True
    default_value: Optional[str] = None
    is_auto_increment: bool = False
    is_primary_key: bool = False

    @property
    def base_type(self) -> str:
        return self.sql_type.strip().upper()
