from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..security import validate_identifier
from ..values import Value
from .dialects import Dialect
from .models import Condition, DeleteRule, Rule, UpdateRule


@dataclass(frozen=True)
class CompiledStatement:
    """
    SQL text with ``:p0 .. :pN`` placeholders and the values bound to them.

    ``params[i]`` is bound to ``:p{i}``; placeholders appear in the SQL in the
    same order as ``params``.
    """

    sql: str
    params: Tuple[Any, ...] = field(default_factory=tuple)

    @property
    def param_count(self) -> int:
        return len(self.params)

    def bind_params(self, adapt: Optional[Callable[[Any], Any]] = None) -> Dict[str, Any]:
        if adapt is None:
            return {f"p{i}": value for i, value in enumerate(self.params)}
        return {f"p{i}": adapt(value) for i, value in enumerate(self.params)}


class _Binder:
    def __init__(self) -> None:
        self.params: List[Any] = []

    def bind(self, value: Any) -> str:
        self.params.append(value)
        return f":p{len(self.params) - 1}"


def _condition_sql(condition: Condition, dialect: Dialect, binder: _Binder) -> str:
    column = dialect.quote(validate_identifier(condition.field, "field name"))
    if condition.operator.takes_list:
        placeholders = ", ".join(binder.bind(v) for v in condition.values or [])
        return f"{column} {condition.operator.value} ({placeholders})"
    return f"{column} {condition.operator.value} {binder.bind(condition.value)}"


def _where_sql(rule: Rule, dialect: Dialect, binder: _Binder) -> str:
    if not rule.conditions:
        return ""
    parts = []
    for i, condition in enumerate(rule.conditions):
        if i > 0:
            parts.append(condition.connector.value)
        parts.append(_condition_sql(condition, dialect, binder))
    return " WHERE " + " ".join(parts)


def compile_update(table: str, rule: UpdateRule, dialect: Dialect) -> CompiledStatement:
    """
    Build ``UPDATE <table> SET ... WHERE ...`` for one rule.

    SET values are bound first in declaration order, then the WHERE values in
    condition order. A rule without conditions compiles without a WHERE clause.
    """
    quoted_table = dialect.quote(validate_identifier(table, "table name"))
    binder = _Binder()
    assignments = ", ".join(
        f"{dialect.quote(validate_identifier(column, 'update field name'))} = {binder.bind(value)}"
        for column, value in rule.set_values.items()
    )
    where = _where_sql(rule, dialect, binder)
    return CompiledStatement(f"UPDATE {quoted_table} SET {assignments}{where}", tuple(binder.params))


def compile_delete(table: str, rule: DeleteRule, dialect: Dialect) -> CompiledStatement:
    """Build ``DELETE FROM <table> WHERE ...`` for one rule."""
    quoted_table = dialect.quote(validate_identifier(table, "table name"))
    binder = _Binder()
    where = _where_sql(rule, dialect, binder)
    return CompiledStatement(f"DELETE FROM {quoted_table}{where}", tuple(binder.params))


def compile_rule(table: str, rule: Rule, dialect: Dialect) -> CompiledStatement:
    if isinstance(rule, UpdateRule):
        return compile_update(table, rule, dialect)
    if isinstance(rule, DeleteRule):
        return compile_delete(table, rule, dialect)
    raise TypeError(f"Cannot compile {type(rule).__name__}")


def compile_insert(
    table: str,
    rows: Sequence[Mapping[str, Value]],
    dialect: Dialect,
) -> CompiledStatement:
    """
    Build one multi-row ``INSERT INTO <table> (...) VALUES (...), (...)``.

    The column list is taken from the first row; every other row must carry
    exactly the same columns.
    """
    if not rows:
        raise ValueError("compile_insert() requires at least one row")
    quoted_table = dialect.quote(validate_identifier(table, "table name"))
    columns = list(rows[0].keys())
    if not columns:
        raise ValueError("compile_insert() requires at least one column")
    column_sql = ", ".join(dialect.quote(validate_identifier(c, "column name")) for c in columns)

    binder = _Binder()
    tuples = []
    for i, row in enumerate(rows):
        if set(row.keys()) != set(columns):
            raise ValueError(f"Row {i + 1} columns do not match the first row")
        tuples.append("(" + ", ".join(binder.bind(row[c]) for c in columns) + ")")

    sql = f"INSERT INTO {quoted_table} ({column_sql}) VALUES " + ", ".join(tuples)
    return CompiledStatement(sql, tuple(binder.params))
