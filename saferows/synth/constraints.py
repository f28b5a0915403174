from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, List, Mapping, Sequence

from ..db.dialects import Dialect
from ..db.models import ColumnMeta
from ..errors import ValidationError

_LENGTH_CHECKED = {"CHAR", "VARCHAR", "CHARACTER", "NCHAR", "NVARCHAR", "BINARY", "VARBINARY"}
_DECIMAL_TYPES = {"DECIMAL", "NUMERIC", "DEC", "FIXED"}


def _decimal_violation(column: ColumnMeta, value: Any) -> str | None:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal, str)):
        return None
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        return f"{column.name}: {value!r} is not a number"
    if not number.is_finite():
        return f"{column.name}: {value!r} is not a finite number"
    scale = max(column.decimal_digits, 0)
    sign, digits, exponent = number.as_tuple()
    fraction_digits = max(-exponent, 0)
    integer_digits = max(len(digits) + exponent, 0)
    if fraction_digits > scale:
        return f"{column.name}: {value} has more than {scale} decimal digit(s)"
    if integer_digits > column.size - scale:
        return f"{column.name}: {value} does not fit DECIMAL({column.size},{scale})"
    return None


def row_violations(columns: Sequence[ColumnMeta], row: Mapping[str, Any], dialect: Dialect) -> List[str]:
    """Every declared-constraint violation in ``row``; empty when the row fits."""
    problems = []
    for column in columns:
        if column.name not in row:
            continue
        value = row[column.name]
        base = column.base_type

        if value is None:
            if not column.nullable and not column.is_auto_increment:
                problems.append(f"{column.name}: NULL in a NOT NULL column")
            continue

        limits = dialect.integer_limit(base)
        if limits is not None and isinstance(value, int) and not isinstance(value, bool):
            low, high = limits
            if not low <= value <= high:
                problems.append(f"{column.name}: {value} is outside the {base} range [{low}, {high}]")
        elif base in _LENGTH_CHECKED and column.size > 0 and isinstance(value, (str, bytes)):
            if len(value) > column.size:
                problems.append(f"{column.name}: length {len(value)} exceeds {base}({column.size})")
        elif base in _DECIMAL_TYPES and column.size > 0:
            problem = _decimal_violation(column, value)
            if problem is not None:
                problems.append(problem)
    return problems


def check_row(columns: Sequence[ColumnMeta], row: Mapping[str, Any], dialect: Dialect, row_number: int = 1) -> None:
    """Raise ValidationError if ``row`` violates any declared column constraint."""
    problems = row_violations(columns, row, dialect)
    if problems:
        raise ValidationError(f"Row {row_number} violates column constraints: " + "; ".join(problems))
