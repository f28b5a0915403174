from __future__ import annotations

import datetime as dt
import re
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from ..security import escape_identifier, validate_identifier
from ..values import to_param
from .models import ColumnMeta

# Ranges used when synthesizing integers. Lower bounds are 0 so generated
# values also fit UNSIGNED columns.
DEFAULT_INTEGER_RANGES: Dict[str, Tuple[int, int]] = {
    "TINYINT": (0, 127),
    "SMALLINT": (0, 32_767),
    "MEDIUMINT": (0, 8_388_607),
    "INT": (0, 2_147_483_647),
    "INTEGER": (0, 2_147_483_647),
    "BIGINT": (0, 9_223_372_036_854_775_807),
}

# Storage bounds used by strict validation: signed minimum to unsigned maximum,
# since the declared signedness is not part of the column metadata.
INTEGER_STORAGE_LIMITS: Dict[str, Tuple[int, int]] = {
    "TINYINT": (-128, 255),
    "SMALLINT": (-32_768, 65_535),
    "MEDIUMINT": (-8_388_608, 16_777_215),
    "INT": (-2_147_483_648, 4_294_967_295),
    "INTEGER": (-2_147_483_648, 4_294_967_295),
    "BIGINT": (-9_223_372_036_854_775_808, 18_446_744_073_709_551_615),
}

_TYPE_RE = re.compile(r"^\s*([A-Za-z ]+?)\s*(?:\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\))?\s*(UNSIGNED)?\s*$", re.IGNORECASE)


def split_type(declared: str) -> Tuple[str, int, int]:
    """Split a declared type such as ``DECIMAL(10,2)`` into (base, size, digits)."""
    match = _TYPE_RE.match(declared or "")
    if not match:
        base = (declared or "").split("(", 1)[0].strip().upper()
        return base, 0, 0
    base, size, digits, _unsigned = match.groups()
    return base.upper(), int(size or 0), int(digits or 0)


class Dialect(ABC):
    """
    Database-specific capabilities the engine depends on.

    The compiler only asks for identifier quoting; the synthesizer asks for
    integer ranges and ENUM/SET domains; the executor asks for parameter
    adaptation.
    """

    name: str = "generic"
    identifier_quote: str = "`"
    integer_ranges: Dict[str, Tuple[int, int]] = DEFAULT_INTEGER_RANGES
    integer_limits: Dict[str, Tuple[int, int]] = INTEGER_STORAGE_LIMITS
    max_bind_params: int = 65_535

    def quote(self, identifier: str) -> str:
        return escape_identifier(identifier, self.identifier_quote)

    def integer_range(self, sql_type: str) -> Optional[Tuple[int, int]]:
        return self.integer_ranges.get(sql_type.upper())

    def integer_limit(self, sql_type: str) -> Optional[Tuple[int, int]]:
        return self.integer_limits.get(sql_type.upper())

    def adapt_param(self, value: Any) -> Any:
        return to_param(value)

    @abstractmethod
    def describe_columns(self, conn: Connection, table: str) -> List[ColumnMeta]:
        """Columns of ``table`` in ordinal order; empty if the table does not exist."""

    @abstractmethod
    def column_domain(self, conn: Connection, table: str, column: str) -> str:
        """
        Raw type definition of an ENUM/SET column, e.g. ``enum('a','b')``.

        Raises LookupError if the column does not exist.
        """


class MySQLDialect(Dialect):
    name = "mysql"
    identifier_quote = "`"

    _COLUMNS_SQL = (
        "SELECT COLUMN_NAME, DATA_TYPE, COLUMN_TYPE, CHARACTER_MAXIMUM_LENGTH, "
        "NUMERIC_PRECISION, NUMERIC_SCALE, IS_NULLABLE, COLUMN_DEFAULT, EXTRA, COLUMN_KEY "
        "FROM INFORMATION_SCHEMA.COLUMNS "
        "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = :table_name "
        "ORDER BY ORDINAL_POSITION"
    )
    _DOMAIN_SQL = (
        "SELECT COLUMN_TYPE FROM INFORMATION_SCHEMA.COLUMNS "
        "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = :table_name AND COLUMN_NAME = :column_name"
    )

    def describe_columns(self, conn: Connection, table: str) -> List[ColumnMeta]:
        validate_identifier(table, "table name")
        result = conn.execute(text(self._COLUMNS_SQL), {"table_name": table})
        try:
            rows = [dict(row) for row in result.mappings()]
        finally:
            result.close()

        columns = []
        for row in rows:
            data_type = str(row["DATA_TYPE"]).upper()
            column_type = str(row["COLUMN_TYPE"] or "").lower()
            if data_type == "TINYINT" and column_type.startswith("tinyint(1)"):
                data_type = "BOOLEAN"
            size = row["CHARACTER_MAXIMUM_LENGTH"] or row["NUMERIC_PRECISION"] or 0
            columns.append(
                ColumnMeta(
                    name=row["COLUMN_NAME"],
                    sql_type=data_type,
                    size=int(size),
                    decimal_digits=int(row["NUMERIC_SCALE"] or 0),
                    nullable=row["IS_NULLABLE"] == "YES",
                    default_value=row["COLUMN_DEFAULT"],
                    is_auto_increment="auto_increment" in str(row["EXTRA"] or "").lower(),
                    is_primary_key=row["COLUMN_KEY"] == "PRI",
                )
            )
        return columns

    def column_domain(self, conn: Connection, table: str, column: str) -> str:
        validate_identifier(table, "table name")
        validate_identifier(column, "column name")
        result = conn.execute(text(self._DOMAIN_SQL), {"table_name": table, "column_name": column})
        try:
            value = result.scalar_one_or_none()
        finally:
            result.close()
        if value is None:
            raise LookupError(f"Column {column!r} not found in table {table!r}")
        return str(value)


class SQLiteDialect(Dialect):
    name = "sqlite"
    identifier_quote = '"'
    max_bind_params = 32_766
    # Any integer affinity column stores a signed 64-bit value.
    integer_limits = {name: (-(2 ** 63), 2 ** 63 - 1) for name in INTEGER_STORAGE_LIMITS}

    def describe_columns(self, conn: Connection, table: str) -> List[ColumnMeta]:
        validate_identifier(table, "table name")
        result = conn.exec_driver_sql(f"PRAGMA table_info({self.quote(table)})")
        try:
            rows = [dict(row) for row in result.mappings()]
        finally:
            result.close()

        pk_columns = [row["name"] for row in rows if row["pk"]]
        columns = []
        for row in rows:
            base, size, digits = split_type(row["type"])
            # A lone INTEGER PRIMARY KEY aliases the rowid and fills itself in.
            auto_increment = base == "INTEGER" and pk_columns == [row["name"]]
            columns.append(
                ColumnMeta(
                    name=row["name"],
                    sql_type=base or "TEXT",
                    size=size,
                    decimal_digits=digits,
                    nullable=not row["notnull"] and not row["pk"],
                    default_value=row["dflt_value"],
                    is_auto_increment=auto_increment,
                    is_primary_key=bool(row["pk"]),
                )
            )
        return columns

    def column_domain(self, conn: Connection, table: str, column: str) -> str:
        # No ENUM/SET in SQLite; the declared type is returned as written.
        validate_identifier(column, "column name")
        result = conn.exec_driver_sql(f"PRAGMA table_info({self.quote(validate_identifier(table, 'table name'))})")
        try:
            for row in result.mappings():
                if row["name"] == column:
                    return str(row["type"])
        finally:
            result.close()
        raise LookupError(f"Column {column!r} not found in table {table!r}")

    def adapt_param(self, value: Any) -> Any:
        value = super().adapt_param(value)
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, dt.datetime):
            return value.isoformat(sep=" ")
        if isinstance(value, (dt.date, dt.time)):
            return value.isoformat()
        return value


MYSQL = MySQLDialect()
SQLITE = SQLiteDialect()

_DIALECTS: Dict[str, Dialect] = {
    "mysql": MYSQL,
    "mariadb": MYSQL,
    "sqlite": SQLITE,
}


def dialect_for(bind: Union[Engine, Connection]) -> Dialect:
    """Pick the dialect implementation matching a SQLAlchemy engine or connection."""
    name = bind.dialect.name
    try:
        return _DIALECTS[name]
    except KeyError:
        raise ValueError(f"Unsupported database type: {name}") from None
