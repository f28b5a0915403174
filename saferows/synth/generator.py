"""Schema-aware synthetic row generation."""
from __future__ import annotations

import datetime as dt
import json
import logging
import random
import re
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from faker import Faker
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from ..db.dialects import Dialect
from ..db.metrics import observe_synthesized
from ..db.models import ColumnMeta, Group, InsertSpec
from ..errors import SaferowsError
from ..values import Value
from .sequences import SequenceGenerator
from .snowflake import SNOWFLAKE, SnowflakeGenerator

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

NULL_PROBABILITY = 0.05
DEFAULT_VALUE_PROBABILITY = 0.10
DATE_WINDOW_DAYS = 3650
MAX_CHAR_LENGTH = 255
MAX_VARCHAR_SAMPLE = 50
MIN_JSON_FIELDS = 2
MAX_JSON_FIELDS = 6
MAX_JSON_DEPTH = 2
YEAR_RANGE = (1901, 2155)

_QUOTED_RE = re.compile(r"'([^']*)'")
_NOW_RE = re.compile(r"^(?:CURRENT_TIMESTAMP|NOW|LOCALTIMESTAMP|LOCALTIME)(?:\(\d*\))?$", re.IGNORECASE)
_TODAY_RE = re.compile(r"^(?:CURRENT_DATE|CURDATE)(?:\(\))?$", re.IGNORECASE)
_TIME_RE = re.compile(r"^(?:CURRENT_TIME|CURTIME)(?:\(\d*\))?$", re.IGNORECASE)

_INTEGER_TYPES = {"TINYINT", "SMALLINT", "MEDIUMINT", "INT", "INTEGER", "BIGINT"}
_DECIMAL_TYPES = {"DECIMAL", "NUMERIC", "DEC", "FIXED"}
_FLOAT_TYPES = {"FLOAT", "REAL"}
_DOUBLE_TYPES = {"DOUBLE", "DOUBLE PRECISION"}
_CHAR_TYPES = {"CHAR", "CHARACTER", "NCHAR"}
_VARCHAR_TYPES = {"VARCHAR", "CHARACTER VARYING", "NVARCHAR", "VARYING CHARACTER"}
_BOOLEAN_TYPES = {"BOOLEAN", "BOOL"}
_BLOB_TYPES = {"BLOB", "TINYBLOB", "MEDIUMBLOB", "LONGBLOB"}
_TEXT_SENTENCES = {
    "TEXT": (3, 6),
    "MEDIUMTEXT": (5, 15),
    "LONGTEXT": (15, 30),
    "CLOB": (3, 6),
}


def is_id_column(name: str) -> bool:
    lowered = name.lower()
    return lowered.endswith("id") or lowered == "uuid" or "identifier" in lowered


def parse_domain(definition: str) -> Tuple[str, List[str]]:
    """Split ``enum('a','b')`` / ``set('x','y')`` into its kind and literals."""
    kind = definition.strip().split("(", 1)[0].strip().upper()
    return kind, _QUOTED_RE.findall(definition)


class SchemaProbe(Protocol):
    def column_domain(self, table: str, column: str) -> str:
        """Raw ENUM/SET definition of ``table.column``."""
        ...


class ConnectionSchemaProbe:
    """SchemaProbe answering from a live connection through the dialect."""

    def __init__(self, conn: Connection, dialect: Dialect) -> None:
        self.conn = conn
        self.dialect = dialect

    def column_domain(self, table: str, column: str) -> str:
        return self.dialect.column_domain(self.conn, table, column)


class DataSynthesizer:
    """
    Generates rows that fit a table's declared column types.

    Values come from, in order of priority: a sequence bound to the column,
    the active group's fixed values, the top-level fixed values, a snowflake
    ID for ID-like columns and finally a random value for the column type.
    Auto-increment columns are left to the database.

    Pass ``seed`` for reproducible output.
    """

    def __init__(
        self,
        dialect: Dialect,
        seed: Optional[int] = None,
        snowflake: Optional[SnowflakeGenerator] = None,
    ) -> None:
        self.dialect = dialect
        self.random = random.Random(seed)
        self.faker = Faker()
        if seed is not None:
            self.faker.seed_instance(seed)
        self.snowflake = snowflake or SNOWFLAKE

    def synthesize(
        self,
        columns: Sequence[ColumnMeta],
        spec: InsertSpec,
        probe: Optional[SchemaProbe] = None,
    ) -> List[Row]:
        spec.validate()
        sequences = {column: SequenceGenerator(d) for column, d in spec.sequences.items()}
        domains: Dict[str, Optional[Tuple[str, List[str]]]] = {}
        groups = spec.groups or [Group(record_count=spec.record_count)]

        rows: List[Row] = []
        for i, group in enumerate(groups):
            logger.debug(
                "Synthesizing %d row(s) for %s, group %d%s",
                group.record_count,
                spec.table_name,
                i + 1,
                f" ({group.description})" if group.description else "",
            )
            for _ in range(group.record_count):
                row: Row = {}
                for column in columns:
                    if column.is_auto_increment:
                        continue
                    row[column.name] = self._column_value(column, spec, group, sequences, domains, probe)
                rows.append(row)

        observe_synthesized(spec.table_name, len(rows))
        return rows

    def _column_value(
        self,
        column: ColumnMeta,
        spec: InsertSpec,
        group: Group,
        sequences: Dict[str, SequenceGenerator],
        domains: Dict[str, Optional[Tuple[str, List[str]]]],
        probe: Optional[SchemaProbe],
    ) -> Any:
        name = column.name
        if name in sequences:
            return sequences[name].next_value()
        if name in group.fixed_values:
            return group.fixed_values[name]
        if name in spec.fixed_values:
            return spec.fixed_values[name]
        if is_id_column(name):
            value = self.id_value(column)
            if value is not None:
                return value
        return self.value_for(column, spec.table_name, domains, probe)

    def id_value(self, column: ColumnMeta) -> Optional[Value]:
        """Snowflake-derived ID, or None if the column type cannot hold one."""
        base = column.base_type
        if base in _CHAR_TYPES or base in _VARCHAR_TYPES:
            value = self.snowflake.next_id_str()
            if column.size and len(value) > column.size:
                value = value[-column.size:]
            return value
        if base == "BIGINT":
            return self.snowflake.next_id()
        if base in _INTEGER_TYPES:
            _low, high = self.dialect.integer_range(base) or (0, 999_999)
            return self.random.randint(1, high)
        return None

    def value_for(
        self,
        column: ColumnMeta,
        table: str,
        domains: Optional[Dict[str, Optional[Tuple[str, List[str]]]]] = None,
        probe: Optional[SchemaProbe] = None,
    ) -> Any:
        """Random value for ``column`` honoring nullability, defaults and its type."""
        if column.nullable and self.random.random() < NULL_PROBABILITY:
            return None

        default = column.default_value
        if default is not None and str(default).strip() and str(default).strip().upper() != "NULL":
            if self.random.random() < DEFAULT_VALUE_PROBABILITY:
                return self.parse_default(str(default).strip(), column.base_type)

        base = column.base_type
        if base.startswith("ENUM") or base.startswith("SET"):
            return self._domain_value(column, table, domains if domains is not None else {}, probe)
        return self.value_for_type(column)

    def _domain_value(
        self,
        column: ColumnMeta,
        table: str,
        domains: Dict[str, Optional[Tuple[str, List[str]]]],
        probe: Optional[SchemaProbe],
    ) -> str:
        if column.name not in domains:
            domains[column.name] = None
            if probe is None:
                logger.warning("No schema probe for %s.%s; using a random word", table, column.name)
            else:
                try:
                    domains[column.name] = parse_domain(probe.column_domain(table, column.name))
                except (LookupError, SQLAlchemyError, SaferowsError) as exc:
                    logger.warning(
                        "Could not read ENUM/SET values of %s.%s; using a random word: %s",
                        table, column.name, exc,
                    )

        domain = domains[column.name]
        if domain is None:
            return self.faker.word()
        kind, values = domain
        if not values:
            return self.faker.word()
        if kind == "SET":
            count = self.random.randint(1, min(3, len(values)))
            return ",".join(self.random.sample(values, count))
        return self.random.choice(values)

    def parse_default(self, default: str, sql_type: str) -> Any:
        """Python value of a column DEFAULT clause; unparseable literals pass through."""
        now = dt.datetime.now().replace(microsecond=0)
        if _NOW_RE.match(default):
            return now
        if _TODAY_RE.match(default):
            return now.date()
        if _TIME_RE.match(default):
            return now.time()

        if len(default) >= 2 and default[0] == default[-1] == "'":
            default = default[1:-1]
        try:
            if sql_type in _INTEGER_TYPES or sql_type == "YEAR":
                return int(default)
            if sql_type in _DECIMAL_TYPES:
                return Decimal(default)
            if sql_type in _FLOAT_TYPES or sql_type in _DOUBLE_TYPES:
                return float(default)
            if sql_type in _BOOLEAN_TYPES:
                return default.strip().lower() in ("1", "true", "b'1'")
        except (ValueError, ArithmeticError):
            return default
        if sql_type in ("DATETIME", "TIMESTAMP"):
            try:
                return dt.datetime.fromisoformat(default)
            except ValueError:
                return now
        if sql_type == "DATE":
            try:
                return dt.date.fromisoformat(default)
            except ValueError:
                return now.date()
        if sql_type == "TIME":
            try:
                return dt.time.fromisoformat(default)
            except ValueError:
                return now.time()
        return default

    def value_for_type(self, column: ColumnMeta) -> Any:
        base = column.base_type
        size = column.size

        if base in _BOOLEAN_TYPES:
            return self.random.random() < 0.5
        if base in _INTEGER_TYPES:
            low, high = self.dialect.integer_range(base) or (0, 2_147_483_647)
            return self.random.randint(low, high)
        if base in _DECIMAL_TYPES:
            return self._decimal(column)
        if base in _FLOAT_TYPES:
            return round(self.random.uniform(0, 1_000_000), 2)
        if base in _DOUBLE_TYPES:
            return round(self.random.uniform(0, 1_000_000), 6)
        if base in _CHAR_TYPES:
            return self._string(min(max(size, 1), MAX_CHAR_LENGTH))
        if base in _VARCHAR_TYPES:
            limit = min(size if size > 0 else MAX_CHAR_LENGTH, MAX_VARCHAR_SAMPLE)
            return self._string(self.random.randint(1, limit))
        if base == "TINYTEXT":
            return self.faker.text(max_nb_chars=200)
        if base in _TEXT_SENTENCES:
            low, high = _TEXT_SENTENCES[base]
            return self.faker.paragraph(nb_sentences=self.random.randint(low, high))
        if base == "DATE":
            return self._past_datetime().date()
        if base in ("DATETIME", "TIMESTAMP"):
            return self._past_datetime()
        if base == "TIME":
            return dt.time(self.random.randint(0, 23), self.random.randint(0, 59), self.random.randint(0, 59))
        if base == "YEAR":
            return self.random.randint(*YEAR_RANGE)
        if base == "BINARY":
            return self._bytes(max(size, 1))
        if base == "VARBINARY":
            return self._bytes(self.random.randint(1, min(size, MAX_CHAR_LENGTH) if size > 0 else MAX_CHAR_LENGTH))
        if base in _BLOB_TYPES:
            return self._bytes(self.random.randint(1, 1000))
        if base == "JSON":
            return json.dumps(self._json_document(), ensure_ascii=False)
        return self._string(self.random.randint(1, min(size, MAX_CHAR_LENGTH) if size > 0 else MAX_CHAR_LENGTH))

    def _string(self, length: int) -> str:
        return self.faker.pystr(min_chars=length, max_chars=length)

    def _bytes(self, length: int) -> bytes:
        return bytes(self.random.getrandbits(8) for _ in range(length))

    def _past_datetime(self) -> dt.datetime:
        value = self.faker.date_time_between(start_date=f"-{DATE_WINDOW_DAYS}d", end_date="now")
        return value.replace(microsecond=0)

    def _decimal(self, column: ColumnMeta) -> Decimal:
        if column.size > 0:
            precision, scale = column.size, max(column.decimal_digits, 0)
        else:
            precision, scale = 10, 2
        scale = min(scale, precision)
        integer_part = self.random.randint(0, 10 ** (precision - scale) - 1)
        if scale == 0:
            return Decimal(integer_part)
        fraction = self.random.randint(0, 10 ** scale - 1)
        return Decimal(f"{integer_part}.{fraction:0{scale}d}")

    def _json_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {}
        for _ in range(self.random.randint(MIN_JSON_FIELDS, MAX_JSON_FIELDS)):
            key = self.faker.word()
            if key in doc:
                key = f"{key}_{len(doc)}"
            doc[key] = self._json_value(0)
        return doc

    def _json_value(self, depth: int) -> Any:
        choices = 5 if depth >= MAX_JSON_DEPTH else 7
        kind = self.random.randint(1, choices)
        if kind == 1:
            return self.faker.word()
        if kind == 2:
            return self.random.randint(1, 1000)
        if kind == 3:
            return self.random.random() < 0.5
        if kind == 4:
            return round(self.random.uniform(1, 1000), 2)
        if kind == 5:
            return None
        if kind == 6:
            return [self._json_value(depth + 1) for _ in range(self.random.randint(1, 3))]
        nested: Dict[str, Any] = {}
        for _ in range(self.random.randint(1, 2)):
            nested[self.faker.word()] = self._json_value(depth + 1)
        return nested
