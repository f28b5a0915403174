from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .config import OperationConfig
from .db.dialects import Dialect, dialect_for
from .db.executor import BatchExecutor, BatchResult
from .db.models import DeleteRequest, InsertSpec, UpdateRequest
from .db.parsing import (
    JsonInput,
    insert_spec_columns,
    parse_delete_request,
    parse_insert_spec,
    parse_update_request,
)
from .errors import ExecutionError, OperationDenied, ValidationError
from .security import normalize_select, validate_identifier, validate_select_statement
from .synth import ConnectionSchemaProbe, DataSynthesizer, check_row

logger = logging.getLogger(__name__)


def _check_same_table(table: str, spec_table: str) -> None:
    if table != spec_table:
        raise ValidationError(
            f"Table '{table}' does not match the request's table '{spec_table}'"
        )


@dataclass
class InsertResult:
    table_name: str
    inserted_records: int
    group_counts: List[int] = field(default_factory=list)
    sequence_columns: List[str] = field(default_factory=list)
    fixed_values: Dict[str, Any] = field(default_factory=dict)

    def summary(self) -> str:
        lines = [
            f"Inserted {self.inserted_records} record(s) into {self.table_name}",
            f"- Table: {self.table_name}",
            f"- Total records: {self.inserted_records}",
        ]
        if self.group_counts:
            lines.append(f"- Groups: {len(self.group_counts)}")
            for i, count in enumerate(self.group_counts):
                lines.append(f"  Group {i + 1}: {count} records")
        if self.sequence_columns:
            lines.append(f"- Sequences: {', '.join(self.sequence_columns)}")
        if self.fixed_values:
            lines.append(f"- Fixed values: {self.fixed_values}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "tableName": self.table_name,
            "insertedRecords": self.inserted_records,
            "message": self.summary(),
        }


class MutationEngine:
    """
    Entry point for guarded inserts, updates, deletes and read-only queries.

    Every call borrows one connection from ``engine`` and returns it before
    the call ends.

    Usage:
        engine = create_engine("mysql+pymysql://user:pw@host/db")
        mutations = MutationEngine(engine, OperationConfig.from_env())
        mutations.insert("users", 10, {"status": "active"})
        mutations.update("users", {"updateRules": [...]})
    """

    def __init__(
        self,
        engine: Engine,
        config: Optional[OperationConfig] = None,
        dialect: Optional[Dialect] = None,
        seed: Optional[int] = None,
    ) -> None:
        self.engine = engine
        self.config = config or OperationConfig()
        self.dialect = dialect or dialect_for(engine)
        self.executor = BatchExecutor(self.dialect)
        self.seed = seed

    def insert(
        self,
        table: str,
        record_count: int = 1,
        spec: Union[JsonInput, InsertSpec] = None,
    ) -> InsertResult:
        """
        Synthesize rows for ``table`` and insert them in one transaction.

        ``spec`` is a plain ``{"column": value}`` map, a combined
        groups/sequences/fixedValues document, or an InsertSpec.
        """
        validate_identifier(table, "table name")
        if isinstance(spec, InsertSpec):
            _check_same_table(table, spec.table_name)
            insert_spec = spec
            insert_spec.validate()
        else:
            insert_spec = parse_insert_spec(table, record_count, spec)

        denied = self.config.validate_insert(insert_spec.total_record_count)
        if denied is not None:
            raise OperationDenied(f"INSERT operation denied: {denied}")

        synthesizer = DataSynthesizer(self.dialect, seed=self.seed)
        with self.engine.connect() as conn:
            with conn.begin():
                columns = self.dialect.describe_columns(conn, table)
                if not columns:
                    raise ValidationError(f"Table '{table}' not found or has no columns")
                known = {column.name for column in columns}
                unknown = [c for c in insert_spec_columns(insert_spec) if c not in known]
                if unknown:
                    raise ValidationError(f"Unknown column(s) for table '{table}': {', '.join(unknown)}")
                if all(column.is_auto_increment for column in columns):
                    raise ValidationError(f"Table '{table}' has no insertable columns")

                rows = synthesizer.synthesize(columns, insert_spec, ConnectionSchemaProbe(conn, self.dialect))

            if self.config.strict_validation:
                for i, row in enumerate(rows):
                    check_row(columns, row, self.dialect, row_number=i + 1)

            inserted = self.executor.insert_rows(conn, table, rows)

        return InsertResult(
            table_name=table,
            inserted_records=inserted,
            group_counts=[group.record_count for group in insert_spec.groups],
            sequence_columns=list(insert_spec.sequences),
            fixed_values=dict(insert_spec.fixed_values),
        )

    def update(self, table: str, spec: Union[JsonInput, UpdateRequest]) -> BatchResult:
        if isinstance(spec, UpdateRequest):
            _check_same_table(table, spec.table_name)
            request = spec
        else:
            request = parse_update_request(validate_identifier(table, "table name"), spec)
        request.validate()

        denied = self.config.validate_update(request.max_total_affected_records)
        if denied is not None:
            raise OperationDenied(f"UPDATE operation denied: {denied}")
        if request.dry_run:
            return self.executor.preview(request)
        with self.engine.connect() as conn:
            return self.executor.execute(conn, request)

    def delete(self, table: str, spec: Union[JsonInput, DeleteRequest]) -> BatchResult:
        if isinstance(spec, DeleteRequest):
            _check_same_table(table, spec.table_name)
            request = spec
        else:
            request = parse_delete_request(validate_identifier(table, "table name"), spec)
        request.validate()

        denied = self.config.validate_delete(request.max_total_affected_records)
        if denied is not None:
            raise OperationDenied(f"DELETE operation denied: {denied}")
        if request.dry_run:
            return self.executor.preview(request)
        with self.engine.connect() as conn:
            return self.executor.execute(conn, request)

    def select_validated(self, sql: str) -> str:
        """
        Check that ``sql`` is a read-only SELECT and return it with the row
        limit capped at ``config.max_query_limit``.
        """
        error = validate_select_statement(sql)
        if error is not None:
            raise ValidationError(error)
        return normalize_select(sql, self.config.max_query_limit)

    def query(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a validated SELECT and return its rows as dicts."""
        statement = self.select_validated(sql)
        try:
            with self.engine.connect() as conn:
                result = conn.execute(text(statement), dict(params or {}))
                try:
                    return [dict(row) for row in result.mappings()]
                finally:
                    result.close()
        except SQLAlchemyError as exc:
            raise ExecutionError(
                f"Query failed: {getattr(exc, 'orig', None) or exc}",
                rule_index=None,
                sql=statement,
                param_count=len(params or {}),
            ) from exc
