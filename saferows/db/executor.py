from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ExecutionError, SafetyLimitExceeded
from ..security import validate_identifier
from ..values import Value
from .compiler import CompiledStatement, compile_insert, compile_rule
from .dialects import Dialect
from .metrics import observe_db_write, observe_rows_affected
from .models import MutationRequest, OperationType
from .tx import BatchTransaction

logger = logging.getLogger(__name__)

INSERT_CHUNK_SIZE = 500


@dataclass
class RuleOutcome:
    rule_index: int
    description: str
    sql: str
    param_count: int
    affected_records: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ruleIndex": self.rule_index,
            "description": self.description,
            "sql": self.sql,
            "parameterCount": self.param_count,
            "affectedRecords": self.affected_records,
        }


@dataclass
class BatchResult:
    """Outcome of one update/delete request."""

    table_name: str
    operation: OperationType
    total_affected_records: int = 0
    rules: List[RuleOutcome] = field(default_factory=list)
    dry_run: bool = False
    committed: bool = False

    @property
    def rules_executed(self) -> int:
        return len(self.rules)

    def summary(self) -> str:
        verb = self.operation.value.upper()
        if self.dry_run:
            return f"DRY RUN: {verb} on {self.table_name} would run {self.rules_executed} rule(s)"
        return (
            f"{verb} on {self.table_name} affected {self.total_affected_records} record(s)"
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": True,
            "tableName": self.table_name,
            "operation": self.operation.value,
            "totalAffectedRecords": self.total_affected_records,
            "dryRun": self.dry_run,
            "committed": self.committed,
            "message": self.summary(),
        }
        if self.rules:
            data["rulesExecuted"] = self.rules_executed
            data["rules"] = [rule.to_dict() for rule in self.rules]
        return data


class BatchExecutor:
    """
    Runs validated update/delete requests and synthesized inserts.

    The executor never opens or closes connections; callers hand it a
    connection borrowed from their own pool.
    """

    def __init__(self, dialect: Dialect, insert_chunk_size: int = INSERT_CHUNK_SIZE) -> None:
        if insert_chunk_size <= 0:
            raise ValueError("insert_chunk_size must be > 0")
        self.dialect = dialect
        self.insert_chunk_size = insert_chunk_size

    def _run(self, tx: BatchTransaction, stmt: CompiledStatement, rule_index: Optional[int]) -> int:
        try:
            return tx.execute(text(stmt.sql), stmt.bind_params(self.dialect.adapt_param))
        except SQLAlchemyError as exc:
            where = f"rule {rule_index + 1}" if rule_index is not None else "statement"
            raise ExecutionError(
                f"Database error while executing {where}: {getattr(exc, 'orig', None) or exc}",
                rule_index=rule_index,
                sql=stmt.sql,
                param_count=stmt.param_count,
            ) from exc

    def _commit(self, tx: BatchTransaction) -> None:
        try:
            tx.commit()
        except SQLAlchemyError as exc:
            raise ExecutionError(
                f"Database error while committing: {exc}",
                rule_index=None,
                sql="COMMIT",
                param_count=0,
            ) from exc

    def preview(self, request: MutationRequest) -> BatchResult:
        """Compile every rule without touching the database."""
        request.validate()
        result = BatchResult(request.table_name, request.operation, dry_run=True)
        for i, rule in enumerate(request.rules):
            stmt = compile_rule(request.table_name, rule, self.dialect)
            result.rules.append(RuleOutcome(i, rule.describe(), stmt.sql, stmt.param_count))
        return result

    def execute(self, conn: Connection, request: MutationRequest) -> BatchResult:
        """
        Execute all rules of ``request`` in declaration order.

        Args:
            conn: Connection borrowed from the caller's engine
            request: Update or delete request

        Returns:
            BatchResult with the total and (if ``return_details``) per-rule counts

        Raises:
            ValidationError: If the request is malformed
            SafetyLimitExceeded: If a rule or the whole request affected too many rows
            ExecutionError: If the database rejected a statement
        """
        if request.dry_run:
            result = self.preview(request)
            logger.info("Dry run of %s on %s: %d rule(s)", request.operation.value, request.table_name, len(result.rules))
            return result

        request.validate()
        table = request.table_name
        op_type = request.operation.value
        outcomes: List[RuleOutcome] = []
        total = 0
        status = "success"
        start_time = time.monotonic()

        try:
            with BatchTransaction(conn, transactional=request.use_transaction) as tx:
                for i, rule in enumerate(request.rules):
                    stmt = compile_rule(table, rule, self.dialect)
                    affected = self._run(tx, stmt, i)
                    outcomes.append(RuleOutcome(i, rule.describe(), stmt.sql, stmt.param_count, affected))
                    total += affected
                    logger.debug("Rule %d on %s affected %d record(s)", i + 1, table, affected)

                    if affected > rule.max_affected_records:
                        raise SafetyLimitExceeded(
                            f"Rule {i + 1} affected {affected} records, exceeding its limit of "
                            f"{rule.max_affected_records}",
                            rule_index=i,
                            affected=affected,
                            limit=rule.max_affected_records,
                        )

                if total > request.max_total_affected_records:
                    raise SafetyLimitExceeded(
                        f"Request affected {total} records in total, exceeding the limit of "
                        f"{request.max_total_affected_records}",
                        rule_index=None,
                        affected=total,
                        limit=request.max_total_affected_records,
                    )

                self._commit(tx)
        except Exception as exc:
            status = "error"
            if request.use_transaction:
                logger.warning(
                    "%s on %s rolled back after %d rule(s): %s",
                    op_type.upper(), table, len(outcomes), exc,
                )
            else:
                logger.error(
                    "%s on %s failed after %d rule(s) without a transaction; "
                    "%d record(s) already committed: %s",
                    op_type.upper(), table, len(outcomes), total, exc,
                )
            raise
        finally:
            observe_db_write(table, op_type, status, time.monotonic() - start_time)

        observe_rows_affected(table, op_type, total)
        logger.info("%s on %s committed: %d record(s) across %d rule(s)", op_type.upper(), table, total, len(outcomes))
        return BatchResult(
            table_name=table,
            operation=request.operation,
            total_affected_records=total,
            rules=outcomes if request.return_details else [],
            committed=True,
        )

    def _chunk_size(self, column_count: int) -> int:
        per_statement = max(1, self.dialect.max_bind_params // max(column_count, 1))
        return min(self.insert_chunk_size, per_statement)

    def insert_rows(
        self,
        conn: Connection,
        table: str,
        rows: Sequence[Mapping[str, Value]],
        use_transaction: bool = True,
    ) -> int:
        """
        Insert ``rows`` with multi-row INSERT statements inside one transaction.

        Returns the number of inserted rows.
        """
        validate_identifier(table, "table name")
        if not rows:
            return 0

        chunk_size = self._chunk_size(len(rows[0]))
        inserted = 0
        status = "success"
        start_time = time.monotonic()
        try:
            with BatchTransaction(conn, transactional=use_transaction) as tx:
                for offset in range(0, len(rows), chunk_size):
                    chunk = rows[offset:offset + chunk_size]
                    stmt = compile_insert(table, chunk, self.dialect)
                    count = self._run(tx, stmt, None)
                    inserted += count if count >= 0 else len(chunk)
                self._commit(tx)
        except Exception as exc:
            status = "error"
            logger.error("INSERT into %s failed after %d row(s): %s", table, inserted, exc)
            raise
        finally:
            observe_db_write(table, OperationType.INSERT.value, status, time.monotonic() - start_time)

        observe_rows_affected(table, OperationType.INSERT.value, inserted)
        logger.info("INSERT into %s committed: %d row(s)", table, inserted)
        return inserted
