from .compiler import CompiledStatement, compile_delete, compile_insert, compile_update
from .dialects import Dialect, MySQLDialect, SQLiteDialect, dialect_for
from .executor import BatchExecutor, BatchResult, RuleOutcome
from .models import (
    ColumnMeta,
    Condition,
    Connector,
    DeleteRequest,
    DeleteRule,
    Group,
    InsertSpec,
    OperationType,
    Operator,
    SequenceDef,
    SequenceType,
    UpdateRequest,
    UpdateRule,
)
from .parsing import parse_delete_request, parse_insert_spec, parse_update_request
from .tx import BatchTransaction

__all__ = [
    "BatchExecutor",
    "BatchResult",
    "BatchTransaction",
    "ColumnMeta",
    "CompiledStatement",
    "Condition",
    "Connector",
    "DeleteRequest",
    "DeleteRule",
    "Dialect",
    "Group",
    "InsertSpec",
    "MySQLDialect",
    "OperationType",
    "Operator",
    "RuleOutcome",
    "SQLiteDialect",
    "SequenceDef",
    "SequenceType",
    "UpdateRequest",
    "UpdateRule",
    "compile_delete",
    "compile_insert",
    "compile_update",
    "dialect_for",
    "parse_delete_request",
    "parse_insert_spec",
    "parse_update_request",
]
