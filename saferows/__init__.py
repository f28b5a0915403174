from .config import OperationConfig
from .engine import InsertResult, MutationEngine
from .errors import (
    ExecutionError,
    OperationDenied,
    SafetyLimitExceeded,
    SaferowsError,
    SynthesisError,
    ValidationError,
)

__all__ = [
    "ExecutionError",
    "InsertResult",
    "MutationEngine",
    "OperationConfig",
    "OperationDenied",
    "SafetyLimitExceeded",
    "SaferowsError",
    "SynthesisError",
    "ValidationError",
]
