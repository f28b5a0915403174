from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    return int(raw)


@dataclass
class OperationConfig:
    """
    Permission and safety limits consulted before any mutation runs.

    Every ``validate_*`` method returns an error message, or None when the
    operation is allowed.
    """

    allow_insert: bool = True
    allow_update: bool = True
    allow_delete: bool = True
    max_insert_records: int = 10_000
    max_update_records: int = 5_000
    max_delete_records: int = 1_000
    max_query_limit: int = 10
    strict_validation: bool = False

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        for name in ("max_insert_records", "max_update_records", "max_delete_records", "max_query_limit"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "OperationConfig":
        env = os.environ if env is None else env
        return cls(
            allow_insert=_env_bool(env, "ALLOW_INSERT_OPERATION", True),
            allow_update=_env_bool(env, "ALLOW_UPDATE_OPERATION", True),
            allow_delete=_env_bool(env, "ALLOW_DELETE_OPERATION", True),
            max_insert_records=_env_int(env, "MAX_INSERT_RECORDS", 10_000),
            max_update_records=_env_int(env, "MAX_UPDATE_RECORDS", 5_000),
            max_delete_records=_env_int(env, "MAX_DELETE_RECORDS", 1_000),
            max_query_limit=_env_int(env, "MAX_QUERY_LIMIT", 10),
            strict_validation=_env_bool(env, "STRICT_VALIDATION", False),
        )

    def validate_insert(self, record_count: int) -> Optional[str]:
        if not self.allow_insert:
            return "INSERT operations are disabled by configuration (ALLOW_INSERT_OPERATION=false)"
        if record_count <= 0:
            return "Insert record count must be positive"
        if record_count > self.max_insert_records:
            return (
                f"Insert record count {record_count} exceeds maximum limit of "
                f"{self.max_insert_records} (MAX_INSERT_RECORDS)"
            )
        return None

    def validate_update(self, max_affected_records: int) -> Optional[str]:
        if not self.allow_update:
            return "UPDATE operations are disabled by configuration (ALLOW_UPDATE_OPERATION=false)"
        if max_affected_records > self.max_update_records:
            return (
                f"Update operation could affect {max_affected_records} records, exceeding maximum "
                f"limit of {self.max_update_records} (MAX_UPDATE_RECORDS)"
            )
        return None

    def validate_delete(self, max_affected_records: int) -> Optional[str]:
        if not self.allow_delete:
            return "DELETE operations are disabled by configuration (ALLOW_DELETE_OPERATION=false)"
        if max_affected_records > self.max_delete_records:
            return (
                f"Delete operation could affect {max_affected_records} records, exceeding maximum "
                f"limit of {self.max_delete_records} (MAX_DELETE_RECORDS)"
            )
        return None
