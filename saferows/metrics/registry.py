"""Prometheus metric objects shared by the whole package."""
from prometheus_client import Counter, Histogram

DB_WRITE_TOTAL = Counter(
    "saferows_db_write_total",
    "Mutating statements executed, by outcome",
    ["table", "op_type", "status"],
)

DB_WRITE_LATENCY_SECONDS = Histogram(
    "saferows_db_write_latency_seconds",
    "Latency of a mutation batch from first statement to commit/rollback",
    ["table", "op_type"],
)

DB_ROWS_AFFECTED_TOTAL = Counter(
    "saferows_db_rows_affected_total",
    "Rows affected by committed mutation batches",
    ["table", "op_type"],
)

SYNTH_ROWS_TOTAL = Counter(
    "saferows_synth_rows_total",
    "Synthetic rows generated",
    ["table"],
)
