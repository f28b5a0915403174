from __future__ import annotations

import logging

from ..metrics.registry import (
    DB_ROWS_AFFECTED_TOTAL,
    DB_WRITE_LATENCY_SECONDS,
    DB_WRITE_TOTAL,
    SYNTH_ROWS_TOTAL,
)

logger = logging.getLogger(__name__)

# Metric helpers never raise: a broken collector must not mask a real
# database outcome.


def observe_db_write(table: str, op_type: str, status: str, latency_s: float) -> None:
    try:
        DB_WRITE_TOTAL.labels(table=table, op_type=op_type, status=status).inc()
        DB_WRITE_LATENCY_SECONDS.labels(table=table, op_type=op_type).observe(latency_s)
    except Exception:
        logger.debug("Failed to record db write metric", exc_info=True)


def observe_rows_affected(table: str, op_type: str, rows: int) -> None:
    if rows <= 0:
        return
    try:
        DB_ROWS_AFFECTED_TOTAL.labels(table=table, op_type=op_type).inc(rows)
    except Exception:
        logger.debug("Failed to record rows affected metric", exc_info=True)


def observe_synthesized(table: str, rows: int) -> None:
    if rows <= 0:
        return
    try:
        SYNTH_ROWS_TOTAL.labels(table=table).inc(rows)
    except Exception:
        logger.debug("Failed to record synthesized rows metric", exc_info=True)
