from __future__ import annotations

import multiprocessing as mp

import pytest

from saferows import MutationEngine, OperationConfig

from ._harness import (
    create_table,
    default_processes,
    drain,
    drop_table,
    fetch_scalar,
    make_engine,
    mysql_url,
    run_workers,
    unique_table,
)

ROWS = 200
CHUNK = 20


def _delete_worker(*, engine, worker_id: int, table: str, results) -> None:
    mutations = MutationEngine(engine, OperationConfig(max_delete_records=ROWS))
    affected = 0
    # Each worker walks the same id ranges starting from a different offset.
    starts = list(range(1, ROWS + 1, CHUNK))
    offset = worker_id % len(starts)
    for start in starts[offset:] + starts[:offset]:
        result = mutations.delete(
            table,
            {
                "deleteRules": [
                    {
                        "conditions": [
                            {"field": "id", "operator": ">=", "value": start},
                            {"field": "id", "operator": "<", "value": start + CHUNK},
                        ],
                        "maxAffectedRecords": CHUNK,
                    }
                ],
                "maxTotalAffectedRecords": CHUNK,
            },
        )
        affected += result.total_affected_records
    results.put(affected)


@pytest.mark.concurrency
def test_invariant_each_row_deleted_once() -> None:
    """
    Workers delete overlapping id ranges concurrently.

    Invariant: the affected counts reported by all workers add up to the
    number of seeded rows, so no row is counted twice or lost.
    """
    url = mysql_url()
    engine = make_engine(url)
    table = unique_table("saferows_conc_delete")
    create_table(engine, table, "id BIGINT NOT NULL PRIMARY KEY, value INT NOT NULL DEFAULT 0")
    with engine.begin() as conn:
        conn.exec_driver_sql(
            f"INSERT INTO `{table}` (id) VALUES " + ", ".join(f"({i})" for i in range(1, ROWS + 1))
        )

    ctx = mp.get_context("spawn")
    results = ctx.Queue()
    processes = default_processes()
    try:
        run_workers(
            url=url,
            table=table,
            processes=processes,
            worker_fn=_delete_worker,
            worker_kwargs={"results": results},
            mp_ctx=ctx,
        )

        counts = drain(results)
        assert len(counts) == processes
        assert sum(counts) == ROWS
        assert fetch_scalar(engine, f"SELECT COUNT(*) FROM `{table}`") == 0
    finally:
        drop_table(engine, table)
        engine.dispose()
