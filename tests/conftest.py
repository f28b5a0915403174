from __future__ import annotations

import os
import re
import uuid
from collections.abc import Callable, Iterator
from typing import Any

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from saferows.db.dialects import Dialect, dialect_for


@pytest.fixture(scope="session")
def db_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """
    Database URL for tests.

    Set SAFEROWS_TEST_DB_URL (e.g. mysql+pymysql://user:pw@127.0.0.1:3306/test_db)
    to run against MySQL. Otherwise a file-backed SQLite database is used.
    """
    url = os.environ.get("SAFEROWS_TEST_DB_URL")
    if url:
        return url
    return f"sqlite:///{tmp_path_factory.mktemp('db') / 'saferows.sqlite3'}"


@pytest.fixture(scope="session")
def engine(db_url: str) -> Iterator[Engine]:
    """
    Session-scoped SQLAlchemy engine for tests.

    We fail fast if the database is unreachable, so failures are actionable.
    """
    eng = create_engine(db_url, pool_pre_ping=True)
    try:
        with eng.connect() as conn:
            conn.exec_driver_sql("SELECT 1")
    except Exception as exc:  # pragma: no cover
        pytest.fail(
            "Test database is not reachable.\n"
            f"- SAFEROWS_TEST_DB_URL={db_url!r}\n"
            f"- Underlying error: {exc}",
            pytrace=False,
        )

    yield eng
    eng.dispose()


@pytest.fixture(scope="session")
def dialect(engine: Engine) -> Dialect:
    return dialect_for(engine)


@pytest.fixture
def mysql_only(dialect: Dialect) -> None:
    if dialect.name != "mysql":
        pytest.skip("requires MySQL (set SAFEROWS_TEST_DB_URL)")


def _sanitize_table_name(name: str) -> str:
    name = re.sub(r"[^a-zA-Z0-9_]+", "_", name).strip("_").lower()
    if not name:
        name = "t"
    return name[:48]


@pytest.fixture
def table_factory(
    engine: Engine, dialect: Dialect, request: pytest.FixtureRequest
) -> Iterator[Callable[[str], str]]:
    """
    Factory fixture creating per-test tables.

    Usage:
        table = table_factory("id BIGINT PRIMARY KEY, value INT NOT NULL")
    """
    created: list[str] = []
    suffix_sql = " ENGINE=InnoDB" if dialect.name == "mysql" else ""

    def _create(schema_sql: str) -> str:
        base = _sanitize_table_name(f"t_{request.node.name}")
        table = f"{base}_{uuid.uuid4().hex[:10]}"

        with engine.begin() as conn:
            conn.exec_driver_sql(f"DROP TABLE IF EXISTS {dialect.quote(table)}")
            conn.exec_driver_sql(f"CREATE TABLE {dialect.quote(table)} ({schema_sql}){suffix_sql}")

        created.append(table)
        return table

    yield _create

    with engine.begin() as conn:
        for table in created:
            conn.exec_driver_sql(f"DROP TABLE IF EXISTS {dialect.quote(table)}")


@pytest.fixture
def fresh_table(table_factory: Callable[[str], str]) -> str:
    """
    A default table schema used across DB tests.

    Includes:
    - PK `id` without auto-increment
    - `status` / `k1` for multi-condition WHERE tests
    - nullable `name`
    """
    schema_sql = """
        id BIGINT NOT NULL,
        k1 BIGINT NOT NULL DEFAULT 0,
        status VARCHAR(20) NOT NULL DEFAULT 'new',
        value INT NOT NULL DEFAULT 0,
        name VARCHAR(255) NULL,
        PRIMARY KEY (id)
    """
    return table_factory(schema_sql)


@pytest.fixture
def seed_rows(engine: Engine, dialect: Dialect) -> Callable[[str, list[dict[str, Any]]], None]:
    """Insert plain rows, bypassing the code under test."""

    def _seed(table: str, rows: list[dict[str, Any]]) -> None:
        if not rows:
            return
        columns = list(rows[0])
        column_sql = ", ".join(dialect.quote(c) for c in columns)
        placeholders = ", ".join(f":{c}" for c in columns)
        with engine.begin() as conn:
            conn.execute(
                text(f"INSERT INTO {dialect.quote(table)} ({column_sql}) VALUES ({placeholders})"),
                rows,
            )

    return _seed


@pytest.fixture
def fetch_all(engine: Engine, dialect: Dialect) -> Callable[..., list[dict[str, Any]]]:
    def _fetch(table: str, order_by: str = "id") -> list[dict[str, Any]]:
        with engine.connect() as conn:
            result = conn.execute(
                text(f"SELECT * FROM {dialect.quote(table)} ORDER BY {dialect.quote(order_by)}")
            )
            return [dict(row) for row in result.mappings()]

    return _fetch
