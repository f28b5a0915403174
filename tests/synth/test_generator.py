from __future__ import annotations

import datetime as dt
import json
import logging
from decimal import Decimal

import pytest

from saferows.db.dialects import MYSQL
from saferows.db.models import ColumnMeta, Group, InsertSpec, SequenceDef, SequenceType
from saferows.errors import ValidationError
from saferows.synth import DataSynthesizer, SnowflakeGenerator, check_row, row_violations
from saferows.synth.generator import YEAR_RANGE, is_id_column, parse_domain


def col(name: str, sql_type: str, size: int = 0, digits: int = 0, **kwargs) -> ColumnMeta:
    kwargs.setdefault("nullable", False)
    return ColumnMeta(name, sql_type, size=size, decimal_digits=digits, **kwargs)


@pytest.fixture
def synth() -> DataSynthesizer:
    return DataSynthesizer(MYSQL, seed=42, snowflake=SnowflakeGenerator(machine_id=1))


def values_of(synth: DataSynthesizer, column: ColumnMeta, n: int = 200) -> list:
    rows = synth.synthesize([column], InsertSpec("t", record_count=n))
    return [row[column.name] for row in rows]


class FakeProbe:
    def __init__(self, domains):
        self.domains = domains
        self.calls = []

    def column_domain(self, table: str, column: str) -> str:
        self.calls.append((table, column))
        result = self.domains[column]
        if isinstance(result, Exception):
            raise result
        return result


ORDERS = [
    col("id", "BIGINT", is_auto_increment=True, is_primary_key=True),
    col("status", "VARCHAR", 20),
    col("name", "VARCHAR", 50),
    col("seq_no", "INT"),
]


class TestRowShape:
    def test_groups_produce_rows_in_order(self, synth: DataSynthesizer) -> None:
        spec = InsertSpec(
            "orders",
            groups=[Group(2, {"status": "active"}), Group(3, {"status": "inactive"})],
        )
        rows = synth.synthesize(ORDERS, spec)
        assert [row["status"] for row in rows] == ["active"] * 2 + ["inactive"] * 3

    def test_auto_increment_columns_are_left_out(self, synth: DataSynthesizer) -> None:
        rows = synth.synthesize(ORDERS, InsertSpec("orders", record_count=3))
        assert len(rows) == 3
        assert all(set(row) == {"status", "name", "seq_no"} for row in rows)

    def test_value_precedence(self, synth: DataSynthesizer) -> None:
        spec = InsertSpec(
            "orders",
            fixed_values={"status": "top", "name": "top"},
            groups=[Group(2, {"status": "group", "name": "group"}), Group(1)],
            sequences={"status": SequenceDef(SequenceType.CUSTOM_VALUES, custom_values=["s1", "s2", "s3"])},
        )
        rows = synth.synthesize(ORDERS, spec)
        assert [row["status"] for row in rows] == ["s1", "s2", "s3"]
        assert [row["name"] for row in rows] == ["group", "group", "top"]

    def test_sequences_continue_across_groups(self, synth: DataSynthesizer) -> None:
        spec = InsertSpec(
            "orders",
            groups=[Group(2), Group(3)],
            sequences={"seq_no": SequenceDef(SequenceType.INCREMENT, start_value=100)},
        )
        rows = synth.synthesize(ORDERS, spec)
        assert [row["seq_no"] for row in rows] == [100, 101, 102, 103, 104]

    def test_same_seed_same_rows(self) -> None:
        columns = [col("status", "VARCHAR", 20), col("amount", "DECIMAL", 8, 2), col("n", "INT")]
        spec = InsertSpec("orders", record_count=20)
        first = DataSynthesizer(MYSQL, seed=7).synthesize(columns, spec)
        second = DataSynthesizer(MYSQL, seed=7).synthesize(columns, spec)
        assert first == second


class TestNullsAndDefaults:
    def test_nullable_columns_are_sometimes_null(self, synth: DataSynthesizer) -> None:
        values = values_of(synth, col("score", "INT", nullable=True), n=2000)
        ratio = sum(v is None for v in values) / len(values)
        assert 0.025 < ratio < 0.08

    def test_not_null_columns_are_never_null(self, synth: DataSynthesizer) -> None:
        assert None not in values_of(synth, col("score", "INT"), n=2000)

    def test_defaults_are_used_sometimes(self, synth: DataSynthesizer) -> None:
        values = values_of(synth, col("state", "VARCHAR", 20, default_value="'pending'"), n=1000)
        used = sum(v == "pending" for v in values)
        assert 40 < used < 180

    def test_null_default_is_ignored(self, synth: DataSynthesizer) -> None:
        values = values_of(synth, col("state", "VARCHAR", 20, default_value="NULL"), n=300)
        assert "NULL" not in values

    @pytest.mark.parametrize(
        "default, sql_type, expected_type",
        [
            ("CURRENT_TIMESTAMP", "DATETIME", dt.datetime),
            ("now()", "TIMESTAMP", dt.datetime),
            ("CURRENT_TIMESTAMP(6)", "DATETIME", dt.datetime),
            ("CURRENT_DATE", "DATE", dt.date),
            ("CURTIME()", "TIME", dt.time),
        ],
    )
    def test_parse_default_functions(self, synth, default, sql_type, expected_type) -> None:
        assert isinstance(synth.parse_default(default, sql_type), expected_type)

    def test_parse_default_literals(self, synth: DataSynthesizer) -> None:
        assert synth.parse_default("'42'", "INT") == 42
        assert synth.parse_default("3.50", "DECIMAL") == Decimal("3.50")
        assert synth.parse_default("1.5", "DOUBLE") == 1.5
        assert synth.parse_default("1", "BOOLEAN") is True
        assert synth.parse_default("'2024-01-02'", "DATE") == dt.date(2024, 1, 2)
        assert synth.parse_default("'2024-01-02 03:04:05'", "DATETIME") == dt.datetime(2024, 1, 2, 3, 4, 5)
        assert synth.parse_default("'hello'", "VARCHAR") == "hello"

    def test_unparseable_default_passes_through(self, synth: DataSynthesizer) -> None:
        assert synth.parse_default("'abc'", "INT") == "abc"
        assert isinstance(synth.parse_default("'not a date'", "DATE"), dt.date)


class TestEnumAndSet:
    def test_enum_values_come_from_domain(self, synth: DataSynthesizer) -> None:
        probe = FakeProbe({"status": "enum('a','b','c')"})
        column = col("status", "ENUM")
        rows = synth.synthesize([column], InsertSpec("orders", record_count=100), probe)
        values = {row["status"] for row in rows}
        assert values <= {"a", "b", "c"}
        assert len(values) > 1
        assert probe.calls == [("orders", "status")]

    def test_set_values_are_distinct_subsets(self, synth: DataSynthesizer) -> None:
        probe = FakeProbe({"tags": "set('x','y','z')"})
        rows = synth.synthesize([col("tags", "SET")], InsertSpec("orders", record_count=100), probe)
        for row in rows:
            parts = row["tags"].split(",")
            assert 1 <= len(parts) <= 3
            assert len(set(parts)) == len(parts)
            assert set(parts) <= {"x", "y", "z"}

    def test_probe_failure_falls_back_to_word(self, synth: DataSynthesizer, caplog) -> None:
        probe = FakeProbe({"status": LookupError("no such column")})
        with caplog.at_level(logging.WARNING, logger="saferows.synth.generator"):
            rows = synth.synthesize([col("status", "ENUM")], InsertSpec("orders", record_count=5), probe)
        assert all(isinstance(row["status"], str) and row["status"] for row in rows)
        assert "Could not read ENUM/SET values" in caplog.text
        assert len(probe.calls) == 1

    def test_missing_probe_falls_back_to_word(self, synth: DataSynthesizer, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="saferows.synth.generator"):
            values = values_of(synth, col("status", "ENUM"), n=3)
        assert all(isinstance(v, str) for v in values)
        assert "No schema probe" in caplog.text

    def test_parse_domain(self) -> None:
        assert parse_domain("enum('a','b c','')") == ("ENUM", ["a", "b c", ""])
        assert parse_domain("SET('x')") == ("SET", ["x"])


class TestTypes:
    def test_char_has_exact_length(self, synth: DataSynthesizer) -> None:
        assert {len(v) for v in values_of(synth, col("code", "CHAR", 8))} == {8}

    def test_varchar_length_is_capped(self, synth: DataSynthesizer) -> None:
        lengths = [len(v) for v in values_of(synth, col("title", "VARCHAR", 200))]
        assert min(lengths) >= 1
        assert max(lengths) <= 50

    def test_short_varchar_fits(self, synth: DataSynthesizer) -> None:
        assert max(len(v) for v in values_of(synth, col("title", "VARCHAR", 5))) <= 5

    def test_integers_fit_unsigned_range(self, synth: DataSynthesizer) -> None:
        values = values_of(synth, col("qty", "TINYINT"))
        assert all(0 <= v <= 127 for v in values)

    def test_decimal_fits_precision(self, synth: DataSynthesizer) -> None:
        column = col("amount", "DECIMAL", 5, 2)
        for value in values_of(synth, column):
            assert isinstance(value, Decimal)
            assert row_violations([column], {"amount": value}, MYSQL) == []

    def test_year_range(self, synth: DataSynthesizer) -> None:
        low, high = YEAR_RANGE
        assert all(low <= v <= high for v in values_of(synth, col("built", "YEAR")))

    def test_json_documents(self, synth: DataSynthesizer) -> None:
        for value in values_of(synth, col("payload", "JSON"), n=50):
            doc = json.loads(value)
            assert isinstance(doc, dict)
            assert 2 <= len(doc) <= 6

    @pytest.mark.parametrize(
        "sql_type, size, expected",
        [
            ("BOOLEAN", 0, bool),
            ("DATE", 0, dt.date),
            ("DATETIME", 0, dt.datetime),
            ("TIME", 0, dt.time),
            ("DOUBLE", 0, float),
            ("TEXT", 0, str),
            ("BLOB", 0, bytes),
        ],
    )
    def test_value_types(self, synth, sql_type, size, expected) -> None:
        assert all(isinstance(v, expected) for v in values_of(synth, col("c", sql_type, size), n=20))

    def test_binary_has_exact_length(self, synth: DataSynthesizer) -> None:
        assert {len(v) for v in values_of(synth, col("digest", "BINARY", 4))} == {4}

    def test_datetimes_are_in_the_past(self, synth: DataSynthesizer) -> None:
        # Faker returns naive UTC; allow for the local offset.
        now = dt.datetime.now()
        for value in values_of(synth, col("created", "DATETIME")):
            assert now - dt.timedelta(days=3652) <= value <= now + dt.timedelta(days=1)


class TestIdColumns:
    @pytest.mark.parametrize("name", ["id", "user_id", "UserId", "uuid", "external_identifier"])
    def test_id_names(self, name: str) -> None:
        assert is_id_column(name)

    @pytest.mark.parametrize("name", ["name", "identity_card", "idle"])
    def test_non_id_names(self, name: str) -> None:
        assert not is_id_column(name)

    def test_bigint_ids_are_snowflakes(self, synth: DataSynthesizer) -> None:
        values = values_of(synth, col("user_id", "BIGINT"), n=500)
        assert len(set(values)) == 500
        assert values == sorted(values)
        assert all(v > 2**32 for v in values)

    def test_varchar_ids_are_strings(self, synth: DataSynthesizer) -> None:
        values = values_of(synth, col("order_id", "VARCHAR", 32), n=50)
        assert all(isinstance(v, str) and v.isdigit() for v in values)
        assert len(set(values)) == 50

    def test_varchar_ids_are_truncated(self, synth: DataSynthesizer) -> None:
        assert all(len(v) <= 8 for v in values_of(synth, col("ref_id", "VARCHAR", 8), n=20))

    def test_non_key_types_use_type_generator(self, synth: DataSynthesizer) -> None:
        assert all(isinstance(v, dt.datetime) for v in values_of(synth, col("valid", "DATETIME"), n=20))

    def test_fixed_value_beats_id_generation(self, synth: DataSynthesizer) -> None:
        rows = synth.synthesize([col("tenant_id", "BIGINT")], InsertSpec("t", record_count=3, fixed_values={"tenant_id": 9}))
        assert [row["tenant_id"] for row in rows] == [9, 9, 9]


class TestConstraints:
    COLUMNS = [
        col("small", "TINYINT"),
        col("code", "VARCHAR", 5),
        col("amount", "DECIMAL", 5, 2),
        col("note", "TEXT", nullable=True),
    ]

    def test_fitting_row(self) -> None:
        row = {"small": 255, "code": "abcde", "amount": Decimal("999.99"), "note": None}
        assert row_violations(self.COLUMNS, row, MYSQL) == []

    def test_each_violation_is_reported(self) -> None:
        row = {"small": 300, "code": "toolong", "amount": Decimal("1234.5"), "note": None}
        problems = row_violations(self.COLUMNS, row, MYSQL)
        assert len(problems) == 3
        assert problems[0].startswith("small:")
        assert problems[1].startswith("code:")
        assert problems[2].startswith("amount:")

    def test_scale_violation(self) -> None:
        assert row_violations(self.COLUMNS, {"amount": Decimal("1.234")}, MYSQL)

    def test_null_in_not_null_column(self) -> None:
        assert row_violations(self.COLUMNS, {"small": None}, MYSQL) == ["small: NULL in a NOT NULL column"]

    def test_check_row_raises_with_row_number(self) -> None:
        with pytest.raises(ValidationError, match="Row 3 violates column constraints"):
            check_row(self.COLUMNS, {"code": "toolong"}, MYSQL, row_number=3)
