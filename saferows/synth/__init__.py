from .constraints import check_row, row_violations
from .generator import ConnectionSchemaProbe, DataSynthesizer, SchemaProbe
from .sequences import SequenceGenerator
from .snowflake import SnowflakeGenerator

__all__ = [
    "ConnectionSchemaProbe",
    "DataSynthesizer",
    "SchemaProbe",
    "SequenceGenerator",
    "SnowflakeGenerator",
    "check_row",
    "row_violations",
]
