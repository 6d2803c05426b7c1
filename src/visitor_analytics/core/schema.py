"""
Schema-adaptive SELECT building for the visitor table.

Different ingestion revisions created the visitor table with different
column sets. Rather than assume one layout, the read path looks up which
columns actually exist and, for each logical field, picks the first known
alias that is present. Fields with no present alias are emitted as literal
defaults, so the query always yields the same output shape.
"""

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class FieldSpec:
    """How to read one logical field.

    Attributes:
        name: Output column name
        aliases: Physical column names to try, in order
        default: SQL expression used when no alias exists (and for COALESCE)
        coalesce: Wrap the column in COALESCE(col::text, default)
    """
    name: str
    aliases: tuple[str, ...]
    default: str
    coalesce: bool = True


# Timestamp columns seen across table layouts, best first
TIMESTAMP_COLUMNS = ("client_timestamp", "visit_time", "created_at", "timestamp")

FIELD_SPECS: tuple[FieldSpec, ...] = (
    FieldSpec("id", ("id",), "ROW_NUMBER() OVER()", coalesce=False),
    FieldSpec("ip", ("ip", "ip_address"), "'Unknown'"),
    FieldSpec("country", ("country", "country_code"), "'Unknown'"),
    FieldSpec("state", ("state", "region"), "'Unknown'"),
    FieldSpec("city", ("city", "city_name"), "'Unknown'"),
    FieldSpec("client_timestamp", TIMESTAMP_COLUMNS, "NOW()"),
    FieldSpec("language", ("language",), "'Unknown'"),
    FieldSpec("platform", ("platform",), "'Unknown'"),
    FieldSpec("user_agent", ("user_agent",), "'Unknown'"),
    FieldSpec("browser", ("browser",), "'Unknown'"),
    FieldSpec("os", ("os",), "'Unknown'"),
    FieldSpec("device", ("device",), "'Unknown'"),
    FieldSpec("referrer", ("referrer",), "'Direct'"),
    FieldSpec("page_name", ("page_name",), "'Unknown'"),
)

# Columns written by the current ingestion handler: (name, SQL type)
CANONICAL_COLUMNS: tuple[tuple[str, str], ...] = (
    ("ip", "VARCHAR(45) NOT NULL"),
    ("country", "VARCHAR(100)"),
    ("state", "VARCHAR(100)"),
    ("city", "VARCHAR(100)"),
    ("region", "VARCHAR(100)"),
    ("timezone", "VARCHAR(100)"),
    ("user_agent", "TEXT"),
    ("browser", "VARCHAR(100)"),
    ("version", "VARCHAR(100)"),
    ("os", "VARCHAR(100)"),
    ("platform", "VARCHAR(100)"),
    ("device", "VARCHAR(100)"),
    ("language", "VARCHAR(50)"),
    ("referrer", "TEXT"),
    ("page_name", "VARCHAR(255)"),
    ("is_vpn", "BOOLEAN DEFAULT FALSE"),
    ("client_timestamp", "TIMESTAMPTZ DEFAULT NOW()"),
    ("visit_time", "TIMESTAMPTZ DEFAULT NOW()"),
)

_CANONICAL_TYPES = dict(CANONICAL_COLUMNS)


class ColumnAvailability:
    """The set of columns a table actually has, with per-field resolution."""

    def __init__(self, columns: Iterable[str]):
        self.columns: tuple[str, ...] = tuple(columns)
        self._present = frozenset(self.columns)

    def __repr__(self) -> str:
        return f"ColumnAvailability({list(self.columns)!r})"

    @property
    def is_empty(self) -> bool:
        """True when the table does not exist (or has no columns)."""
        return not self._present

    def has(self, column: str) -> bool:
        return column in self._present

    def missing(self, columns: Iterable[str]) -> list[str]:
        """Return the given columns that are not present, in order."""
        return [c for c in columns if c not in self._present]

    def resolve(self, field: str | FieldSpec) -> str | None:
        """Return the physical column backing a logical field, or None."""
        present = self.present(field)
        return present[0] if present else None

    def present(self, field: str | FieldSpec) -> list[str]:
        """Every present alias of a logical field, in preference order."""
        spec = field if isinstance(field, FieldSpec) else _SPECS_BY_NAME[field]
        return [alias for alias in spec.aliases if alias in self._present]

    def resolved_fields(self) -> dict[str, str | None]:
        """Map every logical field to its physical column (or None)."""
        return {spec.name: self.resolve(spec) for spec in FIELD_SPECS}


_SPECS_BY_NAME = {spec.name: spec for spec in FIELD_SPECS}

_TEXT_DEFAULTS = {"'Unknown'", "'Direct'"}


def _select_expression(spec: FieldSpec, columns: list[str]) -> str:
    if not columns:
        return f"{spec.default} AS {spec.name}"
    if not spec.coalesce:
        column = columns[0]
        return column if column == spec.name else f"{column} AS {spec.name}"
    if spec.default in _TEXT_DEFAULTS:
        # Text defaults need a text operand
        return f"COALESCE({columns[0]}::text, {spec.default}) AS {spec.name}"
    # Timestamps fall through every present alias
    return f"COALESCE({', '.join(columns)}, {spec.default}) AS {spec.name}"


def build_select_query(availability: ColumnAvailability, table: str) -> str:
    """Build the listing query for whatever columns the table has.

    Args:
        availability: Columns present in the table
        table: Table name (must already be a validated identifier)

    Returns:
        SELECT statement ordered by the resolved timestamp, newest first
    """
    parts = [_select_expression(spec, availability.present(spec)) for spec in FIELD_SPECS]
    return f"SELECT {', '.join(parts)} FROM {table} ORDER BY client_timestamp DESC"


def create_table_sql(table: str) -> str:
    """CREATE TABLE IF NOT EXISTS with the canonical layout."""
    columns = ",\n                ".join(f"{name} {sql_type}" for name, sql_type in CANONICAL_COLUMNS)
    return f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id SERIAL PRIMARY KEY,
                {columns}
            )
            """


def migrate_table_sql(table: str, availability: ColumnAvailability) -> list[str]:
    """Statements that add the canonical columns an older table lacks.

    NOT NULL is dropped from added columns since existing rows have no value.
    A missing timestamp column is added without a default, backfilled from
    the timestamps the table already had, and only then given its default,
    so existing rows keep their visit times.
    """
    sources = [c for c in TIMESTAMP_COLUMNS if availability.has(c)]
    statements = []
    for name in availability.missing(name for name, _ in CANONICAL_COLUMNS):
        sql_type = _CANONICAL_TYPES[name].replace(" NOT NULL", "")
        if name not in TIMESTAMP_COLUMNS:
            statements.append(f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {name} {sql_type}")
            continue

        column_type, _, default = sql_type.partition(" DEFAULT ")
        statements.append(f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {name} {column_type}")
        if sources:
            statements.append(
                f"UPDATE {table} SET {name} = COALESCE({', '.join(sources)}) WHERE {name} IS NULL"
            )
        if default:
            statements.append(f"ALTER TABLE {table} ALTER COLUMN {name} SET DEFAULT {default}")
    return statements
