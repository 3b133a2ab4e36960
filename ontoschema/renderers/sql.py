"""SQL DDL for a RelationalSchema.

Enum types first, then one CREATE TABLE per table in schema order, then the
foreign keys as ALTER TABLE statements so tables may reference each other in
any order.
"""

from __future__ import annotations

from ..schema import Column, RelationalSchema, Table

INDENT = "    "


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _comment_lines(text: str | None) -> list[str]:
    if not text:
        return []
    return [f"-- {line}".rstrip() for line in text.strip().splitlines()]


def _column(column: Column) -> str:
    line = f"{INDENT}{column.name} {column.sql_type}"
    if not column.nullable or column.primary_key:
        line += " NOT NULL"
    return line


def _create_table(table: Table) -> list[str]:
    lines = _comment_lines(table.comment)
    lines.append(f"CREATE TABLE {table.name} (")
    body = [_column(c) for c in table.columns]
    keys = table.primary_keys
    if keys:
        body.append(f"{INDENT}PRIMARY KEY ({', '.join(k.name for k in keys)})")
    lines.append(",\n".join(body))
    lines.append(");")
    return lines


def _foreign_keys(table: Table) -> list[str]:
    lines = []
    for relation in table.relations:
        if relation.target_column is None:
            continue
        lines.append(
            f"ALTER TABLE {table.name} ADD FOREIGN KEY ({relation.source_column.name}) "
            f"REFERENCES {relation.target.name} ({relation.target_column.name});"
        )
    return lines


def render_sql(schema: RelationalSchema) -> str:
    """The schema as SQL DDL."""
    blocks: list[str] = []
    for enum_type in schema.enum_types:
        lines = _comment_lines(enum_type.comment)
        values = ", ".join(_quote(v) for v in enum_type.values)
        lines.append(f"CREATE TYPE {enum_type.name} AS ENUM ({values});")
        blocks.append("\n".join(lines))

    for table in schema.tables:
        blocks.append("\n".join(_create_table(table)))

    foreign_keys = [line for table in schema.tables for line in _foreign_keys(table)]
    if foreign_keys:
        blocks.append("\n".join(foreign_keys))

    return "\n\n".join(blocks) + "\n"
