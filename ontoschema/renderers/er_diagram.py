"""Mermaid erDiagram for a RelationalSchema."""

from __future__ import annotations

import re

from ..schema import Column, Relation, RelationalSchema
from ..types import CardinalityKind

_NOT_IDENTIFIER = re.compile(r"[^A-Za-z0-9_]")

# Crow's foot notation, read from the source table to the target table.
_CONNECTORS = {
    CardinalityKind.ONE_TO_ONE: "||--||",
    CardinalityKind.ONE_TO_MANY: "||--o{",
    CardinalityKind.MANY_TO_ONE: "}o--||",
    CardinalityKind.MANY_TO_MANY: "}o--o{",
}


def _identifier(name: str) -> str:
    return _NOT_IDENTIFIER.sub("_", name)


def _attribute(column: Column) -> str:
    keys = [k for k, on in (("PK", column.primary_key), ("FK", column.foreign_key)) if on]
    line = f"{_identifier(column.sql_type)} {_identifier(column.name)}"
    if keys:
        line += " " + ", ".join(keys)
    return line


def _relationship(relation: Relation) -> str:
    label = "extends" if relation.inheritance else (relation.name or relation.source_column.name)
    connector = _CONNECTORS[relation.cardinality]
    return (
        f"{_identifier(relation.source.name)} {connector} "
        f'{_identifier(relation.target.name)} : "{label}"'
    )


def render_er_diagram(schema: RelationalSchema) -> str:
    """Entities with their columns, then every relation."""
    lines = ["erDiagram"]
    for table in schema.tables:
        lines.append(f"    {_identifier(table.name)} {{")
        for column in table.columns:
            lines.append(f"        {_attribute(column)}")
        lines.append("    }")
    for table in schema.tables:
        for relation in table.relations:
            lines.append(f"    {_relationship(relation)}")
    return "\n".join(lines) + "\n"
