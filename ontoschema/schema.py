"""Relational schema synthesizer: tables, keys and join tables from a ClassModel.

  Table     one per concrete class and per retained interface
  Column    one per attribute; class-ranged attributes become foreign keys
  Relation  (source, source_column) -> (target, target_column) with a cardinality

Steps, in order:

  1. enum types for the class model's enumerations
  2. tables and columns
  3. inheritance linking (table-per-class: child key references parent key)
  4. primary-key guarantee (surrogate `id` where nothing else provides one)
  5. foreign-key columns and relations for class-ranged attributes
  6. many-to-many decomposition into join tables, optionally merging
     several M:N relations between the same two tables into one join table
     with an enum-typed discriminator column
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from rdflib import XSD

from .config import Settings
from .naming import to_snake_case
from .simplifier import Attribute, ClassModel, Clazz, Enumeration
from .types import CardinalityKind

logger = logging.getLogger(__name__)

DEFAULT_SQL_TYPE = "VARCHAR"

XSD_SQL_TYPES = {
    "string": "VARCHAR",
    "normalizedString": "VARCHAR",
    "anyURI": "VARCHAR",
    "integer": "INT",
    "int": "INT",
    "long": "INT",
    "short": "INT",
    "nonNegativeInteger": "INT",
    "positiveInteger": "INT",
    "decimal": "DECIMAL",
    "double": "FLOAT",
    "float": "FLOAT",
    "boolean": "BOOLEAN",
    "date": "DATE",
    "dateTime": "DATETIME",
}


def sql_type(uri: str | None) -> str:
    """SQL column type of an XSD datatype URI."""
    if uri and uri.startswith(str(XSD)):
        return XSD_SQL_TYPES.get(uri[len(str(XSD)):], DEFAULT_SQL_TYPE)
    return DEFAULT_SQL_TYPE


def unique_name(name: str, taken: Iterable[str]) -> str:
    """The name itself, or the first free `<name>_<n>` for n >= 2."""
    taken = set(taken)
    if name not in taken:
        return name
    index = 2
    while f"{name}_{index}" in taken:
        index += 1
    return f"{name}_{index}"


# ---------------------------------------------------------------------------
# Schema types
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class Column:
    """A table column, usually backed by an attribute."""
    name: str
    sql_type: str
    uri: str | None = None
    attribute: Attribute | None = None
    primary_key: bool = False
    foreign_key: bool = False
    nullable: bool = True
    comment: str | None = None

    def __repr__(self) -> str:
        flags = [f for f, on in (("PK", self.primary_key), ("FK", self.foreign_key)) if on]
        suffix = f" {','.join(flags)}" if flags else ""
        return f"Column({self.name} {self.sql_type}{suffix})"


@dataclass(eq=False)
class Relation:
    """A foreign-key link between two tables."""
    name: str | None
    source: Table
    source_column: Column
    target: Table
    target_column: Column | None
    cardinality: CardinalityKind
    attribute: Attribute | None = None
    inheritance: bool = False

    def __repr__(self) -> str:
        return (
            f"Relation({self.source.name}.{self.source_column.name} "
            f"--{self.cardinality.value}--> {self.target.name})"
        )


@dataclass(eq=False)
class Table:
    """A table for a class, an interface or a many-to-many relation."""
    name: str
    clazz: Clazz | None = None
    columns: list[Column] = field(default_factory=list)
    relations: list[Relation] = field(default_factory=list)
    is_join: bool = False
    comment: str | None = None

    @property
    def uri(self) -> str | None:
        return self.clazz.uri if self.clazz is not None else None

    @property
    def primary_keys(self) -> list[Column]:
        return [c for c in self.columns if c.primary_key]

    def get_column(self, name: str) -> Column | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def column_by_uri(self, uri: str) -> Column | None:
        for column in self.columns:
            if column.uri == uri:
                return column
        return None

    def free_column_name(self, name: str) -> str:
        return unique_name(name, (c.name for c in self.columns))

    def remove_column(self, column: Column) -> None:
        self.columns = [c for c in self.columns if c is not column]

    def __repr__(self) -> str:
        kind = "JoinTable" if self.is_join else "Table"
        return f"{kind}({self.name}, {len(self.columns)} columns)"


@dataclass
class EnumType:
    """An enumerated SQL type."""
    name: str
    values: list[str] = field(default_factory=list)
    uri: str | None = None
    comment: str | None = None


@dataclass
class RelationalSchema:
    """Ordered tables and enum types."""
    tables: list[Table] = field(default_factory=list)
    enum_types: list[EnumType] = field(default_factory=list)

    def table(self, name: str) -> Table | None:
        for table in self.tables:
            if table.name == name:
                return table
        return None

    def table_for(self, clazz: Clazz) -> Table | None:
        for table in self.tables:
            if table.clazz is clazz:
                return table
        return None

    def enum_type(self, name: str) -> EnumType | None:
        for enum_type in self.enum_types:
            if enum_type.name == name:
                return enum_type
        return None

    @property
    def join_tables(self) -> list[Table]:
        return [t for t in self.tables if t.is_join]

    def summary(self) -> str:
        lines = [
            f"Relational schema: {len(self.tables)} tables "
            f"({len(self.join_tables)} join), {len(self.enum_types)} enum types",
            "-" * 50,
        ]
        for enum_type in self.enum_types:
            lines.append(f"  enum {enum_type.name} ({', '.join(enum_type.values)})")
        for table in self.tables:
            lines.append(f"  {table.name}")
            for column in table.columns:
                lines.append(f"    {column!r}")
            for relation in table.relations:
                lines.append(f"    {relation!r}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"RelationalSchema({len(self.tables)} tables, {len(self.enum_types)} enum types)"


# ---------------------------------------------------------------------------
# Synthesizer
# ---------------------------------------------------------------------------

class SchemaSynthesizer:
    """Derives a RelationalSchema from a ClassModel."""

    def __init__(self, class_model: ClassModel, settings: Settings | None = None) -> None:
        self.class_model = class_model
        self.settings = settings or Settings()
        self.identifier_uri = self.settings.ontology.identifier_uri
        self.schema = RelationalSchema()

    def synthesize(self) -> RelationalSchema:
        self._extract_enum_types()
        self._extract_tables()
        self._link_inheritance()
        for table in self.schema.tables:
            self._primary_key(table)
        self._extract_relations()
        self._decompose_many_to_many()
        logger.info("Synthesized %r", self.schema)
        return self.schema

    # -----------------------------------------------------------------------
    # Tables and columns
    # -----------------------------------------------------------------------

    def _extract_enum_types(self) -> None:
        for enum in self.class_model.enums:
            name = unique_name(to_snake_case(enum.name), (e.name for e in self.schema.enum_types))
            self.schema.enum_types.append(EnumType(
                name=name,
                values=[value.name for value in enum.values],
                uri=enum.uri,
                comment=enum.comment,
            ))

    def _enum_type_for(self, enum: Enumeration) -> EnumType | None:
        for enum_type in self.schema.enum_types:
            if enum_type.uri == enum.uri:
                return enum_type
        return None

    def _extract_tables(self) -> None:
        for clazz in [*self.class_model.classes, *self.class_model.interfaces]:
            table = Table(
                name=unique_name(to_snake_case(clazz.name), (t.name for t in self.schema.tables)),
                clazz=clazz,
                comment=clazz.comment,
            )
            for attribute in clazz.attributes:
                table.columns.append(Column(
                    name=table.free_column_name(to_snake_case(attribute.name)),
                    sql_type=self._column_type(attribute),
                    uri=attribute.uri,
                    attribute=attribute,
                    primary_key=attribute.primary_key,
                    nullable=attribute.nullable and not attribute.primary_key,
                    comment=attribute.comment,
                ))
            self.schema.tables.append(table)

    def _column_type(self, attribute: Attribute) -> str:
        if isinstance(attribute.range, Enumeration):
            enum_type = self._enum_type_for(attribute.range)
            if enum_type is not None:
                return enum_type.name
        if attribute.data_type is not None:
            return sql_type(attribute.data_type.uri)
        return DEFAULT_SQL_TYPE

    def _identifier_column(self, table: Table) -> Column | None:
        column = table.column_by_uri(self.identifier_uri)
        if column is not None:
            return column
        keys = table.primary_keys
        return keys[0] if keys else None

    def _primary_key(self, table: Table) -> Column:
        """The table's identifier column, adding a surrogate key when it has none."""
        column = self._identifier_column(table)
        if column is None:
            column = Column(
                name=table.free_column_name("id"),
                sql_type="INT",
                primary_key=True,
                nullable=False,
            )
            table.columns.insert(0, column)
            logger.debug("Table %s has no identifier; added surrogate key", table.name)
        elif not column.primary_key:
            column.primary_key = True
            column.nullable = False
        return column

    # -----------------------------------------------------------------------
    # Inheritance
    # -----------------------------------------------------------------------

    def _link_inheritance(self) -> None:
        linked: set[int] = set()

        def link(table: Table) -> None:
            if id(table) in linked:
                return
            linked.add(id(table))
            for parent in table.clazz.parents:
                parent_table = self.schema.table_for(parent)
                if parent_table is None:
                    continue
                link(parent_table)
                target = self._primary_key(parent_table)
                column = Column(
                    name=table.free_column_name(f"{parent_table.name}_{target.name}"),
                    sql_type=target.sql_type,
                    uri=target.uri,
                    primary_key=not table.primary_keys,
                    foreign_key=True,
                    nullable=False,
                )
                table.columns.append(column)
                table.relations.append(Relation(
                    name=None,
                    source=table,
                    source_column=column,
                    target=parent_table,
                    target_column=target,
                    cardinality=CardinalityKind.ONE_TO_MANY,
                    inheritance=True,
                ))

        for table in list(self.schema.tables):
            link(table)

    # -----------------------------------------------------------------------
    # Foreign keys
    # -----------------------------------------------------------------------

    def _extract_relations(self) -> None:
        for table in list(self.schema.tables):
            for column in list(table.columns):
                attribute = column.attribute
                if attribute is None or attribute.range is None:
                    continue
                target = self.schema.table_for(attribute.range)
                if target is None:
                    continue
                target_column = self._primary_key(target)
                relation_name = to_snake_case(attribute.name)
                column.name = unique_name(
                    f"{relation_name}_{target_column.name}",
                    (c.name for c in table.columns if c is not column),
                )
                column.sql_type = target_column.sql_type
                column.foreign_key = True
                table.relations.append(Relation(
                    name=relation_name,
                    source=table,
                    source_column=column,
                    target=target,
                    target_column=target_column,
                    cardinality=attribute.cardinality,
                    attribute=attribute,
                ))

    # -----------------------------------------------------------------------
    # Many-to-many
    # -----------------------------------------------------------------------

    def _decompose_many_to_many(self) -> None:
        schema_settings = self.settings.schema
        for table in [t for t in self.schema.tables if not t.is_join]:
            pending = [r for r in table.relations if r.cardinality is CardinalityKind.MANY_TO_MANY]
            if schema_settings.merge_join_tables:
                by_target: dict[int, list[Relation]] = {}
                for relation in pending:
                    by_target.setdefault(id(relation.target), []).append(relation)
                for group in by_target.values():
                    if len(group) >= schema_settings.merge_min_relations:
                        self._merge(group)
            for relation in pending:
                if any(r is relation for r in table.relations):
                    self._join(relation)

    def _join(self, relation: Relation) -> Table:
        """Replace an M:N relation by a join table with two MANY_TO_ONE relations."""
        source, target = relation.source, relation.target
        join = Table(
            name=self._join_table_name(relation),
            is_join=True,
            comment=f"Join table for {source.name}.{relation.name}",
        )
        for endpoint in (source, target):
            key = self._primary_key(endpoint)
            columns = self._copy_keys(join, endpoint)
            join.relations.append(Relation(
                name=endpoint.name,
                source=join,
                source_column=columns[0],
                target=endpoint,
                target_column=key,
                cardinality=CardinalityKind.MANY_TO_ONE,
            ))
        self.schema.tables.append(join)
        self._clean_relation(relation)
        return join

    def _copy_keys(self, join: Table, endpoint: Table) -> list[Column]:
        """Foreign-key copies of an endpoint's primary-key columns."""
        copies: list[Column] = []
        for key in endpoint.primary_keys:
            name = f"{endpoint.name}_{key.name}"
            if join.get_column(name) is not None:
                name = f"{endpoint.name}_{name}"
            column = Column(
                name=join.free_column_name(name),
                sql_type=key.sql_type,
                uri=key.uri,
                primary_key=True,
                foreign_key=True,
                nullable=False,
            )
            join.columns.append(column)
            copies.append(column)
        return copies

    def _join_table_name(self, relation: Relation) -> str:
        taken = [t.name for t in self.schema.tables]
        name = to_snake_case(f"{relation.source.name}_{relation.target.name}")
        if name in taken:
            name = to_snake_case(f"{relation.source.name}_{relation.name}_{relation.target.name}")
        return unique_name(name, taken)

    def _clean_relation(self, relation: Relation) -> None:
        """Remove a relation, its inverse and the foreign-key columns they added."""
        inverse = self._inverse_relation(relation)
        for doomed in (relation, inverse):
            if doomed is None:
                continue
            doomed.source.relations = [r for r in doomed.source.relations if r is not doomed]
            doomed.source.remove_column(doomed.source_column)

    @staticmethod
    def _inverse_relation(relation: Relation) -> Relation | None:
        attribute = relation.attribute
        if attribute is None:
            return None
        for candidate in relation.target.relations:
            other = candidate.attribute
            if candidate is relation or other is None or candidate.target is not relation.source:
                continue
            if other.prop.inverse_of == attribute.uri or attribute.prop.inverse_of == other.uri:
                return candidate
        return None

    def _merge(self, relations: list[Relation]) -> Table:
        """One join table for several M:N relations between the same two tables."""
        source, target = relations[0].source, relations[0].target
        enum_type = EnumType(
            name=unique_name(
                to_snake_case(f"{source.name}_{target.name}_merge_type"),
                (e.name for e in self.schema.enum_types),
            ),
            values=list(dict.fromkeys(r.name for r in relations)),
            comment=f"Relations merged between {source.name} and {target.name}",
        )
        self.schema.enum_types.append(enum_type)

        join = self._join(relations[0])
        join.comment = f"Merged join table for {', '.join(enum_type.values)}"
        join.columns.append(Column(
            name=join.free_column_name(self.settings.schema.merge_attribute_name),
            sql_type=enum_type.name,
            primary_key=True,
            foreign_key=False,
            nullable=False,
        ))
        for relation in relations[1:]:
            self._clean_relation(relation)
        logger.debug("Merged %d relations into %s", len(relations), join.name)
        return join
