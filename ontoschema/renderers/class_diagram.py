"""Mermaid classDiagram for a ClassModel.

  - Classes list their datatype attributes; class-ranged attributes become
    associations labelled with the attribute name and target multiplicity.
  - Interfaces and enumerations carry their Mermaid annotation.
  - extends_class is drawn as inheritance, interfaces as realization.
  - Configured styles become classDef / cssClass statements.
"""

from __future__ import annotations

import re

from ..config import DiagramSettings
from ..simplifier import Attribute, ClassModel, Clazz, Enumeration, Interface

_NOT_IDENTIFIER = re.compile(r"[^A-Za-z0-9_]")


def _identifier(name: str) -> str:
    return _NOT_IDENTIFIER.sub("_", name)


def _member(attribute: Attribute) -> str:
    type_name = _identifier(attribute.data_type.name) if attribute.data_type else "String"
    if attribute.is_many:
        type_name = f"List~{type_name}~"
    return f"+{type_name} {_identifier(attribute.name)}"


def _class_block(clazz: Clazz, model: ClassModel) -> list[str]:
    lines = [f"    class {_identifier(clazz.name)} {{"]
    if isinstance(clazz, Interface):
        lines.append("        <<interface>>")
    elif isinstance(clazz, Enumeration):
        lines.append("        <<enumeration>>")
        for value in clazz.values:
            lines.append(f"        {_identifier(value.name)}")
    for attribute in clazz.attributes:
        if attribute.range is None or model.lookup(attribute.range.uri) is None:
            lines.append(f"        {_member(attribute)}")
    lines.append("    }")
    return lines


def _edges(clazz: Clazz, model: ClassModel) -> list[str]:
    name = _identifier(clazz.name)
    lines = []
    if clazz.extends_class is not None:
        lines.append(f"    {_identifier(clazz.extends_class.name)} <|-- {name}")
    for interface in clazz.interfaces:
        lines.append(f"    {_identifier(interface.name)} <|.. {name}")
    for attribute in clazz.attributes:
        if attribute.range is None or model.lookup(attribute.range.uri) is None:
            continue
        multiplicity = repr(attribute.prop.cardinality_to)
        lines.append(
            f'    {name} --> "{multiplicity}" {_identifier(attribute.range.name)} '
            f": {_identifier(attribute.name)}"
        )
    return lines


def render_class_diagram(model: ClassModel, diagram: DiagramSettings | None = None) -> str:
    """The class model as a Mermaid classDiagram."""
    lines = ["classDiagram"]
    emitted = model.emitted()
    for clazz in emitted:
        lines.extend(_class_block(clazz, model))
    for clazz in emitted:
        lines.extend(_edges(clazz, model))

    for style in (diagram.styles if diagram is not None else []):
        lines.append(f"    classDef {_identifier(style.name)} {style.properties}")
        names = [_identifier(c.name) for c in emitted if c.uri in style.uris]
        if names:
            lines.append(f'    cssClass "{",".join(names)}" {_identifier(style.name)}')
    return "\n".join(lines) + "\n"
