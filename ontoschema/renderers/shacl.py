"""SHACL shapes for a ClassModel, and validation of instance data against them.

This translates:
  1. classes and interfaces → sh:NodeShape targeting the class URI
  2. datatype attributes    → property shapes with sh:datatype
  3. class-ranged attributes → property shapes with sh:class
  4. enum-ranged attributes → property shapes with sh:in over the member URIs
  5. cardinality_to         → sh:minCount / sh:maxCount
  6. parents                → sh:node on the parent's shape

Validation itself is delegated to pyshacl.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from rdflib import BNode, Graph, Literal, RDF, RDFS, URIRef, XSD
from rdflib.collection import Collection
from rdflib.namespace import SH

from ..graph_store import local_name
from ..simplifier import Attribute, ClassModel, Clazz, Enumeration


def shape_uri(clazz: Clazz) -> URIRef:
    return URIRef(f"{clazz.uri}Shape")


# ---------------------------------------------------------------------------
# ClassModel → SHACL shapes
# ---------------------------------------------------------------------------

def _property_shape(sg: Graph, attribute: Attribute) -> BNode:
    prop_shape = BNode()
    sg.add((prop_shape, SH.path, URIRef(attribute.uri)))
    sg.add((prop_shape, SH.name, Literal(attribute.name)))
    if attribute.comment:
        sg.add((prop_shape, SH.description, Literal(attribute.comment)))

    target = attribute.range
    if isinstance(target, Enumeration):
        members = BNode()
        Collection(sg, members, [URIRef(v.uri) for v in target.values])
        sg.add((prop_shape, SH["in"], members))
    elif target is not None:
        sg.add((prop_shape, SH["class"], URIRef(target.uri)))
    elif attribute.data_type is not None and attribute.data_type.uri.startswith(str(XSD)):
        sg.add((prop_shape, SH.datatype, URIRef(attribute.data_type.uri)))

    cardinality = attribute.prop.cardinality_to
    if cardinality.min:
        sg.add((prop_shape, SH.minCount, Literal(cardinality.min)))
    if cardinality.max is not None:
        sg.add((prop_shape, SH.maxCount, Literal(cardinality.max)))
    return prop_shape


def class_model_to_shacl(model: ClassModel) -> Graph:
    """One sh:NodeShape per class and interface of the model."""
    sg = Graph()
    sg.bind("sh", SH)
    sg.bind("xsd", XSD)

    for clazz in [*model.classes, *model.interfaces]:
        shape = shape_uri(clazz)
        sg.add((shape, RDF.type, SH.NodeShape))
        sg.add((shape, SH.targetClass, URIRef(clazz.uri)))
        sg.add((shape, RDFS.label, Literal(f"Shape for {clazz.name}")))
        if clazz.comment:
            sg.add((shape, RDFS.comment, Literal(clazz.comment)))
        for parent in clazz.parents:
            sg.add((shape, SH.node, shape_uri(parent)))
        for attribute in clazz.attributes:
            sg.add((shape, SH.property, _property_shape(sg, attribute)))
    return sg


def render_shacl(model: ClassModel) -> str:
    """The shapes graph as Turtle."""
    return class_model_to_shacl(model).serialize(format="turtle")


# ---------------------------------------------------------------------------
# SHACL Validation
# ---------------------------------------------------------------------------

def shacl_validate(model: ClassModel, data_graph: Graph) -> SHACLValidationResult:
    """Validate instance data against the shapes derived from the model.

    Returns a structured result with conformance status and violation details.
    """
    from pyshacl import validate as pyshacl_validate

    shapes_graph = class_model_to_shacl(model)

    conforms, results_graph, results_text = pyshacl_validate(
        data_graph,
        shacl_graph=shapes_graph,
        inference="none",
        abort_on_first=False,
    )

    violations = []
    for result in results_graph.subjects(RDF.type, SH.ValidationResult):
        focus = results_graph.value(result, SH.focusNode)
        path = results_graph.value(result, SH.resultPath)
        message = results_graph.value(result, SH.resultMessage)
        severity = results_graph.value(result, SH.resultSeverity)

        violations.append(SHACLViolation(
            focus_node=str(focus) if focus else "",
            path=str(path) if path else "",
            message=str(message) if message else "",
            severity=str(severity) if severity else "",
        ))
    violations.sort(key=lambda v: (v.focus_node, v.path, v.message))

    return SHACLValidationResult(
        conforms=conforms,
        violations=violations,
        results_text=results_text,
        shapes_graph=shapes_graph,
        data_graph=data_graph,
    )


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class SHACLViolation:
    """A single SHACL validation violation."""
    focus_node: str
    path: str
    message: str
    severity: str

    def __repr__(self) -> str:
        return f"SHACLViolation({local_name(self.focus_node)}.{local_name(self.path)}: {self.message})"


@dataclass
class SHACLValidationResult:
    """Outcome of validating a data graph against the model's shapes."""
    conforms: bool
    violations: list[SHACLViolation] = field(default_factory=list)
    results_text: str = ""
    shapes_graph: Graph | None = None
    data_graph: Graph | None = None

    def summary(self) -> str:
        lines = []
        status = "CONFORMS" if self.conforms else "DOES NOT CONFORM"
        lines.append(f"SHACL Validation: {status}")
        lines.append("-" * 50)
        if self.violations:
            lines.append(f"  Violations ({len(self.violations)}):")
            for v in self.violations:
                lines.append(f"    - {local_name(v.focus_node)}.{local_name(v.path)}: {v.message}")
        else:
            lines.append("  No violations found.")
        return "\n".join(lines)

    def shapes_as_turtle(self) -> str:
        if self.shapes_graph is None:
            return ""
        return self.shapes_graph.serialize(format="turtle")
