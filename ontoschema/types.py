"""Core types for the raw ontology model.

The raw model is what the builder stages extract from the graph store:

  ClassNode     = (uri, name, scope, super_classes, properties, individuals)
  PropertyEdge  = (uri, name, range, cardinality_to, cardinality_from, inverse_of)

Class nodes live in an arena (OntologyModel.classes) keyed by URI. Hierarchy
edges are stored as URI references into that arena, never as object links,
so later stages can relink, filter and derive subsets without ownership
cycles.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, ClassVar

from rdflib import Graph


# ---------------------------------------------------------------------------
# Scope and model kinds
# ---------------------------------------------------------------------------

class Scope(Enum):
    """Provenance of a class node."""
    ONTOLOGY = "ontology"
    EXTERNAL = "external"
    CONCEPTS = "concepts"


class ModelKind(Enum):
    """The kind of model a pipeline stage applies to."""
    ONTOLOGY = "ontology"
    CONCEPT_SCHEME = "concept_scheme"


# ---------------------------------------------------------------------------
# Cardinality
# ---------------------------------------------------------------------------

@dataclass
class Cardinality:
    """A {min, max} bound. A missing max means unbounded."""
    min: int | None = None
    max: int | None = None

    @property
    def is_many(self) -> bool:
        return self.max is None or self.max > 1

    @property
    def is_required(self) -> bool:
        return self.min is not None and self.min > 0

    def copy(self) -> Cardinality:
        return Cardinality(self.min, self.max)

    def __repr__(self) -> str:
        low = self.min if self.min is not None else 0
        high = "*" if self.max is None else self.max
        return f"{low}..{high}"


class CardinalityKind(Enum):
    """Classified multiplicity of a relation, read from the owning side."""
    ONE_TO_ONE = "1..1"
    ONE_TO_MANY = "1..*"
    MANY_TO_ONE = "*..1"
    MANY_TO_MANY = "*..*"

    @classmethod
    def classify(cls, cardinality_from: Cardinality, cardinality_to: Cardinality) -> CardinalityKind:
        from_many = cardinality_from.is_many
        to_many = cardinality_to.is_many
        if from_many and to_many:
            return cls.MANY_TO_MANY
        if from_many:
            return cls.MANY_TO_ONE
        if to_many:
            return cls.ONE_TO_MANY
        return cls.ONE_TO_ONE


# ---------------------------------------------------------------------------
# PropertyEdge
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class PropertyEdge:
    """A property of a class, as seen from instances of that class.

    cardinality_to is experienced by instances of the owning class;
    cardinality_from by the range side and is filled in by inverse
    reconciliation.
    """
    uri: str
    name: str
    label: str | None = None
    comment: str | None = None
    range: list[str] = field(default_factory=list)
    cardinality_to: Cardinality = field(default_factory=Cardinality)
    cardinality_from: Cardinality = field(default_factory=Cardinality)
    inverse_of: str | None = None
    identifier: bool = False
    declared_by: str | None = None

    def copy(self) -> PropertyEdge:
        return PropertyEdge(
            uri=self.uri,
            name=self.name,
            label=self.label,
            comment=self.comment,
            range=list(self.range),
            cardinality_to=self.cardinality_to.copy(),
            cardinality_from=self.cardinality_from.copy(),
            inverse_of=self.inverse_of,
            identifier=self.identifier,
            declared_by=self.declared_by,
        )

    def add_range(self, uri: str) -> None:
        if uri not in self.range:
            self.range.append(uri)

    def __repr__(self) -> str:
        ident = ", id" if self.identifier else ""
        return f"Prop({self.name} {self.cardinality_to!r}{ident})"


# ---------------------------------------------------------------------------
# UriTemplate: Hydra search template of a class
# ---------------------------------------------------------------------------

@dataclass
class UriTemplate:
    """A hydra:IriTemplate: template string plus variable → property URI."""
    template: str
    mappings: dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# ClassNode
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class ClassNode:
    """A class of the ontology, identified by its URI."""
    uri: str
    name: str
    namespace: str = ""
    label: str | None = None
    comment: str | None = None
    scope: Scope = Scope.ONTOLOGY
    super_classes: list[str] = field(default_factory=list)
    properties: list[PropertyEdge] = field(default_factory=list)
    individuals: list[str] = field(default_factory=list)
    uri_template: UriTemplate | None = None

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ClassNode) and other.uri == self.uri

    def __hash__(self) -> int:
        return hash(self.uri)

    def get_property(self, uri: str) -> PropertyEdge | None:
        for prop in self.properties:
            if prop.uri == uri:
                return prop
        return None

    def add_property(self, prop: PropertyEdge) -> bool:
        """Add a property unless one with the same URI is already present."""
        if self.get_property(prop.uri) is not None:
            return False
        self.properties.append(prop)
        return True

    def add_super_class(self, uri: str) -> None:
        if uri != self.uri and uri not in self.super_classes:
            self.super_classes.append(uri)

    def __repr__(self) -> str:
        return f"Class({self.name}, {self.scope.value})"


# ---------------------------------------------------------------------------
# Concept scheme model
# ---------------------------------------------------------------------------

@dataclass
class Concept:
    """A skos:Concept mapped onto ontology classes or properties."""
    uri: str
    name: str
    label: str | None = None
    comment: str | None = None
    equivalents: list[str] = field(default_factory=list)

    def __repr__(self) -> str:
        return f"Concept({self.name})"


@dataclass
class ConceptSchemeModel:
    """The controlled vocabulary providing preferred class and property names."""

    kind: ClassVar[ModelKind] = ModelKind.CONCEPT_SCHEME

    source: Path | None = None
    graph: Graph = field(default_factory=Graph)
    class_concepts: list[Concept] = field(default_factory=list)
    property_concepts: list[Concept] = field(default_factory=list)

    def class_concept_for(self, uri: str) -> Concept | None:
        return _concept_for(self.class_concepts, uri)

    def property_concept_for(self, uri: str) -> Concept | None:
        return _concept_for(self.property_concepts, uri)

    def __repr__(self) -> str:
        return (
            f"ConceptSchemeModel("
            f"{len(self.class_concepts)} class concepts, "
            f"{len(self.property_concepts)} property concepts)"
        )


def _concept_for(concepts: list[Concept], uri: str) -> Concept | None:
    for concept in concepts:
        if uri in concept.equivalents:
            return concept
    return None


# ---------------------------------------------------------------------------
# Ontology model: the shared mutable model passed through the pipeline
# ---------------------------------------------------------------------------

@dataclass
class OntologyModel:
    """The ontology being compiled.

    Owns the loaded graph, the graphs of resolved imports, the (possibly
    lazily computed) inferred graph and the class arena. A single instance is
    passed through every ontology stage of the pipeline.
    """

    kind: ClassVar[ModelKind] = ModelKind.ONTOLOGY

    source: Path | None = None
    uri: str | None = None
    graph: Graph = field(default_factory=Graph)
    imports: dict[str, Graph] = field(default_factory=dict)
    classes: dict[str, ClassNode] = field(default_factory=dict)
    concepts: ConceptSchemeModel | None = None

    _union: Graph | None = field(default=None, repr=False)
    _inferred: Graph | None = field(default=None, repr=False)
    _inferred_loader: Callable[[], Graph] | None = field(default=None, repr=False)

    # -----------------------------------------------------------------------
    # Graphs
    # -----------------------------------------------------------------------

    def add_import(self, reference: str, graph: Graph) -> None:
        self.imports[reference] = graph
        self._union = None

    def union(self) -> Graph:
        """The loaded graph merged with every resolved import."""
        if not self.imports:
            return self.graph
        if self._union is None:
            union = Graph()
            union += self.graph
            for reference in sorted(self.imports):
                union += self.imports[reference]
            self._union = union
        return self._union

    def set_inferred(
        self,
        graph: Graph | None = None,
        loader: Callable[[], Graph] | None = None,
    ) -> None:
        """Install the inferred graph, or a loader computing it on first use."""
        self._inferred = graph
        self._inferred_loader = loader if graph is None else None

    @property
    def has_inferred(self) -> bool:
        return self._inferred is not None or self._inferred_loader is not None

    @property
    def inferred(self) -> Graph | None:
        if self._inferred is None and self._inferred_loader is not None:
            self._inferred = self._inferred_loader()
            self._inferred_loader = None
        return self._inferred

    # -----------------------------------------------------------------------
    # Class arena
    # -----------------------------------------------------------------------

    def add_class(self, node: ClassNode) -> ClassNode:
        """Add a node unless its URI is already known; return the canonical node."""
        existing = self.classes.get(node.uri)
        if existing is not None:
            return existing
        self.classes[node.uri] = node
        return node

    def get_class(self, uri: str) -> ClassNode | None:
        return self.classes.get(uri)

    def ancestors(self, uri: str) -> list[str]:
        """All transitive superclasses of a class, nearest first.

        Breadth-first over the arena; each level is visited in URI order and
        cycles are cut by the visited set.
        """
        node = self.classes.get(uri)
        if node is None:
            return []
        seen = {uri}
        order: list[str] = []
        queue = deque(sorted(node.super_classes))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            order.append(current)
            parent = self.classes.get(current)
            if parent is not None:
                queue.extend(sorted(s for s in parent.super_classes if s not in seen))
        return order

    def is_subclass_of(self, uri: str, ancestor: str) -> bool:
        return ancestor in self.ancestors(uri)

    def subclasses(self, uri: str) -> list[ClassNode]:
        """All transitive subclasses of a class, in arena order."""
        return [node for node in self.classes.values() if self.is_subclass_of(node.uri, uri)]

    def properties_by_uri(self, uri: str) -> list[PropertyEdge]:
        """Every edge with the given URI, across all classes in arena order."""
        found: list[PropertyEdge] = []
        for node in self.classes.values():
            prop = node.get_property(uri)
            if prop is not None:
                found.append(prop)
        return found

    def __repr__(self) -> str:
        return (
            f"OntologyModel("
            f"{len(self.classes)} classes, "
            f"{len(self.imports)} imports)"
        )
