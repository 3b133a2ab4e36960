"""Class model simplifier: collapses the raw class arena into a clean partition.

The raw arena is redundant: every class carries the properties it inherits,
superclass lists are transitively closed by the reasoner, and imported
classes mix with local ones. The simplifier derives three disjoint sets:

  Classes     concrete classes (ONTOLOGY and CONCEPTS scope)
  Interfaces  EXTERNAL classes that are worth keeping as shared types
  Enums       configured enumeration classes with their members

Steps, in order:

  1. create classes, interfaces and enums; resolve attribute ranges
  2. interface retention and interface property narrowing
  3. enum detection (members leave the class/interface sets)
  4. inherited-property elision
  5. redundant-superclass elimination (-> extends_class)
  6. inverse-property reconciliation
  7. final range resolution and datatypes

The arena itself is never edited except for property edges touched by
inverse reconciliation; every output set is a derived list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from rdflib import XSD

from .config import Settings
from .graph_store import GraphStore, local_name
from .naming import enum_value_name, readable_name
from .types import (
    CardinalityKind,
    ClassNode,
    ConceptSchemeModel,
    OntologyModel,
    PropertyEdge,
    Scope,
)

logger = logging.getLogger(__name__)

CONCRETE_SCOPES = (Scope.ONTOLOGY, Scope.CONCEPTS)


# ---------------------------------------------------------------------------
# Simplified model types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DataType:
    """Readable name and URI of an attribute's type."""
    name: str
    uri: str

    def __repr__(self) -> str:
        return f"DataType({self.name})"


@dataclass(eq=False)
class Attribute:
    """A property as it appears on an emitted class."""
    prop: PropertyEdge
    name: str
    domain: Clazz
    cardinality: CardinalityKind
    label: str | None = None
    range: Clazz | None = None
    data_type: DataType | None = None
    primary_key: bool = False

    @property
    def uri(self) -> str:
        return self.prop.uri

    @property
    def comment(self) -> str | None:
        return self.prop.comment

    @property
    def nullable(self) -> bool:
        return not self.prop.cardinality_to.is_required

    @property
    def is_many(self) -> bool:
        return self.prop.cardinality_to.is_many

    def __repr__(self) -> str:
        target = self.range.name if self.range is not None else (
            self.data_type.name if self.data_type is not None else "?"
        )
        return f"Attribute({self.domain.name}.{self.name}: {target} {self.cardinality.value})"


@dataclass(eq=False)
class Clazz:
    """A concrete class of the simplified model."""
    node: ClassNode
    name: str
    label: str | None = None
    comment: str | None = None
    attributes: list[Attribute] = field(default_factory=list)
    interfaces: list[Interface] = field(default_factory=list)
    extends_class: Clazz | None = None
    parents: list[Clazz] = field(default_factory=list)

    @property
    def uri(self) -> str:
        return self.node.uri

    def get_attribute(self, uri: str) -> Attribute | None:
        for attribute in self.attributes:
            if attribute.uri == uri:
                return attribute
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name})"


class Interface(Clazz):
    """A shared EXTERNAL type implemented by several concrete classes."""


@dataclass
class EnumValue:
    name: str
    uri: str
    label: str | None = None


@dataclass(eq=False, repr=False)
class Enumeration(Clazz):
    """A configured enumeration class and its members."""
    values: list[EnumValue] = field(default_factory=list)


# ---------------------------------------------------------------------------
# ClassModel: the finished simplified model
# ---------------------------------------------------------------------------

@dataclass
class ClassModel:
    """Ordered classes, interfaces and enums derived from one ontology."""
    ontology: OntologyModel
    classes: list[Clazz] = field(default_factory=list)
    interfaces: list[Interface] = field(default_factory=list)
    enums: list[Enumeration] = field(default_factory=list)

    def emitted(self) -> list[Clazz]:
        return [*self.classes, *self.interfaces, *self.enums]

    def lookup(self, uri: str) -> Clazz | None:
        for clazz in self.emitted():
            if clazz.uri == uri:
                return clazz
        return None

    def nearest(self, target: str | ClassNode) -> Clazz | None:
        """The closest emitted node for a class.

        The node itself when emitted; otherwise its ancestors are searched
        nearest first, interfaces before enums before classes. None when no
        ancestor is emitted.
        """
        uri = target.uri if isinstance(target, ClassNode) else target
        found = self.lookup(uri)
        if found is not None:
            return found
        ancestors = self.ontology.ancestors(uri)
        for group in (self.interfaces, self.enums, self.classes):
            by_uri = {c.uri: c for c in group}
            for ancestor in ancestors:
                if ancestor in by_uri:
                    return by_uri[ancestor]
        return None

    def nearest_descendant(self, uri: str) -> Clazz | None:
        """The first emitted subclass (interfaces, enums, classes; URI order)."""
        for group in (self.interfaces, self.enums, self.classes):
            for clazz in sorted(group, key=lambda c: c.uri):
                if self.ontology.is_subclass_of(clazz.uri, uri):
                    return clazz
        return None

    def summary(self) -> str:
        lines = [
            f"Class model: {len(self.classes)} classes, "
            f"{len(self.interfaces)} interfaces, {len(self.enums)} enums",
            "-" * 50,
        ]
        for clazz in self.emitted():
            if isinstance(clazz, Interface):
                kind = "interface"
            elif isinstance(clazz, Enumeration):
                kind = "enum"
            else:
                kind = "class"
            header = f"  {kind} {clazz.name}"
            if clazz.extends_class is not None:
                header += f" extends {clazz.extends_class.name}"
            if clazz.interfaces:
                header += f" implements {', '.join(i.name for i in clazz.interfaces)}"
            lines.append(header)
            for attribute in clazz.attributes:
                target = attribute.range.name if attribute.range is not None else (
                    attribute.data_type.name if attribute.data_type is not None else "?"
                )
                marker = "+" if attribute.primary_key else "-"
                lines.append(f"    {marker} {attribute.name}: {target} [{attribute.cardinality.value}]")
            if isinstance(clazz, Enumeration):
                for value in clazz.values:
                    lines.append(f"    = {value.name}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"ClassModel({len(self.classes)} classes, "
            f"{len(self.interfaces)} interfaces, {len(self.enums)} enums)"
        )


# ---------------------------------------------------------------------------
# Simplifier
# ---------------------------------------------------------------------------

class ClassModelSimplifier:
    """Derives a ClassModel from a populated OntologyModel."""

    def __init__(
        self,
        ontology: OntologyModel,
        settings: Settings | None = None,
        concepts: ConceptSchemeModel | None = None,
    ) -> None:
        self.ontology = ontology
        self.settings = settings or Settings()
        self.concepts = concepts if concepts is not None else ontology.concepts
        self.model = ClassModel(ontology)

    def simplify(self) -> ClassModel:
        self._extract_classes()
        self._extract_interfaces()
        self._extract_enums()
        self._extract_relations()
        self._filter_interfaces()
        self._filter_enums()
        self._filter_inherited_properties()
        self._filter_superclasses()
        self._filter_inverse_properties()
        self._update_ranges()
        self._extract_data_types()
        logger.info("Simplified to %r", self.model)
        return self.model

    # -----------------------------------------------------------------------
    # Creation
    # -----------------------------------------------------------------------

    def _create(self, cls: type[Clazz], node: ClassNode) -> Clazz:
        concept = self.concepts.class_concept_for(node.uri) if self.concepts else None
        clazz = cls(
            node=node,
            name=concept.name if concept is not None else node.name,
            label=(concept.label if concept is not None and concept.label else node.label),
            comment=node.comment or (concept.comment if concept is not None else None),
        )
        clazz.attributes = [self._attribute(prop, clazz) for prop in node.properties]
        return clazz

    def _attribute(self, prop: PropertyEdge, domain: Clazz) -> Attribute:
        concept = self.concepts.property_concept_for(prop.uri) if self.concepts else None
        return Attribute(
            prop=prop,
            name=concept.name if concept is not None else prop.name,
            label=(concept.label if concept is not None and concept.label else prop.label),
            domain=domain,
            cardinality=CardinalityKind.classify(prop.cardinality_from, prop.cardinality_to),
            primary_key=prop.identifier,
        )

    def _extract_classes(self) -> None:
        self.model.classes = [
            self._create(Clazz, node)
            for node in self.ontology.classes.values()
            if node.scope in CONCRETE_SCOPES
        ]

    def _extract_interfaces(self) -> None:
        self.model.interfaces = [
            self._create(Interface, node)
            for node in self.ontology.classes.values()
            if node.scope == Scope.EXTERNAL
        ]
        for clazz in self.model.classes:
            clazz.interfaces = sorted(
                (i for i in self.model.interfaces if self.ontology.is_subclass_of(clazz.uri, i.uri)),
                key=lambda i: i.uri,
            )

    def _extract_enums(self) -> None:
        enums: list[Enumeration] = []
        for uri in self.settings.ontology.enum_classes:
            node = self.ontology.get_class(uri)
            if node is None:
                logger.warning("Enum class <%s> is not a class of the ontology", uri)
                continue
            enums.append(self._create(Enumeration, node))
        self.model.enums = enums

    def _extract_relations(self) -> None:
        for clazz in self.model.classes:
            for attribute in clazz.attributes:
                attribute.range = self._range_target(attribute.prop, descend=False)

    def _range_target(self, prop: PropertyEdge, descend: bool = True) -> Clazz | None:
        for uri in prop.range:
            if uri not in self.ontology.classes:
                continue
            target = self.model.nearest(uri)
            if target is None and descend:
                target = self.model.nearest_descendant(uri)
            if target is not None:
                return target
        return None

    # -----------------------------------------------------------------------
    # Interfaces
    # -----------------------------------------------------------------------

    def _implementers(self, interface: Interface) -> list[Clazz]:
        return [c for c in self.model.classes if any(i is interface for i in c.interfaces)]

    def _filter_interfaces(self) -> None:
        """Keep interfaces that are used as a range and implemented often enough."""
        minimum = self.settings.simplifier.interface_min_implementers
        referenced = {
            attribute.range.uri
            for clazz in self.model.classes
            for attribute in clazz.attributes
            if attribute.range is not None
        }
        kept: list[Interface] = []
        for interface in sorted(self.model.interfaces, key=lambda i: i.uri):
            implementers = self._implementers(interface)
            if interface.uri in referenced and len(implementers) >= minimum:
                kept.append(interface)
            else:
                logger.debug(
                    "Dropping interface %s (referenced=%s, implementers=%d)",
                    interface.name, interface.uri in referenced, len(implementers),
                )
        self.model.interfaces = kept
        for clazz in self.model.classes:
            clazz.interfaces = [i for i in clazz.interfaces if any(i is k for k in kept)]
        self._filter_interface_properties()

    def _filter_interface_properties(self) -> None:
        """Narrow each interface to the properties all its implementers share."""
        for interface in self.model.interfaces:
            implementers = self._implementers(interface)
            if not implementers:
                continue
            interface.attributes = [
                a for a in interface.attributes
                if all(impl.get_attribute(a.uri) is not None for impl in implementers)
            ]

    # -----------------------------------------------------------------------
    # Enums
    # -----------------------------------------------------------------------

    def _is_enum_member(self, node: ClassNode) -> bool:
        extras = {extra.uri for extra in self.settings.ontology.extra_properties}
        return all(
            prop.identifier or prop.uri in extras
            for prop in node.properties
            if prop.declared_by == node.uri
        )

    def _filter_enums(self) -> None:
        """Collect enum members and remove enums and members from the other sets."""
        if not self.model.enums:
            return
        store = GraphStore(self.ontology.graph, self.ontology.union())
        enum_uris = {e.uri for e in self.model.enums}
        removed = set(enum_uris)

        for enum in self.model.enums:
            enum.attributes = []
            values: dict[str, EnumValue] = {}
            for node in self.ontology.subclasses(enum.uri):
                if node.uri in enum_uris or not self._is_enum_member(node):
                    continue
                values.setdefault(node.uri, EnumValue(enum_value_name(node.name), node.uri, node.label))
                removed.add(node.uri)
            for individual in enum.node.individuals:
                values.setdefault(
                    individual,
                    EnumValue(enum_value_name(local_name(individual)), individual, store.label(individual)),
                )
            enum.values = list(values.values())

        self.model.classes = [c for c in self.model.classes if c.uri not in removed]
        self.model.interfaces = [i for i in self.model.interfaces if i.uri not in removed]
        for clazz in self.model.classes:
            clazz.interfaces = [i for i in clazz.interfaces if i.uri not in removed]

    # -----------------------------------------------------------------------
    # Inheritance
    # -----------------------------------------------------------------------

    def _filter_inherited_properties(self) -> None:
        """Drop attributes already defined by a concrete superclass."""
        class_uris = {c.uri for c in self.model.classes}
        for clazz in self.model.classes:
            inherited: set[str] = set()
            for ancestor in self.ontology.ancestors(clazz.uri):
                if ancestor in class_uris:
                    inherited.update(p.uri for p in self.ontology.classes[ancestor].properties)
            clazz.attributes = [a for a in clazz.attributes if a.uri not in inherited]

    def _filter_superclasses(self) -> None:
        """Keep only the most specific emitted ancestors as parents.

        An ancestor is dropped when another candidate is itself a subclass
        of it. The first remaining concrete parent (URI order) becomes
        extends_class.
        """
        emitted = {c.uri: c for c in [*self.model.classes, *self.model.interfaces]}
        for clazz in [*self.model.classes, *self.model.interfaces]:
            candidates = [a for a in self.ontology.ancestors(clazz.uri) if a in emitted and a != clazz.uri]
            specific = sorted(
                a for a in candidates
                if not any(o != a and self.ontology.is_subclass_of(o, a) for o in candidates)
            )
            clazz.parents = [emitted[uri] for uri in specific]
            concrete = [p for p in clazz.parents if not isinstance(p, Interface)]
            clazz.extends_class = concrete[0] if concrete else None
            if len(concrete) > 1:
                logger.warning(
                    "%s has %d concrete parents; extending %s",
                    clazz.name, len(concrete), concrete[0].name,
                )

    # -----------------------------------------------------------------------
    # Inverse properties
    # -----------------------------------------------------------------------

    def _filter_inverse_properties(self) -> None:
        """Reconcile inverse pairs and keep one visible direction.

        Cardinalities are exchanged between partners. When neither side has
        a comment, the larger URI gets one naming its partner, which keeps
        that side on concrete classes.
        """
        owners = [*self.model.classes, *self.model.interfaces]
        for clazz in owners:
            for attribute in clazz.attributes:
                prop = attribute.prop
                if not prop.inverse_of:
                    continue
                partners = self.ontology.properties_by_uri(prop.inverse_of)
                if not partners:
                    continue
                prop.cardinality_from = partners[0].cardinality_to.copy()
                for partner in partners:
                    partner.cardinality_from = prop.cardinality_to.copy()
                if prop.comment or any(p.comment for p in partners):
                    continue
                larger, smaller = max(prop.uri, prop.inverse_of), min(prop.uri, prop.inverse_of)
                for edge in self.ontology.properties_by_uri(larger):
                    edge.comment = f"Inverse property of {smaller}"

        for interface in self.model.interfaces:
            interface.attributes = [a for a in interface.attributes if not a.prop.inverse_of]
        for clazz in self.model.classes:
            clazz.attributes = [a for a in clazz.attributes if not a.prop.inverse_of or a.prop.comment]

    # -----------------------------------------------------------------------
    # Ranges and datatypes
    # -----------------------------------------------------------------------

    def _update_ranges(self) -> None:
        for clazz in self.model.emitted():
            for attribute in clazz.attributes:
                prop = attribute.prop
                attribute.cardinality = CardinalityKind.classify(prop.cardinality_from, prop.cardinality_to)
                attribute.range = self._range_target(prop)
                if attribute.range is not None:
                    attribute.data_type = DataType(attribute.range.name, attribute.range.uri)

    def _extract_data_types(self) -> None:
        for clazz in self.model.emitted():
            for attribute in clazz.attributes:
                if attribute.data_type is not None:
                    continue
                ranges = attribute.prop.range
                literal = [uri for uri in ranges if uri not in self.ontology.classes]
                uri = (literal or ranges or [str(XSD.string)])[0]
                attribute.data_type = DataType(readable_name(uri), uri)
