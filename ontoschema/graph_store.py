"""Graph store: typed queries over the loaded, imported and inferred graphs.

Three graphs are involved:

  graph     the ontology file as loaded (classes and individuals are listed here)
  union     graph plus every resolved owl:imports target (direct statements)
  inferred  the reasoner's entailment closure of the union, when available

Queries that can use entailments prefer the inferred graph and fall back to
direct statements of the union when no inferred graph exists.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rdflib import BNode, Graph, Literal, Namespace, OWL, RDF, RDFS, URIRef
from rdflib.collection import Collection
from rdflib.namespace import SKOS, split_uri as rdflib_split_uri
from rdflib.util import guess_format

from .errors import GraphAccessError
from .types import PropertyEdge, UriTemplate

logger = logging.getLogger(__name__)

HYDRA = Namespace("http://www.w3.org/ns/hydra/core#")

# Vocabulary roots every class trivially specializes.
_BUILTIN_CLASSES = frozenset({OWL.Thing, OWL.Nothing, RDFS.Resource, RDFS.Class, OWL.Class})

_RANGE_PREDICATES = (OWL.someValuesFrom, OWL.allValuesFrom, OWL.onClass, OWL.onDataRange)


# ---------------------------------------------------------------------------
# URI helpers
# ---------------------------------------------------------------------------

def split_uri(uri: str) -> tuple[str, str]:
    """Split a URI into (namespace, local name)."""
    try:
        namespace, local = rdflib_split_uri(URIRef(uri))
        return str(namespace), str(local)
    except ValueError:
        for sep in ("#", "/", ":"):
            idx = uri.rfind(sep)
            if 0 <= idx < len(uri) - 1:
                return uri[: idx + 1], uri[idx + 1:]
        return "", uri


def local_name(uri: str) -> str:
    return split_uri(uri)[1]


def namespace_of(uri: str) -> str:
    return split_uri(uri)[0]


def load_graph(path: Path, fmt: str | None = None) -> Graph:
    """Parse an RDF file, guessing the syntax from its extension."""
    graph = Graph()
    try:
        graph.parse(str(path), format=fmt or guess_format(str(path)) or "turtle")
    except FileNotFoundError as exc:
        raise GraphAccessError(f"ontology file not found: {path}") from exc
    except Exception as exc:
        # rdflib surfaces parser-specific exception types
        raise GraphAccessError(f"cannot parse {path}: {exc}") from exc
    logger.info("Loaded %d triples from %s", len(graph), path)
    return graph


# ---------------------------------------------------------------------------
# GraphStore
# ---------------------------------------------------------------------------

class GraphStore:
    """Read-only query surface over the ontology graphs."""

    def __init__(self, graph: Graph, union: Graph | None = None, inferred: Graph | None = None) -> None:
        self.graph = graph
        self.union = union if union is not None else graph
        self.inferred = inferred

    @classmethod
    def for_model(cls, model) -> GraphStore:
        """Build a store over an OntologyModel (forces a lazy inferred graph)."""
        return cls(model.graph, model.union(), model.inferred)

    # -----------------------------------------------------------------------
    # Generic queries
    # -----------------------------------------------------------------------

    def classes_by_type(self, type_uri: str = OWL.Class) -> list[str]:
        """Named resources of the loaded graph typed with type_uri, sorted."""
        return sorted({
            str(s) for s in self.graph.subjects(RDF.type, URIRef(type_uri))
            if isinstance(s, URIRef)
        })

    def uris(self, subject: str, predicate: str, graph: Graph | None = None) -> list[str]:
        """Named objects of (subject, predicate), sorted."""
        source = graph if graph is not None else self.union
        return sorted({
            str(o) for o in source.objects(URIRef(subject), URIRef(predicate))
            if isinstance(o, URIRef)
        })

    def literal_property(self, resource: str, predicate: str) -> str | None:
        """A literal value of (resource, predicate), English or untagged first."""
        values = [
            o for o in self.union.objects(URIRef(resource), URIRef(predicate))
            if isinstance(o, Literal)
        ]
        if not values:
            return None
        values.sort(key=lambda lit: (lit.language not in (None, "en"), str(lit)))
        return str(values[0])

    def label(self, resource: str) -> str | None:
        return (
            self.literal_property(resource, RDFS.label)
            or self.literal_property(resource, SKOS.prefLabel)
        )

    def comment(self, resource: str) -> str | None:
        return (
            self.literal_property(resource, RDFS.comment)
            or self.literal_property(resource, SKOS.definition)
        )

    def ontology_uri(self) -> str | None:
        found = self.classes_by_type(OWL.Ontology)
        return found[0] if found else None

    def imports(self) -> list[str]:
        """owl:imports references of the loaded graph."""
        return sorted({str(o) for o in self.graph.objects(None, OWL.imports) if isinstance(o, URIRef)})

    # -----------------------------------------------------------------------
    # Class hierarchy
    # -----------------------------------------------------------------------

    def superclasses(self, cls: str, prefer_inferred: bool = True) -> list[str]:
        """Named superclasses of a class.

        Uses the inferred graph when asked and available, else the direct
        rdfs:subClassOf statements. Restrictions, anonymous classes,
        vocabulary roots and the class itself are skipped.
        """
        source = self.inferred if prefer_inferred and self.inferred is not None else self.union
        subject = URIRef(cls)
        found: set[str] = set()
        for obj in source.objects(subject, RDFS.subClassOf):
            if not isinstance(obj, URIRef) or obj == subject or obj in _BUILTIN_CLASSES:
                continue
            if (obj, RDF.type, OWL.Restriction) in source:
                continue
            found.add(str(obj))
        return sorted(found)

    def ancestors(self, cls: str) -> list[str]:
        """All named ancestors: the inferred closure, or a walk of direct statements."""
        if self.inferred is not None:
            return self.superclasses(cls, prefer_inferred=True)
        subject = URIRef(cls)
        found: set[str] = set()
        for obj in self.union.transitive_objects(subject, RDFS.subClassOf):
            if isinstance(obj, URIRef) and obj != subject and obj not in _BUILTIN_CLASSES:
                if (obj, RDF.type, OWL.Restriction) not in self.union:
                    found.add(str(obj))
        return sorted(found)

    def individuals(self, class_uri: str) -> list[str]:
        """Named instances typed with the class in the loaded graph."""
        return sorted({
            str(s) for s in self.graph.subjects(RDF.type, URIRef(class_uri))
            if isinstance(s, URIRef)
        })

    # -----------------------------------------------------------------------
    # Properties
    # -----------------------------------------------------------------------

    def property_edge(self, uri: str, declared_by: str | None = None) -> PropertyEdge:
        """An edge carrying what the property resource itself declares."""
        prop = URIRef(uri)
        edge = PropertyEdge(
            uri=uri,
            name=local_name(uri),
            label=self.label(uri),
            comment=self.comment(uri),
            declared_by=declared_by,
        )
        ranges = {
            range_uri
            for range_node in self.union.objects(prop, RDFS.range)
            for range_uri in self._class_expression_uris(range_node)
        }
        for range_uri in sorted(ranges):
            edge.add_range(range_uri)
        if (prop, RDF.type, OWL.FunctionalProperty) in self.union:
            edge.cardinality_to.max = 1
        return edge

    def restriction_properties(self, cls: str) -> list[PropertyEdge]:
        """Edges from the owl:Restriction superclasses declared directly on a class."""
        edges: list[PropertyEdge] = []
        for node in self.union.objects(URIRef(cls), RDFS.subClassOf):
            if (node, RDF.type, OWL.Restriction) not in self.union \
                    and self.union.value(node, OWL.onProperty) is None:
                continue
            edges.append(self._restriction_edge(cls, node))
        edges.sort(key=lambda e: (e.uri, e.range, repr(e.cardinality_to)))
        return edges

    def domain_properties(self, cls: str) -> list[PropertyEdge]:
        """Edges for properties whose rdfs:domain is the class."""
        subjects = sorted({
            str(s) for s in self.union.subjects(RDFS.domain, URIRef(cls))
            if isinstance(s, URIRef)
        })
        return [self.property_edge(uri, declared_by=cls) for uri in subjects]

    def inverse_of(self, property_uri: str) -> str | None:
        """The owl:inverseOf partner of a property, read in both directions."""
        source = self.inferred if self.inferred is not None else self.union
        prop = URIRef(property_uri)
        candidates = {
            str(o) for o in source.objects(prop, OWL.inverseOf) if isinstance(o, URIRef)
        } | {
            str(s) for s in source.subjects(OWL.inverseOf, prop) if isinstance(s, URIRef)
        }
        candidates.discard(property_uri)
        return min(candidates) if candidates else None

    def uri_template(self, cls: str) -> UriTemplate | None:
        """The hydra:search IRI template of a class, if declared."""
        search = self.union.value(URIRef(cls), HYDRA.search)
        if search is None:
            return None
        template = self.union.value(search, HYDRA.template)
        mappings: dict[str, str] = {}
        for mapping in self.union.objects(search, HYDRA.mapping):
            variable = self.union.value(mapping, HYDRA.variable)
            prop = self.union.value(mapping, HYDRA.property)
            if variable is not None and isinstance(prop, URIRef):
                mappings[str(variable)] = str(prop)
        return UriTemplate(str(template) if template is not None else "", dict(sorted(mappings.items())))

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    def _restriction_edge(self, cls: str, restriction) -> PropertyEdge:
        on_property = self.union.value(restriction, OWL.onProperty)
        if not isinstance(on_property, URIRef):
            raise ValueError(f"restriction on <{cls}> has no named owl:onProperty")
        edge = self.property_edge(str(on_property), declared_by=cls)

        exact = self._int_value(restriction, OWL.cardinality, OWL.qualifiedCardinality)
        minimum = self._int_value(restriction, OWL.minCardinality, OWL.minQualifiedCardinality)
        maximum = self._int_value(restriction, OWL.maxCardinality, OWL.maxQualifiedCardinality)
        if exact is not None:
            edge.cardinality_to.min = exact
            edge.cardinality_to.max = exact
        if minimum is not None:
            edge.cardinality_to.min = minimum
        if maximum is not None:
            edge.cardinality_to.max = maximum

        restricted: set[str] = set()
        for predicate in _RANGE_PREDICATES:
            for value in self.union.objects(restriction, predicate):
                restricted.update(self._class_expression_uris(value))
        if restricted:
            # restricted ranges come first, each group in URI order
            edge.range = list(dict.fromkeys(sorted(restricted) + edge.range))

        if (restriction, OWL.someValuesFrom, None) in self.union and edge.cardinality_to.min is None:
            edge.cardinality_to.min = 1
        return edge

    def _int_value(self, subject, *predicates) -> int | None:
        for predicate in predicates:
            value = self.union.value(subject, predicate)
            if value is not None:
                try:
                    return int(value)
                except (TypeError, ValueError):
                    logger.warning("Ignoring non-integer %s on restriction: %r", predicate, value)
        return None

    def _class_expression_uris(self, node) -> list[str]:
        if isinstance(node, URIRef):
            return [str(node)]
        if isinstance(node, BNode):
            union_list = self.union.value(node, OWL.unionOf)
            if union_list is not None:
                return [str(m) for m in Collection(self.union, union_list) if isinstance(m, URIRef)]
        return []
