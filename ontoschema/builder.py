"""Ontology model builder: stages that populate the class arena.

  ontology-load                 parse the ontology file
  ontology-imports              resolve owl:imports into extra graphs
  ontology-reasoner             install the inferred graph (eager or lazy)
  ontology-class-extract        one ClassNode per owl:Class, plus discovered superclasses
  ontology-uri-template         hydra:search templates
  ontology-property-extract     restriction and domain properties, inverses, identifiers
  ontology-individuals-extract  typed instances per class
  ontology-property-extra       configured always-present properties
  ontology-property-override    configured datatype / cardinality overrides
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable

import httpx
from rdflib import OWL

from .config import ExtraProperty, Settings
from .errors import ConfigurationError, PipelineStageError
from .graph_store import GraphStore, load_graph, namespace_of, split_uri
from .imports import ImportResolver
from .pipeline import Stage, StageDescriptor
from .reasoner import Reasoner
from .types import Cardinality, ClassNode, OntologyModel, PropertyEdge, Scope

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Base classes
# ---------------------------------------------------------------------------

class SettingsStage(Stage):
    """A stage configured from the run settings."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings


class ClassStage(SettingsStage):
    """A stage working class by class; failures name the offending class."""

    def for_each_class(
        self,
        nodes: Iterable[ClassNode],
        operation: str,
        action: Callable[[ClassNode], None],
    ) -> None:
        for node in list(nodes):
            try:
                action(node)
            except PipelineStageError:
                raise
            except Exception as exc:
                raise PipelineStageError(
                    self.id, str(exc) or type(exc).__name__, operation=operation, subject=node.uri,
                ) from exc


def new_class_node(store: GraphStore, uri: str, scope: Scope) -> ClassNode:
    namespace, local = split_uri(uri)
    return ClassNode(
        uri=uri,
        name=local,
        namespace=namespace,
        label=store.label(uri),
        comment=store.comment(uri),
        scope=scope,
    )


def merge_edge(existing: PropertyEdge, edge: PropertyEdge) -> None:
    """Fold another declaration of the same property into an edge.

    Ranges accumulate; cardinalities intersect (largest min, smallest max).
    """
    for range_uri in edge.range:
        existing.add_range(range_uri)
    mins = [c for c in (existing.cardinality_to.min, edge.cardinality_to.min) if c is not None]
    maxes = [c for c in (existing.cardinality_to.max, edge.cardinality_to.max) if c is not None]
    existing.cardinality_to = Cardinality(max(mins) if mins else None, min(maxes) if maxes else None)
    existing.label = existing.label or edge.label
    existing.comment = existing.comment or edge.comment


# ---------------------------------------------------------------------------
# Loading, imports, reasoning
# ---------------------------------------------------------------------------

class OntologyLoadStage(SettingsStage):
    descriptor = StageDescriptor("ontology-load")

    def run(self, model: OntologyModel) -> None:
        path = model.source or self.settings.ontology.ontology_file
        if path is None:
            if len(model.graph):
                logger.info("Using preloaded ontology graph (%d triples)", len(model.graph))
            else:
                raise ConfigurationError("ontology.ontology_file is not set")
        else:
            model.source = Path(path)
            model.graph = load_graph(model.source)
        model.uri = GraphStore(model.graph).ontology_uri()


class ImportStage(SettingsStage):
    """Resolves owl:imports; unresolvable imports are skipped."""

    descriptor = StageDescriptor("ontology-imports", dependencies=("ontology-load",))

    def __init__(self, settings: Settings, client: httpx.Client | None = None) -> None:
        super().__init__(settings)
        self.client = client

    def run(self, model: OntologyModel) -> None:
        if not self.settings.imports.enabled:
            logger.info("Import resolution disabled")
            return
        references = GraphStore(model.graph).imports()
        if not references:
            return
        with ImportResolver(self.settings.imports, client=self.client) as resolver:
            for reference, graph in resolver.resolve_all(references).items():
                model.add_import(reference, graph)
        logger.info("Resolved %d of %d imports", len(model.imports), len(references))


class ReasonerStage(SettingsStage):
    """Installs the inferred graph, computed now or on first use."""

    descriptor = StageDescriptor("ontology-reasoner", dependencies=("ontology-imports",))

    def run(self, model: OntologyModel) -> None:
        settings = self.settings.reasoner
        if not settings.enabled:
            logger.info("Reasoning disabled; using asserted statements")
            model.set_inferred(None)
            return
        reasoner = Reasoner(settings)
        source = str(model.source) if model.source is not None else None
        imports = list(model.imports)

        def infer():
            return reasoner.infer(model.union(), source, imports)

        if settings.materialize:
            model.set_inferred(infer())
        else:
            model.set_inferred(loader=infer)


# ---------------------------------------------------------------------------
# Classes
# ---------------------------------------------------------------------------

class ClassExtractStage(ClassStage):
    """Creates class nodes and their superclass links.

    Superclasses found along the way get nodes too: ONTOLOGY scope when they
    share the namespace of the class that led to them, EXTERNAL otherwise.
    """

    descriptor = StageDescriptor("ontology-class-extract", dependencies=("ontology-reasoner",))

    def run(self, model: OntologyModel) -> None:
        store = GraphStore.for_model(model)
        pending: list[tuple[ClassNode, str]] = []
        for uri in store.classes_by_type(OWL.Class):
            node = model.add_class(new_class_node(store, uri, Scope.ONTOLOGY))
            pending.append((node, node.namespace))

        visited: set[str] = set()
        while pending:
            node, origin = pending.pop(0)
            if node.uri in visited:
                continue
            visited.add(node.uri)
            for super_uri in store.superclasses(node.uri, prefer_inferred=True):
                if super_uri not in model.classes:
                    scope = Scope.ONTOLOGY if namespace_of(super_uri) == origin else Scope.EXTERNAL
                    discovered = model.add_class(new_class_node(store, super_uri, scope))
                    pending.append((discovered, origin))
                node.add_super_class(super_uri)

        self.relink(model)
        logger.info(
            "Extracted %d classes (%d external)",
            len(model.classes),
            sum(1 for n in model.classes.values() if n.scope == Scope.EXTERNAL),
        )

    @staticmethod
    def relink(model: OntologyModel) -> None:
        """Point every superclass reference at a canonical node, dropping unresolved ones."""
        for node in model.classes.values():
            linked: list[str] = []
            for uri in node.super_classes:
                if uri == node.uri or uri in linked:
                    continue
                if uri not in model.classes:
                    logger.debug("Dropping unresolved superclass <%s> of <%s>", uri, node.uri)
                    continue
                linked.append(uri)
            node.super_classes = linked


class UriTemplateStage(ClassStage):
    descriptor = StageDescriptor("ontology-uri-template", dependencies=("ontology-class-extract",))

    def run(self, model: OntologyModel) -> None:
        store = GraphStore.for_model(model)

        def extract(node: ClassNode) -> None:
            node.uri_template = store.uri_template(node.uri)

        self.for_each_class(model.classes.values(), "uri template extraction", extract)


class PropertyExtractStage(ClassStage):
    """Collects the properties of each class.

    Restrictions and domain declarations of the class and of all its
    ancestors contribute; repeated declarations of one property merge into a
    single edge. Inverses come from owl:inverseOf and Hydra template
    mappings mark identifier properties.
    """

    descriptor = StageDescriptor(
        "ontology-property-extract",
        dependencies=("ontology-class-extract", "ontology-uri-template"),
    )

    def run(self, model: OntologyModel) -> None:
        store = GraphStore.for_model(model)

        def extract(node: ClassNode) -> None:
            for source in [node.uri, *store.ancestors(node.uri)]:
                for edge in store.restriction_properties(source) + store.domain_properties(source):
                    existing = node.get_property(edge.uri)
                    if existing is None:
                        node.properties.append(edge)
                    else:
                        merge_edge(existing, edge)
            for edge in node.properties:
                edge.inverse_of = edge.inverse_of or store.inverse_of(edge.uri)
            self._mark_identifiers(store, node)

        # concept classes carry only their concept-mapped properties
        nodes = [n for n in model.classes.values() if n.scope != Scope.CONCEPTS]
        self.for_each_class(nodes, "property extraction", extract)

    @staticmethod
    def _mark_identifiers(store: GraphStore, node: ClassNode) -> None:
        if node.uri_template is None:
            return
        for property_uri in node.uri_template.mappings.values():
            edge = node.get_property(property_uri)
            if edge is None:
                edge = store.property_edge(property_uri, declared_by=node.uri)
                edge.cardinality_to = Cardinality(1, 1)
                node.properties.append(edge)
            edge.identifier = True


class IndividualsExtractStage(ClassStage):
    descriptor = StageDescriptor("ontology-individuals-extract", dependencies=("ontology-class-extract",))

    def run(self, model: OntologyModel) -> None:
        store = GraphStore.for_model(model)

        def extract(node: ClassNode) -> None:
            node.individuals = store.individuals(node.uri)

        self.for_each_class(model.classes.values(), "individual extraction", extract)


# ---------------------------------------------------------------------------
# Configured properties
# ---------------------------------------------------------------------------

def extra_edge(extra: ExtraProperty) -> PropertyEdge:
    """A fresh edge for a configured extra property."""
    if extra.cardinality is not None:
        cardinality = extra.cardinality.copy()
    elif extra.identifier:
        cardinality = Cardinality(1, 1)
    else:
        cardinality = Cardinality()
    return PropertyEdge(
        uri=extra.uri,
        name=extra.name,
        label=extra.label or extra.name,
        comment=extra.comment,
        range=[extra.range] if extra.range else [],
        cardinality_to=cardinality,
        identifier=extra.identifier,
    )


class PropertyExtraStage(ClassStage):
    """Adds every configured extra property to each class lacking it."""

    descriptor = StageDescriptor(
        "ontology-property-extra",
        dependencies=("ontology-property-extract", "concept-class-extract"),
    )

    def run(self, model: OntologyModel) -> None:
        extras = self.settings.ontology.extra_properties

        def extend(node: ClassNode) -> None:
            for extra in extras:
                if node.get_property(extra.uri) is None:
                    node.properties.append(extra_edge(extra))

        if extras:
            self.for_each_class(model.classes.values(), "extra properties", extend)


class PropertyOverrideStage(SettingsStage):
    """Applies configured datatype and cardinality overrides."""

    descriptor = StageDescriptor(
        "ontology-property-override",
        dependencies=("ontology-property-extract", "ontology-property-extra"),
    )

    def run(self, model: OntologyModel) -> None:
        for override in self.settings.ontology.override_properties:
            edges = model.properties_by_uri(override.uri)
            if not edges:
                logger.warning("Override for <%s> matches no property", override.uri)
            for edge in edges:
                if override.datatype:
                    edge.range = [override.datatype]
                if override.cardinality is not None:
                    edge.cardinality_to = override.cardinality.copy()
