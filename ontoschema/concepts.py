"""Concept scheme stages.

A concept scheme is a SKOS vocabulary whose concepts point at ontology terms
through owl:equivalentClass / owl:equivalentProperty. Concept names and
labels override the raw ontology names in the simplified model; class
concepts without an ontology counterpart become classes of their own.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rdflib import OWL
from rdflib.namespace import SKOS

from .builder import SettingsStage
from .graph_store import GraphStore, load_graph, local_name, split_uri
from .pipeline import CONCEPT_SCHEME_ONLY, StageDescriptor
from .types import Cardinality, ClassNode, Concept, ConceptSchemeModel, OntologyModel, Scope

logger = logging.getLogger(__name__)


class ConceptSchemeLoadStage(SettingsStage):
    descriptor = StageDescriptor("concept-scheme-load", kinds=CONCEPT_SCHEME_ONLY)

    def run(self, model: ConceptSchemeModel) -> None:
        path = model.source or self.settings.ontology.concepts_file
        if path is None:
            if len(model.graph):
                logger.info("Using preloaded concept scheme (%d triples)", len(model.graph))
            else:
                logger.info("No concept scheme configured")
            return
        model.source = Path(path)
        model.graph = load_graph(model.source)


class ConceptSchemeExtractStage(SettingsStage):
    """Reads class and property concepts from the vocabulary."""

    descriptor = StageDescriptor(
        "concept-scheme-extract",
        kinds=CONCEPT_SCHEME_ONLY,
        dependencies=("concept-scheme-load",),
    )

    def run(self, model: ConceptSchemeModel) -> None:
        store = GraphStore(model.graph)
        model.class_concepts = []
        model.property_concepts = []
        for uri in store.classes_by_type(SKOS.Concept):
            classes = store.uris(uri, OWL.equivalentClass)
            properties = store.uris(uri, OWL.equivalentProperty)
            if classes:
                model.class_concepts.append(self._concept(store, uri, classes))
            if properties:
                model.property_concepts.append(self._concept(store, uri, properties))
        logger.info(
            "Concept scheme: %d class concepts, %d property concepts",
            len(model.class_concepts), len(model.property_concepts),
        )

    @staticmethod
    def _concept(store: GraphStore, uri: str, equivalents: list[str]) -> Concept:
        return Concept(
            uri=uri,
            name=local_name(uri),
            label=store.label(uri),
            comment=store.comment(uri),
            equivalents=equivalents,
        )


class ConceptClassExtractStage(SettingsStage):
    """Adds classes that only the concept scheme knows about.

    The node takes the URI of the concept's first equivalent class. Its
    properties are the rdfs:domain properties of that class which are
    themselves mapped by a property concept, each optional and single-valued.
    """

    descriptor = StageDescriptor(
        "concept-class-extract",
        dependencies=("ontology-class-extract", "concept-scheme-extract"),
    )

    def run(self, model: OntologyModel) -> None:
        concepts = model.concepts
        if concepts is None or not concepts.class_concepts:
            return
        stores = [GraphStore.for_model(model), GraphStore(concepts.graph)]

        added = 0
        for concept in concepts.class_concepts:
            equivalent = concept.equivalents[0]
            if equivalent in model.classes:
                continue
            namespace, _ = split_uri(equivalent)
            node = ClassNode(
                uri=equivalent,
                name=concept.name,
                namespace=namespace,
                label=concept.label,
                comment=concept.comment,
                scope=Scope.CONCEPTS,
            )
            for store in stores:
                for edge in store.domain_properties(equivalent):
                    if concepts.property_concept_for(edge.uri) is None:
                        continue
                    edge.cardinality_to = Cardinality(0, 1)
                    edge.inverse_of = edge.inverse_of or store.inverse_of(edge.uri)
                    node.add_property(edge)
            model.add_class(node)
            added += 1
        logger.info("Added %d classes from the concept scheme", added)
