"""Reasoner: computes the inferred view of the ontology and its imports.

Three modes:

  rdfs        owlrl RDFS closure
  owl         owlrl OWL 2 RL closure
  transitive  subclass/subproperty transitive closure plus symmetric
              owl:inverseOf and owl:equivalentClass (fast, no owlrl)

Results can be cached on disk keyed by the ontology source and the sorted
list of resolved imports, and optionally written to an output file.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import owlrl
from rdflib import Graph, OWL, RDFS

from .cache import GraphCache, cache_key, write_atomically
from .config import ReasonerSettings
from .errors import GraphAccessError

logger = logging.getLogger(__name__)


def transitive_closure(graph: Graph) -> Graph:
    """Close a graph in place under the hierarchy entailments the builder reads."""
    for subject, _, obj in list(graph.triples((None, OWL.equivalentClass, None))):
        graph.add((subject, RDFS.subClassOf, obj))
        graph.add((obj, RDFS.subClassOf, subject))
    for subject, _, obj in list(graph.triples((None, OWL.inverseOf, None))):
        graph.add((obj, OWL.inverseOf, subject))

    for predicate in (RDFS.subClassOf, RDFS.subPropertyOf):
        subjects = {s for s in graph.subjects(predicate, None)}
        for subject in subjects:
            for ancestor in list(graph.transitive_objects(subject, predicate)):
                if ancestor != subject:
                    graph.add((subject, predicate, ancestor))
    return graph


class Reasoner:
    """Computes (and caches) the inferred graph."""

    def __init__(self, settings: ReasonerSettings) -> None:
        self.settings = settings
        self.cache = (
            GraphCache(settings.cache_dir, settings.cache_ttl_seconds, settings.cache_format)
            if settings.cache_enabled else None
        )

    def infer(self, union: Graph, source: str | None = None, imports: Iterable[str] = ()) -> Graph:
        """The entailment closure of the union graph.

        The cache is only consulted when the source is known, since the key
        is derived from it.
        """
        key = cache_key(source, *sorted(imports)) if source else None
        if self.cache is not None and key is not None:
            cached = self.cache.load(key)
            if cached is not None:
                logger.info("Inferred graph served from cache (%d triples)", len(cached))
                self._write_output(cached)
                return cached

        inferred = self._closure(union)
        logger.info(
            "%s reasoning: %d asserted, %d inferred triples",
            self.settings.reasoner_type, len(union), len(inferred),
        )
        if self.cache is not None and key is not None:
            self.cache.store(key, inferred)
        self._write_output(inferred)
        return inferred

    def _closure(self, union: Graph) -> Graph:
        inferred = Graph()
        for prefix, namespace in union.namespaces():
            inferred.bind(prefix, namespace, override=False)
        inferred += union
        reasoner_type = self.settings.reasoner_type
        try:
            if reasoner_type == "transitive":
                transitive_closure(inferred)
            else:
                semantics = owlrl.RDFS_Semantics if reasoner_type == "rdfs" else owlrl.OWLRL_Semantics
                owlrl.DeductiveClosure(
                    semantics,
                    axiomatic_triples=False,
                    datatype_axioms=False,
                ).expand(inferred)
        except Exception as exc:
            raise GraphAccessError(f"{reasoner_type} reasoning failed: {exc}") from exc
        return inferred

    def _write_output(self, inferred: Graph) -> None:
        output: Path | None = self.settings.output_file
        if output is None:
            return
        write_atomically(Path(output), inferred.serialize(format="turtle", encoding="utf-8"))
        logger.info("Inferred graph written to %s", output)
