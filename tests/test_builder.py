"""Tests for the graph store and the ontology model builder stages."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from rdflib import Graph, Namespace, RDFS, XSD

from ontoschema.builder import ReasonerStage
from ontoschema.config import (
    ExtraProperty,
    ImportSettings,
    OntologySettings,
    PropertyOverride,
    ReasonerSettings,
    Settings,
)
from ontoschema.errors import ConfigurationError, PipelineStageError
from ontoschema.graph_store import GraphStore, local_name, split_uri
from ontoschema.pipeline import Pipeline
from ontoschema.stages import build_stages
from ontoschema.types import Cardinality, ConceptSchemeModel, OntologyModel, Scope


EX = Namespace("http://example.org/library#")
EXT = Namespace("http://example.org/core#")

PREFIXES = """
@prefix ex: <http://example.org/library#> .
@prefix ext: <http://example.org/core#> .
@prefix voc: <http://example.org/vocab#> .
@prefix owl: <http://www.w3.org/2002/07/owl#> .
@prefix rdf: <http://www.w3.org/1999/02/22-rdf-syntax-ns#> .
@prefix rdfs: <http://www.w3.org/2000/01/rdf-schema#> .
@prefix xsd: <http://www.w3.org/2001/XMLSchema#> .
@prefix skos: <http://www.w3.org/2004/02/skos/core#> .
@prefix hydra: <http://www.w3.org/ns/hydra/core#> .
"""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _graph(ttl: str) -> Graph:
    return Graph().parse(data=PREFIXES + ttl, format="turtle")


def _settings(reasoner_type="transitive", reasoner_enabled=True, **ontology) -> Settings:
    return Settings(
        ontology=OntologySettings(**ontology),
        reasoner=ReasonerSettings(enabled=reasoner_enabled, reasoner_type=reasoner_type),
        imports=ImportSettings(enabled=False),
    )


def _build(ttl: str, settings: Settings | None = None, concepts_ttl: str | None = None) -> OntologyModel:
    """Run every registered stage over an inline ontology."""
    settings = settings or _settings()
    model = OntologyModel(graph=_graph(ttl))
    concepts = ConceptSchemeModel(graph=_graph(concepts_ttl)) if concepts_ttl else ConceptSchemeModel()
    model.concepts = concepts
    Pipeline(build_stages(settings)).run(model, concepts)
    return model


HIERARCHY = """
ex:Book a owl:Class ; rdfs:subClassOf ex:Publication .
ex:Publication a owl:Class ; rdfs:subClassOf ext:Work .
ex:Person a owl:Class ; rdfs:subClassOf ext:Agent, ex:LegalEntity .
"""

PROPERTIES = """
ex:Book a owl:Class ;
    rdfs:subClassOf
        [ a owl:Restriction ; owl:onProperty ex:title ; owl:cardinality 1 ] ,
        [ a owl:Restriction ; owl:onProperty ex:writtenBy ; owl:someValuesFrom ex:Author ] ,
        [ a owl:Restriction ; owl:onProperty ex:subject ;
          owl:maxQualifiedCardinality 3 ; owl:onClass [ owl:unionOf ( ex:Topic ex:Place ) ] ] .
ex:Novel a owl:Class ;
    rdfs:subClassOf ex:Book ,
        [ a owl:Restriction ; owl:onProperty ex:subject ; owl:minCardinality 1 ] .
ex:Author a owl:Class .
ex:Topic a owl:Class .
ex:Place a owl:Class .
ex:title rdfs:range xsd:string ; rdfs:label "Title"@en .
ex:isbn a owl:DatatypeProperty , owl:FunctionalProperty ; rdfs:domain ex:Book ; rdfs:range xsd:string .
ex:wrote owl:inverseOf ex:writtenBy .
"""


# ---------------------------------------------------------------------------
# Graph store
# ---------------------------------------------------------------------------

class TestGraphStore:
    def test_split_uri(self):
        assert split_uri(str(EX.Book)) == ("http://example.org/library#", "Book")
        assert split_uri("http://example.org/library/Book") == ("http://example.org/library/", "Book")
        assert local_name(str(EXT.Agent)) == "Agent"

    def test_label_prefers_english(self):
        store = GraphStore(_graph('ex:Book rdfs:label "Boek"@nl, "Book"@en .'))
        assert store.label(str(EX.Book)) == "Book"

    def test_label_falls_back_to_pref_label(self):
        store = GraphStore(_graph('ex:Book skos:prefLabel "Book" .'))
        assert store.label(str(EX.Book)) == "Book"
        assert store.comment(str(EX.Book)) is None

    def test_classes_by_type_sorted_and_named_only(self):
        store = GraphStore(_graph("""
            ex:Zebra a owl:Class . ex:Apple a owl:Class . [] a owl:Class .
        """))
        assert store.classes_by_type() == [str(EX.Apple), str(EX.Zebra)]

    def test_superclasses_fall_back_to_direct_statements(self):
        store = GraphStore(_graph("ex:A rdfs:subClassOf ex:B . ex:B rdfs:subClassOf ex:C ."))
        assert store.superclasses(str(EX.A)) == [str(EX.B)]
        assert store.ancestors(str(EX.A)) == [str(EX.B), str(EX.C)]

    def test_inverse_read_in_both_directions(self):
        store = GraphStore(_graph("ex:wrote owl:inverseOf ex:writtenBy ."))
        assert store.inverse_of(str(EX.wrote)) == str(EX.writtenBy)
        assert store.inverse_of(str(EX.writtenBy)) == str(EX.wrote)
        assert store.inverse_of(str(EX.title)) is None


# ---------------------------------------------------------------------------
# Loading and reasoning
# ---------------------------------------------------------------------------

class TestLoad:
    def test_requires_ontology(self):
        with pytest.raises(PipelineStageError, match="ontology_file is not set") as info:
            Pipeline(build_stages(_settings())).run(OntologyModel())
        assert isinstance(info.value.__cause__, ConfigurationError)

    def test_loads_file_and_ontology_uri(self, tmp_path):
        path = tmp_path / "library.ttl"
        path.write_text(PREFIXES + "<http://example.org/library> a owl:Ontology . ex:Book a owl:Class .")
        model = OntologyModel()
        Pipeline(build_stages(_settings(ontology_file=path))).run(model)
        assert model.uri == "http://example.org/library"
        assert str(EX.Book) in model.classes

    def test_unparsable_file_fails(self, tmp_path):
        path = tmp_path / "broken.ttl"
        path.write_text("this is not turtle")
        with pytest.raises(PipelineStageError, match="cannot parse"):
            Pipeline(build_stages(_settings(ontology_file=path))).run(OntologyModel())


class TestReasonerStage:
    def test_lazy_inference(self):
        model = OntologyModel(graph=_graph("ex:A rdfs:subClassOf ex:B . ex:B rdfs:subClassOf ex:C ."))
        settings = _settings()
        settings.reasoner.materialize = False
        ReasonerStage(settings).run(model)
        assert model.has_inferred
        assert (EX.A, RDFS.subClassOf, EX.C) in model.inferred
        assert (EX.A, RDFS.subClassOf, EX.C) not in model.graph

    def test_disabled_means_no_inferred_graph(self):
        model = OntologyModel(graph=_graph("ex:A rdfs:subClassOf ex:B ."))
        ReasonerStage(_settings(reasoner_enabled=False)).run(model)
        assert not model.has_inferred
        assert model.inferred is None


# ---------------------------------------------------------------------------
# Class extraction
# ---------------------------------------------------------------------------

class TestClassExtract:
    def test_scopes(self):
        model = _build(HIERARCHY)
        scopes = {uri: node.scope for uri, node in model.classes.items()}
        assert scopes[str(EX.Book)] == Scope.ONTOLOGY
        assert scopes[str(EX.LegalEntity)] == Scope.ONTOLOGY
        assert scopes[str(EXT.Work)] == Scope.EXTERNAL
        assert scopes[str(EXT.Agent)] == Scope.EXTERNAL

    def test_listed_classes_first_in_uri_order(self):
        model = _build(HIERARCHY)
        assert list(model.classes)[:3] == [str(EX.Book), str(EX.Person), str(EX.Publication)]

    def test_inferred_superclasses(self):
        model = _build(HIERARCHY)
        assert model.classes[str(EX.Book)].super_classes == [str(EXT.Work), str(EX.Publication)]

    def test_direct_superclasses_without_reasoner(self):
        model = _build(HIERARCHY, _settings(reasoner_enabled=False))
        assert model.classes[str(EX.Book)].super_classes == [str(EX.Publication)]
        assert model.ancestors(str(EX.Book)) == [str(EX.Publication), str(EXT.Work)]

    def test_owlrl_rdfs_closure(self):
        model = _build(HIERARCHY, _settings(reasoner_type="rdfs"))
        assert model.classes[str(EX.Book)].super_classes == [str(EXT.Work), str(EX.Publication)]

    def test_roots_and_self_references_skipped(self):
        model = _build("ex:Book a owl:Class ; rdfs:subClassOf owl:Thing, rdfs:Resource, ex:Book .")
        assert model.classes[str(EX.Book)].super_classes == []


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

class TestPropertyExtract:
    def test_restriction_cardinalities_and_ranges(self):
        book = _build(PROPERTIES).classes[str(EX.Book)]
        assert [p.name for p in book.properties] == ["subject", "title", "writtenBy", "isbn"]

        title = book.get_property(str(EX.title))
        assert repr(title.cardinality_to) == "1..1"
        assert title.range == [str(XSD.string)]
        assert title.label == "Title"

        written_by = book.get_property(str(EX.writtenBy))
        assert repr(written_by.cardinality_to) == "1..*"
        assert written_by.range == [str(EX.Author)]

        subject = book.get_property(str(EX.subject))
        assert subject.cardinality_to.max == 3
        assert subject.range == [str(EX.Place), str(EX.Topic)]

    def test_ranges_sorted_by_uri(self):
        for ranges in ("ex:Shelf , ex:Box", "ex:Box , ex:Shelf"):
            item = _build(f"""
                ex:Item a owl:Class .
                ex:Box a owl:Class .
                ex:Shelf a owl:Class .
                ex:storedIn rdfs:domain ex:Item ; rdfs:range {ranges} .
                ex:Item rdfs:subClassOf [ a owl:Restriction ; owl:onProperty ex:heldBy ;
                    owl:someValuesFrom ex:Shelf ; owl:onClass ex:Box ] .
            """).classes[str(EX.Item)]
            assert item.get_property(str(EX.storedIn)).range == [str(EX.Box), str(EX.Shelf)]
            assert item.get_property(str(EX.heldBy)).range == [str(EX.Box), str(EX.Shelf)]

    def test_functional_domain_property(self):
        isbn = _build(PROPERTIES).classes[str(EX.Book)].get_property(str(EX.isbn))
        assert isbn.cardinality_to.max == 1
        assert isbn.declared_by == str(EX.Book)

    def test_inherited_declarations_merge(self):
        novel = _build(PROPERTIES).classes[str(EX.Novel)]
        subject = novel.get_property(str(EX.subject))
        assert repr(subject.cardinality_to) == "1..3"
        assert subject.range == [str(EX.Place), str(EX.Topic)]
        assert novel.get_property(str(EX.title)).declared_by == str(EX.Book)

    def test_inverse_of(self):
        book = _build(PROPERTIES).classes[str(EX.Book)]
        assert book.get_property(str(EX.writtenBy)).inverse_of == str(EX.wrote)

    def test_restriction_without_property_names_the_class(self):
        with pytest.raises(PipelineStageError, match="no named owl:onProperty") as info:
            _build("ex:Broken a owl:Class ; rdfs:subClassOf [ a owl:Restriction ; owl:minCardinality 1 ] .")
        assert info.value.stage_id == "ontology-property-extract"
        assert info.value.subject == str(EX.Broken)

    def test_uri_template_marks_identifier(self):
        book = _build("""
            ex:Book a owl:Class ;
                hydra:search [ hydra:template "/books/{isbn}" ;
                               hydra:mapping [ hydra:variable "isbn" ; hydra:property ex:isbn ] ] .
            ex:isbn rdfs:range xsd:string .
        """).classes[str(EX.Book)]
        assert book.uri_template.template == "/books/{isbn}"
        assert book.uri_template.mappings == {"isbn": str(EX.isbn)}
        isbn = book.get_property(str(EX.isbn))
        assert isbn.identifier
        assert repr(isbn.cardinality_to) == "1..1"

    def test_individuals(self):
        model = _build("ex:Format a owl:Class . ex:paperback a ex:Format . ex:hardcover a ex:Format .")
        assert model.classes[str(EX.Format)].individuals == [str(EX.hardcover), str(EX.paperback)]


class TestConfiguredProperties:
    def test_extra_property_added_to_every_class(self):
        extra = ExtraProperty(uri=str(EX.id), name="id", range=str(XSD.integer), identifier=True)
        model = _build(HIERARCHY, _settings(extra_properties=[extra]))
        for node in model.classes.values():
            edge = node.get_property(str(EX.id))
            assert edge is not None and edge.identifier
            assert repr(edge.cardinality_to) == "1..1"
        edges = model.properties_by_uri(str(EX.id))
        assert len({id(e) for e in edges}) == len(model.classes)

    def test_override(self, caplog):
        overrides = [
            PropertyOverride(uri=str(EX.title), datatype=str(XSD.token), cardinality=Cardinality(0, 1)),
            PropertyOverride(uri=str(EX.unused), datatype=str(XSD.string)),
        ]
        model = _build(PROPERTIES, _settings(override_properties=overrides))
        for edge in model.properties_by_uri(str(EX.title)):
            assert edge.range == [str(XSD.token)]
            assert repr(edge.cardinality_to) == "0..1"
        assert "matches no property" in caplog.text


# ---------------------------------------------------------------------------
# Concept scheme
# ---------------------------------------------------------------------------

CONCEPT_ONTOLOGY = """
ex:Book a owl:Class .
ex:title rdfs:domain ex:Book ; rdfs:range xsd:string .
ex:issn rdfs:domain ex:Magazine ; rdfs:range xsd:string .
ex:pages rdfs:domain ex:Magazine ; rdfs:range xsd:integer .
"""

CONCEPTS = """
voc:Boek a skos:Concept ; skos:prefLabel "Boek"@nl ; owl:equivalentClass ex:Book .
voc:Tijdschrift a skos:Concept ; skos:prefLabel "Tijdschrift"@nl ; owl:equivalentClass ex:Magazine .
voc:titel a skos:Concept ; owl:equivalentProperty ex:title .
voc:issn a skos:Concept ; owl:equivalentProperty ex:issn .
"""


class TestConcepts:
    def test_concepts_extracted(self):
        model = _build(CONCEPT_ONTOLOGY, concepts_ttl=CONCEPTS)
        concepts = model.concepts
        assert [c.name for c in concepts.class_concepts] == ["Boek", "Tijdschrift"]
        assert [c.name for c in concepts.property_concepts] == ["issn", "titel"]
        assert concepts.class_concept_for(str(EX.Book)).label == "Boek"

    def test_concept_only_class(self):
        model = _build(CONCEPT_ONTOLOGY, concepts_ttl=CONCEPTS)
        magazine = model.classes[str(EX.Magazine)]
        assert magazine.scope == Scope.CONCEPTS
        assert magazine.name == "Tijdschrift"
        assert [p.name for p in magazine.properties] == ["issn"]
        assert repr(magazine.properties[0].cardinality_to) == "0..1"
