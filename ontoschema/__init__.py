"""ontoschema: compiles an ontology and its concept scheme into schema artifacts.

An ontology (OWL class/property graph) annotated with a concept scheme
(SKOS controlled vocabulary) is turned into:

- a simplified class model: concrete classes, interfaces, enumerations
- a normalized relational schema: tables, columns, keys, join tables
- textual renderings: SQL DDL, Mermaid ER and class diagrams, SHACL shapes

The transformation runs as a pipeline:

  Stage 1: Pipeline (pipeline.Pipeline):         dependency-ordered builder stages
  Stage 2: Simplify (simplifier.ClassModelSimplifier): class/interface/enum partition
  Stage 3: Synthesize (schema.SchemaSynthesizer): tables, keys, join tables
  Stage 4: Render (renderers.*):                  SQL, diagrams, shapes

Graph access, import resolution and reasoning are thin collaborators built on
rdflib, httpx and owlrl. Generators (generators.py) wire everything together
and the command line (python -m ontoschema) exposes them.
"""

__version__ = "0.1.0"
