"""Generators: one compilation run per artifact.

  class          text summary of the class model
  class-diagram  Mermaid classDiagram
  er-diagram     Mermaid erDiagram of the relational schema
  sql            SQL DDL
  shacl          SHACL shapes (Turtle)

A run builds fresh models, executes the pipeline with the generator's stage
selection, simplifies, synthesizes the schema when the artifact needs it and
renders into memory. The output file is written only after all of that
succeeded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import httpx

from .cache import write_atomically
from .config import Settings
from .errors import ConfigurationError
from .pipeline import Pipeline
from .renderers import render_class_diagram, render_er_diagram, render_shacl, render_sql
from .schema import RelationalSchema, SchemaSynthesizer
from .simplifier import ClassModel, ClassModelSimplifier
from .stages import build_stages
from .types import ConceptSchemeModel, OntologyModel

logger = logging.getLogger(__name__)


@dataclass
class Compilation:
    """The models produced by one run."""
    settings: Settings
    ontology: OntologyModel
    concepts: ConceptSchemeModel
    class_model: ClassModel
    _schema: RelationalSchema | None = field(default=None, repr=False)

    @property
    def schema(self) -> RelationalSchema:
        if self._schema is None:
            self._schema = SchemaSynthesizer(self.class_model, self.settings).synthesize()
        return self._schema


def compile_ontology(
    settings: Settings,
    generator: str | None = None,
    client: httpx.Client | None = None,
    ontology: OntologyModel | None = None,
    concepts: ConceptSchemeModel | None = None,
) -> Compilation:
    """Run the pipeline and the simplifier over fresh (or preloaded) models."""
    ontology = ontology if ontology is not None else OntologyModel()
    concepts = concepts if concepts is not None else ConceptSchemeModel()
    ontology.concepts = concepts

    selection = settings.generator(generator).stages if generator else []
    pipeline = Pipeline(build_stages(settings, selection, client=client))
    logger.info("Stage order: %s", ", ".join(s.id for s in pipeline.order))
    pipeline.run(ontology, concepts)

    class_model = ClassModelSimplifier(ontology, settings, concepts).simplify()
    return Compilation(settings, ontology, concepts, class_model)


# ---------------------------------------------------------------------------
# Renderers by generator name
# ---------------------------------------------------------------------------

RENDERERS: dict[str, Callable[[Compilation], str]] = {
    "class": lambda c: c.class_model.summary() + "\n",
    "class-diagram": lambda c: render_class_diagram(c.class_model, c.settings.diagram),
    "er-diagram": lambda c: render_er_diagram(c.schema),
    "sql": lambda c: render_sql(c.schema),
    "shacl": lambda c: render_shacl(c.class_model),
}

GENERATORS = tuple(RENDERERS)


def output_path(generator: str, settings: Settings, output: Path | None = None) -> Path | None:
    return output if output is not None else settings.generator(generator).output_file


def generate(
    generator: str,
    settings: Settings,
    output: Path | None = None,
    client: httpx.Client | None = None,
) -> str:
    """Render one artifact; write it to the output file when one is configured."""
    if generator not in RENDERERS:
        raise ConfigurationError(
            f"unknown generator '{generator}', expected one of {', '.join(GENERATORS)}"
        )
    compilation = compile_ontology(settings, generator, client=client)
    text = RENDERERS[generator](compilation)

    target = output_path(generator, settings, output)
    if target is not None:
        write_atomically(Path(target), text.encode("utf-8"))
        logger.info("Wrote %s output to %s", generator, target)
    return text
