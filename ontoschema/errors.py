"""Error taxonomy.

Only import and cache failures degrade gracefully: the resolver skips an
import it cannot fetch and the caches recompute what they cannot read.
Everything else stops the run before any renderer writes output.
"""

from __future__ import annotations


class OntoschemaError(Exception):
    """Base class for all errors raised by ontoschema."""


class ConfigurationError(OntoschemaError):
    """Invalid or incomplete configuration. Fatal at startup."""


class GraphAccessError(OntoschemaError):
    """A graph store or reasoner call failed. Fatal."""


class ImportResolutionError(OntoschemaError):
    """An imported ontology could not be fetched or parsed after retries."""

    def __init__(self, reference: str, message: str) -> None:
        super().__init__(f"cannot resolve import <{reference}>: {message}")
        self.reference = reference


class CacheError(OntoschemaError):
    """A disk cache entry could not be read, parsed or written."""


class PipelineStageError(OntoschemaError):
    """A pipeline stage failed.

    Carries the failing stage identifier, the operation being performed and
    the class or property URI being processed when it is known.
    """

    def __init__(
        self,
        stage_id: str,
        cause: str,
        operation: str | None = None,
        subject: str | None = None,
    ) -> None:
        self.stage_id = stage_id
        self.cause = cause
        self.operation = operation
        self.subject = subject
        super().__init__(self.diagnostic())

    def diagnostic(self) -> str:
        parts = [f"stage '{self.stage_id}' failed"]
        if self.operation:
            parts.append(f"during {self.operation}")
        if self.subject:
            parts.append(f"on <{self.subject}>")
        return " ".join(parts) + f": {self.cause}"
