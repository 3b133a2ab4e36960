"""Pipeline orchestrator: dependency-ordered execution of stages.

Every stage class carries a static StageDescriptor (id, applicable model
kinds, dependency ids). The orchestrator computes one total order in which
each stage runs after everything it transitively depends on, then applies
each stage once to every model it applies to.

Ordering is Kahn's algorithm over the declared dependencies. Ready stages are
taken by (dependency depth, id), so the order is fully deterministic. A
dependency cycle never raises: when no stage is ready, the pending stage with
the smallest (depth, id) is released and ordering continues.

A dependency id is satisfied by the stage registered under that id and by any
stage whose class derives from that stage's class.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar, Sequence

from .errors import PipelineStageError
from .types import ModelKind

logger = logging.getLogger(__name__)

ONTOLOGY_ONLY = frozenset({ModelKind.ONTOLOGY})
CONCEPT_SCHEME_ONLY = frozenset({ModelKind.CONCEPT_SCHEME})


# ---------------------------------------------------------------------------
# Stage declaration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StageDescriptor:
    """Static registration of a stage."""
    id: str
    kinds: frozenset[ModelKind] = ONTOLOGY_ONLY
    dependencies: tuple[str, ...] = ()

    def __repr__(self) -> str:
        deps = f" <- {', '.join(self.dependencies)}" if self.dependencies else ""
        return f"Stage({self.id}{deps})"


class Stage:
    """A unit of work applied to the ontology and/or concept scheme model.

    Subclasses set `descriptor` and implement `run(model)`.
    """

    descriptor: ClassVar[StageDescriptor]

    @property
    def id(self) -> str:
        return self.descriptor.id

    @classmethod
    def satisfies(cls, dependency: str) -> bool:
        """True when this stage class is, or derives from, the stage registered as `dependency`."""
        for klass in cls.__mro__:
            descriptor = klass.__dict__.get("descriptor")
            if descriptor is not None and descriptor.id == dependency:
                return True
        return False

    def applies_to(self, model) -> bool:
        return model.kind in self.descriptor.kinds

    def run(self, model) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id})"


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------

def direct_dependencies(stage: Stage, stages: Sequence[Stage]) -> list[Stage]:
    """Registered stages satisfying one of the stage's declared dependencies."""
    found: list[Stage] = []
    for dependency in stage.descriptor.dependencies:
        for other in stages:
            if other is not stage and type(other).satisfies(dependency) and other not in found:
                found.append(other)
    return found


def depends_on(stage: Stage, target: Stage, stages: Sequence[Stage]) -> bool:
    """True when `stage` transitively depends on `target`. A stage never depends on itself."""
    if stage is target:
        return False
    visited: set[int] = set()
    pending = [stage]
    while pending:
        current = pending.pop()
        if id(current) in visited:
            continue
        visited.add(id(current))
        for dependency in direct_dependencies(current, stages):
            if dependency is target:
                return True
            pending.append(dependency)
    return False


def dependency_depth(
    stage: Stage,
    stages: Sequence[Stage],
    _cache: dict[int, int] | None = None,
    _visited: set[int] | None = None,
) -> int:
    """Longest hop count through declared dependencies.

    0 without dependencies. A declared dependency that no registered stage
    satisfies counts as one hop. Revisiting a stage on the current path
    contributes 0, which breaks cycles.
    """
    cache = {} if _cache is None else _cache
    visited = set() if _visited is None else _visited
    key = id(stage)
    if key in cache:
        return cache[key]
    if key in visited:
        return 0
    visited.add(key)

    depth = 0
    for dependency in stage.descriptor.dependencies:
        providers = [s for s in stages if s is not stage and type(s).satisfies(dependency)]
        if not providers:
            depth = max(depth, 1)
        for provider in providers:
            depth = max(depth, 1 + dependency_depth(provider, stages, cache, visited))

    visited.discard(key)
    cache[key] = depth
    return depth


def dependency_order(stages: Sequence[Stage]) -> list[Stage]:
    """A total execution order respecting every declared dependency."""
    stages = list(stages)
    depth_cache: dict[int, int] = {}
    sort_key = {
        id(s): (dependency_depth(s, stages, depth_cache), s.id) for s in stages
    }

    dependants: dict[int, list[Stage]] = {id(s): [] for s in stages}
    in_degree: dict[int, int] = {}
    for stage in stages:
        deps = direct_dependencies(stage, stages)
        in_degree[id(stage)] = len(deps)
        for dep in deps:
            dependants[id(dep)].append(stage)

    # Kahn's algorithm
    emitted: set[int] = set()
    queue = [s for s in stages if in_degree[id(s)] == 0]
    order: list[Stage] = []
    while len(order) < len(stages):
        if not queue:
            pending = [s for s in stages if id(s) not in emitted]
            forced = min(pending, key=lambda s: sort_key[id(s)])
            logger.warning("Dependency cycle through stage '%s'; releasing it", forced.id)
            queue.append(forced)
        queue.sort(key=lambda s: sort_key[id(s)])  # deterministic ordering
        node = queue.pop(0)
        if id(node) in emitted:
            continue
        emitted.add(id(node))
        order.append(node)
        for dependant in dependants[id(node)]:
            in_degree[id(dependant)] -= 1
            if in_degree[id(dependant)] == 0 and id(dependant) not in emitted:
                queue.append(dependant)
    return order


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class Pipeline:
    """Runs stages in dependency order over the models of one compilation."""

    def __init__(self, stages: Sequence[Stage]) -> None:
        self.stages = list(stages)
        self.order = dependency_order(self.stages)

    def run(self, *models) -> None:
        """Apply each stage, in order, to every model it applies to.

        A failing stage aborts the run with PipelineStageError.
        """
        total = len(self.order)
        for position, stage in enumerate(self.order, 1):
            targets = [m for m in models if m is not None and stage.applies_to(m)]
            if not targets:
                logger.debug("Stage %s has no applicable model", stage.id)
                continue
            logger.info("[%d/%d] Running stage %s", position, total, stage.id)
            for model in targets:
                try:
                    stage.run(model)
                except PipelineStageError:
                    raise
                except Exception as exc:
                    raise PipelineStageError(
                        stage.id, str(exc) or type(exc).__name__, operation="run",
                    ) from exc

    def __repr__(self) -> str:
        return f"Pipeline({' -> '.join(s.id for s in self.order)})"
