"""Tests for stage ordering and pipeline execution."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from ontoschema.config import GeneratorSettings, Settings, StageSettings
from ontoschema.errors import PipelineStageError
from ontoschema.pipeline import (
    CONCEPT_SCHEME_ONLY,
    Pipeline,
    Stage,
    StageDescriptor,
    dependency_depth,
    dependency_order,
    depends_on,
)
from ontoschema.stages import STAGE_IDS, build_stages
from ontoschema.types import ConceptSchemeModel, ModelKind, OntologyModel


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _stage(stage_id: str, *deps: str, kinds=None, log=None) -> Stage:
    """A stage instance of a freshly created Stage subclass, recording its runs in log."""
    descriptor = StageDescriptor(stage_id, dependencies=tuple(deps)) if kinds is None \
        else StageDescriptor(stage_id, kinds=kinds, dependencies=tuple(deps))

    def run(self, model):
        if log is not None:
            log.append((self.id, model.kind))

    cls = type(f"Stage_{stage_id}", (Stage,), {"descriptor": descriptor, "run": run})
    return cls()


def _ids(stages):
    return [s.id for s in stages]


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------

class TestDependencyOrder:
    def test_dependencies_come_first(self):
        stages = [_stage("c", "b"), _stage("b", "a"), _stage("a")]
        assert _ids(dependency_order(stages)) == ["a", "b", "c"]

    def test_every_stage_after_its_transitive_dependencies(self):
        stages = [
            _stage("report", "merge", "lint"),
            _stage("merge", "left", "right"),
            _stage("right", "load"),
            _stage("left", "load"),
            _stage("lint"),
            _stage("load"),
        ]
        order = dependency_order(stages)
        position = {s.id: i for i, s in enumerate(order)}
        for stage in stages:
            for other in stages:
                if depends_on(stage, other, stages):
                    assert position[other.id] < position[stage.id]

    def test_ties_broken_by_depth_then_id(self):
        stages = [_stage("zeta"), _stage("beta", "zeta"), _stage("alpha")]
        assert _ids(dependency_order(stages)) == ["alpha", "zeta", "beta"]

    def test_order_independent_of_registration_order(self):
        stages = [_stage("a"), _stage("b", "a"), _stage("c", "a"), _stage("d", "b", "c")]
        forward = _ids(dependency_order(stages))
        backward = _ids(dependency_order(list(reversed(stages))))
        assert forward == backward

    def test_cycle_still_yields_total_order(self):
        stages = [_stage("a", "c"), _stage("b", "a"), _stage("c", "b"), _stage("d")]
        order = dependency_order(stages)
        assert sorted(_ids(order)) == ["a", "b", "c", "d"]
        assert len(order) == 4

    def test_self_dependency_is_ignored(self):
        stages = [_stage("a", "a")]
        assert _ids(dependency_order(stages)) == ["a"]

    def test_unsatisfied_dependency_counts_one_hop(self):
        stages = [_stage("a", "missing")]
        assert dependency_depth(stages[0], stages) == 1
        assert _ids(dependency_order(stages)) == ["a"]


class TestDependsOn:
    def test_transitive(self):
        a, b, c = _stage("a"), _stage("b", "a"), _stage("c", "b")
        stages = [a, b, c]
        assert depends_on(c, a, stages)
        assert not depends_on(a, c, stages)

    def test_never_depends_on_itself(self):
        a = _stage("a", "a")
        assert not depends_on(a, a, [a])

    def test_subclass_satisfies_dependency(self):
        base = _stage("load")
        derived_cls = type("DerivedLoad", (type(base),), {
            "descriptor": StageDescriptor("custom-load"),
        })
        derived = derived_cls()
        consumer = _stage("extract", "load")
        stages = [consumer, derived]
        assert depends_on(consumer, derived, stages)
        assert _ids(dependency_order(stages)) == ["custom-load", "extract"]


class TestDependencyDepth:
    def test_depths(self):
        stages = [_stage("a"), _stage("b", "a"), _stage("c", "a", "b")]
        assert [dependency_depth(s, stages) for s in stages] == [0, 1, 2]

    def test_cycle_terminates(self):
        stages = [_stage("a", "b"), _stage("b", "a")]
        assert dependency_depth(stages[0], stages) >= 1


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

class TestPipelineRun:
    def test_runs_in_order(self):
        log = []
        Pipeline([_stage("b", "a", log=log), _stage("a", log=log)]).run(OntologyModel())
        assert [stage_id for stage_id, _ in log] == ["a", "b"]

    def test_stage_applies_only_to_its_model_kind(self):
        log = []
        stages = [_stage("vocab", kinds=CONCEPT_SCHEME_ONLY, log=log), _stage("onto", log=log)]
        Pipeline(stages).run(OntologyModel(), ConceptSchemeModel())
        assert log == [("onto", ModelKind.ONTOLOGY), ("vocab", ModelKind.CONCEPT_SCHEME)]

    def test_failure_is_wrapped_with_stage_id(self):
        class Broken(Stage):
            descriptor = StageDescriptor("broken")

            def run(self, model):
                raise KeyError("boom")

        with pytest.raises(PipelineStageError, match="stage 'broken' failed during run") as info:
            Pipeline([Broken()]).run(OntologyModel())
        assert info.value.stage_id == "broken"
        assert isinstance(info.value.__cause__, KeyError)

    def test_failure_stops_the_run(self):
        class Broken(Stage):
            descriptor = StageDescriptor("a-broken")

            def run(self, model):
                raise RuntimeError("nope")

        log = []
        with pytest.raises(PipelineStageError):
            Pipeline([Broken(), _stage("z-after", "a-broken", log=log)]).run(OntologyModel())
        assert log == []


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class TestBuildStages:
    def test_all_registered_by_default(self):
        stages = build_stages(Settings())
        assert sorted(_ids(stages)) == sorted(STAGE_IDS)

    def test_registered_order_is_the_build_order(self):
        order = _ids(Pipeline(build_stages(Settings())).order)
        assert order.index("ontology-load") < order.index("ontology-imports")
        assert order.index("ontology-reasoner") < order.index("ontology-class-extract")
        assert order.index("concept-scheme-extract") < order.index("concept-class-extract")
        assert order.index("concept-class-extract") < order.index("ontology-property-extra")
        assert order.index("ontology-property-extra") < order.index("ontology-property-override")

    def test_disabled_stage_skipped(self):
        settings = Settings(stages={"ontology-imports": StageSettings(enabled=False)})
        assert "ontology-imports" not in _ids(build_stages(settings))

    def test_selection_and_unknown_ids(self, caplog):
        settings = Settings(generators={"sql": GeneratorSettings(stages=["ontology-load", "nope"])})
        stages = build_stages(settings, settings.generator("sql").stages)
        assert _ids(stages) == ["ontology-load"]
        assert "Unknown stage id 'nope'" in caplog.text
