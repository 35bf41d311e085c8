"""Unit tests for the stage executor."""

import pytest

from cnasignal.errors import TransformFailure
from cnasignal.pipeline import (
    CacheKeyBuilder,
    RunConfig,
    RunContext,
    RunInputs,
    Stage,
    StageExecutor,
    StageGraph,
    StageMark,
    build_plan,
)
from tests.fixtures import passthrough, random_cache, random_dag

PARAMS = {"pa": 1, "pb": 2, "pc": 3, "pd": 4}


def make_context(store, **config):
    return RunContext(RunConfig(prefix="run1", **config), RunInputs(), store)


def plan_for(graph, store, params=PARAMS, **kwargs):
    return build_plan(graph, store, CacheKeyBuilder("run1", graph), params, **kwargs)


class SpyStore:
    """Wraps a store and records every load and save."""

    def __init__(self, store):
        self.store = store
        self.loaded = []
        self.saved = []

    def __getattr__(self, name):
        return getattr(self.store, name)

    def load(self, key, fmt="joblib", expected_type=None):
        self.loaded.append(key)
        return self.store.load(key, fmt, expected_type)

    def save(self, key, data, fmt="joblib", overwrite=False):
        self.saved.append(key)
        return self.store.save(key, data, fmt, overwrite)


class TestStageExecutor:
    """Tests for StageExecutor."""

    def test_first_run_computes_and_saves(self, diamond_graph, store):
        plan = plan_for(diamond_graph, store)
        context = make_context(store)
        report = StageExecutor(diamond_graph, store).execute(plan, context)

        assert report.executed == ["a", "b", "c", "d"]
        assert report.loaded == [] and report.skipped == []
        for key in plan.keys.values():
            assert store.exists(key)
        assert store.load(plan.keys["d"]) == {"stage": "d", "inputs": ["b", "c"]}

    def test_outputs_released(self, diamond_graph, store):
        """Only leaf outputs stay in memory after the walk."""
        plan = plan_for(diamond_graph, store)
        context = make_context(store)
        StageExecutor(diamond_graph, store).execute(plan, context)
        assert context.live_stages() == ["d"]

    def test_second_run_touches_nothing(self, diamond_graph, store):
        StageExecutor(diamond_graph, store).execute(plan_for(diamond_graph, store), make_context(store))

        spy = SpyStore(store)
        plan = plan_for(diamond_graph, spy)
        report = StageExecutor(diamond_graph, spy).execute(plan, make_context(spy))
        assert report.executed == [] and report.loaded == []
        assert report.skipped == ["a", "b", "c", "d"]
        assert spy.loaded == [] and spy.saved == []

    def test_changed_parameter_loads_boundary(self, diamond_graph, store):
        StageExecutor(diamond_graph, store).execute(plan_for(diamond_graph, store), make_context(store))

        spy = SpyStore(store)
        plan = plan_for(diamond_graph, spy, params={**PARAMS, "pd": 5})
        report = StageExecutor(diamond_graph, spy).execute(plan, make_context(spy))
        assert report.executed == ["d"]
        assert report.loaded == ["b", "c"]
        assert report.skipped == ["a"]
        assert spy.loaded == [plan.keys["b"], plan.keys["c"]]

    def test_use_cache_false_republishes(self, store):
        graph = StageGraph([
            Stage("a", "A", lambda ctx, inputs: ctx.config.nb_cores, key_segments=("a",)),
        ])
        StageExecutor(graph, store).execute(plan_for(graph, store), make_context(store, nb_cores=1))
        plan = plan_for(graph, store, use_cache=False)
        StageExecutor(graph, store).execute(plan, make_context(store, nb_cores=2, use_cache=False))
        assert store.load("run1-a") == 2

    def test_failure_keeps_earlier_artifacts(self, store):
        def fail(context, inputs):
            raise TransformFailure("non-finite values")

        graph = StageGraph([
            Stage("a", "A", passthrough("a"), key_segments=("a",)),
            Stage("b", "B", fail, depends_on=("a",), key_segments=("b",)),
        ])
        plan = plan_for(graph, store)
        with pytest.raises(TransformFailure) as excinfo:
            StageExecutor(graph, store).execute(plan, make_context(store))

        assert excinfo.value.stage == "b"
        assert excinfo.value.key == "run1-a-b"
        assert "run1-a-b" in str(excinfo.value)
        assert store.exists("run1-a")
        assert not store.exists("run1-a-b")

        # A rerun resumes from the failed stage
        plan = plan_for(graph, store)
        assert plan.marks == {"a": StageMark.MUST_LOAD, "b": StageMark.MUST_RUN}

    def test_report_hook(self, store):
        calls = []
        graph = StageGraph([
            Stage("a", "A", passthrough("a"), key_segments=("a",),
                  report=lambda ctx, out, key: calls.append(key)),
        ])
        StageExecutor(graph, store).execute(plan_for(graph, store), make_context(store))
        assert calls == ["run1-a"]

        # Not called when the stage is cached
        StageExecutor(graph, store).execute(plan_for(graph, store), make_context(store))
        assert calls == ["run1-a"]

    def test_report_hook_disabled_and_failing(self, store):
        calls = []

        def broken(ctx, out, key):
            calls.append(key)
            raise RuntimeError("renderer crashed")

        graph = StageGraph([
            Stage("a", "A", passthrough("a"), key_segments=("a",), report=broken),
            Stage("b", "B", passthrough("b"), depends_on=("a",), key_segments=("b",), report=broken),
        ])
        report = StageExecutor(graph, store).execute(plan_for(graph, store), make_context(store))
        assert report.executed == ["a", "b"]
        assert calls == ["run1-a", "run1-a-b"]

        store.remove("run1-a-b")
        StageExecutor(graph, store).execute(
            plan_for(graph, store), make_context(store, make_plots=False)
        )
        assert calls == ["run1-a", "run1-a-b"]

    @pytest.mark.parametrize("seed", range(20))
    def test_random_dags_never_touch_skipped(self, store, seed):
        graph = random_dag(7, seed)
        params = {}
        builder = CacheKeyBuilder("run1", graph)
        for sid, is_cached in random_cache(graph, seed + 1).items():
            if is_cached:
                store.save(builder.key_for(sid, params), {"stage": sid, "inputs": []})

        spy = SpyStore(store)
        plan = plan_for(graph, spy, params=params)
        report = StageExecutor(graph, spy).execute(plan, make_context(spy))

        skipped = set(plan.stages_with(StageMark.SKIP))
        assert set(report.skipped) == skipped
        assert not skipped & set(report.executed)
        assert not {plan.keys[s] for s in skipped} & set(spy.loaded)
        assert report.executed == plan.stages_with(StageMark.MUST_RUN)
        assert report.loaded == plan.stages_with(StageMark.MUST_LOAD)
