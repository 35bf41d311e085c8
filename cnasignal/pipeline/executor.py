"""Stage executor: walks the plan, loading or computing each stage."""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .context import RunContext
from ..errors import PipelineStateError, TransformFailure
from .logger import PipelineLogger
from .resolver import ExecutionPlan, StageMark
from .stage import StageGraph
from .store import ArtifactStore


@dataclass
class ExecutionReport:
    """What the executor did for each stage.

    Attributes
    ----------
    marks : Dict[str, StageMark]
        Mark per stage, as resolved before the walk
    executed : List[str]
        Stages whose compute function ran
    loaded : List[str]
        Stages loaded from the store
    skipped : List[str]
        Stages neither loaded nor computed
    durations : Dict[str, float]
        Wall time per executed or loaded stage, in seconds
    """

    marks: Dict[str, StageMark] = field(default_factory=dict)
    executed: List[str] = field(default_factory=list)
    loaded: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    durations: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "marks": {sid: mark.value for sid, mark in self.marks.items()},
            "executed": list(self.executed),
            "loaded": list(self.loaded),
            "skipped": list(self.skipped),
            "durations": {sid: round(d, 3) for sid, d in self.durations.items()},
        }


class StageExecutor:
    """Executes a resolved plan in a single forward pass.

    For each stage, by mark:

    - SKIP: nothing happens; no output is produced for the stage.
    - MUST_LOAD: the artifact is loaded and handed to the consumers.
    - MUST_RUN: the compute function receives the outputs of its
      predecessors; the result is saved, then handed to the consumers.

    An output is released as soon as every consumer that runs in this
    pass has used it. Outputs of leaf stages stay live until the end of
    the run.

    Parameters
    ----------
    graph : StageGraph
        Stage graph the plan was resolved on
    store : ArtifactStore
        Artifact store
    logger : PipelineLogger, optional
        Logger instance

    Example
    -------
    >>> plan = build_plan(graph, store, keys, params)
    >>> executor = StageExecutor(graph, store, logger)
    >>> report = executor.execute(plan, context)
    >>> report.executed
    ['pca', 'comm', 'tsne']
    """

    def __init__(
        self,
        graph: StageGraph,
        store: ArtifactStore,
        logger: Optional[PipelineLogger] = None,
    ):
        self.graph = graph
        self.store = store
        self.logger = logger or PipelineLogger()

    def _pending_consumers(self, plan: ExecutionPlan) -> Dict[str, int]:
        """Number of running consumers per stage output."""
        pending = {sid: 0 for sid in plan.order}
        for sid in plan.order:
            if plan.marks[sid] is StageMark.MUST_RUN:
                for dep in self.graph[sid].depends_on:
                    pending[dep] += 1
        return pending

    def _is_leaf(self, stage_id: str, plan: ExecutionPlan) -> bool:
        return not any(s in plan.in_scope for s in self.graph.successors(stage_id))

    def _release(self, stage_id: str, context: RunContext, plan: ExecutionPlan) -> None:
        if stage_id in context.outputs and not self._is_leaf(stage_id, plan):
            del context.outputs[stage_id]
            self.logger.log_debug(f"Released output of stage {stage_id}")

    def _gather_inputs(self, stage_id: str, context: RunContext) -> Dict[str, Any]:
        inputs = {}
        for dep in self.graph[stage_id].depends_on:
            if dep not in context.outputs:
                raise PipelineStateError(
                    f"Stage '{stage_id}' needs the output of '{dep}', "
                    "which was neither loaded nor computed"
                )
            inputs[dep] = context.outputs[dep]
        return inputs

    def _run_stage(self, stage_id: str, plan: ExecutionPlan, context: RunContext) -> Any:
        stage = self.graph[stage_id]
        key = plan.keys[stage_id]
        inputs = self._gather_inputs(stage_id, context)

        self.logger.log_stage_start(stage_id, stage.name)
        try:
            result = stage.compute(context, inputs)
        except TransformFailure as e:
            if e.stage is None:
                e.stage = stage_id
            if e.key is None:
                e.key = key
            self.logger.log_stage_error(stage_id, key, e.message)
            raise
        except Exception as e:
            self.logger.log_stage_error(stage_id, key, f"{type(e).__name__}: {e}")
            raise

        self.store.save(
            key,
            result,
            fmt=stage.artifact_format,
            overwrite=not context.config.use_cache,
        )

        if stage.report is not None and context.config.make_plots:
            try:
                stage.report(context, result, key)
            except Exception as e:
                self.logger.log_warning(f"Plots for stage {stage_id} failed: {e}")

        return result

    def execute(self, plan: ExecutionPlan, context: RunContext) -> ExecutionReport:
        """Walk the plan once in execution order.

        Parameters
        ----------
        plan : ExecutionPlan
            Resolved plan
        context : RunContext
            Run context; receives the live outputs

        Returns
        -------
        ExecutionReport
            Per-stage outcome

        Raises
        ------
        Exception
            Whatever a compute function or the store raised. Artifacts
            saved by earlier stages stay valid.
        """
        context.bind_plan(
            plan.keys,
            {sid: self.graph[sid].artifact_format for sid in plan.keys},
        )
        report = ExecutionReport(marks=dict(plan.marks))
        pending = self._pending_consumers(plan)

        for stage_id in plan.order:
            mark = plan.marks[stage_id]

            if mark is StageMark.SKIP:
                if stage_id in plan.in_scope:
                    self.logger.log_stage_skip(stage_id)
                report.skipped.append(stage_id)
                continue

            start_time = time.time()
            stage = self.graph[stage_id]
            if mark is StageMark.MUST_LOAD:
                key = plan.keys[stage_id]
                self.logger.log_stage_load(stage_id, key)
                context.outputs[stage_id] = self.store.load(
                    key, stage.artifact_format, stage.expected_type
                )
                report.loaded.append(stage_id)
            else:
                context.outputs[stage_id] = self._run_stage(stage_id, plan, context)
                report.executed.append(stage_id)
                for dep in stage.depends_on:
                    pending[dep] -= 1
                    if pending[dep] == 0:
                        self._release(dep, context, plan)

            duration = time.time() - start_time
            report.durations[stage_id] = duration
            if mark is StageMark.MUST_RUN:
                self.logger.log_stage_complete(stage_id, duration)

            if pending[stage_id] == 0:
                self._release(stage_id, context, plan)

        return report
