"""Top-level entry point: plan, execute, merge, record."""

import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from ..io.logging import log_json, log_yaml, read_json_lines
from .branches import BranchSelection, combine_embeddings, select_branches, stages_in_scope
from .config import RunConfig
from .context import RunContext, RunInputs
from .definition import build_cna_graph
from .executor import ExecutionReport, StageExecutor
from .keys import CacheKeyBuilder
from .logger import PipelineLogger
from .merge import MergeReport, combine_cell_info, merge_results
from .resolver import ExecutionPlan, StageMark, build_plan
from .store import ArtifactStore

MANIFEST_SUFFIX = "-runs.jsonl"


@dataclass
class RunResult:
    """Outcome of one invocation.

    Attributes
    ----------
    plan : ExecutionPlan
        Resolved plan
    selection : BranchSelection
        Branches selected for the run
    report : ExecutionReport, optional
        What the executor did (None for plan-only runs)
    table : pd.DataFrame, optional
        Merged per-cell table, or the QC table when paused after QC
    dropped : Dict[str, int]
        Cells dropped by each join of the merge
    """

    plan: ExecutionPlan
    selection: BranchSelection
    report: Optional[ExecutionReport] = None
    table: Optional[pd.DataFrame] = None
    dropped: Dict[str, int] = field(default_factory=dict)

    @property
    def keys(self) -> Dict[str, str]:
        return self.plan.keys


def manifest_path(store: ArtifactStore, prefix: str) -> Path:
    """JSON-lines file recording every run of a prefix."""
    return store.root / f"{prefix}{MANIFEST_SUFFIX}"


def prepare_run(
    config: RunConfig,
    inputs: RunInputs,
    store: ArtifactStore,
    logger: PipelineLogger,
):
    """Validate, select branches, build the graph and resolve the plan.

    Nothing is loaded or computed; only artifact existence is checked.
    """
    config.validate()
    selection = select_branches(config, inputs)
    graph = build_cna_graph(selection)
    scope = stages_in_scope(graph, selection)

    context = RunContext(config, inputs, store, logger=logger.logger)
    plan = build_plan(
        graph,
        store,
        CacheKeyBuilder(config.prefix, graph),
        context.key_params(),
        in_scope=scope,
        use_cache=config.use_cache,
    )
    if inputs.data is not None and plan.marks.get("raw") is not StageMark.MUST_RUN:
        logger.log_warning(
            "Ignoring input data, loading cache files instead because use_cache=True"
        )
    return selection, graph, context, plan


def _merge(context: RunContext, selection: BranchSelection) -> MergeReport:
    embedding = combine_embeddings(
        context.fetch(sid) for sid in selection.embedding.stage_ids
    )
    sample_info = context.fetch("sample_info") if selection.sample_info else None
    info = combine_cell_info(sample_info, context.cell_info())
    return merge_results(
        context.fetch("qc"),
        context.fetch("comm"),
        embedding,
        info=info,
        logger=context.logger,
    )


def run_cna_pipeline(
    config: RunConfig,
    inputs: RunInputs,
    store: Optional[ArtifactStore] = None,
    logger: Optional[PipelineLogger] = None,
    plan_only: bool = False,
) -> RunResult:
    """Run the CNA signal pipeline.

    Parameters
    ----------
    config : RunConfig
        Run configuration
    inputs : RunInputs
        Expression data, gene coordinates and optional side inputs
    store : ArtifactStore, optional
        Artifact store. Default: current directory.
    logger : PipelineLogger, optional
        Logger. Default: console only.
    plan_only : bool
        Resolve and log the plan without executing it

    Returns
    -------
    RunResult
        Plan, execution report and merged table

    Raises
    ------
    CnaPipelineError
        Any configuration, input, cache or transform error. Artifacts of
        stages that completed before the failure stay valid.
    """
    store = store or ArtifactStore(".")
    if logger is None:
        logger = PipelineLogger()
        logger.setup()

    selection, graph, context, plan = prepare_run(config, inputs, store, logger)
    log_yaml(None, config.to_dict(), logger=logger.logger)
    logger.log_plan(plan.describe())
    result = RunResult(plan=plan, selection=selection)
    if plan_only:
        return result

    start_time = time.time()
    result.report = StageExecutor(graph, store, logger).execute(plan, context)

    if selection.stop_after_qc:
        logger.log_info("Paused after QC")
        result.table = context.fetch("qc")
    else:
        merged = _merge(context, selection)
        result.table = merged.table
        result.dropped = merged.dropped

    duration = time.time() - start_time
    log_json(
        manifest_path(store, config.prefix),
        {
            "time": datetime.now().isoformat(timespec="seconds"),
            "prefix": config.prefix,
            "duration": round(duration, 3),
            "plan": plan.to_dict(),
            "report": result.report.to_dict(),
            "n_cells": int(len(result.table)),
        },
    )
    logger.log_info(
        f"Run completed in {logger.format_duration(duration)}: "
        f"{len(result.report.executed)} run, {len(result.report.loaded)} loaded, "
        f"{len(result.report.skipped)} skipped"
    )
    return result


def run_history(store: ArtifactStore, prefix: str) -> List[Dict[str, Any]]:
    """Manifest records of previous runs of ``prefix``."""
    return read_json_lines(manifest_path(store, prefix))
