"""Staged computation pipeline with per-stage checkpointing.

- keys: cache keys from the run prefix and stage lineage
- store: atomic key-addressed artifact store
- resolver: MUST_RUN / MUST_LOAD / SKIP marks
- executor: forward walk over a resolved plan
- branches: optional sub-pipelines
- merge: final per-cell table
- definition: the CNA signal stage graph
- runner: top-level entry point
"""

from .branches import (
    BranchSelection,
    combine_embeddings,
    select_branches,
    stages_in_scope,
)
from .config import EmbeddingMethod, RunConfig
from .context import RunContext, RunInputs
from .definition import build_cna_graph
from .executor import ExecutionReport, StageExecutor
from .keys import CacheKeyBuilder
from .logger import PipelineLogger
from .merge import MergeReport, combine_cell_info, merge_results
from .resolver import ExecutionPlan, NeedResolver, StageMark, build_plan
from .runner import RunResult, run_cna_pipeline
from .stage import Stage, StageGraph
from .store import ArtifactStore

__all__ = [
    "ArtifactStore",
    "BranchSelection",
    "CacheKeyBuilder",
    "EmbeddingMethod",
    "ExecutionPlan",
    "ExecutionReport",
    "MergeReport",
    "NeedResolver",
    "PipelineLogger",
    "RunConfig",
    "RunContext",
    "RunInputs",
    "RunResult",
    "Stage",
    "StageExecutor",
    "StageGraph",
    "StageMark",
    "build_cna_graph",
    "build_plan",
    "combine_cell_info",
    "combine_embeddings",
    "merge_results",
    "run_cna_pipeline",
    "select_branches",
    "stages_in_scope",
]
