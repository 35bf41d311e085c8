"""Optional sub-pipelines, selected before any I/O.

A run is described by a :class:`BranchSelection`: which embedding paths
run, whether the cell-cycle branch feeds core cells into PCA, and which
side tables are produced. The stage graph and the in-scope set are both
derived from it, so the need resolver knows statically what may run.
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Set

import pandas as pd

from ..errors import InvalidConfigurationError
from .config import EmbeddingMethod, RunConfig
from .context import RunInputs
from .stage import StageGraph

# Stages every full run needs
CORE_STAGES = ("raw", "qc", "filter", "norm", "bin", "z", "smooth", "pca", "comm")

# Stages of a run paused after QC
QC_STAGES = ("raw", "qc")


@dataclass(frozen=True)
class BranchSelection:
    """Tagged description of the conditional paths of a run.

    Attributes
    ----------
    embedding : EmbeddingMethod
        Embedding path(s)
    cell_cycle : bool
        Detect cycling cells and fit PCA on non-cycling cells only
    sample_info : bool
        Produce the cell/sample table (multi-sample input)
    gene_info : bool
        Produce the per-gene summary table
    stop_after_qc : bool
        Only import the data and compute QC
    """

    embedding: EmbeddingMethod = EmbeddingMethod.TSNE
    cell_cycle: bool = False
    sample_info: bool = False
    gene_info: bool = True
    stop_after_qc: bool = False


def select_branches(config: RunConfig, inputs: RunInputs) -> BranchSelection:
    """Derive the branch selection from configuration and inputs."""
    return BranchSelection(
        embedding=EmbeddingMethod.parse(config.reduction.viz),
        cell_cycle=inputs.cell_cycle is not None,
        sample_info=inputs.multi_sample,
        gene_info=config.gene_info,
        stop_after_qc=config.pause_after_qc,
    )


def stages_in_scope(graph: StageGraph, selection: BranchSelection) -> FrozenSet[str]:
    """Stages that may run for ``selection``, before any I/O."""
    if selection.stop_after_qc:
        scope: Set[str] = set(QC_STAGES)
    else:
        scope = set(CORE_STAGES)
        scope.update(selection.embedding.stage_ids)
        if selection.cell_cycle:
            scope.add("cellcycle")
        if selection.gene_info:
            scope.add("gene_info")
    if selection.sample_info:
        scope.add("sample_info")

    missing = sorted(scope - set(graph.execution_order()))
    if missing:
        raise InvalidConfigurationError(
            f"Selected stages missing from the stage graph: {missing}"
        )
    return frozenset(scope)


def combine_embeddings(tables: Iterable[pd.DataFrame]) -> pd.DataFrame:
    """Join embedding tables on cell identity.

    Raises
    ------
    InvalidConfigurationError
        If no table is given
    """
    tables = list(tables)
    if not tables:
        raise InvalidConfigurationError("No embedding table to combine")
    combined = tables[0]
    for table in tables[1:]:
        combined = combined.merge(table, on="cell", how="inner")
    return combined.reset_index(drop=True)
