"""The CNA signal stage graph.

Stage IDs, in execution order::

    raw -> qc -> filter -> norm -> bin -> z -> smooth -> pca -> comm
                                                          +-> tsne / umap
    raw -> qc -> cellcycle -> pca   (cell-cycle branch)
    norm -> gene_info
    sample_info                      (multi-sample input)

Each compute function has the ``compute(context, inputs)`` signature and
delegates the numeric work to :mod:`cnasignal.core`.
"""

from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from ..core import (
    PCAResult,
    bin_genes,
    convert_to_coord,
    define_cycling_cells,
    find_communities,
    gene_info,
    norm_ge,
    qc_cells,
    qc_filter,
    rm_cv_outliers,
    run_pca,
    run_tsne,
    run_umap,
    smooth_movingw,
    zscore,
)
from ..errors import TransformFailure
from .branches import BranchSelection
from .context import RunContext
from .stage import Stage, StageGraph


def report_path(context: RunContext, key: str) -> Path:
    """PDF written beside the artifact of ``key``."""
    return context.store.root / f"{key}.pdf"


# Compute functions


def _import_raw(context: RunContext, inputs: Dict[str, Any]) -> pd.DataFrame:
    return context.raw_input().counts


def _sample_info(context: RunContext, inputs: Dict[str, Any]) -> pd.DataFrame:
    info = context.raw_input().sample_info
    if info is None:
        raise TransformFailure("Sample information needs multi-sample input")
    return info


def _qc(context: RunContext, inputs: Dict[str, Any]) -> pd.DataFrame:
    return qc_cells(inputs["raw"], context.cell_cycle_genes())


def _filter(context: RunContext, inputs: Dict[str, Any]) -> pd.DataFrame:
    qc = context.config.qc
    return qc_filter(
        inputs["raw"],
        inputs["qc"],
        max_mito_prop=qc.max_mito_prop,
        min_total_exp=qc.min_total_exp,
        cells_sel=context.inputs.cells_sel,
    )


def _norm(context: RunContext, inputs: Dict[str, Any]) -> pd.DataFrame:
    ge = convert_to_coord(inputs["filter"], context.genes_coord(), context.config.qc.chrs)
    return norm_ge(ge, nb_cores=context.config.nb_cores)


def _gene_info(context: RunContext, inputs: Dict[str, Any]) -> pd.DataFrame:
    return gene_info(inputs["norm"])


def _bin(context: RunContext, inputs: Dict[str, Any]) -> pd.DataFrame:
    nb_cores = context.config.nb_cores
    ge = bin_genes(inputs["norm"], context.config.signal.bin_mean_exp, nb_cores=nb_cores)
    return norm_ge(ge, nb_cores=nb_cores)


def _zscore(context: RunContext, inputs: Dict[str, Any]) -> pd.DataFrame:
    signal = context.config.signal
    ge = rm_cv_outliers(inputs["bin"], signal.rm_cv_quant)
    return zscore(ge, signal.z_wins_th)


def _smooth(context: RunContext, inputs: Dict[str, Any]) -> pd.DataFrame:
    return smooth_movingw(
        inputs["z"], context.config.signal.smooth_wsize, nb_cores=context.config.nb_cores
    )


def _cellcycle(context: RunContext, inputs: Dict[str, Any]) -> List[str]:
    return define_cycling_cells(inputs["qc"], context.config.cell_cycle.cc_sd_th)


def _pca(context: RunContext, inputs: Dict[str, Any]) -> PCAResult:
    return run_pca(inputs["smooth"], core_cells=inputs.get("cellcycle"))


def _comm(context: RunContext, inputs: Dict[str, Any]) -> pd.DataFrame:
    red = context.config.reduction
    return find_communities(inputs["pca"], nb_pcs=red.nb_pcs, comm_k=red.comm_k, seed=red.seed)


def _tsne(context: RunContext, inputs: Dict[str, Any]) -> pd.DataFrame:
    red = context.config.reduction
    return run_tsne(inputs["pca"], nb_pcs=red.nb_pcs, seed=red.seed)


def _umap(context: RunContext, inputs: Dict[str, Any]) -> pd.DataFrame:
    red = context.config.reduction
    return run_umap(inputs["pca"], nb_pcs=red.nb_pcs, seed=red.seed)


# Chart hooks, called only after the stage ran


def _report_qc(context: RunContext, qc: pd.DataFrame, key: str) -> None:
    from ..viz.plots import plot_qc_cells

    plot_qc_cells(
        qc,
        report_path(context, key),
        max_mito_prop=context.config.qc.max_mito_prop,
        min_total_exp=context.config.qc.min_total_exp,
    )


def _report_cellcycle(context: RunContext, noncycling: List[str], key: str) -> None:
    from ..viz.plots import plot_cell_cycle

    plot_cell_cycle(context.fetch("qc"), noncycling, report_path(context, key))


def _report_pca(context: RunContext, pca: PCAResult, key: str) -> None:
    from ..viz.plots import plot_pca_sdev

    plot_pca_sdev(pca, report_path(context, key))


def _report_comm(context: RunContext, comm: pd.DataFrame, key: str) -> None:
    from ..viz.plots import plot_communities

    plot_communities(comm, report_path(context, key))


def _embedding_report(stage_id: str):
    def report(context: RunContext, emb: pd.DataFrame, key: str) -> None:
        from ..viz.plots import plot_embedding

        plot_embedding(
            emb,
            report_path(context, key),
            comm=context.fetch("comm"),
            qc=context.fetch("qc"),
            coords=(f"{stage_id}1", f"{stage_id}2"),
        )

    return report


def build_cna_graph(selection: BranchSelection) -> StageGraph:
    """Stage graph for a branch selection.

    Every stage is declared; the selection only decides whether PCA also
    consumes the non-cycling cells, which puts the cell-cycle branch in
    the lineage (and the cache key) of PCA and everything after it.
    """
    pca_deps = ("smooth", "cellcycle") if selection.cell_cycle else ("smooth",)
    df = pd.DataFrame

    stages = [
        Stage("raw", "Import raw data", _import_raw,
              key_segments=("ge",), expected_type=df),
        Stage("sample_info", "Sample information", _sample_info,
              key_segments=("sampleinfo",), expected_type=df),
        Stage("qc", "Quality control", _qc, depends_on=("raw",),
              key_segments=("qc", "cc{cell_cycle}"), expected_type=df,
              report=_report_qc),
        Stage("filter", "QC filtering", _filter, depends_on=("raw", "qc"),
              key_segments=("filter", "mito{max_mito_prop}", "tot{min_total_exp}",
                            "sel{cells_sel}"),
              expected_type=df),
        Stage("norm", "Coordinates and normalization", _norm, depends_on=("filter",),
              key_segments=("coord{chrs}", "norm"), expected_type=df),
        Stage("gene_info", "Gene information", _gene_info, depends_on=("norm",),
              key_segments=("geneinfo",), expected_type=df),
        Stage("bin", "Binning", _bin, depends_on=("norm",),
              key_segments=("bin{bin_mean_exp}",), expected_type=df),
        Stage("z", "Outlier removal and z-score", _zscore, depends_on=("bin",),
              key_segments=("rmcvq{rm_cv_quant}", "z{z_wins_th}"), expected_type=df),
        Stage("smooth", "Smoothing", _smooth, depends_on=("z",),
              key_segments=("smooth{smooth_wsize}",), expected_type=df),
        Stage("cellcycle", "Cycling cells", _cellcycle, depends_on=("qc",),
              key_segments=("noncycling{cc_sd_th}",), artifact_format="lines",
              expected_type=list, report=_report_cellcycle),
        Stage("pca", "PCA", _pca, depends_on=pca_deps,
              key_segments=("pca",), expected_type=PCAResult, report=_report_pca),
        Stage("comm", "Communities", _comm, depends_on=("pca",),
              key_segments=("comm{comm_k}", "pcs{nb_pcs}", "seed{seed}"),
              expected_type=df, report=_report_comm),
        Stage("tsne", "t-SNE", _tsne, depends_on=("pca",),
              key_segments=("tsne", "pcs{nb_pcs}", "seed{seed}"),
              expected_type=df, report=_embedding_report("tsne")),
        Stage("umap", "UMAP", _umap, depends_on=("pca",),
              key_segments=("umap", "pcs{nb_pcs}", "seed{seed}"),
              expected_type=df, report=_embedding_report("umap")),
    ]
    return StageGraph(stages)
