"""Numeric transforms of the CNA signal pipeline.

- qc: cell QC metrics and filtering
- coords: genomic coordinates and gene summaries
- normalization: library-size normalization
- binning: consecutive-gene bins
- scaling: CV outlier removal, z-score, smoothing
- cellcycle: cycling cell detection
- reduction: PCA and Leiden communities
- embedding: t-SNE and UMAP
"""

from .binning import assign_bins, bin_genes
from .cellcycle import cycling_thresholds, define_cycling_cells
from .coords import convert_to_coord, gene_info
from .embedding import run_tsne, run_umap
from .normalization import norm_ge
from .qc import phase_column, phase_columns, qc_cells, qc_filter
from .reduction import PCAResult, find_communities, run_pca
from .scaling import rm_cv_outliers, smooth_movingw, zscore

__all__ = [
    "assign_bins",
    "bin_genes",
    "cycling_thresholds",
    "define_cycling_cells",
    "convert_to_coord",
    "gene_info",
    "run_tsne",
    "run_umap",
    "norm_ge",
    "phase_column",
    "phase_columns",
    "qc_cells",
    "qc_filter",
    "PCAResult",
    "find_communities",
    "run_pca",
    "rm_cv_outliers",
    "smooth_movingw",
    "zscore",
]
