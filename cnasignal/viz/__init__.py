"""Charts of the CNA signal pipeline."""

from .plots import (
    plot_cell_cycle,
    plot_communities,
    plot_embedding,
    plot_pca_sdev,
    plot_qc_cells,
    set_plot_style,
)

__all__ = [
    "plot_cell_cycle",
    "plot_communities",
    "plot_embedding",
    "plot_pca_sdev",
    "plot_qc_cells",
    "set_plot_style",
]
