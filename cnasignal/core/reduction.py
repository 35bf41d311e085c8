"""PCA on the CNA signal and community detection on the PC space."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from ..errors import TransformFailure
from ..utils.frames import cell_columns, expression_matrix

logger = logging.getLogger(__name__)

MAX_PCS = 50


@dataclass
class PCAResult:
    """Principal components of the cells.

    Attributes
    ----------
    scores : pd.DataFrame
        Cells in rows (index = cell names), PC1..PCn in columns
    sdev : np.ndarray
        Standard deviation of each component
    variance_ratio : np.ndarray
        Proportion of variance explained by each component
    core_cells : list of str, optional
        Cells the PCA was fitted on, when restricted (e.g. non-cycling)
    """

    scores: pd.DataFrame
    sdev: np.ndarray
    variance_ratio: np.ndarray
    core_cells: Optional[List[str]] = field(default=None)

    @property
    def n_comps(self) -> int:
        return self.scores.shape[1]

    @property
    def cells(self) -> List[str]:
        return [str(c) for c in self.scores.index]


def run_pca(
    ge: pd.DataFrame,
    core_cells: Optional[Sequence[str]] = None,
    max_pcs: int = MAX_PCS,
    seed: int = 0,
) -> PCAResult:
    """PCA of the cells on the bin signal.

    Components are fitted on ``core_cells`` only, when given, and every
    cell is then projected on them.

    Raises
    ------
    TransformFailure
        If the signal has non-finite values or too few cells/bins
    """
    import anndata as ad
    import scanpy as sc

    cells = cell_columns(ge)
    X = expression_matrix(ge).T
    if not np.isfinite(X).all():
        raise TransformFailure("Non-finite values in the signal used for PCA")

    if core_cells is not None:
        core = set(str(c) for c in core_cells)
        fit_mask = np.array([c in core for c in cells], dtype=bool)
        fit_cells = [c for c, k in zip(cells, fit_mask) if k]
    else:
        fit_mask = np.ones(len(cells), dtype=bool)
        fit_cells = None

    X_fit = X[fit_mask]
    n_comps = min(max_pcs, X_fit.shape[0] - 1, X_fit.shape[1] - 1)
    if n_comps < 2:
        raise TransformFailure(
            f"Not enough cells ({X_fit.shape[0]}) or bins ({X_fit.shape[1]}) for PCA"
        )

    adata = ad.AnnData(X=X_fit)
    sc.tl.pca(adata, n_comps=n_comps, svd_solver="arpack", random_state=seed)

    loadings = adata.varm["PCs"]
    scores = (X - X_fit.mean(axis=0)) @ loadings
    pcs = [f"PC{i + 1}" for i in range(n_comps)]
    logger.info(
        "PCA with %d components on %d/%d cells", n_comps, X_fit.shape[0], X.shape[0]
    )
    return PCAResult(
        scores=pd.DataFrame(scores, index=pd.Index(cells, name="cell"), columns=pcs),
        sdev=np.sqrt(np.asarray(adata.uns["pca"]["variance"])),
        variance_ratio=np.asarray(adata.uns["pca"]["variance_ratio"]),
        core_cells=fit_cells,
    )


def pca_adata(pca: PCAResult, nb_pcs: int):
    """AnnData holding the first ``nb_pcs`` components as ``X_pca``."""
    import anndata as ad

    if nb_pcs > pca.n_comps:
        raise TransformFailure(
            f"nb_pcs={nb_pcs} but only {pca.n_comps} components are available"
        )
    X = pca.scores.iloc[:, :nb_pcs].to_numpy(dtype=np.float32)
    adata = ad.AnnData(X=X, obs=pd.DataFrame(index=pca.cells))
    adata.obsm["X_pca"] = X
    return adata


def find_communities(
    pca: PCAResult,
    nb_pcs: int = 10,
    comm_k: int = 100,
    seed: int = 999,
) -> pd.DataFrame:
    """Leiden communities on a k-nearest-neighbor graph of the PCs.

    Returns
    -------
    pd.DataFrame
        ``cell`` and ``community`` columns
    """
    import scanpy as sc

    adata = pca_adata(pca, nb_pcs)
    k = min(comm_k, adata.n_obs - 1)
    if k < 2:
        raise TransformFailure(f"Not enough cells ({adata.n_obs}) for a neighbor graph")

    sc.pp.neighbors(adata, n_neighbors=k, n_pcs=nb_pcs, use_rep="X_pca", random_state=seed)
    sc.tl.leiden(
        adata,
        random_state=seed,
        key_added="community",
        flavor="igraph",
        n_iterations=2,
        directed=False,
    )

    comm = pd.DataFrame({
        "cell": pca.cells,
        "community": adata.obs["community"].astype(str).to_numpy(),
    })
    logger.info("Found %d communities (k=%d)", comm["community"].nunique(), k)
    return comm
