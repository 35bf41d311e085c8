"""2D embeddings of the cells: t-SNE and UMAP."""

import pandas as pd

from ..errors import TransformFailure
from .reduction import PCAResult, pca_adata

UMAP_NEIGHBORS = 15


def run_tsne(pca: PCAResult, nb_pcs: int = 10, seed: int = 999) -> pd.DataFrame:
    """t-SNE on the first ``nb_pcs`` components. Columns: cell, tsne1, tsne2."""
    import scanpy as sc

    adata = pca_adata(pca, nb_pcs)
    n = adata.n_obs
    if n < 4:
        raise TransformFailure(f"Not enough cells ({n}) for t-SNE")
    # perplexity must stay below the number of cells
    perplexity = min(30.0, (n - 1) / 3.0)
    sc.tl.tsne(adata, n_pcs=nb_pcs, use_rep="X_pca", perplexity=perplexity, random_state=seed)
    coords = adata.obsm["X_tsne"]
    return pd.DataFrame({"cell": pca.cells, "tsne1": coords[:, 0], "tsne2": coords[:, 1]})


def run_umap(pca: PCAResult, nb_pcs: int = 10, seed: int = 999) -> pd.DataFrame:
    """UMAP on the first ``nb_pcs`` components. Columns: cell, umap1, umap2."""
    import scanpy as sc

    adata = pca_adata(pca, nb_pcs)
    k = min(UMAP_NEIGHBORS, adata.n_obs - 1)
    if k < 2:
        raise TransformFailure(f"Not enough cells ({adata.n_obs}) for UMAP")
    sc.pp.neighbors(adata, n_neighbors=k, n_pcs=nb_pcs, use_rep="X_pca", random_state=seed)
    sc.tl.umap(adata, random_state=seed)
    coords = adata.obsm["X_umap"]
    return pd.DataFrame({"cell": pca.cells, "umap1": coords[:, 0], "umap2": coords[:, 1]})
