"""Mapping genes to genomic coordinates, and gene-level summaries."""

import logging
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from ..errors import TransformFailure
from ..utils.frames import cell_columns, has_coordinates

logger = logging.getLogger(__name__)


def convert_to_coord(
    ge: pd.DataFrame,
    genes_coord: pd.DataFrame,
    chrs: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Attach chr/start/end to each gene and order genes along the genome.

    Genes without coordinates, or on chromosomes outside ``chrs``, are
    dropped. Chromosomes follow the order of ``chrs``.

    Parameters
    ----------
    ge : pd.DataFrame
        Gene-by-cell table with a ``symbol`` column
    genes_coord : pd.DataFrame
        Coordinates with ``chr``, ``start``, ``end``, ``symbol``
    chrs : Sequence[str], optional
        Chromosomes to keep. None keeps all, in order of appearance.

    Returns
    -------
    pd.DataFrame
        Table with ``symbol``, ``chr``, ``start``, ``end`` then the cells
    """
    coord = genes_coord[["symbol", "chr", "start", "end"]].drop_duplicates("symbol")
    coord = coord.assign(chr=coord["chr"].astype(str))
    if chrs is not None:
        chrs = [str(c) for c in chrs]
        coord = coord[coord["chr"].isin(chrs)]
    else:
        chrs = list(pd.unique(coord["chr"]))

    cells = cell_columns(ge)
    merged = coord.merge(ge[["symbol"] + cells], on="symbol", how="inner")
    if merged.empty:
        raise TransformFailure(
            "No gene with coordinates on the selected chromosomes"
        )

    merged["chr"] = pd.Categorical(merged["chr"], categories=chrs, ordered=True)
    merged = merged.sort_values(["chr", "start", "end"], kind="mergesort")
    merged["chr"] = merged["chr"].astype(str)
    logger.info(
        "Mapped %d/%d genes to coordinates on %d chromosomes",
        len(merged), len(ge), merged["chr"].nunique(),
    )
    return merged.reset_index(drop=True)


def gene_info(
    ge: pd.DataFrame,
    subset_cells: Optional[int] = 10000,
    seed: int = 0,
) -> pd.DataFrame:
    """Summary statistics for each gene.

    Meant to run after normalization and before binning, when rows are
    still genes. Useful to annotate CNA calls later.

    Parameters
    ----------
    ge : pd.DataFrame
        Gene-by-cell table with ``symbol`` and/or coordinate columns
    subset_cells : int, optional
        Maximum number of cells used (sampled without replacement)
    seed : int
        Seed of the cell sampling

    Returns
    -------
    pd.DataFrame
        Annotation columns plus ``exp_mean``, ``exp_sd``, ``prop_non0``
    """
    if "symbol" not in ge.columns and not has_coordinates(ge):
        raise TransformFailure(
            "Gene information needs a 'symbol' column or chr/start/end coordinates"
        )
    cells = cell_columns(ge)
    if subset_cells is not None and len(cells) > subset_cells:
        rng = np.random.default_rng(seed)
        idx = np.sort(rng.choice(len(cells), size=subset_cells, replace=False))
        cells = [cells[i] for i in idx]

    mat = ge[cells].to_numpy(dtype=np.float64)
    info = ge[[c for c in ("symbol", "chr", "start", "end") if c in ge.columns]].copy()
    info["exp_mean"] = mat.mean(axis=1)
    info["exp_sd"] = mat.std(axis=1, ddof=1) if mat.shape[1] > 1 else np.nan
    info["prop_non0"] = (mat > 0).mean(axis=1)
    return info.reset_index(drop=True)
