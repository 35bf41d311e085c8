"""Merging consecutive genes into expression bins."""

import logging
from typing import List, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from ..errors import TransformFailure
from ..utils.frames import cell_columns, has_coordinates

logger = logging.getLogger(__name__)


def assign_bins(means: np.ndarray, bin_mean_exp: float) -> np.ndarray:
    """Bin index of each gene, for genes ordered along one chromosome.

    Genes are accumulated until the summed mean expression reaches
    ``bin_mean_exp``. Trailing genes that do not reach it are merged into
    the previous bin of the chromosome, if any.
    """
    bin_ids = np.empty(len(means), dtype=np.int64)
    current = 0
    acc = 0.0
    for i, m in enumerate(means):
        bin_ids[i] = current
        acc += m
        if acc >= bin_mean_exp:
            current += 1
            acc = 0.0
    if len(means) and bin_ids[-1] == current and current > 0:
        bin_ids[bin_ids == current] = current - 1
    return bin_ids


def _bin_chromosome(
    chrom: str,
    starts: np.ndarray,
    ends: np.ndarray,
    mat: np.ndarray,
    bin_mean_exp: float,
) -> Tuple[pd.DataFrame, np.ndarray]:
    bin_ids = assign_bins(mat.mean(axis=1), bin_mean_exp)
    bounds = np.flatnonzero(np.r_[True, np.diff(bin_ids) != 0])
    coords = pd.DataFrame({
        "chr": chrom,
        "start": starts[bounds],
        "end": np.maximum.reduceat(ends, bounds),
    })
    return coords, np.add.reduceat(mat, bounds, axis=0)


def bin_genes(
    ge: pd.DataFrame,
    bin_mean_exp: float = 3,
    nb_cores: int = 1,
) -> pd.DataFrame:
    """Sum the expression of consecutive genes into bins.

    Parameters
    ----------
    ge : pd.DataFrame
        Gene-by-cell table with ``chr``/``start``/``end``, ordered along
        the genome
    bin_mean_exp : float
        Minimum mean expression of a bin
    nb_cores : int
        Number of processes, chromosomes are binned independently

    Returns
    -------
    pd.DataFrame
        Bin-by-cell table with ``chr``, ``start``, ``end`` then the cells
    """
    if not has_coordinates(ge):
        raise TransformFailure("Binning needs chr/start/end columns")
    if bin_mean_exp <= 0:
        raise TransformFailure(f"bin_mean_exp must be positive, got {bin_mean_exp}")

    cells = cell_columns(ge)
    groups = list(ge.groupby("chr", sort=False))
    results: List[Tuple[pd.DataFrame, np.ndarray]] = Parallel(n_jobs=nb_cores)(
        delayed(_bin_chromosome)(
            chrom,
            sub["start"].to_numpy(),
            sub["end"].to_numpy(),
            sub[cells].to_numpy(dtype=np.float64),
            bin_mean_exp,
        )
        for chrom, sub in groups
    )

    coords = pd.concat([c for c, _ in results], ignore_index=True)
    values = np.vstack([m for _, m in results])
    out = pd.concat([coords, pd.DataFrame(values, columns=cells)], axis=1)
    logger.info("Binned %d genes into %d bins", len(ge), len(out))
    return out
