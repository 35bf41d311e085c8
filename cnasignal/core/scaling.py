"""Bin filtering, z-scoring and smoothing of the expression signal."""

import logging
from typing import Optional

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from ..errors import TransformFailure
from ..utils.frames import cell_columns, expression_matrix, with_matrix

logger = logging.getLogger(__name__)


def rm_cv_outliers(ge: pd.DataFrame, ol_quant_th: Optional[float] = None) -> pd.DataFrame:
    """Remove bins whose coefficient of variation is above a quantile.

    Parameters
    ----------
    ge : pd.DataFrame
        Bin-by-cell table
    ol_quant_th : float, optional
        Quantile of the CV distribution above which bins are removed.
        None returns the table unchanged.
    """
    if ol_quant_th is None:
        return ge
    if not 0 < ol_quant_th <= 1:
        raise TransformFailure(f"rm_cv_quant must be in (0, 1], got {ol_quant_th}")

    mat = expression_matrix(ge)
    means = mat.mean(axis=1)
    sds = mat.std(axis=1, ddof=1) if mat.shape[1] > 1 else np.zeros(len(mat))
    with np.errstate(divide="ignore", invalid="ignore"):
        cv = np.where(means > 0, sds / means, np.inf)

    finite = np.isfinite(cv)
    if not finite.any():
        raise TransformFailure("No bin with a finite coefficient of variation")
    th = np.quantile(cv[finite], ol_quant_th)
    keep = cv <= th
    logger.info("Removed %d/%d bins with CV above %.3f", int((~keep).sum()), len(keep), th)
    return ge.loc[keep].reset_index(drop=True)


def zscore(ge: pd.DataFrame, z_wins_th: Optional[float] = 3) -> pd.DataFrame:
    """Log-transform then z-score each bin across cells.

    Values beyond +/- ``z_wins_th`` are winsorized. Bins with no variance
    get a score of 0.
    """
    cells = cell_columns(ge)
    mat = np.log1p(expression_matrix(ge))
    means = mat.mean(axis=1, keepdims=True)
    sds = mat.std(axis=1, keepdims=True)
    with np.errstate(divide="ignore", invalid="ignore"):
        z = np.where(sds > 0, (mat - means) / sds, 0.0)
    if not np.isfinite(z).all():
        raise TransformFailure("Non-finite values after z-score")
    if z_wins_th is not None:
        z = np.clip(z, -z_wins_th, z_wins_th)
    return with_matrix(ge, z, cells)


def _smooth_block(block: pd.DataFrame, wsize: int) -> pd.DataFrame:
    return block.rolling(window=wsize, center=True, min_periods=1).mean()


def smooth_movingw(ge: pd.DataFrame, wsize: Optional[int] = 3, nb_cores: int = 1) -> pd.DataFrame:
    """Centered moving average along each chromosome.

    Windows never span two chromosomes and shrink at chromosome ends.
    A ``wsize`` of None or 1 returns the table unchanged.
    """
    if wsize is None or wsize <= 1:
        return ge
    ge = ge.reset_index(drop=True)
    cells = cell_columns(ge)
    groups = [sub[cells] for _, sub in ge.groupby("chr", sort=False)]
    smoothed = Parallel(n_jobs=nb_cores)(
        delayed(_smooth_block)(block, int(wsize)) for block in groups
    )
    values = pd.concat(smoothed).loc[ge.index]
    return with_matrix(ge, values.to_numpy(dtype=np.float64), cells)
