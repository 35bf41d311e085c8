"""Detection of cycling cells from cell-cycle scores."""

import logging
from typing import List

import pandas as pd

from ..errors import TransformFailure
from .qc import phase_columns

logger = logging.getLogger(__name__)


def cycling_thresholds(qc: pd.DataFrame, sd_th: float = 3) -> pd.Series:
    """Score above which a cell is called cycling, for each phase."""
    cols = phase_columns(qc)
    if not cols:
        raise TransformFailure("QC table has no cell-cycle scores")
    return qc[cols].mean() + sd_th * qc[cols].std()


def define_cycling_cells(qc: pd.DataFrame, sd_th: float = 3) -> List[str]:
    """Names of the non-cycling cells.

    A cell is cycling if any of its phase scores is more than ``sd_th``
    standard deviations above the mean score of that phase.
    """
    th = cycling_thresholds(qc, sd_th)
    cycling = (qc[th.index] > th).any(axis=1)
    noncycling = qc.loc[~cycling, "cell"].astype(str).tolist()
    logger.info("%d/%d cells called cycling", int(cycling.sum()), len(qc))
    if not noncycling:
        raise TransformFailure("Every cell was called cycling")
    return noncycling
