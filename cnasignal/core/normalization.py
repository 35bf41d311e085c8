"""Library-size normalization."""

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from ..errors import TransformFailure
from ..utils.frames import cell_columns, expression_matrix, with_matrix


def _scale_chunk(chunk: np.ndarray, factors: np.ndarray) -> np.ndarray:
    return chunk * factors[np.newaxis, :]


def norm_ge(ge: pd.DataFrame, nb_cores: int = 1) -> pd.DataFrame:
    """Scale each cell to the median total expression across cells.

    Parameters
    ----------
    ge : pd.DataFrame
        Gene-by-cell (or bin-by-cell) table
    nb_cores : int
        Number of processes; cells are split in as many chunks

    Raises
    ------
    TransformFailure
        If a cell has zero total expression
    """
    cells = cell_columns(ge)
    mat = expression_matrix(ge)
    tot = mat.sum(axis=0)
    if (tot <= 0).any():
        empty = [c for c, t in zip(cells, tot) if t <= 0]
        raise TransformFailure(
            f"{len(empty)} cell(s) with zero total expression, e.g. {empty[:3]}"
        )
    factors = np.median(tot) / tot

    if nb_cores <= 1 or len(cells) < 2:
        return with_matrix(ge, _scale_chunk(mat, factors), cells)

    bounds = np.array_split(np.arange(len(cells)), min(nb_cores, len(cells)))
    chunks = Parallel(n_jobs=nb_cores)(
        delayed(_scale_chunk)(mat[:, idx], factors[idx]) for idx in bounds
    )
    return with_matrix(ge, np.hstack(chunks), cells)
