"""Cell-level quality control.

Computes per-cell depth, mitochondrial counts, detected genes and,
when cell-cycle genes are given, one score per cell-cycle phase.
Filtering then removes low-quality cells from the expression table.
"""

import logging
import re
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd

from ..errors import TransformFailure
from ..utils.frames import cell_columns, expression_matrix

logger = logging.getLogger(__name__)

MITO_PATTERN = r"^MT-"

# Columns of the QC table that are not cell-cycle scores
QC_BASE_COLUMNS = ["cell", "tot", "mito", "exp_genes"]


def phase_column(phase: str) -> str:
    """Column name of a cell-cycle phase score (e.g. "G1.S" -> "g1_s")."""
    return re.sub(r"[^0-9a-zA-Z]+", "_", str(phase)).strip("_").lower()


def phase_columns(qc: pd.DataFrame) -> List[str]:
    """Cell-cycle score columns of a QC table."""
    return [c for c in qc.columns if c not in QC_BASE_COLUMNS]


def qc_cells(ge: pd.DataFrame, cell_cycle: Optional[pd.DataFrame] = None) -> pd.DataFrame:
    """Compute QC metrics for each cell.

    Parameters
    ----------
    ge : pd.DataFrame
        Gene-by-cell counts with a ``symbol`` column
    cell_cycle : pd.DataFrame, optional
        ``symbol``/``phase`` table. Each phase score is the proportion of
        the cell's counts coming from the phase genes.

    Returns
    -------
    pd.DataFrame
        One row per cell: ``cell``, ``tot``, ``mito``, ``exp_genes`` and
        one column per cell-cycle phase

    Raises
    ------
    TransformFailure
        If the table has no ``symbol`` column or no cells
    """
    if "symbol" not in ge.columns:
        raise TransformFailure("QC needs gene symbols in a 'symbol' column")
    cells = cell_columns(ge)
    if not cells:
        raise TransformFailure("Expression table has no cells")

    mat = expression_matrix(ge)
    symbols = ge["symbol"].astype(str)
    mito_mask = symbols.str.upper().str.match(MITO_PATTERN).to_numpy()
    tot = mat.sum(axis=0)

    qc = pd.DataFrame({
        "cell": cells,
        "tot": tot,
        "mito": mat[mito_mask].sum(axis=0),
        "exp_genes": (mat > 0).sum(axis=0),
    })

    if cell_cycle is not None:
        safe_tot = np.where(tot > 0, tot, 1.0)
        for phase, genes in cell_cycle.groupby("phase", sort=True)["symbol"]:
            mask = symbols.isin(set(genes)).to_numpy()
            if not mask.any():
                logger.warning("No gene of cell-cycle phase %s found in the data", phase)
            qc[phase_column(phase)] = mat[mask].sum(axis=0) / safe_tot

    return qc


def qc_filter(
    ge: pd.DataFrame,
    qc: pd.DataFrame,
    max_mito_prop: float = 0.2,
    min_total_exp: float = 0,
    cells_sel: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """Remove low-quality cells and genes not expressed in remaining cells.

    Parameters
    ----------
    ge : pd.DataFrame
        Gene-by-cell counts
    qc : pd.DataFrame
        Output of :func:`qc_cells`
    max_mito_prop : float
        Maximum proportion of mitochondrial counts
    min_total_exp : float
        Minimum total counts
    cells_sel : Iterable[str], optional
        If given, other cells are removed regardless of their metrics

    Returns
    -------
    pd.DataFrame
        Filtered expression table

    Raises
    ------
    TransformFailure
        If no cell passes the filters
    """
    qc = qc.set_index("cell")
    cells = [c for c in cell_columns(ge) if c in qc.index]
    tot = qc.loc[cells, "tot"].to_numpy(dtype=float)
    mito = qc.loc[cells, "mito"].to_numpy(dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        mito_prop = np.where(tot > 0, mito / tot, np.inf)

    keep = (mito_prop <= max_mito_prop) & (tot >= min_total_exp) & (tot > 0)
    if cells_sel is not None:
        selected = {str(c) for c in cells_sel}
        keep &= np.array([c in selected for c in cells], dtype=bool)

    kept = [c for c, k in zip(cells, keep) if k]
    if not kept:
        raise TransformFailure(
            f"No cell passes QC (max_mito_prop={max_mito_prop}, "
            f"min_total_exp={min_total_exp})"
        )

    annot = [c for c in ge.columns if c not in cell_columns(ge)]
    out = ge[annot + kept]
    expressed = out[kept].to_numpy().sum(axis=1) > 0
    out = out.loc[expressed].reset_index(drop=True)
    logger.info(
        "QC filtering kept %d/%d cells and %d/%d genes",
        len(kept), len(cells), int(expressed.sum()), len(expressed),
    )
    return out
