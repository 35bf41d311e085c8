"""Final per-cell result table."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import pandas as pd

from ..errors import EmptyResultError, MalformedInputError

_log = logging.getLogger(__name__)

# Suffix of pipeline-derived info columns that collide with external info
PARS_SUFFIX = "_pars"


@dataclass
class MergeReport:
    """Merged table and how many cells each join dropped."""

    table: pd.DataFrame
    dropped: Dict[str, int] = field(default_factory=dict)


def _check_cell_column(df: pd.DataFrame, name: str) -> None:
    if "cell" not in df.columns:
        raise MalformedInputError(f"{name} table has no 'cell' column")


def combine_cell_info(
    sample_info: Optional[pd.DataFrame],
    external: Optional[pd.DataFrame],
) -> Optional[pd.DataFrame]:
    """Combine pipeline-derived cell info with user-supplied info.

    Only cells present in both tables are kept. External columns keep
    their names; pipeline columns that collide with them get a ``_pars``
    suffix.
    """
    if sample_info is None:
        return external
    if external is None:
        return sample_info
    _check_cell_column(external, "External info")
    return sample_info.merge(
        external, on="cell", how="inner", suffixes=(PARS_SUFFIX, "")
    )


def merge_results(
    qc: pd.DataFrame,
    communities: pd.DataFrame,
    embedding: pd.DataFrame,
    info: Optional[pd.DataFrame] = None,
    logger: Optional[logging.Logger] = None,
) -> MergeReport:
    """Inner-join the per-cell tables on ``cell``.

    Tables are joined in order: QC, communities, embedding, then the
    optional cell info. Cells missing from a table are dropped with a
    warning.

    Raises
    ------
    EmptyResultError
        If no cell is left after the joins
    """
    log = logger or _log
    tables = [("qc", qc), ("communities", communities), ("embedding", embedding)]
    if info is not None:
        tables.append(("info", info))
    for name, table in tables:
        _check_cell_column(table, name)

    merged = qc.assign(cell=qc["cell"].astype(str))
    dropped: Dict[str, int] = {}
    for name, table in tables[1:]:
        table = table.assign(cell=table["cell"].astype(str))
        n_before = len(merged)
        merged = merged.merge(table, on="cell", how="inner")
        dropped[name] = n_before - len(merged)
        if dropped[name]:
            log.warning(
                "%d cell(s) missing from the %s table were dropped", dropped[name], name
            )

    if merged.empty:
        raise EmptyResultError(
            "Merging QC, communities and embedding produced no rows; "
            "cell identities do not match between stages"
        )
    return MergeReport(table=merged.reset_index(drop=True), dropped=dropped)
