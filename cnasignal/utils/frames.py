"""Helpers for gene-by-cell expression tables.

Expression tables are pandas DataFrames with one row per gene (or bin)
and one column per cell, plus annotation columns: ``symbol`` before the
genomic mapping, ``chr``/``start``/``end`` after it.
"""

from __future__ import annotations

from typing import List

import numpy as np
import pandas as pd

ANNOTATION_COLUMNS = ("symbol", "chr", "start", "end")
COORD_COLUMNS = ("chr", "start", "end")


def cell_columns(df: pd.DataFrame) -> List[str]:
    """Names of the cell columns of an expression table."""
    return [c for c in df.columns if c not in ANNOTATION_COLUMNS]


def annotation_columns(df: pd.DataFrame) -> List[str]:
    """Names of the annotation columns present in an expression table."""
    return [c for c in df.columns if c in ANNOTATION_COLUMNS]


def expression_matrix(df: pd.DataFrame) -> np.ndarray:
    """Cell columns as a float64 gene-by-cell array."""
    return df[cell_columns(df)].to_numpy(dtype=np.float64)


def with_matrix(df: pd.DataFrame, values: np.ndarray, cells: List[str]) -> pd.DataFrame:
    """Rebuild an expression table from its annotation and a new matrix."""
    annot = df[annotation_columns(df)].reset_index(drop=True)
    mat = pd.DataFrame(values, columns=cells)
    return pd.concat([annot, mat], axis=1)


def has_coordinates(df: pd.DataFrame) -> bool:
    """True if the table carries chr/start/end columns."""
    return all(c in df.columns for c in COORD_COLUMNS)
