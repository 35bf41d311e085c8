"""Utility functions for cnasignal.

Provides helpers for gene-by-cell expression tables.
"""

from .frames import (
    ANNOTATION_COLUMNS,
    COORD_COLUMNS,
    annotation_columns,
    cell_columns,
    expression_matrix,
    has_coordinates,
    with_matrix,
)

__all__ = [
    "ANNOTATION_COLUMNS",
    "COORD_COLUMNS",
    "annotation_columns",
    "cell_columns",
    "expression_matrix",
    "has_coordinates",
    "with_matrix",
]
