"""Test fixtures and synthetic data generators."""

from .graphs import passthrough, random_cache, random_dag
from .mock_counts import create_cell_cycle, create_genes_coord, create_mock_counts

__all__ = [
    "passthrough",
    "random_cache",
    "random_dag",
    "create_cell_cycle",
    "create_genes_coord",
    "create_mock_counts",
]
