"""Input readers and run records."""

from .logging import log_json, log_yaml, read_json_lines, write_dataframe
from .readers import (
    RawInput,
    merge_samples,
    read_cell_cycle,
    read_cell_info,
    read_expression,
    read_genes_coord,
    read_mtx,
)

__all__ = [
    "log_json",
    "log_yaml",
    "read_json_lines",
    "write_dataframe",
    "RawInput",
    "merge_samples",
    "read_cell_cycle",
    "read_cell_info",
    "read_expression",
    "read_genes_coord",
    "read_mtx",
]
