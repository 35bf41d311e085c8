"""Raw-data readers for single-cell expression counts.

Supports 10x-style Matrix Market directories, plain gene-by-cell tables,
and several samples merged into one table. Gene coordinates, cell-cycle
genes, and per-cell metadata are read from delimited text tables.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy import io as scipy_io
from scipy import sparse

from ..errors import MalformedInputError
from ..utils.frames import cell_columns

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

MATRIX_NAMES = ("matrix.mtx", "matrix.mtx.gz")
GENE_NAMES = ("genes.tsv", "genes.tsv.gz", "features.tsv", "features.tsv.gz")
BARCODE_NAMES = ("barcodes.tsv", "barcodes.tsv.gz")


@dataclass
class RawInput:
    """Expression counts plus optional sample membership.

    Attributes
    ----------
    counts : pd.DataFrame
        Gene-by-cell counts with a leading ``symbol`` column
    sample_info : pd.DataFrame, optional
        ``cell``/``sample`` table when several samples were merged
    """

    counts: pd.DataFrame
    sample_info: Optional[pd.DataFrame] = None


def _find_file(directory: Path, candidates: Sequence[str]) -> Path:
    for name in candidates:
        path = directory / name
        if path.exists():
            return path
    raise MalformedInputError(
        f"None of {list(candidates)} found in {directory}"
    )


def _read_table(source: Union[PathLike, pd.DataFrame], what: str) -> pd.DataFrame:
    """Read a delimited table (comma for .csv, whitespace otherwise)."""
    if isinstance(source, pd.DataFrame):
        return source.copy()
    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"{what} file not found: {path}")
    name = path.name.lower()
    if name.endswith(".csv") or name.endswith(".csv.gz"):
        return pd.read_csv(path)
    return pd.read_csv(path, sep=r"\s+")


def _require_columns(df: pd.DataFrame, columns: Sequence[str], what: str) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise MalformedInputError(f"{what} is missing columns: {missing}")


def read_mtx(path: PathLike) -> pd.DataFrame:
    """Read a 10x directory into a gene-by-cell table.

    Duplicated gene symbols are summed.

    Parameters
    ----------
    path : PathLike
        Directory with ``matrix.mtx``, ``genes.tsv`` (or ``features.tsv``)
        and ``barcodes.tsv``, optionally gzipped.

    Returns
    -------
    pd.DataFrame
        Table with a ``symbol`` column and one column per barcode

    Raises
    ------
    MalformedInputError
        If a file is missing or the dimensions disagree
    """
    directory = Path(path)
    if not directory.is_dir():
        raise MalformedInputError(f"Not a 10x directory: {directory}")

    matrix_path = _find_file(directory, MATRIX_NAMES)
    genes_path = _find_file(directory, GENE_NAMES)
    barcodes_path = _find_file(directory, BARCODE_NAMES)

    try:
        mat = scipy_io.mmread(str(matrix_path))
    except (ValueError, OSError) as e:
        raise MalformedInputError(f"Cannot parse {matrix_path}: {e}") from e
    genes = pd.read_csv(genes_path, sep="\t", header=None, dtype=str)
    barcodes = pd.read_csv(barcodes_path, sep="\t", header=None, dtype=str)[0].tolist()

    n_genes, n_cells = mat.shape
    if n_genes != len(genes) or n_cells != len(barcodes):
        raise MalformedInputError(
            f"Matrix is {n_genes}x{n_cells} but found {len(genes)} genes "
            f"and {len(barcodes)} barcodes in {directory}"
        )

    dense = mat.toarray() if sparse.issparse(mat) else np.asarray(mat)
    symbols = genes[1] if genes.shape[1] > 1 else genes[0]
    df = pd.DataFrame(dense, columns=barcodes)
    df.insert(0, "symbol", symbols.to_numpy())
    if df["symbol"].duplicated().any():
        df = df.groupby("symbol", sort=False, as_index=False).sum()
    logger.info("Read %d genes x %d cells from %s", len(df), n_cells, directory)
    return df


def _as_counts_table(df: pd.DataFrame, source: str) -> pd.DataFrame:
    """Normalize a user table to the ``symbol`` + cells layout."""
    if "symbol" not in df.columns:
        if isinstance(df.index, pd.RangeIndex):
            raise MalformedInputError(
                f"Expression table from {source} needs a 'symbol' column or gene index"
            )
        df = df.rename_axis("symbol").reset_index()
    cells = cell_columns(df)
    if not cells:
        raise MalformedInputError(f"Expression table from {source} has no cell columns")
    non_numeric = [c for c in cells if not pd.api.types.is_numeric_dtype(df[c])]
    if non_numeric:
        raise MalformedInputError(
            f"Non-numeric cell columns in {source}: {non_numeric[:5]}"
        )
    if df[cells].isna().to_numpy().any():
        raise MalformedInputError(f"Input data from {source} has NA values")
    return df[["symbol"] + cells].reset_index(drop=True)


def _read_one(source: Any, label: str) -> pd.DataFrame:
    if isinstance(source, pd.DataFrame):
        return _as_counts_table(source.copy(), label)
    path = Path(source)
    if path.is_dir():
        return read_mtx(path)
    if not path.exists():
        raise FileNotFoundError(f"Expression data not found: {path}")
    return _as_counts_table(_read_table(path, "Expression"), str(path))


def merge_samples(
    samples: Sequence[pd.DataFrame],
    sample_names: Sequence[str],
) -> RawInput:
    """Merge per-sample tables into one.

    Cell barcodes are prefixed with the sample name; genes missing from a
    sample get zero counts.

    Parameters
    ----------
    samples : Sequence[pd.DataFrame]
        Per-sample tables with a ``symbol`` column
    sample_names : Sequence[str]
        One name per sample

    Returns
    -------
    RawInput
        Merged counts and the ``cell``/``sample`` table
    """
    if not samples:
        raise MalformedInputError("No samples to merge")
    if len(samples) != len(sample_names):
        raise MalformedInputError(
            f"{len(samples)} samples but {len(sample_names)} sample names"
        )
    if len(set(sample_names)) != len(sample_names):
        raise MalformedInputError(f"Sample names must be unique: {list(sample_names)}")

    merged: Optional[pd.DataFrame] = None
    info_parts: List[pd.DataFrame] = []
    for df, name in zip(samples, sample_names):
        cells = cell_columns(df)
        if df[cells].isna().to_numpy().any():
            raise MalformedInputError(f"Sample {name} has NA values")
        renamed = {c: f"{name}_{c}" for c in cells}
        df = df.rename(columns=renamed)
        info_parts.append(pd.DataFrame({"cell": list(renamed.values()), "sample": name}))
        merged = df if merged is None else merged.merge(df, on="symbol", how="outer")

    # genes absent from a sample
    merged = merged.fillna(0)
    info = pd.concat(info_parts, ignore_index=True)
    logger.info("Merged %d samples: %d genes x %d cells", len(samples), len(merged), len(info))
    return RawInput(counts=merged.reset_index(drop=True), sample_info=info)


def read_expression(data: Any, sample_names: Optional[Sequence[str]] = None) -> RawInput:
    """Read expression data from any supported source.

    Parameters
    ----------
    data : path, DataFrame, list or mapping
        One sample (10x directory, table file, DataFrame) or several
        (list of those, or mapping of sample name to those)
    sample_names : Sequence[str], optional
        Sample names for a list of samples. Guessed from the directory
        names (or numbered) when missing.

    Returns
    -------
    RawInput
        Counts, plus sample info when several samples were merged

    Raises
    ------
    MalformedInputError
        If the data is structurally invalid or contains NA values
    """
    if data is None:
        raise MalformedInputError("No expression data supplied")

    if isinstance(data, Mapping):
        names = [str(n) for n in data.keys()]
        sources = list(data.values())
    elif isinstance(data, (list, tuple)):
        sources = list(data)
        if sample_names is None:
            if all(isinstance(s, (str, Path)) for s in sources):
                logger.warning("sample_names is missing, guessing them from data paths")
                names = [Path(s).name for s in sources]
            else:
                names = [f"sample{i + 1}" for i in range(len(sources))]
        else:
            names = [str(n) for n in sample_names]
    else:
        sources = [data]
        names = [str(sample_names[0])] if sample_names else ["sample1"]

    if not sources:
        raise MalformedInputError("No expression data supplied")

    tables = [_read_one(src, name) for src, name in zip(sources, names)]

    if len(tables) > 1:
        raw = merge_samples(tables, names)
    else:
        raw = RawInput(counts=tables[0])

    if raw.counts[cell_columns(raw.counts)].isna().to_numpy().any():
        raise MalformedInputError("Input data has NA values")
    return raw


def read_genes_coord(source: Union[PathLike, pd.DataFrame]) -> pd.DataFrame:
    """Read gene coordinates (``chr``, ``start``, ``end``, ``symbol``)."""
    df = _read_table(source, "Gene coordinates")
    _require_columns(df, ["chr", "start", "end", "symbol"], "Gene coordinates")
    df = df.copy()
    df["chr"] = df["chr"].astype(str).str.replace("^chr", "", regex=True)
    df["start"] = pd.to_numeric(df["start"], errors="raise").astype(np.int64)
    df["end"] = pd.to_numeric(df["end"], errors="raise").astype(np.int64)
    return df


def read_cell_cycle(source: Union[PathLike, pd.DataFrame]) -> pd.DataFrame:
    """Read cell-cycle genes (``symbol``, ``phase``)."""
    df = _read_table(source, "Cell-cycle genes")
    _require_columns(df, ["symbol", "phase"], "Cell-cycle genes")
    return df[["symbol", "phase"]].astype(str).reset_index(drop=True)


def read_cell_info(source: Union[PathLike, pd.DataFrame]) -> pd.DataFrame:
    """Read per-cell metadata keyed by a ``cell`` column."""
    df = _read_table(source, "Cell info")
    _require_columns(df, ["cell"], "Cell info")
    df["cell"] = df["cell"].astype(str)
    return df

