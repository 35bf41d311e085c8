"""Per-invocation run context."""

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import pandas as pd

from ..io.readers import (
    RawInput,
    read_cell_cycle,
    read_cell_info,
    read_expression,
    read_genes_coord,
)
from .config import RunConfig
from ..errors import PipelineStateError
from .keys import DIGEST_LENGTH
from .store import ArtifactStore

TableSource = Union[str, pd.DataFrame]


@dataclass
class RunInputs:
    """External inputs of a run.

    Attributes
    ----------
    data : str, list, DataFrame or mapping
        Expression data: a 10x directory, a list of directories (one per
        sample), a gene-by-cell table, or a list/mapping of tables
    genes_coord : str or DataFrame
        Gene coordinates table with chr/start/end/symbol columns
    cell_cycle : str or DataFrame, optional
        Cell-cycle genes with symbol/phase columns. Enables the
        cell-cycle branch.
    sample_names : Sequence[str], optional
        Names of the samples when ``data`` holds several
    info_df : str or DataFrame, optional
        External per-cell metadata with a ``cell`` column
    cells_sel : Iterable[str], optional
        Only keep these cells during QC filtering. Stored as a frozenset
        of cell names.
    """

    data: Any = None
    genes_coord: Optional[TableSource] = None
    cell_cycle: Optional[TableSource] = None
    sample_names: Optional[Sequence[str]] = None
    info_df: Optional[TableSource] = None
    cells_sel: Optional[Iterable[str]] = None

    def __post_init__(self):
        if self.cells_sel is not None:
            self.cells_sel = frozenset(str(c) for c in self.cells_sel)

    @property
    def multi_sample(self) -> bool:
        """True if ``data`` describes more than one sample."""
        if isinstance(self.data, (list, tuple)):
            return len(self.data) > 1
        if isinstance(self.data, Mapping):
            return len(self.data) > 1
        return False


def table_digest(df: pd.DataFrame) -> str:
    """Short content digest of a small table."""
    payload = df.to_csv(index=False).encode("utf-8")
    return hashlib.sha1(payload).hexdigest()[:DIGEST_LENGTH]


class RunContext:
    """State of one pipeline invocation.

    Holds the configuration, the inputs, the store, and the live stage
    outputs as they flow through the chain. Input tables are read lazily
    and at most once, so a fully cached run never touches the raw data.

    Parameters
    ----------
    config : RunConfig
        Validated run configuration
    inputs : RunInputs
        External inputs
    store : ArtifactStore
        Artifact store shared across runs
    logger : logging.Logger, optional
        Logger used by stages and hooks
    """

    def __init__(
        self,
        config: RunConfig,
        inputs: RunInputs,
        store: ArtifactStore,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.inputs = inputs
        self.store = store
        self.logger = logger or logging.getLogger(__name__)
        self.outputs: Dict[str, Any] = {}
        self.keys: Dict[str, str] = {}
        self.formats: Dict[str, str] = {}
        self._raw: Optional[RawInput] = None
        self._genes_coord: Optional[pd.DataFrame] = None
        self._cell_cycle: Optional[pd.DataFrame] = None
        self._cell_cycle_read = False

    @property
    def prefix(self) -> str:
        return self.config.prefix

    def raw_input(self) -> RawInput:
        """Read the expression data (once)."""
        if self._raw is None:
            self.logger.info("Importing raw data...")
            self._raw = read_expression(self.inputs.data, self.inputs.sample_names)
        return self._raw

    def genes_coord(self) -> pd.DataFrame:
        """Gene coordinates table (read once)."""
        if self._genes_coord is None:
            if self.inputs.genes_coord is None:
                raise PipelineStateError(
                    "Gene coordinates are required to map genes to the genome"
                )
            self._genes_coord = read_genes_coord(self.inputs.genes_coord)
        return self._genes_coord

    def cell_cycle_genes(self) -> Optional[pd.DataFrame]:
        """Cell-cycle gene table, or None when the branch is disabled."""
        if not self._cell_cycle_read:
            if self.inputs.cell_cycle is not None:
                self._cell_cycle = read_cell_cycle(self.inputs.cell_cycle)
            self._cell_cycle_read = True
        return self._cell_cycle

    def cell_info(self) -> Optional[pd.DataFrame]:
        """External per-cell metadata supplied by the caller."""
        if self.inputs.info_df is None:
            return None
        return read_cell_info(self.inputs.info_df)

    def key_params(self) -> Dict[str, Any]:
        """Every parameter that can enter a cache key."""
        params = self.config.key_params()
        genes = self.cell_cycle_genes()
        params["cell_cycle"] = table_digest(genes) if genes is not None else None
        params["cells_sel"] = self.inputs.cells_sel
        return params

    def bind_plan(self, keys: Mapping[str, str], formats: Mapping[str, str]) -> None:
        """Record the cache key and format of every in-scope stage."""
        self.keys = dict(keys)
        self.formats = dict(formats)

    def fetch(self, stage_id: str) -> Any:
        """Output of a stage: the live value, or the stored artifact.

        Used by the result merger and chart hooks for small per-cell
        tables; the loaded value is not kept in ``outputs``.
        """
        if stage_id in self.outputs:
            return self.outputs[stage_id]
        if stage_id not in self.keys:
            raise PipelineStateError(
                f"Stage '{stage_id}' is not part of this run; cannot fetch its output"
            )
        return self.store.load(self.keys[stage_id], self.formats.get(stage_id, "joblib"))

    def live_stages(self) -> List[str]:
        """Stage IDs whose output is currently held in memory."""
        return list(self.outputs)
