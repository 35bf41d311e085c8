"""Run configuration for the CNA signal pipeline.

All numeric stage parameters live in small dataclass sections that can be
loaded from YAML and overridden from the command line.
"""

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import yaml

from ..errors import InvalidConfigurationError

DEFAULT_CHRS = [str(c) for c in range(1, 23)] + ["X", "Y"]

VIZ_METHODS = ("tsne", "umap", "both")


class EmbeddingMethod(str, Enum):
    """2D embedding path(s) of a run."""

    TSNE = "tsne"
    UMAP = "umap"
    BOTH = "both"

    @classmethod
    def parse(cls, value: Union[str, "EmbeddingMethod", None]) -> "EmbeddingMethod":
        """Parse a configuration value.

        Raises
        ------
        InvalidConfigurationError
            If no method, or an unknown one, is given
        """
        if isinstance(value, cls):
            return value
        if value is None or not str(value).strip() or str(value).lower() == "none":
            raise InvalidConfigurationError(
                "No embedding method selected: choose 'tsne', 'umap' or 'both'"
            )
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidConfigurationError(
                f"Unknown embedding method {value!r}: choose 'tsne', 'umap' or 'both'"
            )

    @property
    def stage_ids(self) -> Sequence[str]:
        """Embedding stages this selection runs."""
        if self is EmbeddingMethod.BOTH:
            return ("tsne", "umap")
        return (self.value,)


@dataclass
class QCParams:
    """Cell filtering thresholds.

    Attributes
    ----------
    max_mito_prop : float
        Maximum proportion of mitochondrial RNA per cell
    min_total_exp : float
        Minimum total expression per cell
    chrs : List[str]
        Chromosomes kept when mapping genes to coordinates
    """

    max_mito_prop: float = 0.2
    min_total_exp: float = 0
    chrs: List[str] = field(default_factory=lambda: list(DEFAULT_CHRS))


@dataclass
class SignalParams:
    """Binning, outlier removal, scaling and smoothing.

    Attributes
    ----------
    bin_mean_exp : float
        Minimum mean expression of a bin
    rm_cv_quant : float, optional
        Quantile above which high-CV bins are removed (None disables)
    z_wins_th : float
        Z-score winsorization threshold
    smooth_wsize : int
        Moving window size for smoothing
    """

    bin_mean_exp: float = 3
    rm_cv_quant: Optional[float] = None
    z_wins_th: float = 3
    smooth_wsize: int = 3


@dataclass
class CellCycleParams:
    """Cycling-cell detection.

    Attributes
    ----------
    cc_sd_th : float
        Number of standard deviations defining cycling cells
    """

    cc_sd_th: float = 3


@dataclass
class ReductionParams:
    """PCA, community detection and embedding.

    Attributes
    ----------
    nb_pcs : int
        Number of principal components used downstream of PCA
    comm_k : int
        Number of nearest neighbors of the KNN graph
    viz : str
        Embedding method ("tsne", "umap" or "both")
    seed : int
        Random seed for community detection and embeddings
    """

    nb_pcs: int = 10
    comm_k: int = 100
    viz: str = "tsne"
    seed: int = 999


@dataclass
class RunConfig:
    """Master configuration for one pipeline invocation.

    Attributes
    ----------
    prefix : str
        Namespace (path prefix) of every artifact of the run
    use_cache : bool
        Reuse artifacts of previous runs
    nb_cores : int
        Worker count for parallel-capable stages
    make_plots : bool
        Render PDF charts after stages that run
    pause_after_qc : bool
        Stop after QC and return the QC table
    gene_info : bool
        Produce the per-gene summary table after normalization
    qc, signal, cell_cycle, reduction
        Stage parameter sections

    Example
    -------
    >>> config = RunConfig.from_yaml(Path("run.yaml"))
    >>> config.signal.smooth_wsize = 5
    >>> config.validate()
    """

    prefix: str = "scCNAutils_out"
    use_cache: bool = True
    nb_cores: int = 1
    make_plots: bool = True
    pause_after_qc: bool = False
    gene_info: bool = True
    qc: QCParams = field(default_factory=QCParams)
    signal: SignalParams = field(default_factory=SignalParams)
    cell_cycle: CellCycleParams = field(default_factory=CellCycleParams)
    reduction: ReductionParams = field(default_factory=ReductionParams)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunConfig":
        """Build configuration from a (possibly partial) dictionary."""
        data = dict(data or {})
        if "cnasignal" in data:
            data = dict(data["cnasignal"] or {})

        sections = {
            "qc": QCParams,
            "signal": SignalParams,
            "cell_cycle": CellCycleParams,
            "reduction": ReductionParams,
        }
        kwargs: Dict[str, Any] = {}
        for name, section_cls in sections.items():
            section = data.pop(name, None) or {}
            known = {f.name for f in fields(section_cls)}
            unknown = set(section) - known
            if unknown:
                raise InvalidConfigurationError(
                    f"Unknown option(s) in section '{name}': {sorted(unknown)}"
                )
            kwargs[name] = section_cls(**section)

        top_level = {f.name for f in fields(cls)} - set(sections)
        unknown = set(data) - top_level
        if unknown:
            raise InvalidConfigurationError(f"Unknown option(s): {sorted(unknown)}")
        kwargs.update(data)
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "RunConfig":
        """Load configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    def key_params(self) -> Dict[str, Any]:
        """Flat view of every stage parameter, as used by cache keys."""
        return {
            "max_mito_prop": self.qc.max_mito_prop,
            "min_total_exp": self.qc.min_total_exp,
            "chrs": tuple(str(c) for c in self.qc.chrs),
            "bin_mean_exp": self.signal.bin_mean_exp,
            "rm_cv_quant": self.signal.rm_cv_quant,
            "z_wins_th": self.signal.z_wins_th,
            "smooth_wsize": self.signal.smooth_wsize,
            "cc_sd_th": self.cell_cycle.cc_sd_th,
            "nb_pcs": self.reduction.nb_pcs,
            "comm_k": self.reduction.comm_k,
            "seed": self.reduction.seed,
        }

    def validate(self) -> None:
        """Check ranges and enumerations.

        Raises
        ------
        InvalidConfigurationError
            On the first inconsistent option
        """
        errors = []
        if not self.prefix or not str(self.prefix).strip():
            errors.append("prefix must be a non-empty string")
        if self.nb_cores < 1:
            errors.append(f"nb_cores must be >= 1, got {self.nb_cores}")
        if not 0 <= self.qc.max_mito_prop <= 1:
            errors.append(
                f"max_mito_prop must be in [0, 1], got {self.qc.max_mito_prop}"
            )
        if self.qc.min_total_exp < 0:
            errors.append(f"min_total_exp must be >= 0, got {self.qc.min_total_exp}")
        if not self.qc.chrs:
            errors.append("chrs must list at least one chromosome")
        if self.signal.bin_mean_exp <= 0:
            errors.append(f"bin_mean_exp must be > 0, got {self.signal.bin_mean_exp}")
        if self.signal.rm_cv_quant is not None and not 0 < self.signal.rm_cv_quant <= 1:
            errors.append(
                f"rm_cv_quant must be in (0, 1] or null, got {self.signal.rm_cv_quant}"
            )
        if self.signal.z_wins_th <= 0:
            errors.append(f"z_wins_th must be > 0, got {self.signal.z_wins_th}")
        if int(self.signal.smooth_wsize) != self.signal.smooth_wsize or self.signal.smooth_wsize < 1:
            errors.append(
                f"smooth_wsize must be a positive integer, got {self.signal.smooth_wsize}"
            )
        if self.cell_cycle.cc_sd_th <= 0:
            errors.append(f"cc_sd_th must be > 0, got {self.cell_cycle.cc_sd_th}")
        if self.reduction.nb_pcs < 2:
            errors.append(f"nb_pcs must be >= 2, got {self.reduction.nb_pcs}")
        if self.reduction.comm_k < 2:
            errors.append(f"comm_k must be >= 2, got {self.reduction.comm_k}")
        try:
            EmbeddingMethod.parse(self.reduction.viz)
        except InvalidConfigurationError as e:
            errors.append(f"viz: {e}")
        if errors:
            raise InvalidConfigurationError("; ".join(errors))
