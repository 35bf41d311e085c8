"""Pytest configuration and shared fixtures for cnasignal tests."""

import sys
from pathlib import Path

import matplotlib
import pandas as pd
import pytest

matplotlib.use("Agg")

# Add package to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from cnasignal.pipeline import ArtifactStore, RunConfig, RunInputs, Stage, StageGraph
from tests.fixtures import (
    create_cell_cycle,
    create_genes_coord,
    create_mock_counts,
    passthrough,
)


# ============================================================================
# Mock Data Fixtures
# ============================================================================


@pytest.fixture
def counts() -> pd.DataFrame:
    """60 cells, 3 chromosomes of 40 genes, 3 mitochondrial genes."""
    return create_mock_counts()


@pytest.fixture
def genes_coord(counts) -> pd.DataFrame:
    """Coordinates matching the mock counts."""
    return create_genes_coord(counts)


@pytest.fixture
def cell_cycle(counts) -> pd.DataFrame:
    """Cell-cycle genes taken from the mock counts."""
    return create_cell_cycle(counts)


@pytest.fixture
def inputs(counts, genes_coord) -> RunInputs:
    """Single-sample run inputs."""
    return RunInputs(data=counts, genes_coord=genes_coord)


# ============================================================================
# Pipeline Fixtures
# ============================================================================


@pytest.fixture
def store(tmp_path) -> ArtifactStore:
    """Empty artifact store in a temporary directory."""
    return ArtifactStore(tmp_path / "store")


@pytest.fixture
def small_config() -> RunConfig:
    """Configuration sized for the mock data, without plots."""
    config = RunConfig(prefix="run1", make_plots=False)
    config.qc.chrs = ["1", "2", "3"]
    config.reduction.nb_pcs = 5
    config.reduction.comm_k = 10
    return config


@pytest.fixture
def diamond_graph() -> StageGraph:
    """a -> b, a -> c, (b, c) -> d, with one parameter per stage."""
    return StageGraph([
        Stage("a", "A", passthrough("a"), key_segments=("a{pa}",)),
        Stage("b", "B", passthrough("b"), depends_on=("a",), key_segments=("b{pb}",)),
        Stage("c", "C", passthrough("c"), depends_on=("a",), key_segments=("c{pc}",)),
        Stage("d", "D", passthrough("d"), depends_on=("b", "c"), key_segments=("d{pd}",)),
    ])


@pytest.fixture
def sample_run_config(tmp_path) -> Path:
    """Sample YAML run configuration file."""
    import yaml

    config = {
        "cnasignal": {
            "prefix": "out/run1",
            "nb_cores": 2,
            "signal": {"bin_mean_exp": 5, "smooth_wsize": 5},
            "reduction": {"viz": "both", "nb_pcs": 8},
        }
    }

    path = tmp_path / "run.yaml"
    with open(path, "w") as f:
        yaml.dump(config, f)

    return path
