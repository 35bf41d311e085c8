"""Unit tests for chart rendering."""

import copy

import pandas as pd

from cnasignal.core import qc_cells
from cnasignal.pipeline import run_cna_pipeline
from cnasignal.viz import plot_communities, plot_embedding, plot_qc_cells


class TestPlots:
    """Tests for the PDF renderers."""

    def test_qc(self, tmp_path, counts, cell_cycle):
        path = plot_qc_cells(qc_cells(counts, cell_cycle), tmp_path / "qc.pdf", max_mito_prop=0.2)
        assert path.stat().st_size > 0

    def test_communities_and_embedding(self, tmp_path):
        comm = pd.DataFrame({"cell": ["a", "b", "c"], "community": ["0", "1", "10"]})
        emb = pd.DataFrame({"cell": ["a", "b", "c"], "tsne1": [0, 1, 2], "tsne2": [2, 1, 0]})
        assert plot_communities(comm, tmp_path / "comm.pdf").exists()
        assert plot_embedding(emb, tmp_path / "emb.pdf", comm=comm).exists()
        assert plot_embedding(emb, tmp_path / "plain.pdf").exists()

    def test_run_with_plots(self, small_config, inputs, store):
        config = copy.deepcopy(small_config)
        config.make_plots = True
        result = run_cna_pipeline(config, inputs, store=store)
        for sid in ("qc", "pca", "comm", "tsne"):
            assert (store.root / f"{result.keys[sid]}.pdf").is_file()
        assert not (store.root / f"{result.keys['z']}.pdf").exists()
