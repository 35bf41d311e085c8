"""Unit tests for cache keys."""

import pytest

from cnasignal.errors import InvalidConfigurationError
from cnasignal.pipeline import (
    ArtifactStore,
    BranchSelection,
    CacheKeyBuilder,
    RunConfig,
    RunContext,
    RunInputs,
    build_cna_graph,
)
from cnasignal.pipeline.keys import digest_values, format_key_value, render_segment


PARAMS = {"pa": 1, "pb": 2.5, "pc": None, "pd": "x"}


class TestFormatKeyValue:
    """Tests for parameter rendering."""

    def test_integral_float_matches_int(self):
        """3 and 3.0 render the same."""
        assert format_key_value(3.0) == format_key_value(3) == "3"

    def test_float(self):
        assert format_key_value(0.2) == "0.2"

    def test_none(self):
        assert format_key_value(None) is None

    def test_sequences_digest(self):
        """Lists are digested in order, sets regardless of order."""
        assert format_key_value(["1", "2"]) == digest_values(["1", "2"])
        assert format_key_value(["1", "2"]) != format_key_value(["2", "1"])
        assert format_key_value({"b", "a"}) == format_key_value(frozenset(["a", "b"]))
        assert len(format_key_value(("1", "X"))) == 8

    def test_path_characters(self):
        assert format_key_value("a b/c") == "a_b_c"

    def test_unsupported_type(self):
        with pytest.raises(InvalidConfigurationError):
            format_key_value(object())


class TestRenderSegment:
    """Tests for key segments."""

    def test_fixed_segment(self):
        assert render_segment("norm", {}) == "norm"

    def test_parameter_segment(self):
        assert render_segment("bin{bin_mean_exp}", {"bin_mean_exp": 3}) == "bin3"

    def test_none_parameter_drops_segment(self):
        assert render_segment("rmcvq{rm_cv_quant}", {"rm_cv_quant": None}) is None

    def test_missing_parameter(self):
        with pytest.raises(InvalidConfigurationError, match="needs parameter"):
            render_segment("z{z_wins_th}", {})


class TestCacheKeyBuilder:
    """Tests for CacheKeyBuilder."""

    def test_empty_prefix(self, diamond_graph):
        with pytest.raises(InvalidConfigurationError):
            CacheKeyBuilder("", diamond_graph)

    def test_deterministic(self, diamond_graph):
        """Same inputs, same key."""
        builder = CacheKeyBuilder("run1", diamond_graph)
        assert builder.key_for("d", PARAMS) == builder.key_for("d", dict(PARAMS))
        assert CacheKeyBuilder("run1", diamond_graph).keys_for(PARAMS) == builder.keys_for(PARAMS)

    def test_chain_extends_predecessor(self, diamond_graph):
        """Along a single chain, a key extends its predecessor's key."""
        keys = CacheKeyBuilder("run1", diamond_graph).keys_for(PARAMS)
        assert keys["a"] == "run1-a1"
        assert keys["b"] == "run1-a1-b2.5"
        assert keys["b"].startswith(keys["a"] + "-")

    def test_none_parameter_omits_segment(self, diamond_graph):
        keys = CacheKeyBuilder("run1", diamond_graph).keys_for(PARAMS)
        assert keys["c"] == "run1-a1"

    def test_join_embeds_both_branches(self, diamond_graph):
        keys = CacheKeyBuilder("run1", diamond_graph).keys_for(PARAMS)
        assert keys["d"] == "run1-a1-b2.5-dx"

    def test_relevant_parameter_changes_key(self, diamond_graph):
        """Changing a parameter changes the key of its stage and descendants only."""
        builder = CacheKeyBuilder("run1", diamond_graph)
        before = builder.keys_for(PARAMS)
        after = builder.keys_for({**PARAMS, "pb": 4})
        assert before["a"] == after["a"]
        assert before["c"] == after["c"]
        assert before["b"] != after["b"]
        assert before["d"] != after["d"]

    def test_irrelevant_parameter_keeps_key(self, diamond_graph):
        builder = CacheKeyBuilder("run1", diamond_graph)
        assert builder.keys_for(PARAMS) == builder.keys_for({**PARAMS, "nb_cores": 8})

    def test_prefix_with_directory(self, diamond_graph):
        keys = CacheKeyBuilder("out/run1", diamond_graph).keys_for(PARAMS)
        assert keys["a"] == "out/run1-a1"


class TestCnaGraphKeys:
    """Keys of the CNA stage graph."""

    @pytest.fixture
    def params(self, small_config):
        params = small_config.key_params()
        params.update(cell_cycle=None, cells_sel=None)
        return params

    def test_chain_keys(self, params):
        builder = CacheKeyBuilder("run1", build_cna_graph(BranchSelection()))
        keys = builder.keys_for(params)
        assert keys["raw"] == "run1-ge"
        assert keys["qc"] == "run1-ge-qc"
        assert keys["filter"] == "run1-ge-qc-filter-mito0.2-tot0"
        assert keys["bin"].endswith("-norm-bin3")
        assert keys["z"] == keys["bin"] + "-z3"
        assert keys["smooth"] == keys["z"] + "-smooth3"
        assert keys["pca"] == keys["smooth"] + "-pca"

    def test_smoothing_leaves_cell_cycle_branch(self, params):
        """The cell-cycle key depends on QC only."""
        builder = CacheKeyBuilder("run1", build_cna_graph(BranchSelection(cell_cycle=True)))
        before = builder.keys_for(params)
        after = builder.keys_for({**params, "smooth_wsize": 5})
        assert before["cellcycle"] == after["cellcycle"] == "run1-ge-qc-noncycling3"
        assert before["filter"] == after["filter"]
        for sid in ("smooth", "pca", "comm", "tsne", "umap"):
            assert before[sid] != after[sid]

    def test_cell_cycle_changes_pca_key(self, params):
        plain = CacheKeyBuilder("run1", build_cna_graph(BranchSelection())).keys_for(params)
        cc = CacheKeyBuilder(
            "run1", build_cna_graph(BranchSelection(cell_cycle=True))
        ).keys_for(params)
        assert plain["smooth"] == cc["smooth"]
        assert plain["pca"] != cc["pca"]
        assert "noncycling3" in cc["pca"]

    def test_cell_selection_enters_filter_key(self, params):
        builder = CacheKeyBuilder("run1", build_cna_graph(BranchSelection()))
        sel = builder.keys_for({**params, "cells_sel": frozenset(["cell001"])})
        assert sel["qc"] == builder.key_for("qc", params)
        assert sel["filter"] != builder.key_for("filter", params)

    def test_cell_selection_from_generator(self, counts, genes_coord, tmp_path):
        """A one-shot iterable is frozen once and keyed like a list."""
        cells = [c for c in counts.columns if c != "symbol"][:40]
        inputs = RunInputs(data=counts, genes_coord=genes_coord, cells_sel=iter(cells))
        assert inputs.cells_sel == frozenset(cells)
        context = RunContext(RunConfig(), inputs, ArtifactStore(tmp_path))
        assert context.key_params()["cells_sel"] == context.key_params()["cells_sel"]
        assert context.key_params()["cells_sel"] == frozenset(cells)
