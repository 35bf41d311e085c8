"""Unit tests for raw-data readers."""

import numpy as np
import pandas as pd
import pytest
from scipy import io as scipy_io
from scipy import sparse

from cnasignal.errors import MalformedInputError
from cnasignal.io import (
    read_cell_cycle,
    read_cell_info,
    read_expression,
    merge_samples,
    read_genes_coord,
    read_mtx,
)


def write_10x(directory, mat, genes, barcodes):
    directory.mkdir(parents=True, exist_ok=True)
    scipy_io.mmwrite(str(directory / "matrix.mtx"), sparse.coo_matrix(mat))
    pd.DataFrame({"id": [f"ENSG{i}" for i in range(len(genes))], "symbol": genes}).to_csv(
        directory / "genes.tsv", sep="\t", header=False, index=False
    )
    pd.Series(barcodes).to_csv(directory / "barcodes.tsv", sep="\t", header=False, index=False)
    return directory


class TestReadMtx:
    """Tests for 10x directories."""

    def test_read(self, tmp_path):
        mat = np.array([[1, 0, 2], [0, 3, 0]])
        path = write_10x(tmp_path / "s1", mat, ["A", "B"], ["c1", "c2", "c3"])
        df = read_mtx(path)
        assert list(df.columns) == ["symbol", "c1", "c2", "c3"]
        assert df["c2"].tolist() == [0, 3]

    def test_duplicated_symbols_summed(self, tmp_path):
        mat = np.array([[1, 0], [2, 5]])
        df = read_mtx(write_10x(tmp_path / "s1", mat, ["A", "A"], ["c1", "c2"]))
        assert len(df) == 1
        assert df[["c1", "c2"]].iloc[0].tolist() == [3, 5]

    def test_dimension_mismatch(self, tmp_path):
        mat = np.array([[1, 0], [2, 5]])
        path = write_10x(tmp_path / "s1", mat, ["A", "B"], ["c1", "c2", "c3"])
        with pytest.raises(MalformedInputError, match="barcodes"):
            read_mtx(path)

    def test_missing_file(self, tmp_path):
        (tmp_path / "empty").mkdir()
        with pytest.raises(MalformedInputError):
            read_mtx(tmp_path / "empty")


class TestReadExpression:
    """Tests for read_expression."""

    def test_single_table(self, counts):
        raw = read_expression(counts)
        assert raw.sample_info is None
        pd.testing.assert_frame_equal(raw.counts, counts)

    def test_table_file(self, tmp_path, counts):
        path = tmp_path / "counts.tsv"
        counts.to_csv(path, sep="\t", index=False)
        raw = read_expression(str(path))
        assert raw.counts.shape == counts.shape

    def test_gene_index(self):
        df = pd.DataFrame({"c1": [1, 2], "c2": [0, 4]}, index=pd.Index(["A", "B"]))
        raw = read_expression(df)
        assert raw.counts["symbol"].tolist() == ["A", "B"]

    def test_merge_samples(self):
        s1 = pd.DataFrame({"symbol": ["A", "B"], "c1": [1, 2]})
        s2 = pd.DataFrame({"symbol": ["B", "C"], "c1": [3, 4]})
        raw = read_expression([s1, s2], sample_names=["x", "y"])
        counts = raw.counts.set_index("symbol")
        assert list(counts.columns) == ["x_c1", "y_c1"]
        assert counts.loc["A", "y_c1"] == 0
        assert counts.loc["C", "y_c1"] == 4
        assert raw.sample_info.to_dict("list") == {"cell": ["x_c1", "y_c1"], "sample": ["x", "y"]}

    def test_mapping(self):
        s1 = pd.DataFrame({"symbol": ["A"], "c1": [1]})
        raw = read_expression({"x": s1, "y": s1})
        assert raw.sample_info["sample"].tolist() == ["x", "y"]

    def test_duplicate_sample_names(self):
        s1 = pd.DataFrame({"symbol": ["A"], "c1": [1]})
        with pytest.raises(MalformedInputError, match="unique"):
            read_expression([s1, s1], sample_names=["x", "x"])

    def test_na_values(self):
        df = pd.DataFrame({"symbol": ["A", "B"], "c1": [1.0, np.nan]})
        with pytest.raises(MalformedInputError, match="NA"):
            read_expression(df)

    def test_na_values_multi_sample(self):
        s1 = pd.DataFrame({"symbol": ["A", "B"], "c1": [1.0, np.nan]})
        s2 = pd.DataFrame({"symbol": ["B", "C"], "c1": [3.0, 4.0]})
        with pytest.raises(MalformedInputError, match="NA"):
            read_expression([s1, s2], sample_names=["a", "b"])

    def test_merge_samples_rejects_na(self):
        s1 = pd.DataFrame({"symbol": ["A"], "c1": [1.0]})
        s2 = pd.DataFrame({"symbol": ["A"], "c1": [np.nan]})
        with pytest.raises(MalformedInputError, match="Sample b has NA"):
            merge_samples([s1, s2], ["a", "b"])

    def test_merge_no_samples(self):
        with pytest.raises(MalformedInputError, match="No samples"):
            merge_samples([], [])

    def test_empty_sample_list(self):
        with pytest.raises(MalformedInputError, match="No expression data"):
            read_expression([])

    def test_non_numeric(self):
        df = pd.DataFrame({"symbol": ["A"], "c1": ["x"]})
        with pytest.raises(MalformedInputError, match="Non-numeric"):
            read_expression(df)

    def test_no_data(self):
        with pytest.raises(MalformedInputError):
            read_expression(None)


class TestSideTables:
    """Tests for coordinates, cell-cycle genes and cell info."""

    def test_genes_coord(self, tmp_path):
        path = tmp_path / "genes.tsv"
        path.write_text("chr start end symbol\nchr1 100 200 A\nchrX 5 10 B\n")
        df = read_genes_coord(str(path))
        assert df["chr"].tolist() == ["1", "X"]
        assert df["start"].dtype == np.int64

    def test_genes_coord_missing_column(self):
        with pytest.raises(MalformedInputError, match="symbol"):
            read_genes_coord(pd.DataFrame({"chr": ["1"], "start": [1], "end": [2]}))

    def test_cell_cycle(self, tmp_path):
        path = tmp_path / "cc.csv"
        path.write_text("symbol,phase,extra\nMCM5,G1.S,1\nCDK1,G2.M,2\n")
        df = read_cell_cycle(str(path))
        assert list(df.columns) == ["symbol", "phase"]

    def test_cell_info(self):
        df = read_cell_info(pd.DataFrame({"cell": [1, 2], "type": ["T", "B"]}))
        assert df["cell"].tolist() == ["1", "2"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_cell_info(str(tmp_path / "missing.tsv"))
