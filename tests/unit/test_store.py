"""Unit tests for the artifact store."""

import pandas as pd
import pytest

from cnasignal.errors import ArtifactNotFoundError, CorruptArtifactError
from cnasignal.pipeline import store as store_module
from cnasignal.pipeline.store import ArtifactStore


class TestArtifactStore:
    """Tests for ArtifactStore."""

    def test_save_and_load(self, store):
        df = pd.DataFrame({"cell": ["a", "b"], "tot": [10, 20]})
        path = store.save("run1-ge-qc", df)
        assert path.name == "run1-ge-qc.joblib"
        assert store.exists("run1-ge-qc")
        pd.testing.assert_frame_equal(store.load("run1-ge-qc"), df)

    def test_missing(self, store):
        assert not store.exists("run1-ge")
        with pytest.raises(ArtifactNotFoundError) as excinfo:
            store.load("run1-ge")
        assert excinfo.value.key == "run1-ge"

    def test_lines_format(self, store):
        path = store.save("run1-ge-qc-noncycling3", ["cell1", "cell2"], fmt="lines")
        assert path.suffix == ".txt"
        assert path.read_text() == "cell1\ncell2\n"
        assert store.load("run1-ge-qc-noncycling3", fmt="lines") == ["cell1", "cell2"]
        assert not store.exists("run1-ge-qc-noncycling3")

    def test_prefix_directory(self, store):
        store.save("out/run1-ge", [1, 2, 3])
        assert (store.root / "out" / "run1-ge.joblib").is_file()
        assert store.list_keys() == ["out/run1-ge"]

    def test_existing_artifact_kept(self, store):
        """Saving under an existing key keeps the first artifact."""
        store.save("k", [1])
        store.save("k", [2])
        assert store.load("k") == [1]
        store.save("k", [2], overwrite=True)
        assert store.load("k") == [2]

    def test_corrupt_blob(self, store):
        path = store.path_for("k")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"not a joblib file")
        assert store.exists("k")
        with pytest.raises(CorruptArtifactError):
            store.load("k")

    def test_unexpected_type(self, store):
        store.save("k", [1, 2])
        with pytest.raises(CorruptArtifactError, match="expected DataFrame"):
            store.load("k", expected_type=pd.DataFrame)

    def test_crash_during_save_leaves_nothing(self, store, monkeypatch):
        """A writer failing mid-write publishes no artifact and no temp file."""

        def crashing_writer(data, handle):
            handle.write(b"partial")
            raise KeyboardInterrupt("simulated crash")

        monkeypatch.setattr(store_module, "_write_joblib", crashing_writer)
        with pytest.raises(KeyboardInterrupt):
            store.save("run1-ge", pd.DataFrame({"a": [1]}))

        assert not store.exists("run1-ge")
        assert list(store.root.iterdir()) == []

    def test_crash_during_overwrite_keeps_old(self, store, monkeypatch):
        store.save("k", [1])

        def crashing_writer(data, handle):
            raise OSError("disk full")

        monkeypatch.setattr(store_module, "_write_joblib", crashing_writer)
        with pytest.raises(OSError):
            store.save("k", [2], overwrite=True)
        assert store.load("k") == [1]
        assert store.list_keys() == ["k"]

    def test_remove(self, store):
        store.save("k", [1])
        assert store.remove("k")
        assert not store.remove("k")
        assert not store.exists("k")

    def test_unknown_format(self, store):
        with pytest.raises(ValueError):
            store.path_for("k", fmt="parquet")

    def test_list_keys_empty_root(self, tmp_path):
        assert ArtifactStore(tmp_path / "missing").list_keys() == []
