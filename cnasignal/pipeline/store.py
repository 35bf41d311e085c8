"""Key-addressed artifact store on the local filesystem.

Artifacts are published atomically: the blob is written to a temporary
file in the destination directory and renamed into place, so a crash
mid-write never leaves a file that ``exists`` would report.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable, List, Optional, Union

import joblib

from ..errors import ArtifactNotFoundError, CorruptArtifactError

PathLike = Union[str, Path]

FORMAT_SUFFIXES = {
    "joblib": ".joblib",
    "lines": ".txt",
}

logger = logging.getLogger(__name__)


def _write_joblib(data: Any, handle) -> None:
    joblib.dump(data, handle, compress=3)


def _write_lines(data: Iterable[Any], handle) -> None:
    for item in data:
        handle.write(f"{item}\n".encode("utf-8"))


class ArtifactStore:
    """Persists stage outputs under their cache keys.

    Parameters
    ----------
    root : PathLike
        Base directory. Keys may contain a directory part (e.g. "out/run1-qc"),
        which is resolved relative to ``root``.

    Example
    -------
    >>> store = ArtifactStore("cache/")
    >>> store.save("run1-ge-qc", qc_df)
    >>> store.exists("run1-ge-qc")
    True
    >>> qc_df = store.load("run1-ge-qc")
    """

    def __init__(self, root: PathLike = "."):
        self.root = Path(root)

    def path_for(self, key: str, fmt: str = "joblib") -> Path:
        """Filesystem path of an artifact."""
        try:
            suffix = FORMAT_SUFFIXES[fmt]
        except KeyError:
            raise ValueError(f"Unknown artifact format: {fmt}")
        return self.root / f"{key}{suffix}"

    def exists(self, key: str, fmt: str = "joblib") -> bool:
        """Metadata check only; never reads the artifact."""
        return self.path_for(key, fmt).is_file()

    def load(
        self,
        key: str,
        fmt: str = "joblib",
        expected_type: Optional[type] = None,
    ) -> Any:
        """Load an artifact.

        Raises
        ------
        ArtifactNotFoundError
            If no artifact is stored under ``key``
        CorruptArtifactError
            If the blob cannot be deserialized or has an unexpected type
        """
        path = self.path_for(key, fmt)
        if not path.is_file():
            raise ArtifactNotFoundError(key, str(path))

        try:
            if fmt == "lines":
                data: Any = [
                    line for line in path.read_text(encoding="utf-8").splitlines() if line
                ]
            else:
                data = joblib.load(path)
        except Exception as e:
            # Unpickling can fail with almost any exception type
            raise CorruptArtifactError(key, f"{type(e).__name__}: {e}") from e

        if expected_type is not None and not isinstance(data, expected_type):
            raise CorruptArtifactError(
                key,
                f"expected {expected_type.__name__}, found {type(data).__name__}",
            )

        logger.debug("Loaded artifact %s", path)
        return data

    def save(
        self,
        key: str,
        data: Any,
        fmt: str = "joblib",
        overwrite: bool = False,
    ) -> Path:
        """Publish an artifact atomically.

        An existing artifact is kept as is unless ``overwrite`` is True.

        Returns
        -------
        Path
            Path of the published artifact
        """
        path = self.path_for(key, fmt)
        if path.is_file() and not overwrite:
            logger.debug("Artifact %s already exists, keeping it", path)
            return path

        path.parent.mkdir(parents=True, exist_ok=True)
        writer = _write_lines if fmt == "lines" else _write_joblib

        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                writer(data, handle)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Saved artifact %s", path)
        return path

    def remove(self, key: str, fmt: str = "joblib") -> bool:
        """Delete an artifact. Returns True if something was removed."""
        path = self.path_for(key, fmt)
        if path.is_file():
            path.unlink()
            return True
        return False

    def list_keys(self, fmt: str = "joblib") -> List[str]:
        """Keys of all published artifacts of one format under ``root``."""
        suffix = FORMAT_SUFFIXES[fmt]
        if not self.root.exists():
            return []
        keys = []
        for path in sorted(self.root.rglob(f"*{suffix}")):
            if path.name.startswith("."):
                continue
            rel = path.relative_to(self.root).as_posix()
            keys.append(rel[: -len(suffix)])
        return keys
