"""Structured run records: JSON lines and YAML documents."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

PathLike = Union[str, Path]


def _prepare_log_destination(log_path: PathLike) -> Path:
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def log_json(log_path: PathLike, record: dict[str, Any]) -> None:
    """Append a JSON line to log_path.

    Parameters
    ----------
    log_path : PathLike
        Path to the JSON-lines file.
    record : dict
        Dictionary to serialize. Values JSON cannot encode are written
        with ``str``.
    """
    path = _prepare_log_destination(log_path)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record, default=str))
        handle.write("\n")


def read_json_lines(log_path: PathLike) -> List[Dict[str, Any]]:
    """Records previously appended with :func:`log_json`."""
    path = Path(log_path)
    if not path.is_file():
        return []
    with path.open(encoding="utf-8") as handle:
        return [json.loads(line) for line in handle if line.strip()]


def log_yaml(
    log_path: PathLike | None,
    record: dict[str, Any],
    *,
    logger: logging.Logger | None = None,
) -> None:
    """Append a YAML document to log_path, or to ``logger`` if given."""
    yaml_text = yaml.safe_dump(record, sort_keys=False).rstrip("\n")
    message = f"{yaml_text}\n---"
    if logger is not None:
        logger.info("%s", message)
        return

    path = _prepare_log_destination(log_path)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(message)
        handle.write("\n")


def write_dataframe(df, path: PathLike, *, index: bool = False, sep: str = "\t") -> Path:
    """Write a DataFrame as delimited text, creating the parent directory."""
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=index, sep=sep)
    return output_path
