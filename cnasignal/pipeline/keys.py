"""Deterministic cache keys for stage outputs.

A key is the run prefix followed by the rendered segments of every stage
in the lineage of the target stage, in execution order. For a stage with a
single chain of ancestors the key is therefore a strict extension of its
predecessor's key, and for a stage that joins several branches every
branch's segments are embedded. Identical keys imply identical effective
parameters along the whole ancestry.

Example
-------
>>> builder = CacheKeyBuilder("run1", graph)  # raw -> qc -> bin
>>> builder.key_for("bin", {"bin_mean_exp": 3})
'run1-ge-qc-bin3'
"""

import hashlib
from string import Formatter
from typing import Any, Dict, Iterable, Mapping, Optional

from ..errors import InvalidConfigurationError
from .stage import StageGraph

DIGEST_LENGTH = 8


def digest_values(values: Iterable[Any]) -> str:
    """Short SHA-1 digest of an ordered sequence of values."""
    joined = "\n".join(str(v) for v in values)
    return hashlib.sha1(joined.encode("utf-8")).hexdigest()[:DIGEST_LENGTH]


def format_key_value(value: Any) -> Optional[str]:
    """Render one parameter value for inclusion in a key.

    Returns None for None so that the enclosing segment can be dropped.
    Integral floats lose their trailing ``.0`` so that 3 and 3.0 share a key.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, str):
        return value.replace("/", "_").replace(" ", "_")
    if isinstance(value, (set, frozenset)):
        return digest_values(sorted(str(v) for v in value))
    if isinstance(value, (list, tuple)):
        return digest_values(value)
    raise InvalidConfigurationError(
        f"Cannot use value of type {type(value).__name__} in a cache key"
    )


def render_segment(segment: str, params: Mapping[str, Any]) -> Optional[str]:
    """Render a single key segment, or None if all its parameters are None."""
    fields = [name for _, name, _, _ in Formatter().parse(segment) if name]
    if not fields:
        return segment
    rendered = {}
    for name in fields:
        if name not in params:
            raise InvalidConfigurationError(
                f"Cache key segment '{segment}' needs parameter '{name}'"
            )
        rendered[name] = format_key_value(params[name])
    if all(v is None for v in rendered.values()):
        return None
    return segment.format(**{k: ("" if v is None else v) for k, v in rendered.items()})


class CacheKeyBuilder:
    """Derives stage cache keys from a run prefix and the parameter vector.

    Parameters that no stage references in its key segments never affect
    any key, so display-only options can be passed freely.

    Parameters
    ----------
    prefix : str
        Run prefix (artifact namespace), may include a directory part
    graph : StageGraph
        Stage graph providing lineages and segments
    """

    def __init__(self, prefix: str, graph: StageGraph):
        if not prefix:
            raise InvalidConfigurationError("Run prefix must not be empty")
        self.prefix = prefix
        self.graph = graph

    def segments_for(self, stage_id: str, params: Mapping[str, Any]) -> list:
        """Rendered segments contributed by ``stage_id`` alone."""
        stage = self.graph[stage_id]
        parts = []
        for segment in stage.key_segments:
            rendered = render_segment(segment, params)
            if rendered is not None:
                parts.append(rendered)
        return parts

    def key_for(self, stage_id: str, params: Mapping[str, Any]) -> str:
        """Cache key for ``stage_id`` under ``params``."""
        parts = [self.prefix]
        for sid in self.graph.lineage(stage_id):
            parts.extend(self.segments_for(sid, params))
        return "-".join(parts)

    def keys_for(self, params: Mapping[str, Any], stage_ids: Optional[Iterable[str]] = None) -> Dict[str, str]:
        """Cache keys for several stages (all stages by default)."""
        if stage_ids is None:
            stage_ids = self.graph.execution_order()
        return {sid: self.key_for(sid, params) for sid in stage_ids}
