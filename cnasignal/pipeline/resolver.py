"""Need resolution: which stages run, which load, which are skipped.

The resolver only looks at cache-existence flags, so it never moves data.
A single backward pass over the topologically sorted stages assigns:

- MUST_RUN: in scope, and not cached (or always-run);
- MUST_LOAD: cached, and some in-scope direct successor is MUST_RUN;
- SKIP: everything else, including stages outside the selected branches.

A cached stage whose consumers are themselves only loaded stays SKIP, so
a long cached prefix of the chain costs no I/O at all; data is loaded only
right before the first stage that actually computes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from .keys import CacheKeyBuilder
from .stage import StageGraph
from .store import ArtifactStore


class StageMark(str, Enum):
    """Resolution result for one stage."""

    MUST_RUN = "must-run"
    MUST_LOAD = "must-load"
    SKIP = "skip"

    @property
    def needed(self) -> bool:
        """Need flag: the stage's output is produced or loaded this run."""
        return self is not StageMark.SKIP


class NeedResolver:
    """Backward pass over a stage graph.

    Parameters
    ----------
    graph : StageGraph
        Static stage graph

    Example
    -------
    >>> resolver = NeedResolver(graph)
    >>> marks = resolver.resolve({"raw": True, "qc": True, "filter": False})
    >>> marks["qc"]
    <StageMark.MUST_LOAD: 'must-load'>
    """

    def __init__(self, graph: StageGraph):
        self.graph = graph

    def resolve(
        self,
        cached: Mapping[str, bool],
        in_scope: Optional[Iterable[str]] = None,
    ) -> Dict[str, StageMark]:
        """Assign a mark to every stage.

        Parameters
        ----------
        cached : Mapping[str, bool]
            Cache-existence flag per stage. Missing entries count as not cached.
        in_scope : Iterable[str], optional
            Stages selected for this run. Defaults to all stages.

        Returns
        -------
        Dict[str, StageMark]
            Mark per stage ID, in execution order
        """
        order = self.graph.execution_order()
        scope: Set[str] = set(order) if in_scope is None else set(in_scope)
        marks: Dict[str, StageMark] = {}

        for stage_id in reversed(order):
            stage = self.graph[stage_id]
            if stage_id not in scope:
                marks[stage_id] = StageMark.SKIP
            elif stage.always_run or not cached.get(stage_id, False):
                marks[stage_id] = StageMark.MUST_RUN
            elif any(
                marks[succ] is StageMark.MUST_RUN
                for succ in self.graph.successors(stage_id)
                if succ in scope
            ):
                marks[stage_id] = StageMark.MUST_LOAD
            else:
                marks[stage_id] = StageMark.SKIP

        return {sid: marks[sid] for sid in order}


@dataclass
class ExecutionPlan:
    """Everything the executor needs, resolved before any data moves.

    Attributes
    ----------
    order : List[str]
        Stage IDs in execution order
    keys : Dict[str, str]
        Cache key per in-scope stage
    cached : Dict[str, bool]
        Cache-existence flag per in-scope stage
    marks : Dict[str, StageMark]
        Mark per stage
    in_scope : Set[str]
        Stages selected for this run
    """

    order: List[str]
    keys: Dict[str, str]
    cached: Dict[str, bool]
    marks: Dict[str, StageMark]
    in_scope: Set[str] = field(default_factory=set)

    def stages_with(self, mark: StageMark) -> List[str]:
        """Stage IDs carrying ``mark``, in execution order."""
        return [sid for sid in self.order if self.marks[sid] is mark]

    def summary(self) -> Dict[str, int]:
        """Count of stages per mark."""
        counts = {mark.value: 0 for mark in StageMark}
        for mark in self.marks.values():
            counts[mark.value] += 1
        return counts

    def describe(self) -> List[str]:
        """One human-readable line per stage."""
        lines = []
        for sid in self.order:
            if sid not in self.in_scope:
                lines.append(f"{sid:<12} {StageMark.SKIP.value:<10} (branch not selected)")
                continue
            lines.append(f"{sid:<12} {self.marks[sid].value:<10} {self.keys[sid]}")
        return lines

    def to_dict(self) -> Dict[str, Any]:
        """Plan as a plain dictionary for the run manifest."""
        return {
            sid: {
                "mark": self.marks[sid].value,
                "key": self.keys.get(sid),
                "cached": self.cached.get(sid, False),
            }
            for sid in self.order
        }


def build_plan(
    graph: StageGraph,
    store: ArtifactStore,
    key_builder: CacheKeyBuilder,
    params: Mapping[str, Any],
    in_scope: Optional[Iterable[str]] = None,
    use_cache: bool = True,
) -> ExecutionPlan:
    """Compute keys, check the store, and resolve marks.

    With ``use_cache=False`` every in-scope stage is treated as not cached.
    Out-of-scope stages are never existence-checked.
    """
    order = graph.execution_order()
    scope = set(order) if in_scope is None else set(in_scope)
    keys = key_builder.keys_for(params, [sid for sid in order if sid in scope])

    cached: Dict[str, bool] = {}
    for sid in order:
        if sid not in scope:
            continue
        stage = graph[sid]
        cached[sid] = bool(
            use_cache
            and not stage.always_run
            and store.exists(keys[sid], stage.artifact_format)
        )

    marks = NeedResolver(graph).resolve(cached, scope)
    return ExecutionPlan(
        order=order, keys=keys, cached=cached, marks=marks, in_scope=scope
    )
