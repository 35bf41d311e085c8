"""Stage representation and the static stage graph."""

from collections import deque
from dataclasses import dataclass, field
from string import Formatter
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from ..errors import InvalidConfigurationError

ARTIFACT_FORMATS = ("joblib", "lines")


@dataclass(frozen=True)
class Stage:
    """A single node of the pipeline DAG.

    Attributes
    ----------
    stage_id : str
        Short identifier used in cache keys and plans (e.g. "qc", "bin")
    name : str
        Human-readable stage name (e.g. "Quality control")
    compute : Callable
        ``compute(context, inputs) -> data`` where ``inputs`` maps each
        predecessor stage_id to its output
    depends_on : Tuple[str, ...]
        Predecessor stage IDs whose output this stage consumes
    key_segments : Tuple[str, ...]
        Format templates appended to the cache key, e.g. ``"bin{bin_mean_exp}"``.
        A segment whose parameters are all None is omitted.
    artifact_format : str
        Serialization format of the artifact ("joblib" or "lines")
    expected_type : type, optional
        Type the loaded artifact must have
    always_run : bool
        Stage has no cache check and runs on every invocation
    report : Callable, optional
        ``report(context, output, key)`` chart hook, called after a run

    Example
    -------
    >>> stage = Stage(
    ...     stage_id="bin",
    ...     name="Binning",
    ...     compute=lambda ctx, inputs: inputs["norm"],
    ...     depends_on=("norm",),
    ...     key_segments=("bin{bin_mean_exp}",),
    ... )
    >>> stage.key_params
    ('bin_mean_exp',)
    """

    stage_id: str
    name: str
    compute: Callable[..., Any]
    depends_on: Tuple[str, ...] = ()
    key_segments: Tuple[str, ...] = ()
    artifact_format: str = "joblib"
    expected_type: Optional[type] = None
    always_run: bool = False
    report: Optional[Callable[..., None]] = field(default=None, compare=False)

    def __post_init__(self):
        if self.artifact_format not in ARTIFACT_FORMATS:
            raise InvalidConfigurationError(
                f"Stage '{self.stage_id}' has unknown artifact format "
                f"'{self.artifact_format}' (expected one of {ARTIFACT_FORMATS})"
            )
        # Accept lists from callers but store tuples
        object.__setattr__(self, "depends_on", tuple(self.depends_on))
        object.__setattr__(self, "key_segments", tuple(self.key_segments))

    @property
    def key_params(self) -> Tuple[str, ...]:
        """Parameter names referenced by the key segments, in order."""
        names: List[str] = []
        for segment in self.key_segments:
            for _, field_name, _, _ in Formatter().parse(segment):
                if field_name and field_name not in names:
                    names.append(field_name)
        return tuple(names)

    def to_dict(self) -> Dict[str, Any]:
        """Convert stage to dictionary for logging."""
        return {
            "stage_id": self.stage_id,
            "name": self.name,
            "depends_on": list(self.depends_on),
            "key_segments": list(self.key_segments),
            "artifact_format": self.artifact_format,
            "always_run": self.always_run,
        }


class StageGraph:
    """Static DAG of stages, in declaration order.

    Parameters
    ----------
    stages : Iterable[Stage]
        Stage definitions. Declaration order breaks ties in the
        execution order so that it is stable across runs.

    Raises
    ------
    InvalidConfigurationError
        If a stage ID is duplicated, a dependency is unknown, or the
        dependencies contain a cycle
    """

    def __init__(self, stages: Iterable[Stage]):
        self.stages: Dict[str, Stage] = {}
        for stage in stages:
            if stage.stage_id in self.stages:
                raise InvalidConfigurationError(
                    f"Duplicate stage ID '{stage.stage_id}'"
                )
            self.stages[stage.stage_id] = stage

        valid, errors = self.validate_dependencies()
        if not valid:
            raise InvalidConfigurationError("; ".join(errors))

        self._order = self._compute_order()
        self._successors: Dict[str, List[str]] = {sid: [] for sid in self.stages}
        for sid in self._order:
            for dep in self.stages[sid].depends_on:
                self._successors[dep].append(sid)

    def __contains__(self, stage_id: str) -> bool:
        return stage_id in self.stages

    def __getitem__(self, stage_id: str) -> Stage:
        return self.stages[stage_id]

    def __len__(self) -> int:
        return len(self.stages)

    def validate_dependencies(self) -> Tuple[bool, List[str]]:
        """Check that all dependencies exist and there are no cycles.

        Returns
        -------
        Tuple[bool, List[str]]
            (valid, errors)
        """
        errors = []

        for stage_id, stage in self.stages.items():
            for dep in stage.depends_on:
                if dep not in self.stages:
                    errors.append(
                        f"Stage '{stage_id}' depends on unknown stage '{dep}'"
                    )

        if errors:
            return (False, errors)

        visited: Set[str] = set()
        rec_stack: Set[str] = set()

        def visit(node: str) -> bool:
            visited.add(node)
            rec_stack.add(node)
            for dep in self.stages[node].depends_on:
                if dep not in visited:
                    if visit(dep):
                        return True
                elif dep in rec_stack:
                    return True
            rec_stack.remove(node)
            return False

        for stage_id in self.stages:
            if stage_id not in visited and visit(stage_id):
                errors.append("Circular dependency detected in stage dependencies")
                break

        return (len(errors) == 0, errors)

    def _compute_order(self) -> List[str]:
        """Kahn's algorithm, ties broken by declaration order."""
        in_degree = {sid: len(stage.depends_on) for sid, stage in self.stages.items()}
        queue = deque([sid for sid, degree in in_degree.items() if degree == 0])
        order = []

        while queue:
            stage_id = queue.popleft()
            order.append(stage_id)
            for other_id, other_stage in self.stages.items():
                if stage_id in other_stage.depends_on:
                    in_degree[other_id] -= 1
                    if in_degree[other_id] == 0:
                        queue.append(other_id)

        return order

    def execution_order(self) -> List[str]:
        """Topologically sorted stage IDs."""
        return list(self._order)

    def successors(self, stage_id: str) -> List[str]:
        """Stages that consume the output of ``stage_id``."""
        return list(self._successors[stage_id])

    def ancestors(self, stage_id: str) -> Set[str]:
        """All transitive predecessors of ``stage_id`` (excluding itself)."""
        seen: Set[str] = set()
        stack = list(self.stages[stage_id].depends_on)
        while stack:
            dep = stack.pop()
            if dep not in seen:
                seen.add(dep)
                stack.extend(self.stages[dep].depends_on)
        return seen

    def lineage(self, stage_id: str) -> List[str]:
        """Ancestors plus the stage itself, in execution order."""
        members = self.ancestors(stage_id) | {stage_id}
        return [sid for sid in self._order if sid in members]
