"""Small stage graphs and stub contexts for orchestration tests."""

import random
from typing import Dict, List

from cnasignal.pipeline import Stage, StageGraph


def passthrough(stage_id: str):
    """Compute function returning its stage ID and predecessor outputs."""

    def compute(context, inputs):
        return {"stage": stage_id, "inputs": sorted(inputs)}

    return compute


def random_dag(n_stages: int, seed: int, edge_prob: float = 0.4) -> StageGraph:
    """Random DAG; stage ``s<i>`` only depends on stages declared before it."""
    rng = random.Random(seed)
    stages: List[Stage] = []
    for i in range(n_stages):
        deps = tuple(f"s{j}" for j in range(i) if rng.random() < edge_prob)
        stages.append(
            Stage(f"s{i}", f"Stage {i}", passthrough(f"s{i}"),
                  depends_on=deps, key_segments=(f"s{i}",))
        )
    return StageGraph(stages)


def random_cache(graph: StageGraph, seed: int) -> Dict[str, bool]:
    """Random cache-existence flag per stage."""
    rng = random.Random(seed)
    return {sid: rng.random() < 0.5 for sid in graph.execution_order()}
