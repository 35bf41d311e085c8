"""cnasignal: copy-number aberration signal from single-cell expression.

The pipeline imports raw counts, filters cells, maps genes to the genome,
bins and scales the expression, then reduces the cells to PCs, communities
and 2D embeddings. Every stage output is checkpointed under a key derived
from its parameters and lineage, so reruns only compute what changed.

Example usage:
    >>> from cnasignal.pipeline import RunConfig, RunInputs, run_cna_pipeline
    >>> config = RunConfig(prefix="out/run1")
    >>> inputs = RunInputs(data="filtered_gene_bc_matrices/", genes_coord="genes.tsv")
    >>> result = run_cna_pipeline(config, inputs)
    >>> result.table.head()
"""

__version__ = "0.1.0"
