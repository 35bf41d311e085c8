"""Command-line interface for cnasignal.

Runs the CNA signal pipeline, or shows which stages a run would
compute, load or skip.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

import click

from ..errors import CnaPipelineError
from ..io.logging import write_dataframe
from ..pipeline.config import VIZ_METHODS, RunConfig
from ..pipeline.context import RunInputs
from ..pipeline.logger import PipelineLogger
from ..pipeline.runner import RunResult, run_cna_pipeline
from ..pipeline.store import ArtifactStore


def setup_logging(verbose: bool = False, debug: bool = False) -> PipelineLogger:
    """Setup logging for CLI commands."""
    level = "DEBUG" if debug else ("INFO" if verbose else "WARNING")
    pipeline_logger = PipelineLogger(log_level=level)
    pipeline_logger.setup()
    return pipeline_logger


@click.group()
@click.version_option(version="0.1.0", prog_name="cnasignal")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool) -> None:
    """cnasignal: copy-number signal from single-cell expression.

    Examples:

        # Run on a 10x directory
        cnasignal run data/sample1 --genes-coord genes.tsv --prefix out/run1

        # Two samples, UMAP and t-SNE
        cnasignal run s1/ s2/ --sample-name s1 --sample-name s2 \\
            --genes-coord genes.tsv --viz both

        # Show what a run would do
        cnasignal plan data/sample1 --genes-coord genes.tsv --smooth-wsize 5
    """
    ctx.ensure_object(dict)
    ctx.obj["logger"] = setup_logging(verbose, debug)


def run_options(func):
    """Options shared by ``run`` and ``plan``."""
    options = [
        click.argument("data", nargs=-1, required=True, type=click.Path(exists=True)),
        click.option("--genes-coord", required=True, type=click.Path(exists=True),
                     help="Gene coordinates (chr, start, end, symbol)"),
        click.option("--config", "-c", "config_path", type=click.Path(exists=True),
                     help="YAML configuration file"),
        click.option("--prefix", "-p", help="Prefix of the output artifacts"),
        click.option("--store", "store_root", default=".", show_default=True,
                     type=click.Path(), help="Directory the prefix is relative to"),
        click.option("--no-cache", is_flag=True, help="Recompute every stage"),
        click.option("--viz", type=click.Choice(VIZ_METHODS, case_sensitive=False), help="Embedding method"),
        click.option("--cell-cycle", type=click.Path(exists=True),
                     help="Cell-cycle genes (symbol, phase)"),
        click.option("--info", "info_path", type=click.Path(exists=True),
                     help="Per-cell information with a 'cell' column"),
        click.option("--sample-name", "sample_names", multiple=True,
                     help="Sample name, once per DATA path"),
        click.option("--cells-sel", type=click.Path(exists=True),
                     help="File with the cells to keep, one per line"),
        click.option("--cores", type=int, help="Worker processes for parallel stages"),
        click.option("--bin-mean-exp", type=float, help="Minimum mean expression per bin"),
        click.option("--rm-cv-quant", type=float, help="CV quantile above which bins are removed"),
        click.option("--z-wins-th", type=float, help="Z-score winsorization threshold"),
        click.option("--smooth-wsize", type=int, help="Smoothing window size"),
        click.option("--nb-pcs", type=int, help="Principal components used downstream"),
        click.option("--comm-k", type=int, help="Neighbors of the community graph"),
        click.option("--seed", type=int, help="Random seed"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_config(config_path: Optional[str], overrides: Dict[str, Any]) -> RunConfig:
    """Load YAML configuration and apply command-line overrides."""
    config = RunConfig.from_yaml(config_path) if config_path else RunConfig()
    top = {
        "prefix": "prefix",
        "cores": "nb_cores",
    }
    sections = {
        "bin_mean_exp": config.signal,
        "rm_cv_quant": config.signal,
        "z_wins_th": config.signal,
        "smooth_wsize": config.signal,
        "nb_pcs": config.reduction,
        "comm_k": config.reduction,
        "seed": config.reduction,
        "viz": config.reduction,
    }
    for option, attr in top.items():
        if overrides.get(option) is not None:
            setattr(config, attr, overrides[option])
    for option, section in sections.items():
        if overrides.get(option) is not None:
            setattr(section, option, overrides[option])
    if overrides.get("no_cache"):
        config.use_cache = False
    if overrides.get("no_plots"):
        config.make_plots = False
    if overrides.get("pause_after_qc"):
        config.pause_after_qc = True
    return config


def build_inputs(
    data: Sequence[str],
    genes_coord: str,
    cell_cycle: Optional[str],
    info_path: Optional[str],
    sample_names: Sequence[str],
    cells_sel: Optional[str],
) -> RunInputs:
    """Bundle the command-line inputs."""
    cells = None
    if cells_sel:
        cells = [line.strip() for line in Path(cells_sel).read_text().splitlines() if line.strip()]
    return RunInputs(
        data=list(data) if len(data) > 1 else data[0],
        genes_coord=genes_coord,
        cell_cycle=cell_cycle,
        sample_names=list(sample_names) or None,
        info_df=info_path,
        cells_sel=cells,
    )


def _invoke(ctx: click.Context, plan_only: bool, kwargs: Dict[str, Any]) -> Tuple[RunConfig, RunResult]:
    try:
        config = build_config(kwargs.pop("config_path"), kwargs)
        inputs = build_inputs(
            kwargs["data"],
            kwargs["genes_coord"],
            kwargs["cell_cycle"],
            kwargs["info_path"],
            kwargs["sample_names"],
            kwargs["cells_sel"],
        )
        result = run_cna_pipeline(
            config,
            inputs,
            store=ArtifactStore(kwargs["store_root"]),
            logger=ctx.obj["logger"],
            plan_only=plan_only,
        )
        return config, result
    except (CnaPipelineError, FileNotFoundError) as e:
        raise click.ClickException(str(e))


@cli.command()
@run_options
@click.option("--no-plots", is_flag=True, help="Do not render PDF charts")
@click.option("--pause-after-qc", is_flag=True, help="Stop after QC and write the QC table")
@click.option("--out", "-o", "output_path", type=click.Path(),
              help="Output table (TSV). Default: <prefix>-results.tsv")
@click.pass_context
def run(ctx: click.Context, output_path: Optional[str], **kwargs) -> None:
    """Run the pipeline and write the per-cell result table."""
    config, result = _invoke(ctx, plan_only=False, kwargs=kwargs)
    if output_path is None:
        prefix = config.prefix
        suffix = "-qc.tsv" if result.selection.stop_after_qc else "-results.tsv"
        output_path = str(Path(kwargs["store_root"]) / f"{prefix}{suffix}")
    write_dataframe(result.table, output_path)

    report = result.report
    click.echo(
        f"{len(report.executed)} stage(s) run, {len(report.loaded)} loaded, "
        f"{len(report.skipped)} skipped"
    )
    click.echo(f"Results: {output_path} ({len(result.table)} cells)")


@cli.command()
@run_options
@click.pass_context
def plan(ctx: click.Context, **kwargs) -> None:
    """Show which stages a run would compute, load or skip."""
    _, result = _invoke(ctx, plan_only=True, kwargs=kwargs)
    for line in result.plan.describe():
        click.echo(line)
    summary = result.plan.summary()
    click.echo(", ".join(f"{count} {mark}" for mark, count in summary.items()))


def main() -> None:
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
