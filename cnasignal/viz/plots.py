"""PDF charts written beside the stage artifacts."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib.backends.backend_pdf import PdfPages

from ..core.qc import phase_columns
from ..core.reduction import PCAResult

PathLike = Union[str, Path]

_DEFAULT_STYLE = {
    "axes.titlesize": 12,
    "axes.labelsize": 11,
    "axes.grid": True,
    "grid.alpha": 0.3,
    "legend.frameon": False,
}


def set_plot_style() -> None:
    """Apply a lightweight matplotlib style suitable for reports."""
    plt.style.use("seaborn-v0_8" if "seaborn-v0_8" in plt.style.available else "default")
    plt.rcParams.update(_DEFAULT_STYLE)


def _open_pdf(path: PathLike) -> PdfPages:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return PdfPages(path)


def _save_page(pdf: PdfPages, fig: plt.Figure) -> None:
    fig.tight_layout()
    pdf.savefig(fig)
    plt.close(fig)


def plot_qc_cells(
    qc: pd.DataFrame,
    output_path: PathLike,
    max_mito_prop: Optional[float] = None,
    min_total_exp: Optional[float] = None,
) -> Path:
    """QC metric distributions, with the filtering thresholds if given.

    Parameters
    ----------
    qc : pd.DataFrame
        Output of ``qc_cells``
    output_path : PathLike
        PDF path
    max_mito_prop, min_total_exp : float, optional
        Thresholds drawn as dashed lines
    """
    set_plot_style()
    df = qc.assign(mito_prop=qc["mito"] / qc["tot"].where(qc["tot"] > 0))

    with _open_pdf(output_path) as pdf:
        fig, axes = plt.subplots(1, 3, figsize=(15, 4.5))
        sns.histplot(df["tot"], bins=50, log_scale=True, ax=axes[0])
        axes[0].set_xlabel("Total expression")
        if min_total_exp:
            axes[0].axvline(min_total_exp, color="red", linestyle="--")
        sns.histplot(df["exp_genes"], bins=50, ax=axes[1])
        axes[1].set_xlabel("Expressed genes")
        sns.histplot(df["mito_prop"].dropna(), bins=50, ax=axes[2])
        axes[2].set_xlabel("Mitochondrial proportion")
        if max_mito_prop is not None:
            axes[2].axvline(max_mito_prop, color="red", linestyle="--")
        _save_page(pdf, fig)

        fig, ax = plt.subplots(figsize=(6, 5))
        sns.scatterplot(data=df, x="tot", y="mito_prop", s=8, linewidth=0, ax=ax)
        ax.set_xscale("log")
        ax.set_xlabel("Total expression")
        ax.set_ylabel("Mitochondrial proportion")
        _save_page(pdf, fig)

        phases = phase_columns(qc)
        if len(phases) >= 2:
            fig, ax = plt.subplots(figsize=(6, 5))
            sns.scatterplot(data=df, x=phases[0], y=phases[1], s=8, linewidth=0, ax=ax)
            ax.set_title("Cell-cycle scores")
            _save_page(pdf, fig)

    return Path(output_path)


def plot_cell_cycle(
    qc: pd.DataFrame,
    noncycling: Iterable[str],
    output_path: PathLike,
) -> Path:
    """Cell-cycle scores, cycling cells highlighted."""
    set_plot_style()
    phases = phase_columns(qc)
    keep = set(noncycling)
    df = qc.assign(cycling=~qc["cell"].astype(str).isin(keep))

    with _open_pdf(output_path) as pdf:
        if len(phases) >= 2:
            fig, ax = plt.subplots(figsize=(6, 5))
            sns.scatterplot(
                data=df, x=phases[0], y=phases[1], hue="cycling",
                palette={False: "grey", True: "red"}, s=8, linewidth=0, ax=ax,
            )
        else:
            fig, ax = plt.subplots(figsize=(6, 5))
            sns.histplot(data=df, x=phases[0], hue="cycling", bins=50, ax=ax)
        ax.set_title(f"{int(df['cycling'].sum())} cycling cells out of {len(df)}")
        _save_page(pdf, fig)

    return Path(output_path)


def plot_pca_sdev(pca: PCAResult, output_path: PathLike) -> Path:
    """Standard deviation of each principal component."""
    set_plot_style()
    with _open_pdf(output_path) as pdf:
        fig, ax = plt.subplots(figsize=(7, 4.5))
        x = np.arange(1, len(pca.sdev) + 1)
        ax.plot(x, pca.sdev, marker="o", linewidth=1)
        ax.set_xlabel("Principal component")
        ax.set_ylabel("Standard deviation")
        _save_page(pdf, fig)
    return Path(output_path)


def plot_communities(comm: pd.DataFrame, output_path: PathLike) -> Path:
    """Number of cells per community."""
    set_plot_style()
    counts = comm["community"].value_counts().sort_index(key=lambda s: s.astype(int))
    with _open_pdf(output_path) as pdf:
        fig, ax = plt.subplots(figsize=(max(6, len(counts) * 0.4), 4.5))
        ax.bar(counts.index.astype(str), counts.to_numpy(), color="steelblue")
        ax.set_xlabel("Community")
        ax.set_ylabel("Cells")
        _save_page(pdf, fig)
    return Path(output_path)


def plot_embedding(
    emb: pd.DataFrame,
    output_path: PathLike,
    comm: Optional[pd.DataFrame] = None,
    qc: Optional[pd.DataFrame] = None,
    coords: Sequence[str] = ("tsne1", "tsne2"),
) -> Path:
    """2D embedding colored by community and by depth.

    Parameters
    ----------
    emb : pd.DataFrame
        ``cell`` plus the two coordinate columns
    comm : pd.DataFrame, optional
        Community assignment, used for coloring only
    qc : pd.DataFrame, optional
        QC table, used to color cells by total expression
    """
    set_plot_style()
    x, y = coords
    with _open_pdf(output_path) as pdf:
        if comm is not None:
            df = emb.merge(comm, on="cell", how="left")
            fig, ax = plt.subplots(figsize=(7, 6))
            sns.scatterplot(data=df, x=x, y=y, hue="community", s=8, linewidth=0, ax=ax)
            ax.legend(bbox_to_anchor=(1.02, 1), loc="upper left", markerscale=2, fontsize=8)
            _save_page(pdf, fig)

        if qc is not None:
            df = emb.merge(qc[["cell", "tot"]], on="cell", how="left")
            fig, ax = plt.subplots(figsize=(7, 6))
            points = ax.scatter(df[x], df[y], c=np.log10(df["tot"].clip(lower=1)), s=8, cmap="viridis")
            fig.colorbar(points, ax=ax, label="log10 total expression")
            ax.set_xlabel(x)
            ax.set_ylabel(y)
            _save_page(pdf, fig)

        if comm is None and qc is None:
            fig, ax = plt.subplots(figsize=(7, 6))
            ax.scatter(emb[x], emb[y], s=8, color="grey")
            ax.set_xlabel(x)
            ax.set_ylabel(y)
            _save_page(pdf, fig)

    return Path(output_path)
