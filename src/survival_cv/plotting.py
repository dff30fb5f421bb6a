"""
Plots of cross-validated summaries with confidence ribbons.

Each plotting function takes an already aggregated summary table
(columns: time, mean, lower, upper) and only renders it.
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd
import matplotlib.pyplot as plt


def _ribbon(ax: plt.Axes, summary: pd.DataFrame, color: str, label: str):
    times = summary['time'].values
    ax.plot(times, summary['mean'].values, color=color, linewidth=2, label=label)

    # Bounds are missing where fewer than two folds had a value
    bounds = summary[['lower', 'upper']].astype(float)
    ax.fill_between(
        times,
        bounds['lower'].values,
        bounds['upper'].values,
        where=bounds.notna().all(axis=1).values,
        color=color,
        alpha=0.2,
        label='95% CI',
    )


def plot_metric_over_time(
    summary: pd.DataFrame,
    ylabel: str,
    time_ranges: Sequence[Tuple[float, float]],
    title: str = '',
    color: str = 'steelblue',
    reference: Optional[float] = None,
    figsize: Tuple[int, int] = (14, 5),
) -> plt.Figure:
    """
    Plot a time-indexed summary in one panel per time range.

    Parameters
    ----------
    summary : pd.DataFrame
        Output of summarize(..., by='time')
    ylabel : str
        Y-axis label
    time_ranges : sequence of (start, end)
        Panels; a panel shows start < time <= end
    title : str
        Figure title
    color : str
        Line and ribbon color
    reference : float, optional
        Horizontal reference line (e.g. 0.5 for AUC)
    figsize : Tuple[int, int]
        Figure size

    Returns
    -------
    plt.Figure
    """
    fig, axes = plt.subplots(1, len(time_ranges), figsize=figsize, squeeze=False)

    for ax, (start, end) in zip(axes[0], time_ranges):
        part = summary[(summary['time'] > start) & (summary['time'] <= end)]
        _ribbon(ax, part, color, label='Mean across folds')

        if reference is not None:
            ax.axhline(y=reference, color='gray', linestyle='--', alpha=0.5)

        ax.set_title(f'{start:g}-{end:g} months')
        ax.set_xlabel('Time (months)')
        ax.set_ylabel(ylabel)
        ax.set_xlim(start, end)
        ax.grid(True, alpha=0.3)
        ax.legend()

    if title:
        fig.suptitle(title)
    fig.tight_layout()
    return fig


def plot_cif_summary(
    summary: pd.DataFrame,
    empirical: Optional[pd.DataFrame] = None,
    title: str = 'Cumulative Incidence Function',
    ax: Optional[plt.Axes] = None,
) -> plt.Axes:
    """
    Plot the mean predicted CIF with its confidence ribbon.

    Parameters
    ----------
    summary : pd.DataFrame
        Output of summarize(..., by='time') for the CIF records
    empirical : pd.DataFrame, optional
        Aalen-Johansen estimate with columns 'time' and 'cif'
    title : str
        Plot title
    ax : plt.Axes, optional
        Axes to plot on

    Returns
    -------
    plt.Axes
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(10, 6))

    _ribbon(ax, summary, 'indianred', label='Predicted CIF (mean across folds)')

    if empirical is not None:
        ax.step(empirical['time'], empirical['cif'], where='post',
                color='black', linestyle='--', linewidth=1.5,
                label='Aalen-Johansen (full cohort)')

    ax.set_xlabel('Time (months)')
    ax.set_ylabel('Cumulative Incidence')
    ax.set_title(title)
    ax.set_ylim(0, None)
    ax.legend()
    ax.grid(True, alpha=0.3)

    return ax


def save_summary_plots(
    summaries: Dict[str, pd.DataFrame],
    output_dir: Path,
    time_ranges: Sequence[Tuple[float, float]],
    empirical_cif: Optional[pd.DataFrame] = None,
) -> List[Path]:
    """
    Render AUC, Brier and CIF plots to PNG files.

    Returns
    -------
    List[Path]
        Written files
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []

    fig = plot_metric_over_time(
        summaries['auc_by_time'], 'Time-dependent AUC', time_ranges,
        title='Time-dependent AUC (95% CI across folds)', reference=0.5,
    )
    path = output_dir / 'auc_by_time.png'
    fig.savefig(path, dpi=150)
    plt.close(fig)
    written.append(path)

    fig = plot_metric_over_time(
        summaries['brier_by_time'], 'Brier score', time_ranges,
        title='Brier score (95% CI across folds)', color='darkorange',
    )
    path = output_dir / 'brier_by_time.png'
    fig.savefig(path, dpi=150)
    plt.close(fig)
    written.append(path)

    ax = plot_cif_summary(summaries['cif_by_time'], empirical=empirical_cif)
    path = output_dir / 'cif_by_time.png'
    ax.figure.tight_layout()
    ax.figure.savefig(path, dpi=150)
    plt.close(ax.figure)
    written.append(path)

    return written
