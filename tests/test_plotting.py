"""
Tests for summary plots.

Usage:
    pytest tests/test_plotting.py -v
"""

import matplotlib
matplotlib.use('Agg')

import numpy as np
import pandas as pd
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.survival_cv.plotting import plot_metric_over_time, plot_cif_summary, save_summary_plots


def _summary(times, mean, half_width=0.05):
    mean = np.asarray(mean, dtype=float)
    df = pd.DataFrame({
        'time': np.asarray(times, dtype=float),
        'mean': mean,
        'lower': mean - half_width,
        'upper': mean + half_width,
        'n': 5,
    })
    # a single-fold point has no bounds
    df.loc[0, ['lower', 'upper']] = np.nan
    return df


TIMES = np.arange(6, 115, 6)


def test_one_panel_per_time_range():
    fig = plot_metric_over_time(
        _summary(TIMES, np.linspace(0.6, 0.8, len(TIMES))),
        'AUC',
        time_ranges=((0, 60), (60, 114)),
        reference=0.5,
    )
    assert len(fig.axes) == 2
    assert fig.axes[1].get_xlim() == (60.0, 114.0)


def test_cif_plot_with_empirical_overlay():
    empirical = pd.DataFrame({'time': TIMES, 'cif': np.linspace(0.0, 0.3, len(TIMES))})
    ax = plot_cif_summary(_summary(TIMES, np.linspace(0.01, 0.3, len(TIMES))), empirical=empirical)
    labels = [line.get_label() for line in ax.get_lines()]
    assert 'Aalen-Johansen (full cohort)' in labels


def test_save_summary_plots(tmp_path):
    summaries = {
        'auc_by_time': _summary(TIMES, np.linspace(0.6, 0.8, len(TIMES))),
        'brier_by_time': _summary(TIMES, np.linspace(0.05, 0.2, len(TIMES)), 0.01),
        'cif_by_time': _summary(TIMES, np.linspace(0.01, 0.3, len(TIMES)), 0.02),
    }
    written = save_summary_plots(summaries, tmp_path, ((0, 60), (60, 114)))

    assert [p.name for p in written] == ['auc_by_time.png', 'brier_by_time.png', 'cif_by_time.png']
    assert all(p.exists() and p.stat().st_size > 0 for p in written)
