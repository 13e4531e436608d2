"""
visualization.py - Figures for re-identification risk reports.

Author: James Weatherhead
Institution: University of Texas Medical Branch (UTMB)
"""

import logging
from typing import Dict, List, Optional, Tuple
from pathlib import Path

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import matplotlib.ticker as ticker
import seaborn as sns

logger = logging.getLogger(__name__)

# Publication-quality matplotlib settings
STYLE_CONFIG = {
    'font.family': 'sans-serif',
    'font.sans-serif': ['Arial', 'Helvetica', 'DejaVu Sans'],
    'font.size': 10,
    'axes.titlesize': 12,
    'axes.labelsize': 10,
    'xtick.labelsize': 9,
    'ytick.labelsize': 9,
    'legend.fontsize': 9,
    'figure.titlesize': 14,
    'figure.dpi': 100,
    'savefig.dpi': 300,
    'savefig.format': 'pdf',
    'savefig.bbox': 'tight',
    'axes.spines.top': False,
    'axes.spines.right': False,
}

# Color palette (colorblind-friendly)
COLORS = {
    'sample_uniques': '#666666',
    'pitman': '#2E86AB',
    'zayatz': '#F6AE2D',
    'dankar_without_snb': '#E94F37',
    'classes': '#2E86AB',
    'records': '#E94F37',
}

MODEL_NAMES = {
    'sample_uniques': 'Sample uniques',
    'pitman': 'Pitman',
    'zayatz': 'Zayatz',
    'dankar_without_snb': 'Dankar (without SNB)',
}


class Visualizer:
    """Creates figures for a risk analysis."""

    def __init__(
        self,
        output_dir: str = "results/figures",
        figsize: Tuple[float, float] = (7, 5),
        dpi: int = 300
    ):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.figsize = figsize
        self.dpi = dpi

        # Apply style
        plt.rcParams.update(STYLE_CONFIG)

        # Storage for generated figures
        self._figures: Dict[str, plt.Figure] = {}

        logger.info(f"Visualizer initialized, output_dir: {self.output_dir}")

    def plot_class_size_distribution(
        self,
        distribution: pd.DataFrame,
        title: str = "Equivalence Class Size Distribution",
        max_sizes: int = 30
    ) -> Optional[plt.Figure]:
        """
        Bar chart of the share of classes and of records per class size.

        Args:
            distribution: Output of Histogram.to_frame()
            title: Figure title
            max_sizes: Only the smallest ``max_sizes`` sizes are drawn
        """
        if len(distribution) == 0:
            logger.warning("Empty class size distribution, skipping figure")
            return None

        data = distribution.sort_values('size').head(max_sizes).copy()
        data['fraction_of_classes'] = data['count'] / distribution['count'].sum()

        fig, ax = plt.subplots(figsize=self.figsize)
        positions = np.arange(len(data))
        width = 0.4
        ax.bar(positions - width / 2, data['fraction_of_classes'] * 100, width,
               color=COLORS['classes'], label='Classes')
        ax.bar(positions + width / 2, data['fraction_of_records'] * 100, width,
               color=COLORS['records'], label='Records')

        ax.set_xticks(positions)
        ax.set_xticklabels(data['size'].astype(int).astype(str))
        ax.set_xlabel('Class Size', fontweight='bold')
        ax.set_ylabel('Percent', fontweight='bold')
        ax.set_title(title, fontweight='bold', pad=15)
        ax.legend(loc='upper right', frameon=True, fancybox=False, edgecolor='gray')
        ax.grid(True, axis='y', alpha=0.3, linestyle='-', linewidth=0.5)

        plt.tight_layout()

        self._figures['class_size_distribution'] = fig
        return fig

    def plot_uniqueness_curve(
        self,
        curve: pd.DataFrame,
        sampling_fraction: Optional[float] = None,
        title: str = "Population Uniqueness by Sampling Fraction"
    ) -> Optional[plt.Figure]:
        """
        Estimated population uniques as a function of the sampling fraction.

        Args:
            curve: Output of RiskSession.uniqueness_by_sampling_fraction()
            sampling_fraction: Fraction of the analysed data, marked if given
            title: Figure title
        """
        if len(curve) == 0:
            logger.warning("Empty uniqueness curve, skipping figure")
            return None

        fig, ax = plt.subplots(figsize=self.figsize)
        curve = curve.sort_values('sampling_fraction')

        for key, name in MODEL_NAMES.items():
            if key not in curve.columns:
                continue
            values = curve[key].astype(float) * 100
            linestyle = ':' if key == 'sample_uniques' else '-'
            ax.plot(curve['sampling_fraction'], values, linestyle, marker='o',
                    color=COLORS[key], label=name, linewidth=2, markersize=4)

        if sampling_fraction is not None:
            ax.axvline(x=sampling_fraction, color='#999999', linestyle='--',
                       linewidth=1.5, alpha=0.7, label='Analysed sample')

        ax.set_xscale('log')
        ax.xaxis.set_major_formatter(ticker.ScalarFormatter())
        ax.set_xlabel('Sampling Fraction', fontweight='bold')
        ax.set_ylabel('Population Uniques (%)', fontweight='bold')
        ax.set_title(title, fontweight='bold', pad=15)
        ax.set_ylim(0, None)
        ax.legend(loc='upper right', frameon=True, fancybox=False, edgecolor='gray')
        ax.grid(True, alpha=0.3, linestyle='-', linewidth=0.5)

        plt.tight_layout()

        self._figures['uniqueness_curve'] = fig
        return fig

    def plot_attribute_risks(
        self,
        risks: pd.DataFrame,
        measures: List[str] = ['average_risk', 'fraction_of_unique_tuples',
                               'distinction', 'separation'],
        title: str = "Risk by Quasi-Identifier Combination",
        max_rows: int = 40
    ) -> Optional[plt.Figure]:
        """
        Heatmap of risk measures per attribute subset.

        Args:
            risks: Output of attribute_risk.risks_to_frame()
            measures: Columns to draw
            title: Figure title
            max_rows: Largest number of subsets drawn (largest subsets first)
        """
        if len(risks) == 0:
            logger.warning("No attribute risks, skipping figure")
            return None

        data = risks.sort_values(['num_identifiers', 'distinction'], ascending=False)
        data = data.head(max_rows).set_index('identifiers')[measures] * 100

        height = max(4, 0.3 * len(data) + 1.5)
        fig, ax = plt.subplots(figsize=(8, height))
        sns.heatmap(data, ax=ax, cmap='YlOrRd', annot=True, fmt='.1f',
                    linewidths=0.5, vmin=0, vmax=100, cbar_kws={'label': 'Percent'})

        ax.set_title(title, fontweight='bold', pad=15)
        ax.set_xlabel('Measure', fontweight='bold')
        ax.set_ylabel('Quasi-Identifiers', fontweight='bold')

        plt.tight_layout()

        self._figures['attribute_risks'] = fig
        return fig

    def save_figure(
        self,
        fig: plt.Figure,
        name: str,
        formats: List[str] = ['pdf', 'png']
    ) -> List[str]:
        """Save figure in multiple formats. Returns list of saved paths."""
        saved_paths = []

        for fmt in formats:
            filepath = self.output_dir / f"{name}.{fmt}"
            fig.savefig(filepath, format=fmt, dpi=self.dpi, bbox_inches='tight',
                        facecolor='white', edgecolor='none')
            saved_paths.append(str(filepath))
            logger.info(f"Saved figure: {filepath}")

        return saved_paths

    def save_all_figures(
        self,
        formats: List[str] = ['pdf', 'png']
    ) -> Dict[str, List[str]]:
        """Save all generated figures. Returns dict of figure names to paths."""
        all_paths = {}

        for name, fig in self._figures.items():
            all_paths[name] = self.save_figure(fig, name, formats)

        logger.info(f"Saved {len(all_paths)} figures to {self.output_dir}")

        return all_paths

    def close_all(self) -> None:
        """Close all figures to free memory."""
        for fig in self._figures.values():
            plt.close(fig)
        self._figures.clear()
