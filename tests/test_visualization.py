#!/usr/bin/env python3
"""
Smoke tests for the report figures.
"""

import sys
from pathlib import Path

import matplotlib
matplotlib.use('Agg')

import pandas as pd
import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from reidrisk.attribute_risk import risks_to_frame
from reidrisk.histogram import Histogram
from reidrisk.session import RiskSession
from reidrisk.table import DataFrameTable
from reidrisk.visualization import Visualizer


@pytest.fixture(scope="module")
def session():
    data = pd.DataFrame({
        'age': ['20', '20', '30', '30', '30', '40', '50', '60'],
        'zip': ['111', '111', '222', '222', '333', '333', '444', '555'],
    })
    return RiskSession(DataFrameTable(data), ['age', 'zip'], sampling_fraction=0.5)


class TestVisualizer:
    """Every figure is created and saved."""

    def test_all_figures(self, session, tmp_path):
        viz = Visualizer(output_dir=str(tmp_path / "figures"), dpi=50)
        assert viz.plot_class_size_distribution(session.class_size_distribution()) is not None
        assert viz.plot_uniqueness_curve(
            session.uniqueness_by_sampling_fraction([0.1, 0.5, 1.0]), 0.5) is not None
        assert viz.plot_attribute_risks(risks_to_frame(session.attribute_risks())) is not None

        paths = viz.save_all_figures(formats=['png'])
        viz.close_all()

        assert set(paths) == {'class_size_distribution', 'uniqueness_curve', 'attribute_risks'}
        for saved in paths.values():
            assert Path(saved[0]).exists()

    def test_empty_inputs_are_skipped(self, tmp_path):
        viz = Visualizer(output_dir=str(tmp_path))
        assert viz.plot_class_size_distribution(Histogram().to_frame()) is None
        assert viz.plot_uniqueness_curve(pd.DataFrame()) is None
        assert viz.plot_attribute_risks(pd.DataFrame()) is None
        assert viz.save_all_figures() == {}
