#!/usr/bin/env python3
"""
Unit tests for attribute (quasi-identifier subset) risk analysis.

Covers the distinction and separation measures, subset enumeration,
ordering of the results and the superset aggregation.
"""

import sys
from pathlib import Path

import pandas as pd
import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from reidrisk.attribute_risk import (
    MEASURES,
    AttributeRiskAnalyzer,
    distinction,
    risks_to_frame,
    separation,
)
from reidrisk.errors import ComputationInterrupted
from reidrisk.histogram import Histogram
from reidrisk.progress import CancellationToken, ProgressReporter
from reidrisk.table import DataFrameTable


@pytest.fixture(scope="module")
def table():
    return DataFrameTable(pd.DataFrame({
        'age': ['20', '20', '30', '30', '40', '40', '40', '50'],
        'gender': ['m', 'f', 'm', 'm', 'f', 'f', 'm', 'f'],
        'zip': ['111', '111', '111', '222', '222', '222', '222', '333'],
    }))


class TestMeasures:
    """Distinction and separation of a single histogram."""

    def test_distinction(self):
        assert distinction(Histogram(((1, 2), (3, 1)))) == pytest.approx(3 / 5)

    def test_separation(self):
        # 10 pairs, 3 of them inside the class of three
        assert separation(Histogram(((1, 2), (3, 1)))) == pytest.approx(0.7)

    def test_separation_of_uniques(self):
        assert separation(Histogram(((1, 4),))) == pytest.approx(1.0)

    def test_separation_of_one_class(self):
        assert separation(Histogram(((6, 1),))) == 0.0

    def test_degenerate_histograms(self):
        assert separation(Histogram(((1, 1),))) == 0.0
        assert separation(Histogram()) == 0.0
        assert distinction(Histogram()) == 0.0


class TestAttributeRiskAnalyzer:
    """Subset enumeration and aggregation."""

    @pytest.fixture(scope="class")
    def risks(self, table):
        return AttributeRiskAnalyzer(table, ['zip', 'age', 'gender']).analyze()

    def test_subset_count(self, table):
        analyzer = AttributeRiskAnalyzer(table, ['age', 'gender', 'zip'])
        subsets = analyzer.subsets()
        assert len(subsets) == 7
        assert subsets[0] == ('age',)
        assert subsets[-1] == ('age', 'gender', 'zip')

    def test_identifiers_follow_column_order(self, risks):
        assert all(list(r.identifiers) == sorted(r.identifiers, key=['age', 'gender', 'zip'].index)
                   for r in risks)

    def test_sorted_by_size_then_distinction(self, risks):
        keys = [(len(r.identifiers), r.distinction, r.separation) for r in risks]
        assert keys == sorted(keys)

    def test_single_attribute_values(self, risks):
        gender = next(r for r in risks if r.identifiers == ('gender',))
        assert gender.distinction == pytest.approx(2 / 8)
        assert gender.highest_risk == pytest.approx(1 / 4)
        assert gender.fraction_of_unique_tuples == 0.0

    def test_full_set_aggregates_only_itself(self, risks):
        full = next(r for r in risks if len(r.identifiers) == 3)
        for name in MEASURES:
            assert full.aggregated[name] == pytest.approx(full.measure(name))

    def test_aggregation_over_supersets(self, risks):
        by_key = {r.identifiers: r for r in risks}
        group = [by_key[k] for k in by_key if 'age' in k]
        expected = sum(r.distinction for r in group) / len(group)
        assert len(group) == 4
        assert by_key[('age',)].aggregated['distinction'] == pytest.approx(expected)

    def test_population_model_at_full_sampling(self, table):
        sample = AttributeRiskAnalyzer(table, ['age', 'zip']).analyze()
        population = AttributeRiskAnalyzer(table, ['age', 'zip'], model='zayatz').analyze()
        for s, p in zip(sample, population):
            assert s.identifiers == p.identifiers
            assert p.fraction_of_unique_tuples == pytest.approx(s.fraction_of_unique_tuples)

    def test_frame(self, risks):
        frame = risks_to_frame(risks)
        assert len(frame) == 7
        assert {'identifiers', 'num_identifiers', 'aggregated_separation'} <= set(frame.columns)


class TestAnalyzerControls:
    """Progress and cancellation."""

    def test_progress_reaches_end(self, table):
        reporter = ProgressReporter()
        AttributeRiskAnalyzer(table, ['age', 'zip'], progress=reporter.phase(0, 100)).analyze()
        assert reporter.value == 100

    def test_cancelled(self, table):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(ComputationInterrupted):
            AttributeRiskAnalyzer(table, ['age', 'zip'], token=token).analyze()
