#!/usr/bin/env python3
"""
Unit tests for the population uniqueness models and the Dankar rule.

The selection rule is tested with stubbed estimators so that every branch
(Pitman for small sampling fractions, the Zayatz/SNB minimum for large ones,
and each fallback) is exercised independently of solver convergence.
"""

import math
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest
from scipy import optimize, special

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from reidrisk.config import SolverConfiguration
from reidrisk.errors import InvalidArgumentError, PreconditionViolatedError
from reidrisk.histogram import Histogram, build_histogram
from reidrisk.population_models import (
    PopulationModel,
    StatisticalModel,
    UniquenessEstimate,
    _PitmanEquations,
    estimate_pitman,
    estimate_snb,
    estimate_zayatz,
    fit_pitman,
    is_valid_estimate,
    pitman_initial_guess,
    pitman_parameters_admissible,
    pitman_uniques,
    shlosser_estimate,
)
from reidrisk.table import DataFrameTable
from reidrisk.uniqueness_risk import (
    PopulationUniquenessRisk,
    SampleReidentificationRisk,
    SampleUniquenessRisk,
    estimate_uniqueness,
)

NAN = float('nan')


def chinese_restaurant_classes(num_records, theta, alpha, seed):
    """
    Class label of every record of a Pitman-Yor (theta, alpha) partition.

    Records are seated one at a time; the labels are exchangeable, so any
    prefix is a simple random sample of the whole partition.
    """
    rng = np.random.default_rng(seed)
    labels = []
    sizes = []
    for i in range(num_records):
        if rng.random() * (theta + i) < theta + alpha * len(sizes):
            sizes.append(1)
            labels.append(len(sizes) - 1)
            continue
        # Join class j with probability proportional to sizes[j] - alpha
        while True:
            label = labels[int(rng.random() * i)]
            if rng.random() * sizes[label] < sizes[label] - alpha:
                break
        sizes[label] += 1
        labels.append(label)
    return labels


def make_population(num_records, seed):
    """Skewed age x sex x zip population."""
    rng = np.random.default_rng(seed)
    age_weights = np.exp(-np.arange(80) / 25.0)
    zip_weights = 1.0 / np.power(np.arange(1, 301), 1.1)
    return pd.DataFrame({
        'age': rng.choice(80, size=num_records, p=age_weights / age_weights.sum()),
        'sex': rng.choice(2, size=num_records),
        'zip': rng.choice(300, size=num_records, p=zip_weights / zip_weights.sum()),
    })


class TestPopulationModel:
    """Sample-to-population relation."""

    def test_population_size(self):
        assert PopulationModel(100, 0.1).population_size == 1000

    def test_population_size_rounds_half_up(self):
        assert PopulationModel(3, 0.4).population_size == 8

    def test_from_population_size(self):
        model = PopulationModel.from_population_size(100, 1000)
        assert model.sampling_fraction == pytest.approx(0.1)
        assert model.population_size == 1000

    @pytest.mark.parametrize("fraction", [0.0, -0.5, 1.5])
    def test_invalid_sampling_fraction(self, fraction):
        with pytest.raises(InvalidArgumentError):
            PopulationModel(10, fraction)

    def test_population_smaller_than_sample(self):
        with pytest.raises(InvalidArgumentError):
            PopulationModel.from_population_size(100, 50)


class TestModelNames:
    """StatisticalModel lookup and estimate validity."""

    def test_parse_is_case_insensitive(self):
        assert StatisticalModel.parse('Pitman') is StatisticalModel.PITMAN
        assert StatisticalModel.parse(StatisticalModel.SNB) is StatisticalModel.SNB

    def test_parse_unknown(self):
        with pytest.raises(InvalidArgumentError):
            StatisticalModel.parse('poisson')

    @pytest.mark.parametrize("value,expected", [
        (NAN, False), (0.0, False), (0.5, True), (-1.0, True)])
    def test_is_valid_estimate(self, value, expected):
        assert is_valid_estimate(value) is expected


class TestPrecondition:
    """Direct estimators require at least one sample unique."""

    @pytest.fixture(scope="class")
    def no_uniques(self):
        return Histogram(((2, 3), (4, 1)))

    def test_zayatz_raises(self, no_uniques):
        with pytest.raises(PreconditionViolatedError):
            estimate_zayatz(no_uniques, PopulationModel(10, 0.1))

    def test_pitman_raises(self, no_uniques):
        with pytest.raises(PreconditionViolatedError):
            estimate_pitman(no_uniques, PopulationModel(10, 0.1))

    def test_snb_raises(self, no_uniques):
        with pytest.raises(PreconditionViolatedError):
            estimate_snb(no_uniques, PopulationModel(10, 0.5))

    def test_factory_raises(self, no_uniques):
        with pytest.raises(PreconditionViolatedError):
            estimate_uniqueness('dankar', no_uniques, PopulationModel(10, 0.1))

    def test_aggregate_reports_zero_without_fitting(self, no_uniques, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("estimator must not run")

        monkeypatch.setattr("reidrisk.uniqueness_risk.estimate_pitman", fail)
        monkeypatch.setattr("reidrisk.uniqueness_risk.estimate_zayatz", fail)
        monkeypatch.setattr("reidrisk.uniqueness_risk.estimate_snb", fail)

        risk = PopulationUniquenessRisk(no_uniques, PopulationModel(10, 0.1))
        for model in StatisticalModel:
            assert risk.num_unique_tuples(model) == 0.0
            assert risk.fraction_of_unique_tuples(model) == 0.0
        assert risk.dankar_model is StatisticalModel.DANKAR
        assert risk.dankar_model_without_snb is StatisticalModel.DANKAR
        assert risk.estimate(StatisticalModel.DANKAR_WITHOUT_SNB).model is StatisticalModel.DANKAR


class TestZayatz:
    """Zayatz estimates on histograms with known answers."""

    def test_census_is_exact(self):
        histogram = Histogram(((1, 5), (2, 3)))
        estimate = estimate_zayatz(histogram, PopulationModel(11, 1.0))
        assert estimate.model is StatisticalModel.ZAYATZ
        assert estimate.value == pytest.approx(5.0)

    def test_all_unique_sample(self):
        histogram = Histogram(((1, 100),))
        estimate = estimate_zayatz(histogram, PopulationModel(100, 0.1))
        assert estimate.value == pytest.approx(1000.0)


class TestPitman:
    """Pitman helpers and the fitted estimate."""

    def test_uniques_from_parameters(self):
        expected = math.exp(special.gammaln(3.0) - special.gammaln(2.5)) * 100 ** 0.5
        assert pitman_uniques(2.0, 0.5, 100) == pytest.approx(expected)

    def test_uniques_with_alpha_one(self):
        assert pitman_uniques(0.0, 1.0, 500) == pytest.approx(500.0)

    def test_uniques_undefined_for_zero_alpha(self):
        assert math.isnan(pitman_uniques(1.0, 0.0, 100))

    def test_uniques_out_of_range_is_nan(self):
        # Gamma ratio times N^alpha far above N
        assert math.isnan(pitman_uniques(1000.0, 0.9, 100))

    def test_initial_guess_is_finite(self):
        theta, alpha = pitman_initial_guess(Histogram(((1, 60), (2, 20), (3, 10), (5, 4))))
        assert math.isfinite(theta)
        assert math.isfinite(alpha)

    def test_estimate_is_nan_or_within_population(self):
        histogram = Histogram(((1, 60), (2, 20), (3, 10), (4, 5), (6, 2)))
        population = PopulationModel(histogram.num_records, 0.05)
        estimate = estimate_pitman(histogram, population)
        assert estimate.model is StatisticalModel.PITMAN
        assert math.isnan(estimate.value) or 0.0 <= estimate.value <= population.population_size

    @pytest.mark.parametrize("theta,alpha,expected", [
        (0.66, 0.64, True),
        (0.0, 0.0, True),
        (82.5, -0.97, False),
        (-0.1, 0.5, False),
        (1.0, 1.0, False),
    ])
    def test_parameters_admissible(self, theta, alpha, expected):
        assert pitman_parameters_admissible((theta, alpha)) is expected


class TestPitmanFit:
    """Pitman fit on a sample drawn from a Pitman-Yor partition."""

    POPULATION_SIZE = 40000
    SAMPLE_SIZE = 2000

    @pytest.fixture(scope="class")
    def labels(self):
        return chinese_restaurant_classes(self.POPULATION_SIZE, theta=50.0, alpha=0.6, seed=7)

    @pytest.fixture(scope="class")
    def histogram(self, labels):
        sizes = pd.Series(labels[:self.SAMPLE_SIZE]).value_counts()
        return Histogram.from_class_sizes(sizes.tolist())

    @pytest.fixture(scope="class")
    def population_uniques(self, labels):
        return int((pd.Series(labels).value_counts() == 1).sum())

    def test_estimate_is_close_to_population_uniques(self, histogram, population_uniques):
        population = PopulationModel.from_population_size(
            histogram.num_records, self.POPULATION_SIZE)
        estimate = estimate_pitman(histogram, population)
        assert estimate.is_valid
        assert 0.5 <= estimate.value / population_uniques <= 2.0

    def test_fit_is_admissible_root_of_series_form(self, histogram):
        solution = fit_pitman(histogram)
        assert solution.is_valid
        assert pitman_parameters_admissible(solution.values)
        residual = _PitmanEquations(histogram).series_objective(np.array(solution.values))
        assert np.linalg.norm(residual) < 1e-6

    def test_fit_agrees_with_fsolve(self, histogram):
        solution = fit_pitman(histogram)
        equations = _PitmanEquations(histogram)
        roots, _, ier, message = optimize.fsolve(
            equations.series_objective, pitman_initial_guess(histogram),
            full_output=True, xtol=1e-12)
        assert ier == 1, message
        assert solution.values == pytest.approx(tuple(roots), rel=1e-4)


class TestSNB:
    """Shlosser and SNB estimates."""

    @pytest.fixture(scope="class")
    def histogram(self):
        return Histogram(((1, 40), (2, 15), (3, 6), (5, 2)))

    def test_shlosser_at_least_sample_classes(self, histogram):
        assert shlosser_estimate(histogram, 0.3) >= histogram.num_classes

    def test_shlosser_undefined_for_census(self, histogram):
        assert math.isnan(shlosser_estimate(histogram, 1.0))

    def test_snb_undefined_for_census(self, histogram):
        estimate = estimate_snb(histogram, PopulationModel(histogram.num_records, 1.0))
        assert estimate.model is StatisticalModel.SNB
        assert math.isnan(estimate.value)

    def test_seeded_snb_repeats(self, histogram):
        config = SolverConfiguration(seed=11, max_tries=10)
        population = PopulationModel(histogram.num_records, 0.3)
        first = estimate_snb(histogram, population, config).value
        second = estimate_snb(histogram, population, config).value
        assert (math.isnan(first) and math.isnan(second)) or first == second


class TestSNBFit:
    """SNB fit on a large sample of a skewed age x sex x zip population."""

    POPULATION_SIZE = 40000
    SAMPLING_FRACTION = 0.3

    @pytest.fixture(scope="class")
    def histogram(self):
        population = make_population(self.POPULATION_SIZE, seed=5)
        sample = population.sample(frac=self.SAMPLING_FRACTION, random_state=5)
        return build_histogram(DataFrameTable(sample), ['age', 'sex', 'zip'])

    @pytest.fixture(scope="class")
    def population(self, histogram):
        return PopulationModel.from_population_size(histogram.num_records, self.POPULATION_SIZE)

    def test_seeded_estimate_is_valid(self, histogram, population):
        estimate = estimate_snb(histogram, population, SolverConfiguration(seed=11))
        assert estimate.model is StatisticalModel.SNB
        assert estimate.is_valid
        assert estimate.value <= population.population_size

    def test_dankar_selects_snb_or_zayatz(self, histogram, population):
        risk = PopulationUniquenessRisk(histogram, population, SolverConfiguration(seed=11))
        assert risk.dankar_model in (StatisticalModel.SNB, StatisticalModel.ZAYATZ)
        assert risk.is_available_estimate('dankar')


class TestDankarRule:
    """Model selection with stubbed estimators."""

    HISTOGRAM = Histogram(((1, 10), (2, 5), (3, 2)))

    def stub(self, monkeypatch, pitman=NAN, zayatz=NAN, snb=NAN):
        calls = []

        def make(model, value):
            def estimator(*args, **kwargs):
                calls.append(model)
                return UniquenessEstimate(model, value)
            return estimator

        monkeypatch.setattr("reidrisk.uniqueness_risk.estimate_pitman",
                            make(StatisticalModel.PITMAN, pitman))
        monkeypatch.setattr("reidrisk.uniqueness_risk.estimate_zayatz",
                            make(StatisticalModel.ZAYATZ, zayatz))
        monkeypatch.setattr("reidrisk.uniqueness_risk.estimate_snb",
                            make(StatisticalModel.SNB, snb))
        return calls

    def risk(self, fraction):
        return PopulationUniquenessRisk(self.HISTOGRAM, PopulationModel(26, fraction))

    def test_small_fraction_prefers_pitman(self, monkeypatch):
        self.stub(monkeypatch, pitman=12.0, zayatz=30.0, snb=5.0)
        assert self.risk(0.1).dankar_model is StatisticalModel.PITMAN

    def test_small_fraction_falls_back_to_zayatz(self, monkeypatch):
        self.stub(monkeypatch, pitman=NAN, zayatz=30.0)
        assert self.risk(0.05).dankar_model is StatisticalModel.ZAYATZ

    def test_large_fraction_takes_smaller_snb(self, monkeypatch):
        self.stub(monkeypatch, zayatz=50.0, snb=40.0)
        risk = self.risk(0.5)
        assert risk.dankar_model is StatisticalModel.SNB
        assert risk.num_unique_tuples('dankar') == 40.0

    def test_large_fraction_keeps_smaller_zayatz(self, monkeypatch):
        self.stub(monkeypatch, zayatz=50.0, snb=60.0)
        assert self.risk(0.5).dankar_model is StatisticalModel.ZAYATZ

    def test_invalid_snb_keeps_zayatz(self, monkeypatch):
        self.stub(monkeypatch, zayatz=50.0, snb=NAN)
        assert self.risk(0.5).dankar_model is StatisticalModel.ZAYATZ

    def test_invalid_zayatz_uses_snb(self, monkeypatch):
        self.stub(monkeypatch, zayatz=NAN, snb=40.0)
        assert self.risk(0.5).dankar_model is StatisticalModel.SNB

    def test_all_invalid_falls_back_to_pitman(self, monkeypatch):
        self.stub(monkeypatch, pitman=NAN, zayatz=0.0, snb=NAN)
        risk = self.risk(0.5)
        assert risk.dankar_model is StatisticalModel.PITMAN
        assert not risk.is_available_estimate('dankar')

    def test_without_snb_never_fits_snb(self, monkeypatch):
        calls = self.stub(monkeypatch, pitman=8.0, zayatz=NAN, snb=1.0)
        risk = self.risk(0.5)
        assert risk.dankar_model_without_snb is StatisticalModel.PITMAN
        assert StatisticalModel.SNB not in calls

    def test_no_pairs_uses_zayatz(self, monkeypatch):
        self.stub(monkeypatch, pitman=1.0, zayatz=30.0, snb=1.0)
        risk = PopulationUniquenessRisk(Histogram(((1, 10), (3, 2))), PopulationModel(16, 0.05))
        assert risk.dankar_model is StatisticalModel.ZAYATZ

    def test_estimates_are_cached(self, monkeypatch):
        calls = self.stub(monkeypatch, pitman=12.0)
        risk = self.risk(0.1)
        risk.estimate('pitman')
        risk.estimate('dankar')
        assert calls.count(StatisticalModel.PITMAN) == 1


class TestSampleRisks:
    """Sample-based uniqueness and re-identification measures."""

    def test_reidentification_example(self):
        risk = SampleReidentificationRisk(Histogram(((1, 3), (5, 2))))
        assert risk.highest_risk == 1.0
        assert risk.lowest_risk == pytest.approx(0.2)
        assert risk.average_risk == pytest.approx(5 / 13)
        assert risk.num_records_affected_by_highest_risk == 3
        assert risk.fraction_of_records_affected_by_lowest_risk == pytest.approx(10 / 13)

    def test_empty_histogram(self):
        risk = SampleReidentificationRisk(Histogram())
        assert risk.highest_risk == 0.0
        assert risk.average_risk == 0.0
        assert SampleUniquenessRisk(Histogram()).fraction_of_unique_tuples == 0.0

    def test_census_matches_sample_uniqueness(self):
        histogram = Histogram(((1, 4), (2, 3), (5, 1)))
        population = PopulationUniquenessRisk(histogram, PopulationModel(15, 1.0))
        sample = SampleUniquenessRisk(histogram)
        assert population.fraction_of_unique_tuples('dankar') == pytest.approx(
            sample.fraction_of_unique_tuples)

    def test_all_unique_sample_is_fully_unique_in_population(self):
        risk = PopulationUniquenessRisk(Histogram(((1, 100),)), PopulationModel(100, 0.1))
        assert risk.dankar_model is StatisticalModel.ZAYATZ
        assert risk.fraction_of_unique_tuples('dankar') == pytest.approx(1.0)
