"""
Uniqueness and re-identification risk derived from one histogram.

  - SampleReidentificationRisk: highest, lowest and average risk of the
    records in the sample
  - SampleUniquenessRisk: share of records that are unique in the sample
  - PopulationUniquenessRisk: estimated population uniques under each
    statistical model, plus the Dankar et al. rule choosing among them

References:
  - Dankar, F. K., El Emam, K., Neisa, A. and Roffey, T. (2012). Estimating
    the re-identification risk of clinical data sets. BMC Medical Informatics
    and Decision Making, 12(1):66.

Author: James Weatherhead, UTMB (jacweath@utmb.edu)
"""

import logging
import math
from typing import Dict, Optional, Union

from .config import SolverConfiguration
from .histogram import Histogram
from .population_models import (
    PopulationModel,
    StatisticalModel,
    UniquenessEstimate,
    estimate_pitman,
    estimate_snb,
    estimate_zayatz,
    is_valid_estimate,
    require_sample_uniques,
)
from .progress import CancellationToken

# Configure logging
logger = logging.getLogger(__name__)

# Up to this sampling fraction the Pitman model is preferred
DANKAR_PITMAN_THRESHOLD = 0.1


class SampleReidentificationRisk:
    """
    Re-identification risk of the records in the sample.

    A record in a class of size k is re-identified with probability 1/k.
    All measures are 0 for an empty histogram.

    Example:
        >>> risk = SampleReidentificationRisk(Histogram(((1, 3), (5, 2))))
        >>> risk.highest_risk, round(risk.average_risk, 4)
        (1.0, 0.3846)
    """

    def __init__(self, histogram: Histogram):
        self.histogram = histogram

    @property
    def highest_risk(self) -> float:
        return 1.0 / self.histogram.min_class_size if self.histogram.entries else 0.0

    @property
    def lowest_risk(self) -> float:
        return 1.0 / self.histogram.max_class_size if self.histogram.entries else 0.0

    @property
    def average_risk(self) -> float:
        """Number of classes divided by number of records."""
        if not self.histogram.num_records:
            return 0.0
        return self.histogram.num_classes / self.histogram.num_records

    @property
    def num_records_affected_by_highest_risk(self) -> int:
        if not self.histogram.entries:
            return 0
        size, count = self.histogram.entries[0]
        return size * count

    @property
    def num_records_affected_by_lowest_risk(self) -> int:
        if not self.histogram.entries:
            return 0
        size, count = self.histogram.entries[-1]
        return size * count

    @property
    def fraction_of_records_affected_by_highest_risk(self) -> float:
        if not self.histogram.num_records:
            return 0.0
        return self.num_records_affected_by_highest_risk / self.histogram.num_records

    @property
    def fraction_of_records_affected_by_lowest_risk(self) -> float:
        if not self.histogram.num_records:
            return 0.0
        return self.num_records_affected_by_lowest_risk / self.histogram.num_records

    def to_dict(self) -> Dict[str, float]:
        return {
            'highest_risk': self.highest_risk,
            'lowest_risk': self.lowest_risk,
            'average_risk': self.average_risk,
            'records_affected_by_highest_risk': self.num_records_affected_by_highest_risk,
            'fraction_affected_by_highest_risk': self.fraction_of_records_affected_by_highest_risk,
            'records_affected_by_lowest_risk': self.num_records_affected_by_lowest_risk,
            'fraction_affected_by_lowest_risk': self.fraction_of_records_affected_by_lowest_risk,
        }


class SampleUniquenessRisk:
    """Records that are unique within the sample."""

    def __init__(self, histogram: Histogram):
        self.histogram = histogram

    @property
    def num_unique_tuples(self) -> int:
        return self.histogram.c1

    @property
    def fraction_of_unique_tuples(self) -> float:
        if not self.histogram.num_records:
            return 0.0
        return self.histogram.c1 / self.histogram.num_records

    def to_dict(self) -> Dict[str, float]:
        return {
            'num_unique_tuples': self.num_unique_tuples,
            'fraction_of_unique_tuples': self.fraction_of_unique_tuples,
        }


class PopulationUniquenessRisk:
    """
    Estimated population uniques under every statistical model.

    Estimates are computed on first request and cached. A sample without
    unique records has no population uniques either: every model then
    reports 0 without fitting anything, and the Dankar rule records DANKAR
    as its choice.

    Attributes:
        histogram (Histogram): Sample histogram
        population (PopulationModel): Sample-to-population relation
        config (SolverConfiguration): Solver settings for Pitman and SNB

    Example:
        >>> risk = PopulationUniquenessRisk(histogram, PopulationModel(1000, 0.05))
        >>> risk.dankar_model
        <StatisticalModel.PITMAN: 'pitman'>
        >>> risk.fraction_of_unique_tuples(StatisticalModel.DANKAR)
    """

    def __init__(
        self,
        histogram: Histogram,
        population: PopulationModel,
        config: Optional[SolverConfiguration] = None,
        token: Optional[CancellationToken] = None
    ):
        self.histogram = histogram
        self.population = population
        self.config = config or SolverConfiguration()
        self.token = token or CancellationToken()
        self._estimates: Dict[StatisticalModel, UniquenessEstimate] = {}

    def _estimate(self, model: StatisticalModel) -> UniquenessEstimate:
        if model not in self._estimates:
            if self.histogram.c1 == 0:
                # Nothing to fit; both rule variants report as DANKAR
                tag = (StatisticalModel.DANKAR
                       if model in (StatisticalModel.DANKAR, StatisticalModel.DANKAR_WITHOUT_SNB)
                       else model)
                estimate = UniquenessEstimate(tag, 0.0)
            elif model is StatisticalModel.PITMAN:
                estimate = estimate_pitman(self.histogram, self.population, self.config, self.token)
            elif model is StatisticalModel.ZAYATZ:
                estimate = estimate_zayatz(self.histogram, self.population, self.token)
            elif model is StatisticalModel.SNB:
                estimate = estimate_snb(self.histogram, self.population, self.config, self.token)
            else:
                estimate = self._select(use_snb=model is StatisticalModel.DANKAR)
            self._estimates[model] = estimate
        return self._estimates[model]

    def _select(self, use_snb: bool) -> UniquenessEstimate:
        """Dankar et al. decision rule, optionally without the SNB model."""
        if self.histogram.c1 == 0:
            return UniquenessEstimate(StatisticalModel.DANKAR, 0.0)

        if self.histogram.c2 == 0:
            logger.debug("No classes of size 2, using Zayatz")
            return self._estimate(StatisticalModel.ZAYATZ)

        if self.population.sampling_fraction <= DANKAR_PITMAN_THRESHOLD:
            pitman = self._estimate(StatisticalModel.PITMAN)
            if pitman.is_valid:
                return pitman
            logger.debug("Pitman estimate invalid, falling back to Zayatz")
            return self._estimate(StatisticalModel.ZAYATZ)

        zayatz = self._estimate(StatisticalModel.ZAYATZ)
        if use_snb:
            snb = self._estimate(StatisticalModel.SNB)
        else:
            snb = UniquenessEstimate(StatisticalModel.SNB, math.nan)

        if not zayatz.is_valid:
            if snb.is_valid:
                return snb
            logger.debug("Zayatz and SNB estimates invalid, falling back to Pitman")
            return self._estimate(StatisticalModel.PITMAN)

        if snb.is_valid and snb.value < zayatz.value:
            return snb
        return zayatz

    @property
    def dankar_model(self) -> StatisticalModel:
        """Model chosen by the Dankar rule."""
        return self._estimate(StatisticalModel.DANKAR).model

    @property
    def dankar_model_without_snb(self) -> StatisticalModel:
        return self._estimate(StatisticalModel.DANKAR_WITHOUT_SNB).model

    def estimate(self, model: Union[StatisticalModel, str]) -> UniquenessEstimate:
        """
        Estimate under one model.

        Args:
            model: StatisticalModel or its name

        Returns:
            UniquenessEstimate tagged with the model that produced it (for the
            Dankar rules, the model that was selected)
        """
        return self._estimate(StatisticalModel.parse(model))

    def num_unique_tuples(self, model: Union[StatisticalModel, str]) -> float:
        return self.estimate(model).value

    def fraction_of_unique_tuples(self, model: Union[StatisticalModel, str]) -> float:
        """Estimated population uniques divided by the population size."""
        population_size = self.population.population_size
        if population_size == 0:
            return 0.0
        return self.num_unique_tuples(model) / population_size

    def is_available_estimate(self, model: Union[StatisticalModel, str]) -> bool:
        return is_valid_estimate(self.num_unique_tuples(model))

    def to_dict(self) -> Dict:
        result = {'population': self.population.to_dict()}
        for model in StatisticalModel:
            estimate = self.estimate(model)
            result[model.value] = {
                'selected_model': estimate.model.value,
                'num_unique_tuples': estimate.value,
                'fraction_of_unique_tuples': self.fraction_of_unique_tuples(model),
                'available': estimate.is_valid,
            }
        return result


def estimate_uniqueness(
    model: Union[StatisticalModel, str],
    histogram: Histogram,
    population: PopulationModel,
    config: Optional[SolverConfiguration] = None,
    token: Optional[CancellationToken] = None
) -> UniquenessEstimate:
    """
    Factory-style entry point: estimate population uniques with one model.

    Args:
        model: Model kind or name ('pitman', 'zayatz', 'snb', 'dankar',
               'dankar_without_snb')
        histogram: Sample histogram
        population: Population model
        config: Solver settings
        token: Cancellation token

    Returns:
        UniquenessEstimate

    Raises:
        InvalidArgumentError: If the model name is unknown
        PreconditionViolatedError: If the sample has no unique records
    """
    model = StatisticalModel.parse(model)
    require_sample_uniques(histogram)
    return PopulationUniquenessRisk(histogram, population, config, token).estimate(model)
