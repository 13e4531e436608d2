# =============================================================================
# attribute_risk.py
# =============================================================================
# Risk analysis over every subset of a quasi-identifier set.
#
# For a candidate set of k attributes, all 2^k - 1 non-empty subsets are
# evaluated. Each subset gets its own histogram and a risk profile:
#
#   - highest / average re-identification risk
#   - fraction of unique records (in the sample, or estimated for the
#     population with a statistical model)
#   - distinction: number of classes / number of records
#   - separation: share of record pairs that differ on the subset
#
# Each measure is also averaged over the subset and all of its strict
# supersets, which shows how much an attribute contributes to the risk of
# every combination it takes part in.
#
# References:
#   - Motwani, R. and Xu, Y. (2007). Efficient algorithms for masking and
#     finding quasi-identifiers. VLDB.
#
# Author: James Weatherhead
# Institution: University of Texas Medical Branch (UTMB)
# =============================================================================

import logging
from dataclasses import dataclass, field
from itertools import combinations
from typing import Dict, Iterable, List, Optional, Tuple, Union

import pandas as pd

from .config import SolverConfiguration, validate_sampling_fraction
from .histogram import Histogram, build_histogram
from .population_models import PopulationModel, StatisticalModel
from .progress import CancellationToken, ProgressPhase, detached_phase
from .table import TableAccessor, resolve_quasi_identifiers
from .uniqueness_risk import (
    PopulationUniquenessRisk,
    SampleReidentificationRisk,
    SampleUniquenessRisk,
)

# Configure logging
logger = logging.getLogger(__name__)

MEASURES = (
    'highest_risk',
    'average_risk',
    'fraction_of_unique_tuples',
    'distinction',
    'separation',
)


def distinction(histogram: Histogram) -> float:
    """Number of classes divided by number of records."""
    if not histogram.num_records:
        return 0.0
    return histogram.num_classes / histogram.num_records


def separation(histogram: Histogram) -> float:
    """
    Share of unordered record pairs that fall into different classes.

    Walks the histogram by ascending size: records in classes of the current
    size are separated from every record in larger classes, and from records
    in the other classes of the same size.
    """
    num_records = histogram.num_records
    if num_records < 2:
        return 0.0

    comparisons = num_records * (num_records - 1) / 2.0
    separated = 0.0
    remaining = float(num_records)
    for size, multiplicity in histogram.entries:
        remaining -= size * multiplicity
        separated += multiplicity * size * remaining
        separated += (multiplicity - 1) * multiplicity * size * size / 2.0
    return separated / comparisons


@dataclass
class QuasiIdentifierRisk:
    """
    Risk profile of one attribute subset.

    Attributes:
        identifiers: Attributes of the subset, in column order
        highest_risk: 1 / smallest class size
        average_risk: Number of classes / number of records
        fraction_of_unique_tuples: Sample or estimated population uniques
        distinction: Number of classes / number of records
        separation: Share of record pairs the subset tells apart
        aggregated: Each measure averaged over the subset and its supersets
    """
    identifiers: Tuple[str, ...]
    highest_risk: float
    average_risk: float
    fraction_of_unique_tuples: float
    distinction: float
    separation: float
    aggregated: Dict[str, float] = field(default_factory=dict)

    def measure(self, name: str) -> float:
        return getattr(self, name)

    def to_dict(self) -> Dict:
        result = {
            'identifiers': list(self.identifiers),
            'highest_risk': self.highest_risk,
            'average_risk': self.average_risk,
            'fraction_of_unique_tuples': self.fraction_of_unique_tuples,
            'distinction': self.distinction,
            'separation': self.separation,
        }
        for name, value in self.aggregated.items():
            result[f'aggregated_{name}'] = value
        return result


class AttributeRiskAnalyzer:
    """
    Evaluates all non-empty subsets of a quasi-identifier set.

    The number of subsets grows as 2^k, so cancellation is checked once per
    subset (and inside each histogram build), and progress advances linearly
    with the number of subsets evaluated.

    Attributes:
        table (TableAccessor): Data to analyse
        quasi_identifiers (List[str]): Candidate attributes, in column order
        model (Optional[StatisticalModel]): Population model for the fraction
            of uniques; None for the sample fraction
        sampling_fraction (float): Used when a population model is set

    Example:
        >>> analyzer = AttributeRiskAnalyzer(table, ['age', 'gender', 'zip'])
        >>> for risk in analyzer.analyze():
        ...     print(risk.identifiers, risk.distinction)
    """

    def __init__(
        self,
        table: TableAccessor,
        quasi_identifiers: Iterable[str],
        model: Optional[Union[StatisticalModel, str]] = None,
        sampling_fraction: float = 1.0,
        config: Optional[SolverConfiguration] = None,
        token: Optional[CancellationToken] = None,
        progress: Optional[ProgressPhase] = None
    ):
        self.table = table
        self.quasi_identifiers, _ = resolve_quasi_identifiers(table, quasi_identifiers)
        self.model = StatisticalModel.parse(model) if model is not None else None
        self.sampling_fraction = validate_sampling_fraction(sampling_fraction)
        self.config = config or SolverConfiguration()
        self.token = token or CancellationToken()
        self.progress = progress or detached_phase()

    def subsets(self) -> List[Tuple[str, ...]]:
        """All non-empty subsets, smallest first, in column order."""
        result = []
        for size in range(1, len(self.quasi_identifiers) + 1):
            result.extend(combinations(self.quasi_identifiers, size))
        return result

    def _profile(self, identifiers: Tuple[str, ...]) -> QuasiIdentifierRisk:
        histogram = build_histogram(self.table, identifiers, self.token, detached_phase())
        reidentification = SampleReidentificationRisk(histogram)

        if self.model is None:
            fraction_unique = SampleUniquenessRisk(histogram).fraction_of_unique_tuples
        else:
            population = PopulationModel(histogram.num_records, self.sampling_fraction)
            fraction_unique = PopulationUniquenessRisk(
                histogram, population, self.config, self.token
            ).fraction_of_unique_tuples(self.model)

        return QuasiIdentifierRisk(
            identifiers=identifiers,
            highest_risk=reidentification.highest_risk,
            average_risk=reidentification.average_risk,
            fraction_of_unique_tuples=fraction_unique,
            distinction=distinction(histogram),
            separation=separation(histogram),
        )

    def analyze(self) -> List[QuasiIdentifierRisk]:
        """
        Evaluate every subset.

        Returns:
            Risk profiles sorted by subset size, then distinction, then
            separation

        Raises:
            ComputationInterrupted: If the token is set
        """
        subsets = self.subsets()
        logger.info(f"Analysing {len(subsets)} subsets of {self.quasi_identifiers}")

        profiles: Dict[Tuple[str, ...], QuasiIdentifierRisk] = {}
        for done, identifiers in enumerate(subsets):
            self.token.check()
            profiles[identifiers] = self._profile(identifiers)
            self.progress.update((done + 1) / len(subsets))

        self._aggregate(profiles)

        order = {name: index for index, name in enumerate(self.quasi_identifiers)}
        return sorted(
            profiles.values(),
            key=lambda r: (len(r.identifiers), r.distinction, r.separation,
                           [order[name] for name in r.identifiers])
        )

    def _aggregate(self, profiles: Dict[Tuple[str, ...], QuasiIdentifierRisk]) -> None:
        members = {identifiers: frozenset(identifiers) for identifiers in profiles}
        for identifiers, profile in profiles.items():
            self.token.check()
            group = [profile] + [
                other for key, other in profiles.items()
                if members[identifiers] < members[key]
            ]
            profile.aggregated = {
                name: sum(p.measure(name) for p in group) / len(group)
                for name in MEASURES
            }


def risks_to_frame(risks: List[QuasiIdentifierRisk]) -> pd.DataFrame:
    """Tabular view of attribute risks, one row per subset."""
    rows = []
    for risk in risks:
        row = risk.to_dict()
        row['identifiers'] = ', '.join(risk.identifiers)
        row['num_identifiers'] = len(risk.identifiers)
        rows.append(row)
    return pd.DataFrame(rows)
