# =============================================================================
# sample_risk.py
# =============================================================================
# Prosecutor, journalist and marketer risk of a sample.
#
# Attacker models:
#   - Prosecutor: knows the target is in the sample; the risk of a record is
#     1 / (size of its class in the sample).
#   - Journalist: only knows the target is in the population; the risk of a
#     record is 1 / (size of its class in the population).
#   - Marketer: tries to re-identify as many records as possible; only the
#     expected share of successful matches matters.
#
# Every summary reports the share of records whose risk exceeds a threshold
# (rA), the highest risk of a single record (rB), and the expected share of
# records re-identified on average (rC). Suppressed rows are ignored.
#
# References:
#   - El Emam, K. (2013). Guide to the De-Identification of Personal Health
#     Information, Chapter 14.
#
# Author: James Weatherhead
# Institution: University of Texas Medical Branch (UTMB)
# =============================================================================

import logging
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .config import validate_threshold
from .errors import InvalidArgumentError
from .histogram import Histogram, group_rows
from .progress import CancellationToken, ProgressPhase, detached_phase
from .table import TableAccessor, resolve_quasi_identifiers

# Configure logging
logger = logging.getLogger(__name__)

# (size in sample, size in population, number of such classes)
ClassSizes = Tuple[int, int, int]


@dataclass(frozen=True)
class RiskSummary:
    """
    Threshold-based risk summary.

    Attributes:
        threshold: Risk threshold used for fraction_of_records_at_risk
        fraction_of_records_at_risk: rA, share of records with risk above threshold
        highest_risk: rB, maximum probability of re-identification
        success_rate: rC, share of records re-identified on average
    """
    threshold: float
    fraction_of_records_at_risk: float
    highest_risk: float
    success_rate: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class ProsecutorRisk(RiskSummary):
    """Risk when the attacker knows the target is in the sample."""


@dataclass(frozen=True)
class JournalistRisk(RiskSummary):
    """Risk when the attacker only knows the target is in the population."""


@dataclass(frozen=True)
class MarketerRisk:
    """Expected share of records re-identified when matching all of them."""
    success_rate: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def prosecutor_risk(
    classes: List[ClassSizes],
    threshold: float,
    token: CancellationToken,
    progress: ProgressPhase
) -> ProsecutorRisk:
    records_at_risk = 0.0
    num_records = 0.0
    num_classes = 0.0
    smallest = None

    total = len(classes)
    for index, (sample_size, _, multiplicity) in enumerate(classes):
        token.check()
        progress.update(index / total)
        if 1.0 / sample_size > threshold:
            records_at_risk += sample_size * multiplicity
        if smallest is None or sample_size < smallest:
            smallest = sample_size
        num_classes += multiplicity
        num_records += sample_size * multiplicity
    progress.complete()

    if not num_records:
        return ProsecutorRisk(threshold, 0.0, 0.0, 0.0)
    return ProsecutorRisk(
        threshold=threshold,
        fraction_of_records_at_risk=records_at_risk / num_records,
        highest_risk=1.0 / smallest,
        success_rate=num_classes / num_records
    )


def journalist_risk(
    classes: List[ClassSizes],
    threshold: float,
    token: CancellationToken,
    progress: ProgressPhase
) -> JournalistRisk:
    records_at_risk = 0.0
    num_records = 0.0
    num_classes = 0.0
    population_records = 0.0
    expected_matches = 0.0
    smallest = None

    total = len(classes)
    for index, (sample_size, population_size, multiplicity) in enumerate(classes):
        token.check()
        progress.update(index / total)
        if 1.0 / population_size > threshold:
            records_at_risk += sample_size * multiplicity
        if smallest is None or population_size < smallest:
            smallest = population_size
        num_classes += multiplicity
        num_records += sample_size * multiplicity
        population_records += population_size * multiplicity
        expected_matches += sample_size / population_size * multiplicity
    progress.complete()

    if not num_records:
        return JournalistRisk(threshold, 0.0, 0.0, 0.0)
    return JournalistRisk(
        threshold=threshold,
        fraction_of_records_at_risk=records_at_risk / num_records,
        highest_risk=1.0 / smallest,
        success_rate=max(num_classes / population_records, expected_matches / num_records)
    )


def marketer_risk(
    classes: List[ClassSizes],
    token: CancellationToken,
    progress: ProgressPhase
) -> MarketerRisk:
    num_records = 0.0
    expected_matches = 0.0

    total = len(classes)
    for index, (sample_size, population_size, multiplicity) in enumerate(classes):
        token.check()
        progress.update(index / total)
        num_records += sample_size * multiplicity
        expected_matches += sample_size / population_size * multiplicity
    progress.complete()

    return MarketerRisk(expected_matches / num_records if num_records else 0.0)


class SampleRiskSummary:
    """
    Prosecutor, journalist and marketer risk of one sample.

    Without a population superset, population class sizes equal sample class
    sizes and the three attacker models coincide on rC.

    Attributes:
        threshold (float): Risk threshold in [0, 1]
        prosecutor (ProsecutorRisk): Prosecutor summary
        journalist (JournalistRisk): Journalist summary
        marketer (MarketerRisk): Marketer summary

    Example:
        >>> summary = SampleRiskSummary.from_histogram(Histogram(((1, 3), (5, 2))), 0.2)
        >>> summary.prosecutor.highest_risk, round(summary.prosecutor.success_rate, 4)
        (1.0, 0.3846)
    """

    def __init__(
        self,
        classes: Iterable[ClassSizes],
        threshold: float,
        token: Optional[CancellationToken] = None,
        progress: Optional[ProgressPhase] = None
    ):
        """
        Summarise a list of classes.

        Args:
            classes: (sample size, population size, multiplicity) per class
            threshold: Risk threshold in [0, 1]
            token: Cancellation token
            progress: Progress phase; the three summaries share it equally

        Raises:
            InvalidArgumentError: If the threshold is outside [0, 1]
        """
        self.threshold = validate_threshold(threshold)
        token = token or CancellationToken()
        progress = progress or detached_phase()
        classes = list(classes)

        self.prosecutor = prosecutor_risk(classes, self.threshold, token, progress.sub(0.0, 1 / 3))
        self.journalist = journalist_risk(classes, self.threshold, token, progress.sub(1 / 3, 2 / 3))
        self.marketer = marketer_risk(classes, token, progress.sub(2 / 3, 1.0))

    @classmethod
    def from_histogram(
        cls,
        histogram: Histogram,
        threshold: float,
        token: Optional[CancellationToken] = None,
        progress: Optional[ProgressPhase] = None
    ) -> "SampleRiskSummary":
        """Summary of a sample that is its own population."""
        return cls(((size, size, count) for size, count in histogram.entries),
                   threshold, token, progress)

    @classmethod
    def from_table(
        cls,
        table: TableAccessor,
        quasi_identifiers: Iterable[str],
        threshold: float,
        token: Optional[CancellationToken] = None,
        progress: Optional[ProgressPhase] = None
    ) -> "SampleRiskSummary":
        """
        Summary of a table, matched against its superset if it has one.

        Grouping takes the first 90% of the progress phase (split evenly
        between sample and superset when there is one); the three summaries
        share the remaining 10%.

        Raises:
            InvalidArgumentError: If the quasi-identifiers do not fit the
                table or the superset lacks a class present in the sample
        """
        validate_threshold(threshold)
        token = token or CancellationToken()
        progress = progress or detached_phase()
        names, columns = resolve_quasi_identifiers(table, quasi_identifiers)

        population_table = table.superset()
        if population_table is not None:
            sample = group_rows(table, columns, token, progress.sub(0.0, 0.45))
            resolve_quasi_identifiers(population_table, names)
            population_columns = [population_table.column_index_of(name) for name in names]
            population = group_rows(population_table, population_columns, token,
                                    progress.sub(0.45, 0.9))
        else:
            sample = group_rows(table, columns, token, progress.sub(0.0, 0.9))
            population = sample

        classes = []
        for projection, sample_size in sample.items():
            population_size = population.get(projection)
            if population_size is None:
                raise InvalidArgumentError(
                    f"Sample class {projection} does not occur in the population superset"
                )
            classes.append((sample_size, population_size, 1))

        summary = cls(classes, threshold, token, progress.sub(0.9, 1.0))
        logger.info(f"Sample risk summary over {names}: "
                    f"prosecutor rC={summary.prosecutor.success_rate:.4f}, "
                    f"journalist rC={summary.journalist.success_rate:.4f}")
        return summary

    def to_dict(self) -> Dict:
        return {
            'threshold': self.threshold,
            'prosecutor': self.prosecutor.to_dict(),
            'journalist': self.journalist.to_dict(),
            'marketer': self.marketer.to_dict(),
        }
