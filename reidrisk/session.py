"""
Risk estimation session.

A RiskSession binds one table snapshot to one quasi-identifier set. It builds
the class-size histogram on first use, keeps it for its own lifetime, and
exposes every risk measure as a named query. The session owns the
cancellation token and progress reporter shared by all nested computations:
another thread may call ``interrupt()`` at any time and read ``progress``.

Queries called directly propagate ComputationInterrupted. ``run(name, ...)``
is the session boundary: it executes a query and reports an interruption as
a QueryResult instead of raising.

Author: James Weatherhead, UTMB (jacweath@utmb.edu)
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from .attribute_risk import AttributeRiskAnalyzer, QuasiIdentifierRisk
from .config import (
    RiskConfig,
    SolverConfiguration,
    validate_sampling_fraction,
    validate_threshold,
)
from .errors import ComputationInterrupted, InvalidArgumentError
from .histogram import Histogram, build_histogram, equivalence_class_sizes
from .population_models import PopulationModel, StatisticalModel
from .progress import CancellationToken, ProgressPhase, ProgressReporter
from .sample_risk import SampleRiskSummary
from .table import TableAccessor, resolve_quasi_identifiers
from .uniqueness_risk import (
    PopulationUniquenessRisk,
    SampleReidentificationRisk,
    SampleUniquenessRisk,
)
from .wildcard import SampleWildcardRisk

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_SAMPLING_FRACTIONS = (
    0.001, 0.005, 0.01, 0.02, 0.05, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0
)

# Queries that may be executed through RiskSession.run
QUERIES = (
    'histogram',
    'class_size_distribution',
    'record_class_sizes',
    'sample_reidentification_risk',
    'sample_uniqueness_risk',
    'population_uniqueness_risk',
    'sample_risk_summary',
    'wildcard_risk',
    'attribute_risks',
    'uniqueness_by_sampling_fraction',
)


@dataclass(frozen=True)
class QueryResult:
    """
    Outcome of a query executed at the session boundary.

    Attributes:
        name: Query name
        value: Query result, None if interrupted
        interrupted: Whether the query was cancelled
        elapsed_seconds: Wall-clock duration
    """
    name: str
    value: Any = None
    interrupted: bool = False
    elapsed_seconds: float = 0.0


class RiskSession:
    """
    Entry point for risk estimation on one table.

    Attributes:
        table (TableAccessor): Data being analysed (read-only)
        quasi_identifiers (List[str]): Validated attribute names
        sampling_fraction (float): Sample size / population size
        solver_config (SolverConfiguration): Settings for model fitting
        token (CancellationToken): Shared cancellation flag
        progress (ProgressReporter): Shared progress value

    Example:
        >>> session = RiskSession(DataFrameTable(df), ['age', 'gender', 'zip'],
        ...                       sampling_fraction=0.1)
        >>> session.sample_reidentification_risk().average_risk
        >>> session.population_uniqueness_risk().dankar_model
        >>> result = session.run('attribute_risks')
        >>> result.interrupted
        False
    """

    def __init__(
        self,
        table: TableAccessor,
        quasi_identifiers: Iterable[str],
        sampling_fraction: float = 1.0,
        solver_config: Optional[SolverConfiguration] = None,
        show_progress: bool = False,
        histogram: Optional[Histogram] = None
    ):
        """
        Create a session.

        Args:
            table: Table to analyse
            quasi_identifiers: Attribute names forming equivalence classes
            sampling_fraction: Sampling fraction in (0, 1]
            solver_config: Newton-Raphson settings
            show_progress: Mirror progress on a tqdm bar
            histogram: Precomputed histogram for these quasi-identifiers

        Raises:
            InvalidArgumentError: If an argument is invalid
        """
        self.table = table
        self.quasi_identifiers, _ = resolve_quasi_identifiers(table, quasi_identifiers)
        self.sampling_fraction = validate_sampling_fraction(sampling_fraction)
        self.solver_config = solver_config or SolverConfiguration()
        self.token = CancellationToken()
        self.progress = ProgressReporter(show_progress=show_progress)
        self._histogram = histogram
        self._lock = threading.Lock()

        logger.info(f"RiskSession created for {self.quasi_identifiers} "
                    f"(sampling fraction {self.sampling_fraction})")

    @classmethod
    def from_config(cls, table: TableAccessor, config: RiskConfig) -> "RiskSession":
        """Create a session from a RiskConfig."""
        return cls(
            table,
            config.quasi_identifiers,
            sampling_fraction=config.sampling_fraction,
            solver_config=config.solver,
            show_progress=config.show_progress
        )

    # Session state ------------------------------------------------------------

    def interrupt(self) -> None:
        """Ask the running query to stop. Safe to call from any thread."""
        self.token.cancel()

    def reset(self) -> None:
        """Clear a previous interruption so that further queries can run."""
        self.token.reset()
        self.progress.reset()

    @property
    def progress_value(self) -> int:
        return self.progress.value

    def _begin(self, name: str) -> ProgressPhase:
        self.progress.reset()
        self.token.check()
        logger.debug(f"Query {name} started")
        return self.progress.phase(0, 100)

    def _histogram_in(self, phase: ProgressPhase) -> Histogram:
        with self._lock:
            if self._histogram is None:
                self._histogram = build_histogram(
                    self.table, self.quasi_identifiers, self.token, phase
                )
        phase.complete()
        return self._histogram

    @property
    def population(self) -> PopulationModel:
        """Population model for the session's sample."""
        return PopulationModel(self.histogram().num_records, self.sampling_fraction)

    # Queries ------------------------------------------------------------------

    def histogram(self) -> Histogram:
        """Class-size histogram, built on first use and cached."""
        return self._histogram_in(self._begin('histogram'))

    def class_size_distribution(self) -> pd.DataFrame:
        """Histogram as a DataFrame (size, count, records, fraction_of_records)."""
        return self._histogram_in(self._begin('class_size_distribution')).to_frame()

    def record_class_sizes(self) -> List[int]:
        """Size of the equivalence class of every row."""
        self._begin('record_class_sizes')
        return equivalence_class_sizes(self.table, self.quasi_identifiers, self.token)

    def sample_reidentification_risk(self) -> SampleReidentificationRisk:
        phase = self._begin('sample_reidentification_risk')
        return SampleReidentificationRisk(self._histogram_in(phase))

    def sample_uniqueness_risk(self) -> SampleUniquenessRisk:
        phase = self._begin('sample_uniqueness_risk')
        return SampleUniquenessRisk(self._histogram_in(phase))

    def population_uniqueness_risk(self) -> PopulationUniquenessRisk:
        """
        Population uniqueness under all statistical models.

        The Dankar estimate is computed before returning so that any
        interruption surfaces here rather than on first access.
        """
        phase = self._begin('population_uniqueness_risk')
        histogram = self._histogram_in(phase.sub(0.0, 0.5))
        population = PopulationModel(histogram.num_records, self.sampling_fraction)
        risk = PopulationUniquenessRisk(histogram, population, self.solver_config, self.token)
        risk.estimate(StatisticalModel.DANKAR)
        phase.complete()
        return risk

    def sample_risk_summary(self, threshold: float = 0.2) -> SampleRiskSummary:
        """Prosecutor, journalist and marketer risk for a threshold in [0, 1]."""
        validate_threshold(threshold)
        phase = self._begin('sample_risk_summary')
        return SampleRiskSummary.from_table(
            self.table, self.quasi_identifiers, threshold, self.token, phase
        )

    def wildcard_risk(self, threshold: float = 0.2, wildcard: str = "*") -> SampleWildcardRisk:
        """Sample risk treating ``wildcard`` as matching any value."""
        validate_threshold(threshold)
        phase = self._begin('wildcard_risk')
        return SampleWildcardRisk(
            self.table, self.quasi_identifiers, threshold, wildcard, self.token, phase
        )

    def attribute_risks(
        self,
        model: Optional[Union[StatisticalModel, str]] = None
    ) -> List[QuasiIdentifierRisk]:
        """
        Risk profile of every non-empty subset of the quasi-identifiers.

        Args:
            model: Population model for the fraction of uniques; None for the
                   sample-based fraction
        """
        phase = self._begin('attribute_risks')
        analyzer = AttributeRiskAnalyzer(
            self.table, self.quasi_identifiers,
            model=model,
            sampling_fraction=self.sampling_fraction,
            config=self.solver_config,
            token=self.token,
            progress=phase
        )
        return analyzer.analyze()

    def uniqueness_by_sampling_fraction(
        self,
        fractions: Sequence[float] = DEFAULT_SAMPLING_FRACTIONS
    ) -> pd.DataFrame:
        """
        Population uniqueness of the sample for a range of sampling fractions.

        Args:
            fractions: Sampling fractions in (0, 1]

        Returns:
            DataFrame with one row per fraction: sample uniques and the
            Pitman, Zayatz and Dankar (without SNB) population uniques
        """
        fractions = [validate_sampling_fraction(f) for f in fractions]
        if not fractions:
            raise InvalidArgumentError("At least one sampling fraction is required")

        phase = self._begin('uniqueness_by_sampling_fraction')
        histogram = self._histogram_in(phase.sub(0.0, 0.2))
        sample_uniques = SampleUniquenessRisk(histogram).fraction_of_unique_tuples
        estimates = phase.sub(0.2, 1.0)

        rows = []
        for index, fraction in enumerate(fractions):
            self.token.check()
            risk = PopulationUniquenessRisk(
                histogram, PopulationModel(histogram.num_records, fraction),
                self.solver_config, self.token
            )
            rows.append({
                'sampling_fraction': fraction,
                'sample_uniques': sample_uniques,
                'pitman': risk.fraction_of_unique_tuples(StatisticalModel.PITMAN),
                'zayatz': risk.fraction_of_unique_tuples(StatisticalModel.ZAYATZ),
                'dankar_without_snb': risk.fraction_of_unique_tuples(
                    StatisticalModel.DANKAR_WITHOUT_SNB),
                'selected_model': risk.dankar_model_without_snb.value,
            })
            estimates.update((index + 1) / len(fractions))

        return pd.DataFrame(rows)

    # Session boundary ---------------------------------------------------------

    def run(self, name: str, *args, **kwargs) -> QueryResult:
        """
        Execute a query, translating cancellation into a QueryResult.

        Args:
            name: One of QUERIES
            *args, **kwargs: Passed to the query

        Returns:
            QueryResult with the value, or with ``interrupted=True``

        Raises:
            InvalidArgumentError: For an unknown query or invalid arguments
        """
        if name not in QUERIES:
            raise InvalidArgumentError(f"Unknown query: {name}. Choose from {list(QUERIES)}")

        start_time = time.time()
        try:
            value = getattr(self, name)(*args, **kwargs)
        except ComputationInterrupted:
            elapsed = time.time() - start_time
            logger.info(f"Query {name} interrupted after {elapsed:.2f} seconds")
            return QueryResult(name, None, True, elapsed)

        elapsed = time.time() - start_time
        logger.info(f"Query {name} finished in {elapsed:.2f} seconds")
        return QueryResult(name, value, False, elapsed)

    def summary(self, threshold: float = 0.2) -> Dict[str, Any]:
        """
        Headline measures of the session as a plain dictionary.

        Args:
            threshold: Risk threshold for the sample risk summary
        """
        histogram = self.histogram()
        return {
            'quasi_identifiers': list(self.quasi_identifiers),
            'histogram': histogram.to_dict(),
            'sample_reidentification_risk': self.sample_reidentification_risk().to_dict(),
            'sample_uniqueness_risk': self.sample_uniqueness_risk().to_dict(),
            'population_uniqueness_risk': self.population_uniqueness_risk().to_dict(),
            'sample_risk_summary': self.sample_risk_summary(threshold).to_dict(),
        }
