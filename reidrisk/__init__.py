# =============================================================================
# Re-identification Risk Estimation
# =============================================================================
#
# This package estimates the re-identification risk of tabular microdata from
# the equivalence classes induced by a set of quasi-identifiers.
#
# Modules:
#   - table: Read access to the analysed table
#   - histogram: Equivalence classes and their size histogram
#   - special_functions: Digamma and trigamma
#   - solver: Multivariate Newton-Raphson
#   - population_models: Pitman, Zayatz and SNB uniqueness models
#   - uniqueness_risk: Sample and population uniqueness, Dankar selection
#   - sample_risk: Prosecutor, journalist and marketer risk
#   - wildcard: Risk with wildcard matching of suppressed values
#   - attribute_risk: Risk of every quasi-identifier subset
#   - session: Cached, cancellable analysis session
#   - visualization: Report figures
#
# Author: James Weatherhead
# Institution: University of Texas Medical Branch (UTMB)
# =============================================================================

__version__ = "1.0.0"
__author__ = "James Weatherhead"
__email__ = "jacweath@utmb.edu"

from .errors import (
    ComputationInterrupted,
    InvalidArgumentError,
    PreconditionViolatedError,
    RiskEngineError,
    TrieConsistencyError,
)
from .config import RiskConfig, SolverConfiguration, load_config
from .progress import CancellationToken, ProgressReporter
from .table import DataFrameTable, TableAccessor
from .histogram import Histogram, build_histogram, equivalence_class_sizes
from .solver import NewtonRaphsonSolver, SolverSolution
from .population_models import (
    PopulationModel,
    StatisticalModel,
    UniquenessEstimate,
    estimate_pitman,
    estimate_snb,
    estimate_zayatz,
    fit_pitman,
    is_valid_estimate,
)
from .uniqueness_risk import (
    PopulationUniquenessRisk,
    SampleReidentificationRisk,
    SampleUniquenessRisk,
    estimate_uniqueness,
)
from .sample_risk import SampleRiskSummary
from .wildcard import SampleWildcardRisk
from .attribute_risk import AttributeRiskAnalyzer, QuasiIdentifierRisk
from .session import QueryResult, RiskSession
from .visualization import Visualizer

__all__ = [
    "ComputationInterrupted",
    "InvalidArgumentError",
    "PreconditionViolatedError",
    "RiskEngineError",
    "TrieConsistencyError",
    "RiskConfig",
    "SolverConfiguration",
    "load_config",
    "CancellationToken",
    "ProgressReporter",
    "DataFrameTable",
    "TableAccessor",
    "Histogram",
    "build_histogram",
    "equivalence_class_sizes",
    "NewtonRaphsonSolver",
    "SolverSolution",
    "PopulationModel",
    "StatisticalModel",
    "UniquenessEstimate",
    "estimate_pitman",
    "estimate_snb",
    "estimate_zayatz",
    "fit_pitman",
    "is_valid_estimate",
    "PopulationUniquenessRisk",
    "SampleReidentificationRisk",
    "SampleUniquenessRisk",
    "estimate_uniqueness",
    "SampleRiskSummary",
    "SampleWildcardRisk",
    "AttributeRiskAnalyzer",
    "QuasiIdentifierRisk",
    "QueryResult",
    "RiskSession",
    "Visualizer",
]
